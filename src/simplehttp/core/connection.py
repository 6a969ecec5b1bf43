"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module owns one accepted client socket for its whole life: it reads
requests off it, hands them to the handler, writes the responses back and
finally releases everything.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends

    GET / HTTP/1.1\r\n\r\n

may be read as one chunk, or as "GET / HT" followed by "TP/1.1\r\n\r\n".
Rather than buffering recv() chunks by hand, we wrap the socket in a
buffered file object (socket.makefile) and let the parser read it one
line at a time. The buffer lives as long as the connection does:

    ┌──────────┐   makefile("rb")   ┌────────────────┐   readline()  ┌────────┐
    │  socket  │ ─────────────────► │ BufferedReader │ ────────────► │ parser │
    └──────────┘                    └────────────────┘               └────────┘
         ▲          makefile("wb")  ┌────────────────┐   write()     ┌────────┐
         └───────────────────────── │ BufferedWriter │ ◄──────────── │response│
                                    └────────────────┘               └────────┘

=============================================================================
KEEP-ALIVE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │                    With Keep-Alive                               │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   TCP Connect                                                    │
    │       │                                                          │
    │       ├── Request 1 (Connection: keep-alive) → Response         │
    │       ├── Request 2 (Connection: keep-alive) → Response         │
    │       ├── Request 3 (no Connection header)   → Response         │
    │       │                                                          │
    │   TCP Close                                                      │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

A session continues only while the client keeps asking for it with an
explicit "Connection: keep-alive". The response's own Connection header
mirrors that intent, so the client always knows what happens next.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    ACTIVE ──► parse ──► handle ──► respond ──┐
      ▲                                        │ keep-alive
      └────────────────────────────────────────┘
      │
      │  read timeout / end of stream / parse error /
      │  "Connection: close" / socket error / server shutdown
      ▼
    CLOSED

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from enum import Enum
from typing import Callable, Optional

from ..http.request import HTTPRequest, HTTPParseError, RequestParser
from ..http.response import HTTPResponse, internal_error


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("simplehttp.access")


class ConnectionState(Enum):
    """Connection lifecycle states."""
    ACTIVE = "active"  # Serving requests
    CLOSED = "closed"  # Socket and streams released


class Connection:
    """
    Represents a client connection and runs its request/response session.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. ONE PERSISTENT INPUT STREAM                                      │
    │     └── makefile("rb") once, parse every request from it             │
    │                                                                      │
    │  2. REQUEST → RESPONSE                                               │
    │     └── the handler decides; we only add Connection and Server       │
    │                                                                      │
    │  3. KNOWING WHEN TO STOP                                             │
    │     └── timeout, EOF, bad request, close intent, shutdown            │
    │                                                                      │
    │  4. CLOSING EXACTLY ONCE                                             │
    │     └── close() may be called from the session thread and from       │
    │         a shutting-down server at the same time                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    The read timeout is whatever the socket already has; the listener
    sets it from the configuration when it accepts the socket.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the connection was created.
        requests_handled: Number of responses written on this connection.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: tuple,
        handler: Callable[[Optional[HTTPRequest]], HTTPResponse],
        parser: Optional[RequestParser] = None,
        server_name: Optional[str] = None,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            sock: The accepted client socket. The connection owns it from
                  now on.
            address: Client's (ip, port) tuple.
            handler: Maps a parsed request (or None) to a response.
            parser: Request parser; a default RequestParser when omitted.
            server_name: Value of the Server response header, if any.
            shutdown_event: Server-wide shutdown flag. Once set, the
                            session stops between requests and socket
                            errors are no longer worth a warning.
        """
        self.socket = sock
        self.address = address
        self.id = str(uuid.uuid4())[:8]
        self.state = ConnectionState.ACTIVE
        self.created_at = time.time()
        self.requests_handled = 0

        self._handler = handler
        self._parser = parser or RequestParser()
        self._server_name = server_name
        self._shutdown_event = shutdown_event or threading.Event()
        self._close_lock = threading.Lock()

        self._rfile = sock.makefile("rb")
        self._wfile = sock.makefile("wb")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    # =========================================================================
    # SESSION LOOP
    # =========================================================================

    def serve(self):
        """
        Run the session until the connection closes. Never raises.

        This is the function a pool worker runs for each accepted client.
        """
        logger.info(f"[{self.id}] Connection from {self.client_ip}:{self.client_port}")

        try:
            while not self.is_closed and not self._shutdown_event.is_set():
                if not self.handle_one():
                    break

        except socket.timeout:
            logger.info(f"[{self.id}] Idle timeout, closing connection")

        except OSError as e:
            if self.is_closed or self._shutdown_event.is_set():
                logger.debug(f"[{self.id}] Socket error during shutdown: {e}")
            else:
                logger.warning(f"[{self.id}] Socket error: {e}")

        finally:
            self.close()
            logger.info(
                f"[{self.id}] Connection closed after {self.requests_handled} "
                f"request(s), {self.age:.2f}s"
            )

    def handle_one(self) -> bool:
        """
        Serve exactly one request.

        Returns:
            True if the session should continue with another request.

        Raises:
            socket.timeout: Nothing arrived within the read timeout.
            OSError: Writing the response failed.
        """
        try:
            request = self._parser.parse(self._rfile)
        except HTTPParseError as e:
            if e.at_eof:
                logger.debug(f"[{self.id}] Client closed the connection")
                return False

            # There is no request to read keep-alive intent from: answer and stop
            logger.warning(f"[{self.id}] Bad request from {self.client_ip}: {e}")
            self.send_response(self._handler(None), keep_alive=False)
            return False

        try:
            response = self._handler(request)
        except Exception as e:
            logger.exception(f"[{self.id}] Handler failed for {request.method.value} {request.target}: {e}")
            response = internal_error()

        keep_alive = request.is_keep_alive
        self.send_response(response, keep_alive=keep_alive, request=request)
        return keep_alive

    def send_response(
        self,
        response: HTTPResponse,
        keep_alive: bool,
        request: Optional[HTTPRequest] = None,
    ):
        """
        Write a response, stamping the Server and Connection headers.

        Args:
            response: The handler's response.
            keep_alive: Whether the session continues after this response.
            request: The request being answered, for the access log.
        """
        if self._server_name:
            response.set_header("Server", self._server_name)
        response.set_header("Connection", "keep-alive" if keep_alive else "close")

        data = response.to_bytes()
        self._wfile.write(data)
        self._wfile.flush()
        self.requests_handled += 1

        if request is not None:
            line = f"{request.method.value} {request.target}"
        else:
            line = "-"
        access_logger.info(
            f'{self.client_ip} "{line}" {int(response.status)} '
            f'{response.headers.get("Content-Length", "0")}'
        )

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Release the socket and both streams. Safe to call more than once,
        from any thread.

        shutdown(SHUT_RDWR) comes first: it wakes up a session thread that
        is blocked reading from this socket, which plain close() does not
        reliably do while the buffered reader still holds a reference.
        """
        with self._close_lock:
            if self.state is ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSED

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone or never fully connected

        for resource in (self._wfile, self._rfile, self.socket):
            try:
                resource.close()
            except (OSError, ValueError) as e:
                # Flushing a writer whose peer vanished fails; it is closed anyway
                logger.debug(f"[{self.id}] Error while closing {resource!r}: {e}")

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.id}, client={self.client_ip}:{self.client_port}, "
            f"state={self.state.value}, requests={self.requests_handled})"
        )
