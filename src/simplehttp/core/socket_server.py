"""
=============================================================================
LISTENER: LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module binds the listening socket, accepts client connections and
hands each one to the thread pool as a Connection session.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a socket file descriptor
    2. bind()      Associate the socket with an IP:PORT
                   └─ fails if the port is taken: fatal for startup
    3. listen()    OS starts queueing incoming connections
                   └─ backlog = max queue size before refusing
    4. accept()    Wait for a client; returns a NEW socket for it
                   └─ the listening socket keeps listening
    5. close()     Stop listening; the accept loop ends

=============================================================================
ONE CONNECTION, START TO FINISH
=============================================================================

    accept()
       │
       ├── settimeout(client_timeout)        idle-read limit for the session
       │
       └── pool.submit(session)
              │
              ├── accepted ──► a worker runs Connection.serve()
              │
              └── rejected ──► 500 written right here, socket closed

The listener never waits for the pool. A saturated pool costs the client
one small 500 response, not a stalled accept loop.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Allows reusing a local address immediately after the server stops.
    Without it, restarting shows "Address already in use" while old
    connections sit in TIME_WAIT.

TCP_NODELAY:
    Disables Nagle's algorithm. Responses are small and written in one
    go; we want them on the wire immediately.

=============================================================================
"""

import socket
import logging
import threading
from functools import partial
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..http.request import HTTPRequest, RequestParser
from ..http.response import HTTPResponse, internal_error
from .connection import Connection
from .thread_pool import ThreadPool


logger = logging.getLogger(__name__)


# How long accept() blocks before re-checking the shutdown flag
ACCEPT_POLL_INTERVAL = 0.5


def abort_socket(sock: socket.socket):
    """
    Shut a client socket down hard, from any thread.

    A session blocked in a read on this socket wakes up with end of stream
    and ends on its own. Used as the pool's interrupt hook.
    """
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass  # Not connected any more
    try:
        sock.close()
    except OSError as e:
        logger.debug(f"Error closing aborted socket: {e}")


class SocketServer:
    """
    The listener: binds, accepts and dispatches.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   listener = SocketServer(config, pool, handler, shutdown_event)    │
    │   listener.bind()            # raises OSError if the port is taken │
    │   listener.serve_forever()   # accept loop, on its own thread       │
    │   ...                                                               │
    │   shutdown_event.set()                                              │
    │   listener.close()           # serve_forever() returns              │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        config: ServerConfig,
        pool: ThreadPool,
        handler: Callable[[Optional[HTTPRequest]], HTTPResponse],
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the listener. Nothing is bound until bind().

        Args:
            config: Server configuration (host, port, backlog, timeouts).
            pool: Thread pool that runs the connection sessions.
            handler: Request handler every Connection uses.
            shutdown_event: Server-wide shutdown flag, shared with the
                            connections.
        """
        self.config = config
        self._pool = pool
        self._handler = handler
        self._shutdown_event = shutdown_event or threading.Event()
        self._parser = RequestParser(max_line_size=config.max_line_size)

        self._socket: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port), or None before bind()."""
        return self._address

    @property
    def is_listening(self) -> bool:
        return self._socket is not None and self._socket.fileno() != -1

    def _create_socket(self) -> socket.socket:
        """Create the listening socket with its options set."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() gives up periodically so the loop can see the shutdown flag
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self):
        """
        Bind and start listening.

        Raises:
            OSError: The address could not be bound (port in use,
                     permission denied, bad host).
        """
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            sock.close()
            raise

        self._socket = sock
        self._address = sock.getsockname()[:2]
        logger.info(f"Server listening on {self._address[0]}:{self._address[1]}")

    def serve_forever(self):
        """
        Accept connections until the listening socket is closed or shutdown
        is signalled.
        """
        if self._socket is None:
            raise RuntimeError("bind() must be called before serve_forever()")

        while not self._shutdown_event.is_set():
            try:
                client_socket, client_address = self._socket.accept()

            except socket.timeout:
                # Normal: lets us re-check the shutdown flag
                continue

            except OSError as e:
                if self._shutdown_event.is_set() or not self.is_listening:
                    # close() from another thread: the expected way out
                    logger.debug(f"Accept loop ending: {e}")
                    break
                logger.error(f"Accept error: {e}")
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            self._dispatch(client_socket, client_address)

        logger.info("Listener stopped")

    def _dispatch(self, client_socket: socket.socket, client_address: tuple):
        """Apply the idle timeout and hand the socket to the pool, never blocking."""
        try:
            client_socket.settimeout(self.config.client_timeout_seconds)
        except OSError as e:
            logger.warning(f"Could not configure socket for {client_address[0]}: {e}")
            abort_socket(client_socket)
            return

        accepted = self._pool.submit(
            self._run_session,
            args=(client_socket, client_address),
            on_interrupt=partial(abort_socket, client_socket),
        )
        if not accepted:
            self._reject(client_socket, client_address)

    def _run_session(self, client_socket: socket.socket, client_address: tuple):
        """Worker-side entry point: one Connection, served to completion."""
        conn = Connection(
            client_socket,
            client_address,
            handler=self._handler,
            parser=self._parser,
            server_name=self.config.server_name,
            shutdown_event=self._shutdown_event,
        )
        conn.serve()

    def _reject(self, client_socket: socket.socket, client_address: tuple):
        """
        Answer a connection the pool had no room for.

        No Connection and no handler: the 500 is built and written right
        here, then the socket is closed.
        """
        logger.warning(
            f"Server at capacity, rejecting connection from "
            f"{client_address[0]}:{client_address[1]}"
        )

        response = internal_error()
        response.set_header("Connection", "close")

        try:
            client_socket.sendall(response.to_bytes())
        except OSError as e:
            logger.warning(f"Could not send rejection to {client_address[0]}: {e}")
        finally:
            abort_socket(client_socket)

    def close(self):
        """Stop listening. Safe to call more than once, from any thread."""
        if self._socket is None:
            return
        try:
            self._socket.close()
        except OSError as e:
            logger.debug(f"Error closing listening socket: {e}")
