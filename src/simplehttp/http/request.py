"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

This module converts the raw byte stream of a client connection into
structured HTTPRequest objects.

=============================================================================
ANATOMY OF A REQUEST (as this server accepts it)
=============================================================================

    GET /docs/index.html HTTP/1.1\r\n      ← Request line
    Host: localhost:8080\r\n               ← Header
    Connection: keep-alive\r\n             ← Header
    \r\n                                   ← Blank line ends the message

    There is no body: only GET and HEAD are served, and neither carries one.

=============================================================================
ONE STREAM PER CONNECTION
=============================================================================

The parser reads from a buffered, line-oriented stream (socket.makefile)
that lives as long as the connection does. It is never reset between
requests: with keep-alive, the second request starts exactly where the
first one's blank line ended.

    connection opens ──► makefile("rb") ──► parse() ──► parse() ──► ...
                                             request 1   request 2

Creating a fresh reader per request would silently drop whatever the
previous reader had already buffered.

=============================================================================
THREE OUTCOMES
=============================================================================

    parse(stream)
        │
        ├── HTTPRequest          well-formed (method may be UNSUPPORTED)
        │
        ├── socket.timeout       nothing arrived within the read timeout;
        │                        the connection just closes quietly
        │
        └── HTTPParseError       malformed input or end of stream
                                 (→ 400 Bad Request)

=============================================================================
"""

import logging
import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Dict, Optional


logger = logging.getLogger(__name__)


SUPPORTED_VERSION = "HTTP/1.1"


class HTTPParseError(Exception):
    """
    Raised when an HTTP request cannot be parsed.

    Attributes:
        at_eof: True when the stream ended before any byte of a request
                line arrived. The peer simply went away; there is nobody
                left to send a 400 to.
    """

    def __init__(self, message: str, at_eof: bool = False):
        super().__init__(message)
        self.at_eof = at_eof


class Method(Enum):
    """
    Request methods, as a closed set.

    UNSUPPORTED is an explicit marker for "the client sent a method we
    don't serve". It keeps the request well-formed (so the handler can
    answer 501) without ever storing None in place of a method.
    """
    GET = "GET"
    HEAD = "HEAD"
    UNSUPPORTED = "UNSUPPORTED"

    @classmethod
    def lookup(cls, token: str) -> "Method":
        """Case-insensitive lookup; anything unknown maps to UNSUPPORTED."""
        return _METHODS_BY_NAME.get(token.upper(), cls.UNSUPPORTED)


_METHODS_BY_NAME = {
    "GET": Method.GET,
    "HEAD": Method.HEAD,
}


@dataclass(frozen=True)
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    Immutable once parsed. Header keys are stored exactly as the client
    sent them; only the *values* of Connection are compared
    case-insensitively.

    Attributes:
        method: GET, HEAD or UNSUPPORTED.
        target: Raw request target, not decoded or normalized.
        version: Always "HTTP/1.1" for a request that parsed.
        headers: Header name → value; the last occurrence of a name wins.
        body: Always empty; request bodies are not supported.
    """

    method: Method
    target: str
    version: str = SUPPORTED_VERSION
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def is_keep_alive(self) -> bool:
        """
        Did the client ask to keep the connection open?

        Only an explicit "Connection: keep-alive" counts. A missing header
        means close, even on HTTP/1.1.
        """
        return self.headers.get("Connection", "").lower() == "keep-alive"

    def __str__(self) -> str:
        lines = [f"{self.method.value} {self.target} {self.version}"]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        return "\r\n".join(lines)


class RequestParser:
    """
    Parses HTTP requests from a connection's line-oriented input stream.

    ==========================================================================
    PARSING ALGORITHM
    ==========================================================================

        1. Read the request line
           └── split on the first two spaces → METHOD, TARGET, VERSION
           └── fewer than three tokens  → HTTPParseError
           └── VERSION != "HTTP/1.1"    → HTTPParseError
           └── unknown METHOD           → Method.UNSUPPORTED (→ 501)

        2. Read header lines until a blank line (or end of stream)
           └── split on the first colon
           └── no colon → store the name with an empty value, log it

        3. Stop. No body is read, whatever the method.

    ==========================================================================
    """

    def __init__(self, max_line_size: int = 65536, encoding: str = "utf-8"):
        """
        Initialize the request parser.

        Args:
            max_line_size: Longest line (request line or header) accepted,
                           in bytes. Longer lines are a parse error.
            encoding: Encoding used to decode request lines.
        """
        self.max_line_size = max_line_size
        self.encoding = encoding

    def parse(self, stream: BinaryIO) -> HTTPRequest:
        """
        Parse one request from the stream.

        Args:
            stream: Buffered binary stream of the connection. Consumed
                    incrementally; the next call picks up where this one
                    stopped.

        Returns:
            The parsed HTTPRequest.

        Raises:
            socket.timeout: No data arrived within the socket's timeout.
            HTTPParseError: The request is malformed, the stream ended, or
                            reading failed.
        """
        request_line = self._read_line(stream)
        if request_line is None:
            raise HTTPParseError("Connection closed before a request line", at_eof=True)

        logger.debug(f"Request line: {request_line}")

        errors = []
        parts = request_line.split(" ", 2)
        if len(parts) < 3:
            errors.append(f"Invalid request line (fewer than three parts): {request_line!r}")

        method = Method.lookup(parts[0])
        if method is Method.UNSUPPORTED:
            logger.warning(f"Unsupported method found in request: {parts[0]!r}")

        target = parts[1] if len(parts) > 1 else ""
        version = parts[2] if len(parts) > 2 else ""
        if len(parts) == 3 and version != SUPPORTED_VERSION:
            errors.append(f"Invalid request line (only {SUPPORTED_VERSION} is supported): {request_line!r}")

        headers = self._parse_headers(stream)

        if errors:
            for error in errors:
                logger.warning(error)
            raise HTTPParseError("; ".join(errors))

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
        )

    def _parse_headers(self, stream: BinaryIO) -> Dict[str, str]:
        """
        Read header lines up to the blank line that ends the message.

        End of stream also ends the header section; it is not an error on
        its own once the request line has arrived.
        """
        headers: Dict[str, str] = {}

        while True:
            line = self._read_line(stream)
            if not line:
                break

            name, sep, value = line.partition(":")
            if not sep:
                logger.warning(f"Unexpected non-header found: {line!r}")
                headers[name] = ""
                continue

            headers[name] = value.strip()

        return headers

    def _read_line(self, stream: BinaryIO) -> Optional[str]:
        """
        Read one line and strip its terminator (CRLF, or a bare LF).

        Returns:
            The decoded line, or None at end of stream.

        Raises:
            socket.timeout: Passed through untouched.
            HTTPParseError: Line too long, or the read itself failed.
        """
        try:
            raw = stream.readline(self.max_line_size + 1)
        except socket.timeout:
            raise
        except (OSError, ValueError) as e:
            # ValueError: the stream was closed under us (shutdown)
            raise HTTPParseError(f"Error reading HTTP request: {e}") from e

        if not raw:
            return None

        if len(raw) > self.max_line_size and not raw.endswith(b"\n"):
            raise HTTPParseError(f"Line exceeds {self.max_line_size} bytes")

        return raw.rstrip(b"\r\n").decode(self.encoding, errors="replace")


def parse_request(stream: BinaryIO) -> HTTPRequest:
    """Parse a single request with default parser settings."""
    return RequestParser().parse(stream)
