"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

This module turns "what the handler decided" into the exact bytes that go
back over the socket.

=============================================================================
ANATOMY OF A RESPONSE
=============================================================================

    HTTP/1.1 200 OK\r\n                           ← Status line
    Date: Mon, 19 Oct 2026 10:00:00 GMT\r\n       ← Stamped at creation
    Content-Type: text/html\r\n                   ← Set by the handler
    Connection: keep-alive\r\n                    ← Mirrors the request
    Content-Length: 2\r\n                         ← Computed last
    \r\n                                          ← Blank line
    hi                                            ← Body (optional)

=============================================================================
HEADER ORDER
=============================================================================

Headers live in a plain dict, and Python dicts keep insertion order. That
gives a deterministic wire order without any extra bookkeeping:

    1. Date            - added in __post_init__, so always first
    2. handler headers - in the order the handler set them
    3. Connection      - added by the connection after routing
    4. Content-Length  - re-inserted by to_bytes(), so always last

=============================================================================
CONTENT-LENGTH IS IN BYTES
=============================================================================

Bodies are text. Content-Length must count the bytes of the encoded body,
not the characters: "héllo" is 5 characters but 6 UTF-8 bytes. Counting
characters would make the client wait forever for a byte that never comes
(or read the start of the next response as part of this one).

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from .status_codes import HTTPStatus


BODY_ENCODING = "utf-8"


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Use ResponseBuilder (or the convenience functions at the bottom of this
    module) for a more readable way to construct responses.

    Attributes:
        status: HTTP status code.
        headers: Response headers, emitted in insertion order.
        body: Optional text body. None means "no body at all".
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None

    def __post_init__(self):
        """Stamp the Date header once, at generation time."""
        if "Date" not in self.headers:
            self.headers = {
                "Date": format_http_date(datetime.now(timezone.utc)),
                **self.headers,
            }

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 200 OK"
        """
        return self.status.status_line

    @property
    def body_bytes(self) -> bytes:
        """The body encoded for the wire (empty when there is no body)."""
        if self.body is None:
            return b""
        return self.body.encode(BODY_ENCODING)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self) -> bytes:
        """
        Serialize the response to bytes for sending over the socket.

        Content-Length is recomputed here, from the body as it is right
        now, so a body changed after construction is still described
        correctly. No body means "Content-Length: 0".

        Returns:
            Complete HTTP response as bytes ready for the socket.
        """
        body = self.body_bytes

        self.headers.pop("Content-Length", None)
        self.headers["Content-Length"] = str(len(body))

        lines = [self.status_line]
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode(BODY_ENCODING) + b"\r\n"
        return header_bytes + body

    def __str__(self) -> str:
        return self.to_bytes().decode(BODY_ENCODING, errors="replace")


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .html("<h2>Directory: /</h2>")
            .build())

    Each method returns `self`, except build().
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: Optional[str] = None

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        """Set the HTTP status code."""
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add a single response header."""
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        """Set the Content-Type header."""
        return self.header("Content-Type", content_type)

    def body(self, body: Optional[str]) -> "ResponseBuilder":
        """Set the response body without touching Content-Type."""
        self._body = body
        return self

    def text(self, text: str) -> "ResponseBuilder":
        """Set a plain text body (Content-Type: text/plain)."""
        self._body = text
        self._headers["Content-Type"] = "text/plain"
        return self

    def html(self, html: str) -> "ResponseBuilder":
        """Set an HTML body (Content-Type: text/html)."""
        self._body = html
        self._headers["Content-Type"] = "text/html"
        return self

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Mon, 19 Oct 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT, never local time, and the day/month
    names are English regardless of the process locale (which is why we
    don't use strftime's %a/%b here).
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# One-liners for the responses the handler and the listener produce.
#
#     return not_found("/missing.txt")
#     return not_implemented()
#
# =============================================================================

def ok(body: Optional[str] = None, content_type: Optional[str] = None) -> HTTPResponse:
    """Create a 200 OK response, optionally with a body and Content-Type."""
    builder = ResponseBuilder().status(HTTPStatus.OK).body(body)
    if content_type:
        builder.content_type(content_type)
    return builder.build()


def bad_request() -> HTTPResponse:
    """Create a 400 Bad Request response (no body)."""
    return ResponseBuilder().status(HTTPStatus.BAD_REQUEST).build()


def not_found(target: Optional[str] = None) -> HTTPResponse:
    """
    Create a 404 Not Found response.

    Args:
        target: The request target that could not be found. When given,
                the body reads "Could not find: {target}". HEAD responses
                pass None and get no body.
    """
    builder = ResponseBuilder().status(HTTPStatus.NOT_FOUND)
    if target is not None:
        builder.body(f"Could not find: {target}")
    return builder.build()


def not_implemented() -> HTTPResponse:
    """Create a 501 Not Implemented response (no body)."""
    return ResponseBuilder().status(HTTPStatus.NOT_IMPLEMENTED).build()


def internal_error(message: Optional[str] = None) -> HTTPResponse:
    """
    Create a 500 Internal Server Error response.

    Keep the message generic: it goes to the client.
    """
    builder = ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR)
    if message is not None:
        builder.text(message)
    return builder.build()
