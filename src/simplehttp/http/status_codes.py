"""
=============================================================================
HTTP STATUS CODES (RFC 7231)
=============================================================================

The status vocabulary this server speaks. The set is deliberately small:
a static file server only ever needs to say "here it is", "that doesn't
exist", "I can't parse that", "I don't do that method" or "I'm overloaded".

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK                - File or listing served            │
    │        │ 201 Created           - Defined, never emitted            │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request       - Malformed request line            │
    │        │ 404 Not Found         - Target missing under the root     │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Error    - Pool saturated / content I/O error │
    │        │ 501 Not Implemented   - Method other than GET or HEAD     │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    This enum extends IntEnum, so status codes can be used as integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      │
                      │      └── Reason phrase
                      └───────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def status_line(self) -> str:
        """Full status line, e.g. ``HTTP/1.1 200 OK``."""
        return f"HTTP/1.1 {int(self)} {self.phrase}"


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
}
