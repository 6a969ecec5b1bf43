"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that knows what HTTP/1.1 looks like on the wire, and nothing
that knows about sockets or threads:

    request.py       bytes → HTTPRequest  (RequestParser, Method)
    response.py      HTTPResponse → bytes (ResponseBuilder, helpers)
    status_codes.py  HTTPStatus enum with reason phrases

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, Method, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    ok,              # 200 OK
    bad_request,     # 400 Bad Request
    not_found,       # 404 Not Found
    internal_error,  # 500 Internal Server Error
    not_implemented, # 501 Not Implemented
)
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "Method",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "ok",
    "bad_request",
    "not_found",
    "internal_error",
    "not_implemented",

    # Status codes
    "HTTPStatus",
]
