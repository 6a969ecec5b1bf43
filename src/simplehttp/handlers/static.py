"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Maps a parsed request onto the document root and decides the response.

=============================================================================
ROUTING TABLE
=============================================================================

    request is None (parse failed)   → 400 Bad Request
    method UNSUPPORTED               → 501 Not Implemented
    GET  target missing              → 404 "Could not find: {target}"
    GET  target is a directory       → 200 text/html directory listing
    GET  target is a file            → 200 file content (text/html or text/plain)
    HEAD target missing              → 404, no body
    HEAD target exists               → 200, no body

Dispatch is a fixed dict lookup on the Method enum. The method set is
closed, so there is nothing to register and nothing to extend.

=============================================================================
RESOLVING TARGETS
=============================================================================

The raw target is joined onto the document root as-is:

    root = /srv/www, target = /docs/a.txt  →  /srv/www/docs/a.txt

No percent-decoding and no ".." filtering happens here. A target like
"/../etc/passwd" resolves outside the root; hardening that is out of scope
for this server.

=============================================================================
"""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional

from ..http.request import HTTPRequest, Method
from ..http.response import (
    HTTPResponse, ResponseBuilder, HTTPStatus,
    ok, bad_request, not_found, not_implemented, internal_error,
)


logger = logging.getLogger(__name__)


HTML_SUFFIXES = (".html", ".htm")


def handle_request(request: Optional[HTTPRequest], document_root: str) -> HTTPResponse:
    """
    Build the response for a request against a document root.

    Deterministic for a given filesystem state: no caching, no shared
    state, safe to call from any number of connection threads at once.

    Args:
        request: The parsed request, or None when parsing failed.
        document_root: Directory that request targets are resolved against.

    Returns:
        A new HTTPResponse. Never None.
    """
    if request is None:
        return bad_request()

    logger.debug(f"Request:\n{request}")

    handler = _METHOD_HANDLERS.get(request.method)
    if handler is None:
        return not_implemented()

    response = handler(request, document_root)
    logger.debug(f"Response:\n{response}")
    return response


def resolve_target(document_root: str, target: str) -> Path:
    """Join a raw request target onto the document root (no sanitizing)."""
    return Path(document_root, target.lstrip("/"))


def content_type_for(path: Path) -> str:
    """text/html for .html/.htm files (any case), text/plain for the rest."""
    if path.name.lower().endswith(HTML_SUFFIXES):
        return "text/html"
    return "text/plain"


def _handle_get(request: HTTPRequest, document_root: str) -> HTTPResponse:
    """GET: serve a file or a directory listing."""
    logger.info(f"Processing GET for target: {request.target}")

    target_path = resolve_target(document_root, request.target)

    if not os.path.exists(target_path):
        return not_found(request.target)

    if os.path.isdir(target_path):
        return _directory_listing(target_path, request.target, document_root)

    return _serve_file(target_path, request.target)


def _handle_head(request: HTTPRequest, document_root: str) -> HTTPResponse:
    """
    HEAD: existence check only.

    Never opens the file or lists the directory. A missing target gets a
    bare 404 with no body: HEAD responses carry headers only.
    """
    logger.info(f"Processing HEAD for target: {request.target}")

    target_path = resolve_target(document_root, request.target)

    if not os.path.exists(target_path):
        return not_found()

    return ok()


def _serve_file(path: Path, target: str) -> HTTPResponse:
    """Read the file as UTF-8 text (bad bytes become U+FFFD)."""
    try:
        content = path.read_bytes().decode("utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"Exception when reading target file into response body: {e}")
        return internal_error(f"Could not read: {target}")

    return ok(content, content_type_for(path))


def _directory_listing(path: Path, target: str, document_root: str) -> HTTPResponse:
    """
    Render the name and contents of a directory.

        <!DOCTYPE html><html><body>
        <h2>Directory: /docs</h2>
        <ul>
          <li><a href="/">..</a></li>             ← omitted for the root
          <li><a href="/docs/a.txt">a.txt</a></li>
        </ul>
        </body></html>

    Links are root-relative, so they work no matter how the target was
    spelled (with or without a trailing slash).
    """
    root = os.path.normpath(document_root)
    directory = os.path.normpath(path)

    try:
        with os.scandir(directory) as it:
            names = sorted(entry.name for entry in it)
    except OSError as e:
        logger.warning(f"Error reading files from {target}: {e}")
        return internal_error(f"Could not list: {target}")

    items = []
    if directory != root:
        parent = _relative_href(os.path.dirname(directory), root)
        items.append(f'<li><a href="{parent}">..</a></li>')

    for name in names:
        href = _relative_href(os.path.join(directory, name), root)
        items.append(f'<li><a href="{href}">{name}</a></li>')

    html = (
        "<!DOCTYPE html><html><body>"
        f"<h2>Directory: {target}</h2>"
        f"<ul>{''.join(items)}</ul>"
        "</body></html>"
    )
    return (ResponseBuilder()
        .status(HTTPStatus.OK)
        .html(html)
        .build())


def _relative_href(path: str, root: str) -> str:
    """Root-relative href: "/" + path relative to the document root."""
    relative = os.path.relpath(path, root)
    if relative == os.curdir:
        return "/"
    return "/" + Path(relative).as_posix()


_METHOD_HANDLERS: Dict[Method, Callable[[HTTPRequest, str], HTTPResponse]] = {
    Method.GET: _handle_get,
    Method.HEAD: _handle_head,
}


class StaticFileHandler:
    """
    handle_request() bound to one document root.

    This is what a Connection calls: it only ever knows "request in,
    response out" and never sees the configuration.

        handler = StaticFileHandler("/srv/www")
        response = handler(request)
    """

    def __init__(self, document_root: str):
        self.document_root = document_root

    def handle(self, request: Optional[HTTPRequest]) -> HTTPResponse:
        """Handle a request (None means the request failed to parse)."""
        return handle_request(request, self.document_root)

    __call__ = handle
