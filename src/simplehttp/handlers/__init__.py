"""
Request handlers.

Only one lives here: the static file handler, which serves files and
directory listings from the document root over GET and HEAD.

    from simplehttp.handlers import StaticFileHandler

    handler = StaticFileHandler("/srv/www")
    response = handler(request)
"""

from .static import StaticFileHandler, handle_request, resolve_target, content_type_for

__all__ = [
    "StaticFileHandler",
    "handle_request",
    "resolve_target",
    "content_type_for",
]
