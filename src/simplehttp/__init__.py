"""
=============================================================================
SIMPLEHTTP - A Minimal Static File HTTP/1.1 Server
=============================================================================

Serves files and directory listings from a document root over GET and
HEAD, using raw sockets, a bounded thread pool and nothing but the
standard library.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    simplehttp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m simplehttp)
    ├── server.py            # HTTPServer: start/stop lifecycle
    ├── config.py            # ServerConfig dataclass
    ├── core/                # Low-level components
    │   ├── socket_server.py # Listener: bind, accept, dispatch
    │   ├── connection.py    # Per-client request/response session
    │   └── thread_pool.py   # Bounded worker pool
    ├── http/                # HTTP protocol components
    │   ├── request.py       # HTTP request parsing
    │   ├── response.py      # HTTP response building
    │   └── status_codes.py  # HTTP status enum
    └── handlers/
        └── static.py        # GET/HEAD against the document root

=============================================================================
QUICK START
=============================================================================

    from simplehttp import HTTPServer, ServerConfig

    with HTTPServer(ServerConfig(port=8080, document_root="./public")) as server:
        input("Serving, press Enter to stop\\n")

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer, ServerStartError
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerStartError", "ServerConfig", "__version__"]
