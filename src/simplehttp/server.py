"""
=============================================================================
MAIN HTTP SERVER
=============================================================================

This is the orchestrator that ties the components together and owns the
server's start/stop lifecycle.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          HTTPServer                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerThread ──► SocketServer (listener)                          │
    │                        │ accept()                                    │
    │                        ▼                                             │
    │                    ThreadPool ──► Worker ──► Connection.serve()     │
    │                                                 │                    │
    │                                   RequestParser ┤                    │
    │                               StaticFileHandler ┤                    │
    │                                   HTTPResponse ◄┘                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN SEQUENCE
=============================================================================

    stop()
      │
      ├── 1. set the shutdown flag        connections stop between requests,
      │                                   socket errors become expected noise
      ├── 2. close the listening socket   accept loop ends
      ├── 3. pool.shutdown()              queued sessions end without reading
      │      wait up to 2s
      ├── 4. pool.shutdown_now()          only if workers remain: client
      │      wait up to 2s                sockets are shut down under them
      └── 5. join the listener thread

=============================================================================
"""

import logging
import signal
import sys
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SocketServer, ThreadPool
from .handlers import StaticFileHandler


logger = logging.getLogger(__name__)


# Each shutdown phase waits at most this long
STOP_WAIT_SECONDS = 2.0


class ServerStartError(RuntimeError):
    """Raised by HTTPServer.start() when the listening socket can't be bound."""


class ServerThread(threading.Thread):
    """
    Runs the listener: bind, report back, then accept until closed.

    `ready` is set once binding has succeeded or failed; `error` holds the
    bind failure, if there was one.
    """

    def __init__(self, listener: SocketServer):
        super().__init__(name="ServerThread", daemon=True)
        self._listener = listener
        self.ready = threading.Event()
        self.error: Optional[OSError] = None

    def run(self):
        try:
            self._listener.bind()
        except OSError as e:
            self.error = e
            return
        finally:
            self.ready.set()

        try:
            self._listener.serve_forever()
        except Exception:
            logger.exception("Listener crashed")


class HTTPServer:
    """
    Static file HTTP/1.1 server.

    =========================================================================
    USAGE
    =========================================================================

        # Embedded (tests, other programs)
        server = HTTPServer(ServerConfig(port=0, document_root="./public"))
        server.start()                  # returns once the socket is bound
        host, port = server.address
        ...
        server.stop()

        # Or as a context manager
        with HTTPServer(config) as server:
            ...

        # CLI (blocking, handles Ctrl+C)
        HTTPServer(config).run()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Initialize the HTTP server.

        Args:
            config: Server configuration. Uses defaults if not provided.

        Raises:
            ValueError: The configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        # Shared by the listener and every connection; the only
        # cross-thread state besides the listening socket
        self._shutdown_event = threading.Event()

        self._thread_pool = ThreadPool.for_thread_limit(self.config.thread_limit)
        self._handler = StaticFileHandler(self.config.document_root)
        self._socket_server = SocketServer(
            self.config,
            self._thread_pool,
            self._handler,
            shutdown_event=self._shutdown_event,
        )

        self._server_thread: Optional[ServerThread] = None
        self._stop_lock = threading.Lock()
        self._stopped = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """The bound (host, port); port 0 in the config resolves to the real port."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return (
            self._server_thread is not None
            and self._server_thread.is_alive()
            and not self._shutdown_event.is_set()
        )

    @property
    def thread_pool(self) -> ThreadPool:
        """The worker pool, for monitoring."""
        return self._thread_pool

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> "HTTPServer":
        """
        Start serving in the background.

        Blocks only until the listening socket is bound (or binding failed).

        Raises:
            ServerStartError: The address could not be bound. Everything
                              started so far has been stopped again.
        """
        if self._server_thread is not None:
            raise RuntimeError("Server already started")

        self._thread_pool.start()

        self._server_thread = ServerThread(self._socket_server)
        self._server_thread.start()
        self._server_thread.ready.wait()

        error = self._server_thread.error
        if error is not None:
            self.stop()
            raise ServerStartError(
                f"Could not bind {self.config.host}:{self.config.port}: {error}"
            ) from error

        host, port = self.address
        logger.info(
            f"Serving {self.config.document_root} on {host}:{port} "
            f"({self.config.thread_limit} threads, "
            f"client timeout {self.config.client_timeout}ms)"
        )
        return self

    def stop(self):
        """
        Shut the server down. Only the first call does anything.

        Returns after at most ~2 x STOP_WAIT_SECONDS plus the listener join.
        """
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        logger.info("Shutting down server...")
        self._shutdown_event.set()
        self._socket_server.close()

        self._thread_pool.shutdown()
        if not self._thread_pool.await_termination(STOP_WAIT_SECONDS):
            logger.warning(
                f"Workers still busy after {STOP_WAIT_SECONDS}s, interrupting connections"
            )
            dropped = self._thread_pool.shutdown_now()
            if dropped:
                logger.info(f"Dropped {len(dropped)} queued connection(s)")
            if not self._thread_pool.await_termination(STOP_WAIT_SECONDS):
                logger.error("Thread pool did not terminate")

        if self._server_thread is not None:
            self._server_thread.join(STOP_WAIT_SECONDS)
            if self._server_thread.is_alive():
                logger.error("Listener thread did not stop")

        logger.info("Server stopped")

    def run(self):
        """
        Start the server and block until SIGINT, SIGTERM or Enter on stdin.

        This is the CLI path: it also configures logging. Must be called
        from the main thread (signal handlers can't be installed elsewhere).
        """
        self._setup_logging()
        self.start()

        stop_requested = threading.Event()

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            stop_requested.set()

        # Save original handlers so they can be restored
        original_handlers = {
            sig: signal.signal(sig, shutdown_handler)
            for sig in (signal.SIGINT, signal.SIGTERM)
        }

        threading.Thread(
            target=self._wait_for_enter,
            args=(stop_requested,),
            name="StdinWatcher",
            daemon=True,
        ).start()

        self._print_startup_banner()

        try:
            while not stop_requested.wait(0.5):
                pass
        finally:
            for sig, handler in original_handlers.items():
                signal.signal(sig, handler)
            self.stop()

    @staticmethod
    def _wait_for_enter(stop_requested: threading.Event):
        """Set stop_requested when a line arrives on stdin. EOF is ignored."""
        try:
            line = sys.stdin.readline()
        except (OSError, ValueError):
            return  # No usable stdin (daemonized)
        if line:
            logger.info("Enter pressed, initiating shutdown...")
            stop_requested.set()

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        # Configure root logger
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # Set simplehttp logger level
        logging.getLogger("simplehttp").setLevel(level)

    def _print_startup_banner(self):
        """Print server startup information."""
        host, port = self.address
        print()
        print(f"  {self.config.server_name} running on http://{host}:{port}")
        print(f"  Document root: {self.config.document_root}")
        print(f"  Threads: {self.config.thread_limit}")
        print("  Press Enter or Ctrl+C to stop")
        print()

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self) -> "HTTPServer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
