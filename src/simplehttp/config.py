"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the HTTP server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m simplehttp --port 3000                          │
    │                                                                      │
    │   2. Properties file                                                │
    │      └── config.properties (port=3000)                             │
    │                                                                      │
    │   3. Environment variables                                          │
    │      └── SIMPLEHTTP_PORT=3000 python -m simplehttp                 │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each layer is built on top of the one below it:

    config = ServerConfig.from_env()                       # env over defaults
    config = ServerConfig.from_properties(path, config)    # file over env
    config.port = args.port                                # CLI over file

=============================================================================
THE PROPERTIES FILE
=============================================================================

Plain key=value lines, # comments:

    # config.properties
    port=8080
    threadLimit=4
    clientTimeout=10000
    documentRoot=/srv/www

Any key may be left out; it keeps its value from the lower layers.

=============================================================================
"""

import configparser
import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Optional


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_FILE = "config.properties"

# Properties-file key → dataclass field
PROPERTY_KEYS = {
    "port": "port",
    "threadLimit": "thread_limit",
    "clientTimeout": "client_timeout",
    "documentRoot": "document_root",
}

# Environment variable → dataclass field
ENV_VARS = {
    "SIMPLEHTTP_PORT": "port",
    "SIMPLEHTTP_THREAD_LIMIT": "thread_limit",
    "SIMPLEHTTP_CLIENT_TIMEOUT": "client_timeout",
    "SIMPLEHTTP_DOCUMENT_ROOT": "document_root",
    "SIMPLEHTTP_LOG_LEVEL": "log_level",
}

_INT_FIELDS = {"port", "thread_limit", "client_timeout"}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    CONCURRENCY
    - thread_limit (sizes the whole thread pool), client_timeout

    CONTENT
    - document_root

    HTTP / LOGGING
    - max_line_size, server_name, log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """The IP address to bind to. "0.0.0.0" listens on every interface."""

    port: int = 8080
    """The port to listen on. 0 picks a free ephemeral port."""

    backlog: int = 50
    """Maximum number of connections the OS queues before accept()."""

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    thread_limit: int = 4
    """
    Upper bound on worker threads, i.e. on concurrently served sessions.
    The pool keeps thread_limit // 2 workers alive and queues up to
    thread_limit * 10 waiting connections.
    """

    client_timeout: int = 10000
    """
    Idle read timeout per client, in MILLISECONDS.
    0 = no timeout (a silent client holds its worker indefinitely).
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    document_root: str = "."
    """Directory request targets are resolved against (stored resolved)."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    max_line_size: int = 65536
    """Longest request line or header line accepted, in bytes."""

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    server_name: str = "simple-http-server/1.0"
    """Value of the Server response header."""

    def __post_init__(self):
        self.document_root = os.path.realpath(self.document_root)

    @property
    def client_timeout_seconds(self) -> Optional[float]:
        """client_timeout for socket.settimeout(): seconds, or None for blocking."""
        if self.client_timeout == 0:
            return None
        return self.client_timeout / 1000

    def set_document_root(self, path: str) -> bool:
        """
        Point the server at a new document root.

        The path must name an existing directory. Anything else is
        rejected with a warning and the previous root stays in effect.

        Returns:
            True if the root was updated.
        """
        resolved = os.path.realpath(path)
        if not os.path.isdir(resolved):
            logger.warning(
                f"Document root {path!r} is not an existing directory, "
                f"keeping {self.document_root!r}"
            )
            return False

        self.document_root = resolved
        return True

    @classmethod
    def from_properties(cls, path: str, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Create configuration from a key=value properties file.

        Args:
            path: Path to the properties file.
            base: Configuration to layer the file on top of (defaults when
                  omitted). It is copied, not modified.

        Returns:
            The new configuration. A missing or unreadable file is logged
            and yields a copy of `base` unchanged.

        Raises:
            ValueError: A numeric key has a non-integer value.
        """
        config = dataclasses.replace(base) if base is not None else cls()

        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            logger.warning(f"Could not read config file {path}, using defaults: {e}")
            return config

        # configparser wants a section header; properties files have none
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str  # keep "threadLimit" as written
        try:
            parser.read_string("[properties]\n" + text, source=path)
        except configparser.Error as e:
            raise ValueError(f"Malformed config file {path}: {e}") from e

        for key, value in parser.items("properties"):
            name = PROPERTY_KEYS.get(key)
            if name is None:
                logger.warning(f"Ignoring unknown config key {key!r} in {path}")
                continue
            config._apply(name, value, source=f"{path}:{key}")

        logger.debug(f"Loaded configuration from {path}")
        return config

    @classmethod
    def from_env(cls, base: Optional["ServerConfig"] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        SIMPLEHTTP_PORT            Server port (default: 8080)
        SIMPLEHTTP_THREAD_LIMIT    Max worker threads (default: 4)
        SIMPLEHTTP_CLIENT_TIMEOUT  Idle timeout in ms (default: 10000)
        SIMPLEHTTP_DOCUMENT_ROOT   Directory to serve (default: .)
        SIMPLEHTTP_LOG_LEVEL       Logging level (default: INFO)

        =====================================================================
        """
        config = dataclasses.replace(base) if base is not None else cls()

        for var, name in ENV_VARS.items():
            value = os.getenv(var)
            if value is not None:
                config._apply(name, value, source=var)

        return config

    def _apply(self, name: str, value: str, source: str):
        """Set one field from its string form."""
        value = value.strip()

        if name == "document_root":
            self.set_document_root(value)
        elif name in _INT_FIELDS:
            try:
                setattr(self, name, int(value))
            except ValueError:
                raise ValueError(f"{source}: expected an integer, got {value!r}") from None
        else:
            setattr(self, name, value)

    def validate(self) -> None:
        """
        Validate configuration values.

        Fail fast: errors surface at startup, not at the first request.

        Raises:
            ValueError: Describes the first invalid value found.
        """
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.thread_limit < 1:
            raise ValueError(f"thread_limit must be >= 1, got {self.thread_limit}")

        if self.client_timeout < 0:
            raise ValueError(f"client_timeout must be >= 0, got {self.client_timeout}")

        if self.max_line_size < 1:
            raise ValueError(f"max_line_size must be >= 1, got {self.max_line_size}")

        if not os.path.isdir(self.document_root):
            raise ValueError(f"document_root is not a directory: {self.document_root}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log_level: {self.log_level}")
