"""
=============================================================================
HTTP SERVER CLI ENTRY POINT
=============================================================================

    # Serve the current directory on port 8080
    python -m simplehttp

    # Custom port and document root
    python -m simplehttp --port 3000 --root ./public

    # Settings from a properties file (config.properties is picked up
    # automatically when it exists in the working directory)
    python -m simplehttp --config server.properties

Settings are layered: defaults, then SIMPLEHTTP_* environment variables,
then the properties file, then command-line flags.

=============================================================================
"""

import argparse
import os
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig, DEFAULT_CONFIG_FILE, LOG_LEVELS
from .server import HTTPServer, ServerStartError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simple-http-server",
        description="Minimal HTTP/1.1 static file server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m simplehttp                          # Serve . on port 8080
  python -m simplehttp --port 3000 --root www   # Custom port and root
  python -m simplehttp --threads 8              # 8 worker threads
  python -m simplehttp --timeout 0              # Never time out idle clients
        """
    )

    # Flags default to None so "not given" can't override lower layers

    parser.add_argument(
        "--config", "-c",
        default=None,
        help=f"Properties file to read (default: {DEFAULT_CONFIG_FILE} if present)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080)"
    )

    parser.add_argument(
        "--threads", "-t",
        type=int,
        default=None,
        help="Maximum worker threads (default: 4)"
    )

    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="Idle client timeout in milliseconds, 0 = none (default: 10000)"
    )

    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Document root directory (default: current directory)"
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"simple-http-server {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Layer the configuration sources: env, then file, then CLI flags.

    Raises:
        ValueError: A numeric setting in the file or environment is not
                    an integer.
    """
    config = ServerConfig.from_env()

    config_path = args.config
    if config_path is None and os.path.exists(DEFAULT_CONFIG_FILE):
        config_path = DEFAULT_CONFIG_FILE
    if config_path is not None:
        config = ServerConfig.from_properties(config_path, base=config)

    if args.port is not None:
        config.port = args.port
    if args.threads is not None:
        config.thread_limit = args.threads
    if args.timeout is not None:
        config.client_timeout = args.timeout
    if args.root is not None:
        config.set_document_root(args.root)
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
        server = HTTPServer(config)
        server.run()
    except (ValueError, ServerStartError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
