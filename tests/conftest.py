"""
pytest configuration and fixtures.
"""

import io
import socket
import time
from typing import Generator, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from simplehttp import HTTPServer, ServerConfig


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample keep-alive HTTP GET request."""
    return (
        b"GET /index.html HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_head_request() -> bytes:
    """Sample HTTP HEAD request without a Connection header."""
    return (
        b"HEAD /docs/a.txt HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"\r\n"
    )


def stream(raw: bytes) -> io.BufferedReader:
    """Wrap raw bytes in the kind of buffered stream socket.makefile gives."""
    return io.BufferedReader(io.BytesIO(raw))


@pytest.fixture
def doc_root(tmp_path: Path) -> Path:
    """
    A small document root:

        index.html      "hi"
        notes.txt       "plain notes"
        PAGE.HTM        "<p>upper</p>"
        unicode.txt     "héllo"
        docs/a.txt      "alpha"
        docs/b.html     "<b>beta</b>"
        docs/sub/       (empty)
    """
    (tmp_path / "index.html").write_text("hi", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("plain notes", encoding="utf-8")
    (tmp_path / "PAGE.HTM").write_text("<p>upper</p>", encoding="utf-8")
    (tmp_path / "unicode.txt").write_text("héllo", encoding="utf-8")
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "a.txt").write_text("alpha", encoding="utf-8")
    (docs / "b.html").write_text("<b>beta</b>", encoding="utf-8")
    (docs / "sub").mkdir()
    return tmp_path


@pytest.fixture
def config(doc_root: Path) -> ServerConfig:
    """Test server configuration on a free port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        thread_limit=4,
        client_timeout=5000,
        document_root=str(doc_root),
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[HTTPServer, None, None]:
    """A started server; stopped again after the test."""
    server = HTTPServer(config)
    server.start()

    yield server

    server.stop()


def connect(address: Tuple[str, int], timeout: float = 5.0) -> socket.socket:
    """Open a client connection to a running server."""
    sock = socket.create_connection(address, timeout=timeout)
    return sock


def read_response(rfile) -> Tuple[str, dict, bytes]:
    """
    Read one response from a client-side makefile("rb") stream.

    Returns:
        (status line, headers, body). The status line is "" if the server
        closed the connection without answering.
    """
    status_line = rfile.readline().decode("utf-8").rstrip("\r\n")
    if not status_line:
        return "", {}, b""

    headers = {}
    while True:
        line = rfile.readline().decode("utf-8").rstrip("\r\n")
        if not line:
            break
        name, _, value = line.partition(":")
        headers[name] = value.strip()

    body = rfile.read(int(headers.get("Content-Length", "0")))
    return status_line, headers, body


def wait_for(condition, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll condition() until it is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()
