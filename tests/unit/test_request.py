"""
Unit tests for HTTP request parsing.
"""

import socket

import pytest

from simplehttp.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    Method,
    parse_request,
)

from conftest import stream


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        request = RequestParser().parse(stream(sample_get_request))

        assert request.method is Method.GET
        assert request.target == "/index.html"
        assert request.version == "HTTP/1.1"
        assert request.body == b""

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed and values trimmed."""
        request = parse_request(stream(sample_get_request))

        assert request.headers["Host"] == "localhost:8080"
        assert request.headers["User-Agent"] == "pytest"
        assert request.is_keep_alive is True

    def test_parse_head(self, sample_head_request: bytes):
        """Test parsing a HEAD request."""
        request = parse_request(stream(sample_head_request))

        assert request.method is Method.HEAD
        assert request.target == "/docs/a.txt"
        assert request.is_keep_alive is False

    def test_method_is_case_insensitive(self):
        """Test that the method token matches case-insensitively."""
        request = parse_request(stream(b"get / HTTP/1.1\r\n\r\n"))
        assert request.method is Method.GET

    def test_unsupported_method(self):
        """Test that an unknown method parses as UNSUPPORTED."""
        request = parse_request(stream(b"POST / HTTP/1.1\r\nHost: test\r\n\r\n"))

        assert request.method is Method.UNSUPPORTED
        assert request.target == "/"

    def test_too_few_tokens(self):
        """Test that a request line with fewer than three tokens fails."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(stream(b"GET /\r\n\r\n"))

        assert exc_info.value.at_eof is False

    def test_single_token(self):
        """Test that a one-word request line fails."""
        with pytest.raises(HTTPParseError):
            parse_request(stream(b"GET\r\n\r\n"))

    def test_wrong_version(self):
        """Test that only HTTP/1.1 is accepted."""
        with pytest.raises(HTTPParseError):
            parse_request(stream(b"GET / HTTP/1.0\r\n\r\n"))

    def test_structural_fault_wins_over_unsupported_method(self):
        """Test that a bad version is an error even with an unknown method."""
        with pytest.raises(HTTPParseError):
            parse_request(stream(b"POST / HTTP/2\r\n\r\n"))

    def test_target_with_spaces_goes_into_version(self):
        """Test that only the first two spaces split the request line."""
        with pytest.raises(HTTPParseError):
            parse_request(stream(b"GET /a b HTTP/1.1\r\n\r\n"))

    def test_target_is_verbatim(self):
        """Test that the target is neither decoded nor normalized."""
        request = parse_request(stream(b"GET /a%20b/../c?x=1 HTTP/1.1\r\n\r\n"))
        assert request.target == "/a%20b/../c?x=1"

    def test_empty_stream_is_eof(self):
        """Test that end of stream before a request line is flagged."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(stream(b""))

        assert exc_info.value.at_eof is True

    def test_blank_request_line(self):
        """Test that an empty request line is a parse error, not EOF."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(stream(b"\r\n"))

        assert exc_info.value.at_eof is False

    def test_header_without_colon(self):
        """Test that a header with no colon is stored with an empty value."""
        request = parse_request(stream(b"GET / HTTP/1.1\r\nBogusHeader\r\nHost: x\r\n\r\n"))

        assert request.headers["BogusHeader"] == ""
        assert request.headers["Host"] == "x"

    def test_header_value_keeps_later_colons(self):
        """Test that only the first colon splits a header."""
        request = parse_request(stream(b"GET / HTTP/1.1\r\nHost: localhost:8080\r\n\r\n"))
        assert request.headers["Host"] == "localhost:8080"

    def test_duplicate_header_last_wins(self):
        """Test that the last occurrence of a header wins."""
        raw = b"GET / HTTP/1.1\r\nX-Test: one\r\nX-Test: two\r\n\r\n"
        request = parse_request(stream(raw))

        assert request.headers["X-Test"] == "two"

    def test_header_keys_are_case_sensitive(self):
        """Test that header names are stored exactly as sent."""
        request = parse_request(stream(b"GET / HTTP/1.1\r\nconnection: keep-alive\r\n\r\n"))

        assert "connection" in request.headers
        assert "Connection" not in request.headers
        assert request.is_keep_alive is False

    def test_headers_end_at_eof(self):
        """Test that end of stream also ends the header section."""
        request = parse_request(stream(b"GET / HTTP/1.1\r\nHost: x\r\n"))
        assert request.headers == {"Host": "x"}

    def test_lf_only_line_endings(self):
        """Test that bare LF line endings are tolerated."""
        request = parse_request(stream(b"GET /x HTTP/1.1\nHost: y\n\n"))

        assert request.target == "/x"
        assert request.headers["Host"] == "y"

    def test_no_body_is_read(self):
        """Test that bytes after the blank line are left for the next request."""
        rfile = stream(
            b"GET /one HTTP/1.1\r\n\r\n"
            b"GET /two HTTP/1.1\r\n\r\n"
        )
        parser = RequestParser()

        assert parser.parse(rfile).target == "/one"
        assert parser.parse(rfile).target == "/two"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(rfile)
        assert exc_info.value.at_eof is True

    def test_line_too_long(self):
        """Test that oversized lines are rejected."""
        parser = RequestParser(max_line_size=32)
        raw = b"GET / HTTP/1.1\r\nX-Large: " + b"A" * 100 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError):
            parser.parse(stream(raw))

    def test_timeout_propagates(self):
        """Test that a read timeout is not turned into a parse error."""
        class TimingOutStream:
            def readline(self, size=-1):
                raise socket.timeout("timed out")

        with pytest.raises(socket.timeout):
            RequestParser().parse(TimingOutStream())

    def test_read_error_becomes_parse_error(self):
        """Test that other I/O errors surface as parse errors."""
        class BrokenStream:
            def readline(self, size=-1):
                raise ConnectionResetError("reset by peer")

        with pytest.raises(HTTPParseError):
            RequestParser().parse(BrokenStream())


class TestHTTPRequest:
    """Tests for HTTPRequest class."""

    def test_keep_alive_value_case_insensitive(self):
        """Test Connection: Keep-Alive in any case means keep-alive."""
        request = HTTPRequest(method=Method.GET, target="/", headers={"Connection": "Keep-Alive"})
        assert request.is_keep_alive is True

    def test_no_connection_header_means_close(self):
        """Test that a missing Connection header means close."""
        request = HTTPRequest(method=Method.GET, target="/")
        assert request.is_keep_alive is False

    def test_connection_close(self):
        """Test that Connection: close is not keep-alive."""
        request = HTTPRequest(method=Method.GET, target="/", headers={"Connection": "close"})
        assert request.is_keep_alive is False

    def test_immutable(self):
        """Test that a parsed request can't be modified."""
        request = HTTPRequest(method=Method.GET, target="/")

        with pytest.raises(AttributeError):
            request.target = "/other"

    def test_str(self):
        """Test the request's text form."""
        request = HTTPRequest(method=Method.HEAD, target="/a", headers={"Host": "x"})
        assert str(request) == "HEAD /a HTTP/1.1\r\nHost: x"


class TestMethod:
    """Tests for the Method enum."""

    @pytest.mark.parametrize("token,expected", [
        ("GET", Method.GET),
        ("head", Method.HEAD),
        ("Get", Method.GET),
        ("POST", Method.UNSUPPORTED),
        ("DELETE", Method.UNSUPPORTED),
        ("", Method.UNSUPPORTED),
    ])
    def test_lookup(self, token, expected):
        """Test method lookup."""
        assert Method.lookup(token) is expected
