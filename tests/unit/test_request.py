"""
Unit tests for HTTP request parsing.
"""

import pytest

from jsonhttp.http.request import HTTPRequest, RequestParser, HTTPParseError


def parse(raw: bytes) -> HTTPRequest:
    return RequestParser().parse(raw, ("127.0.0.1", 40000))


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Request line and client address are carried over."""
        request = RequestParser().parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/hi/query"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.remote_ip == "127.0.0.1"

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse(sample_get_request)

        assert request.get_header("host") == "localhost:8080"
        assert request.headers["accept"] == "application/json"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        """Raw query is kept and repeated keys keep every value."""
        request = parse(sample_get_request)

        assert request.raw_query == "hi=hello_world&tag=a&tag=b"
        assert request.get_query("hi") == "hello_world"
        assert request.query_params["tag"] == ["a", "b"]
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_post_with_body(self, sample_post_request: bytes):
        request = parse(sample_post_request)

        assert request.method == "POST"
        assert request.content_type == "application/json"
        assert request.body == b'{"name":"imchuncai"}'
        assert request.is_keep_alive is False

    def test_parse_encoded_query(self):
        raw = b"GET /search?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse(raw)

        assert request.path == "/search"
        assert request.get_query("q") == "hello world"

    def test_parse_invalid_method(self):
        raw = b"BREW /pot HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse(b"GET\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_parse_missing_terminator(self):
        with pytest.raises(HTTPParseError):
            parse(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_parse_path_traversal_blocked(self):
        raw = b"GET /../../../etc/passwd HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse(raw)

        assert "path" in str(exc_info.value).lower()

    def test_parse_request_too_large(self):
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_keep_alive_defaults(self):
        assert parse(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n").is_keep_alive is False
        assert parse(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n").is_keep_alive is True
        assert parse(
            b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n"
        ).is_keep_alive is True

    def test_body_trimmed_to_content_length(self):
        """Bytes past Content-Length belong to the next request."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 4\r\n\r\nbodyGET"
        request = parse(raw)

        assert request.content_length == 4
        assert request.body == b"body"

    def test_short_body_rejected(self):
        with pytest.raises(HTTPParseError):
            parse(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc")

    def test_case_insensitive_headers(self):
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: Multipart/Form-Data; boundary=x\r\n\r\n"
        request = parse(raw)

        assert request.content_type == "multipart/form-data"
        assert request.get_header("Content-Type") == "Multipart/Form-Data; boundary=x"

    def test_repeated_headers_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"
        assert parse(raw).get_header("accept") == "a, b"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_content_type_absent(self):
        assert HTTPRequest(method="GET", path="/").content_type is None

    def test_invalid_content_length_is_zero(self):
        request = HTTPRequest(method="POST", path="/", headers={"content-length": "abc"})
        assert request.content_length == 0
