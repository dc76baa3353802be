"""
pytest configuration and fixtures.
"""

import http.client
import json
import socket
import threading
from typing import Dict, Generator, List, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from jsonhttp import JsonHTTP, Level, ServerConfig
from jsonhttp.http import HTTPRequest


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /hi/query?hi=hello_world&tag=a&tag=b HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name":"imchuncai"}'
    return (
        b"POST /hi HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n" +
        f"Content-Length: {len(body)}\r\n".encode() +
        b"Connection: close\r\n"
        b"\r\n"
    ) + body


def make_request(
    method: str = "POST",
    path: str = "/",
    body: bytes = b"",
    query: str = "",
    headers: Optional[Dict[str, str]] = None,
    client_address: Tuple[str, int] = ("10.0.0.7", 52100),
) -> HTTPRequest:
    """Build an HTTPRequest the way RequestParser would."""
    from urllib.parse import parse_qs

    all_headers = {k.lower(): v for k, v in (headers or {}).items()}
    if body:
        all_headers.setdefault("content-length", str(len(body)))
    return HTTPRequest(
        method=method,
        path=path,
        headers=all_headers,
        query_params=parse_qs(query, keep_blank_values=True),
        raw_query=query,
        body=body,
        client_address=client_address,
    )


def json_request(path: str, payload, method: str = "POST") -> HTTPRequest:
    return make_request(
        method,
        path,
        body=json.dumps(payload).encode(),
        headers={"Content-Type": "application/json"},
    )


def ipv6_loopback_available() -> bool:
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
        return True
    except OSError:
        return False


BOUNDARY = "jsonhttpboundary"


def multipart_body(*parts) -> bytes:
    """parts: (name, value) or (name, filename, content)"""
    chunks = []
    for part in parts:
        chunks.append(f"--{BOUNDARY}\r\n".encode())
        if len(part) == 2:
            name, value = part
            chunks.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode())
            chunks.append(value.encode() + b"\r\n")
        else:
            name, filename, content = part
            chunks.append(
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                "Content-Type: application/octet-stream\r\n\r\n".encode()
            )
            chunks.append(content + b"\r\n")
    chunks.append(f"--{BOUNDARY}--\r\n".encode())
    return b"".join(chunks)


def multipart_request(*parts, path: str = "/upload") -> HTTPRequest:
    return make_request(
        "POST",
        path,
        body=multipart_body(*parts),
        headers={"Content-Type": f"multipart/form-data; boundary={BOUNDARY}"},
    )


class RecordingLogger:
    """Logger sink that keeps every record for assertions."""

    def __init__(self):
        self.records: List[Tuple[Level, tuple]] = []
        self._lock = threading.Lock()

    def log(self, level, *values):
        with self._lock:
            self.records.append((level, values))

    def levels(self) -> List[Level]:
        return [level for level, _ in self.records]

    def text(self) -> str:
        return "\n".join(" ".join(str(v) for v in values) for _, values in self.records)


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


class LiveServer:
    """Runs a JsonHTTP app in a background thread."""

    def __init__(self, app: JsonHTTP, logger=None):
        self.app = app
        self.logger = logger
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(
            target=self.app.listen,
            kwargs={"logger": self.logger},
            daemon=True,
        )
        self._thread.start()

        for _ in range(50):  # 5 seconds max
            ready = self.app.ready
            if ready is not None and ready.wait(0.1):
                return
            if ready is None:
                threading.Event().wait(0.1)
        raise RuntimeError("Server failed to start")

    @property
    def port(self) -> int:
        return self.app.address[1]

    def request(self, method: str, path: str, body: bytes = b"", headers=None):
        """Send one request on a fresh connection; returns (status, headers, body)."""
        conn = http.client.HTTPConnection("127.0.0.1", self.port, timeout=5)
        try:
            conn.request(method, path, body=body or None, headers=headers or {})
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()

    def stop(self):
        self.app.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def live_server(config: ServerConfig, recording_logger: RecordingLogger) -> Generator:
    """
    Factory fixture: call it with a configured JsonHTTP to start serving.

        server = live_server(app)
        status, headers, body = server.request("GET", "/hi")
    """
    servers: List[LiveServer] = []

    def start(app: JsonHTTP) -> LiveServer:
        server = LiveServer(app, recording_logger)
        server.start()
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.stop()
