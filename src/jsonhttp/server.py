"""
=============================================================================
HTTP TRANSPORT SERVER
=============================================================================

Ties the socket server, worker pool, request parser and router together.
jsonhttp.app registers its dispatch function on one of these per path.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer ──accept──► ThreadPool ──► _process_connection()     │
    │                                                │                     │
    │                               read ──► parse ──► Router.handle()    │
    │                                                │                     │
    │                               send ◄── Connection / Keep-Alive      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. SocketServer accepts the TCP connection
    2. The connection is queued in the ThreadPool
    3. A worker reads and parses one request
    4. Router matches the path and calls the handler
    5. Connection headers are added and the response sent
    6. Keep-alive: back to 3. Otherwise the connection closes.

Anything a handler raises becomes a bare 500 here. The dispatch layer
normally catches everything first, so this is a last line of defense.

=============================================================================
"""

import logging
import threading
from http import HTTPStatus
from typing import Optional, Tuple

from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .http import (
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    Handler,
    RequestParser,
    Router,
    internal_error,
    json_response,
)


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Threaded HTTP/1.1 server.

    Usage:
        server = HTTPServer(ServerConfig(port=8080))
        server.route("/hi", hi_handler)
        server.run()                     # blocks until shutdown()
    """

    def __init__(self, config: Optional[ServerConfig] = None, router: Optional[Router] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._router = router if router is not None else Router()
        self._running = False

    @property
    def router(self) -> Router:
        return self._router

    @property
    def ready(self) -> threading.Event:
        """Set once the listening socket is bound."""
        return self._socket_server.ready

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    def route(self, path: str, handler: Handler) -> None:
        self._router.add_route(path, handler)

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start serving (blocking).

        Raises:
            OSError: If the listen address cannot be bound.
        """
        if host is not None:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._running = True
        self._setup_logging()
        self._thread_pool.start()
        try:
            self._socket_server.start(self._handle_connection)
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop. run() returns within about a second."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("jsonhttp").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(timeout=self.config.keep_alive_timeout)
        logger.info("Server stopped")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        try:
            self._thread_pool.submit(self._process_connection, conn)
        except RuntimeError:
            logger.warning(f"[{conn.id}] Server stopping, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server stopping")
            conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (runs in a worker thread)."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break
                except ValueError as e:
                    self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(e))
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    self._send_error(conn, e.status_code, str(e))
                    break

                response = self._dispatch(conn, request)

                keep_alive = request.is_keep_alive and self.config.keep_alive
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                if not conn.send_response(response.to_bytes(self.config.server_name)):
                    break
                if not keep_alive:
                    break

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        try:
            return self._router.handle(request)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return internal_error()

    def _send_error(self, conn: Connection, status: int, message: str):
        """Error response for failures before a handler runs."""
        response = json_response({"error": message}, status)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))
