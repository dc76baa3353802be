"""
=============================================================================
APPLICATION: REGISTRATION AND LISTEN
=============================================================================

JsonHTTP is what application code talks to.

    app = JsonHTTP()

    @app.handle("/hi")
    def hi(req: Request) -> Response:
        body = req.unmarshal(Hi)
        if not body.name:
            bad_request("name is empty")
        return success({"message": f"hello, {body.name}!"})

    app.listen(":8080", max_tries=3)

=============================================================================
HANDLER SHAPES
=============================================================================

    ┌──────────────────────┬──────────────┬────────────────────────────┐
    │ Method               │ Handler gets │ Handler returns            │
    ├──────────────────────┼──────────────┼────────────────────────────┤
    │ handle               │ Request      │ Response                   │
    │ handle_file          │ Request      │ ResponseFile               │
    │ handle_form          │ RequestForm  │ Response                   │
    │ handle_form_file     │ RequestForm  │ ResponseFile               │
    │ handle_get           │ RequestGet   │ Response                   │
    │ handle_get_file      │ RequestGet   │ ResponseFile               │
    │ handle_get_redirect  │ RequestGet   │ ResponseRedirect           │
    │ handle_origin        │ HTTPRequest  │ HTTPResponse (not wrapped) │
    └──────────────────────┴──────────────┴────────────────────────────┘

Each registration is a frozen Registration(pattern, shape, handler). The
route installed in the router looks the shape up in _SHAPES to find the
adapter and the allowed reply type, then hands off to the Dispatcher.

=============================================================================
"""

import logging
import signal
import sys
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from .adapters import build_request, build_request_form, build_request_get
from .config import ServerConfig, parse_address
from .dispatch import Classifier, Dispatcher
from .envelope import Response, ResponseFile, ResponseRedirect
from .errors import is_transient
from .http import HTTPRequest, HTTPResponse, Router, internal_error
from .logger import FileLogger, Level, Logger
from .server import HTTPServer


logger = logging.getLogger(__name__)

EXIT_ON_SIGNAL = 5


class Shape(Enum):
    JSON = "json"
    FILE = "file"
    FORM = "form"
    FORM_FILE = "form_file"
    GET = "get"
    GET_FILE = "get_file"
    GET_REDIRECT = "get_redirect"
    ORIGIN = "origin"


class _Input(Enum):
    BODY = "body"
    FORM = "form"
    QUERY = "query"


_SHAPES: Dict[Shape, Tuple[_Input, Tuple[Type, ...]]] = {
    Shape.JSON: (_Input.BODY, (Response,)),
    Shape.FILE: (_Input.BODY, (ResponseFile,)),
    Shape.FORM: (_Input.FORM, (Response,)),
    Shape.FORM_FILE: (_Input.FORM, (ResponseFile,)),
    Shape.GET: (_Input.QUERY, (Response,)),
    Shape.GET_FILE: (_Input.QUERY, (ResponseFile,)),
    Shape.GET_REDIRECT: (_Input.QUERY, (ResponseRedirect,)),
}


@dataclass(frozen=True)
class Registration:
    pattern: str
    shape: Shape
    handler: Callable[[Any], Any]


class JsonHTTP:
    """
    Registers handlers and serves them.

    Args:
        config: Server and dispatch settings. Defaults to ServerConfig().
        logger: Sink for dispatch logs. Defaults to StdLogger().
        classifier: Decides whether an exception is worth a retry.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        logger: Optional[Logger] = None,
        classifier: Classifier = is_transient,
    ):
        self.config = config or ServerConfig()
        if logger is None and self.config.log_dir:
            logger = FileLogger(self.config.log_dir)
        self.dispatcher = Dispatcher(self.config, logger, classifier)
        self.router = Router()
        self.registrations: list[Registration] = []
        self._server: Optional[HTTPServer] = None

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def _register(self, pattern: str, shape: Shape, handler):
        if handler is None:
            return lambda fn: self._register(pattern, shape, fn)

        registration = Registration(pattern, shape, handler)
        if shape is Shape.ORIGIN:
            self.router.add_route(pattern, handler)
        else:
            self.router.add_route(pattern, lambda request: self._serve(registration, request))
        self.registrations.append(registration)
        return handler

    def handle(self, pattern: str, handler=None):
        """JSON body in, Response out."""
        return self._register(pattern, Shape.JSON, handler)

    def handle_file(self, pattern: str, handler=None):
        """JSON body in, ResponseFile out."""
        return self._register(pattern, Shape.FILE, handler)

    def handle_form(self, pattern: str, handler=None):
        return self._register(pattern, Shape.FORM, handler)

    def handle_form_file(self, pattern: str, handler=None):
        return self._register(pattern, Shape.FORM_FILE, handler)

    def handle_get(self, pattern: str, handler=None):
        """Query string in, Response out."""
        return self._register(pattern, Shape.GET, handler)

    def handle_get_file(self, pattern: str, handler=None):
        return self._register(pattern, Shape.GET_FILE, handler)

    def handle_get_redirect(self, pattern: str, handler=None):
        return self._register(pattern, Shape.GET_REDIRECT, handler)

    def handle_origin(self, pattern: str, handler=None):
        """Register a plain transport handler: HTTPRequest in, HTTPResponse out."""
        return self._register(pattern, Shape.ORIGIN, handler)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _adapter(self, kind: _Input):
        if kind is _Input.BODY:
            return build_request
        if kind is _Input.FORM:
            return lambda request, writer: build_request_form(
                request, writer, self.config.max_form_memory
            )
        return build_request_get

    def _serve(self, registration: Registration, request: HTTPRequest) -> HTTPResponse:
        kind, reply_types = _SHAPES[registration.shape]
        return self.dispatcher.serve(
            request, self._adapter(kind), registration.handler, reply_types
        )

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """Route one request without a socket; 404 and 500 like the server."""
        try:
            return self.router.handle(request)
        except Exception as e:
            logger.exception(f"Handler error on {request.path}: {e}")
            return internal_error()

    # =========================================================================
    # LISTEN
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        if self._server is None:
            return (self.config.host, self.config.port)
        return self._server.address

    @property
    def ready(self) -> Optional[threading.Event]:
        return self._server.ready if self._server else None

    def listen(
        self,
        address: Optional[str] = None,
        max_tries: Optional[int] = None,
        logger: Optional[Logger] = None,
    ):
        """
        Serve until shutdown() or a termination signal (blocking).

        Args:
            address: "host:port"; ":port" listens on every interface.
            max_tries: Handler attempts per request, >= 1.
            logger: Replaces the dispatch log sink.

        Raises:
            ConfigError: If the address or max_tries is unusable. Raised
                before anything is bound.
        """
        changes: Dict[str, Any] = {}
        if address is not None:
            changes["host"], changes["port"] = parse_address(address)
        if max_tries is not None:
            changes["max_tries"] = max_tries
        config = replace(self.config, **changes)
        config.validate()

        self.config = self.dispatcher.config = config
        if logger is not None:
            self.dispatcher.logger = logger

        self._server = HTTPServer(self.config, router=self.router)
        self._install_signal_handlers()
        self.dispatcher.logger.log(
            Level.INFO,
            f"jsonhttp: start listen {address or f'{self.config.host}:{self.config.port}'}",
        )
        self._server.run()

    def shutdown(self):
        if self._server is not None:
            self._server.shutdown()

    def _install_signal_handlers(self):
        # signal.signal() only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, leaving signal handlers alone")
            return

        for name in ("SIGHUP", "SIGINT", "SIGTERM", "SIGQUIT"):
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, self._on_signal)

    def _on_signal(self, signum, frame):
        self.dispatcher.logger.log(
            Level.INFO, f"jsonhttp: received {signal.Signals(signum).name}, exiting"
        )
        sys.exit(EXIT_ON_SIGNAL)
