"""
=============================================================================
JSONHTTP - JSON handlers with abort-based errors and bounded retries
=============================================================================

Handlers take a normalized request and return an envelope. Errors are
raised, not returned:

    from jsonhttp import JsonHTTP, Request, success, bad_request

    app = JsonHTTP()

    @app.handle("/hi")
    def hi(req: Request):
        name = req.unmarshal().get("name")
        if not name:
            bad_request("name is empty")
        return success({"message": f"hello, {name}!"})

    app.listen(":8080", max_tries=3)

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          PACKAGE LAYOUT                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │   app.py        JsonHTTP: registration, listen, signals            │
    │   dispatch.py   retry / recovery loop, one write per request       │
    │   adapters.py   Request, RequestForm, RequestGet                   │
    │   envelope.py   Response, ResponseFile, ResponseRedirect           │
    │   errors.py     Abort, AbortWithCode, TransientFailure             │
    │   logger.py     Level, StdLogger, FileLogger                       │
    │   config.py     ServerConfig                                        │
    │   server.py     threaded HTTP/1.1 transport                        │
    │   core/ http/   sockets, workers, parsing, routing                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

__version__ = "1.0.0"

from .adapters import CommonRequest, Form, FormFile, Request, RequestForm, RequestGet
from .app import JsonHTTP, Registration, Shape
from .config import ConfigError, ServerConfig, parse_address
from .dispatch import (
    ClientFault,
    Completed,
    Dispatcher,
    Outcome,
    ServerFault,
    TransientFault,
)
from .envelope import (
    BUSY_BODY,
    FailCode,
    Response,
    ResponseFile,
    ResponseRedirect,
    echo,
    fail,
    fail_with_msg,
    success,
)
from .errors import (
    Abort,
    AbortWithCode,
    TransientFailure,
    abort,
    abort_on,
    bad_request,
    forbidden,
    is_transient,
)
from .logger import FileLogger, Level, Logger, StdLogger, log_error

__all__ = [
    "JsonHTTP",
    "Registration",
    "Shape",
    "ServerConfig",
    "ConfigError",
    "parse_address",
    "Dispatcher",
    "Outcome",
    "Completed",
    "ClientFault",
    "ServerFault",
    "TransientFault",
    "CommonRequest",
    "Request",
    "RequestForm",
    "RequestGet",
    "Form",
    "FormFile",
    "Response",
    "ResponseFile",
    "ResponseRedirect",
    "FailCode",
    "BUSY_BODY",
    "success",
    "fail",
    "fail_with_msg",
    "echo",
    "Abort",
    "AbortWithCode",
    "TransientFailure",
    "abort",
    "abort_on",
    "bad_request",
    "forbidden",
    "is_transient",
    "Level",
    "Logger",
    "StdLogger",
    "FileLogger",
    "log_error",
    "__version__",
]
