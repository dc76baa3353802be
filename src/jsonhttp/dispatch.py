"""
=============================================================================
DISPATCH CORE
=============================================================================

Runs one handler for one request: retries transient failures, converts
everything else into a status code and a log line, and writes the response
exactly once.

=============================================================================
ONE BOUNDARY, FOUR OUTCOMES
=============================================================================

invoke() is the only place a handler's exception is caught. It turns the
attempt into a value; serve() then branches on that value.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   adapt(HTTPRequest) ──raises──► recovery (status or 500, no retry) │
    │        │                                                             │
    │        ▼                                                             │
    │   budget = config.max_tries                                          │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─► invoke(handler, adapted) ──► Outcome                          │
    │   │        │                                                         │
    │   │        ├── Completed(reply)        → write reply.render()       │
    │   │        ├── ClientFault(status)     → write status, WARN         │
    │   │        ├── ServerFault(cause)      → write 500, ERROR           │
    │   │        └── TransientFault(cause)   → WARN, budget -= 1          │
    │   │                                          │                       │
    │   └────────────── budget > 0 ◄───────────────┘                       │
    │                      │ budget == 0                                   │
    │                      ▼                                               │
    │                write BUSY_BODY (200)                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Precedence inside invoke(): AbortWithCode first, then the transient
classifier, then everything else. A retry re-runs the whole handler with
the same adapted request, so handlers must tolerate being run again.

=============================================================================
"""

import logging
import traceback
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Callable, Optional, Tuple, Type, Union

from .adapters import CommonRequest
from .config import ConfigError, ServerConfig
from .envelope import busy_response
from .errors import AbortWithCode, is_transient
from .http import HTTPRequest, HTTPResponse, ResponseWriter, status_only
from .logger import Level, Logger, StdLogger


logger = logging.getLogger(__name__)

Classifier = Callable[[BaseException], bool]


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass(frozen=True)
class Completed:
    reply: Any


@dataclass(frozen=True)
class ClientFault:
    status: int
    cause: BaseException
    trace: str = ""


@dataclass(frozen=True)
class ServerFault:
    cause: BaseException
    trace: str = ""


@dataclass(frozen=True)
class TransientFault:
    cause: BaseException
    trace: str = ""


Outcome = Union[Completed, ClientFault, ServerFault, TransientFault]


class ReplyTypeError(TypeError):
    """A handler returned something its registration shape does not allow."""


# =============================================================================
# DISPATCHER
# =============================================================================

class Dispatcher:
    """
    Per-application dispatch policy.

    Holds only read-only state (config, logger, classifier), so one
    instance serves every request on every worker thread.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        logger: Optional[Logger] = None,
        classifier: Classifier = is_transient,
    ):
        self.config = config or ServerConfig()
        if self.config.max_tries < 1:
            raise ConfigError(f"max_tries must be positive (got {self.config.max_tries})")
        self.logger = logger or StdLogger()
        self.classifier = classifier

    def invoke(
        self,
        handler: Callable[[Any], Any],
        request: Any,
        reply_types: Tuple[Type, ...] = (),
    ) -> Outcome:
        """Run `handler(request)` once and classify how it ended."""
        try:
            reply = handler(request)
            if reply_types and not isinstance(reply, reply_types):
                expected = " or ".join(t.__name__ for t in reply_types)
                raise ReplyTypeError(
                    f"{getattr(handler, '__name__', handler)!s} returned "
                    f"{type(reply).__name__}, expected {expected}"
                )
            return Completed(reply)
        except AbortWithCode as e:
            return ClientFault(e.status, e, traceback.format_exc())
        except Exception as e:
            trace = traceback.format_exc()
            if self._transient(e):
                return TransientFault(e, trace)
            return ServerFault(e, trace)

    def _transient(self, exc: BaseException) -> bool:
        try:
            return bool(self.classifier(exc))
        except Exception:
            logger.exception("Transient classifier failed; treating error as unclassified")
            return False

    def serve(
        self,
        http_request: HTTPRequest,
        adapt: Callable[[HTTPRequest, ResponseWriter], Any],
        handler: Callable[[Any], Any],
        reply_types: Tuple[Type, ...] = (),
    ) -> HTTPResponse:
        """
        Adapt, run with retries, and return the one response written.

        Never raises for handler or adapter failures.
        """
        writer = ResponseWriter()

        try:
            adapted = adapt(http_request, writer)
        except AbortWithCode as e:
            self._log_fault(Level.WARN, http_request, e, traceback.format_exc())
            return writer.write(status_only(e.status))
        except Exception as e:
            self._log_fault(Level.ERROR, http_request, e, traceback.format_exc())
            return writer.write(status_only(HTTPStatus.INTERNAL_SERVER_ERROR))

        try:
            return self._retry(http_request, writer, adapted, handler, reply_types)
        finally:
            if isinstance(adapted, CommonRequest):
                adapted.close()

    def _retry(
        self,
        http_request: HTTPRequest,
        writer: ResponseWriter,
        adapted: Any,
        handler: Callable[[Any], Any],
        reply_types: Tuple[Type, ...],
    ) -> HTTPResponse:
        budget = self.config.max_tries
        while budget > 0:
            budget -= 1
            outcome = self.invoke(handler, adapted, reply_types)

            if isinstance(outcome, Completed):
                try:
                    return writer.write(outcome.reply.render(http_request))
                except Exception as e:
                    self._log_fault(Level.ERROR, http_request, e, traceback.format_exc())
                    return writer.write(status_only(HTTPStatus.INTERNAL_SERVER_ERROR))

            if isinstance(outcome, ClientFault):
                self._log_fault(Level.WARN, http_request, outcome.cause, outcome.trace)
                return writer.write(status_only(outcome.status))

            if isinstance(outcome, ServerFault):
                self._log_fault(Level.ERROR, http_request, outcome.cause, outcome.trace)
                return writer.write(status_only(HTTPStatus.INTERNAL_SERVER_ERROR))

            self._log_fault(Level.WARN, http_request, outcome.cause, outcome.trace)
            if budget > 0:
                logger.debug(f"Retrying {http_request.path}, {budget} attempt(s) left")

        self.logger.log(
            Level.WARN,
            f"{http_request.method} {http_request.path}",
            f"gave up after {self.config.max_tries} attempt(s): server busy",
        )
        return writer.write(busy_response())

    def _log_fault(self, level: Level, request: HTTPRequest, cause: BaseException, trace: str):
        self.logger.log(
            level,
            f"{request.method} {request.path}",
            f"{type(cause).__name__}: {cause}",
            "\n" + trace,
        )
