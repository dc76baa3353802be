"""
=============================================================================
ABORT SIGNALS
=============================================================================

Handlers stop early by raising, not by building error responses:

    def hi(req):
        body = req.unmarshal(Hi)            # bad JSON → AbortWithCode(400)
        if not body.name:
            bad_request("name is empty")    # → HTTP 400, empty body
        row = db.fetch(body.name)           # SerializationFailure → retried
        return success({"message": f"hello, {row.name}!"})

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Raised                    Dispatcher answers       Retried?       │
    │   ─────────────────────     ─────────────────────    ────────       │
    │   AbortWithCode(s, cause)   status s, empty body     never          │
    │   TransientFailure          busy body when spent     yes            │
    │   backend error 40001/55P03 busy body when spent     yes            │
    │   Abort(cause) / other      500                      never          │
    └─────────────────────────────────────────────────────────────────────┘

An Abort wrapping a transient backend error counts as transient.

=============================================================================
"""

from contextlib import contextmanager
from http import HTTPStatus
from typing import Iterator, Optional, Type, Union


# SQLSTATE codes a retry can be expected to clear
TRANSIENT_SQLSTATES = frozenset({
    "40001",  # serialization_failure
    "55P03",  # lock_not_available
})


class Abort(Exception):
    """
    Generic abort. The dispatcher answers 500 unless `cause` is transient.

    Attributes:
        cause: The underlying exception or message, if any.
    """

    def __init__(self, cause: Union[BaseException, str, None] = None):
        self.cause = cause
        super().__init__(str(cause) if cause is not None else "aborted")


class AbortWithCode(Abort):
    """Abort with an explicit HTTP status for the client."""

    def __init__(self, status: int, cause: Union[BaseException, str, None] = None):
        self.status = int(status)
        super().__init__(cause)

    def __str__(self) -> str:
        return f"status {self.status}: {self.cause}"


class TransientFailure(Exception):
    """Raise from a handler to ask the dispatcher for another attempt."""


def is_transient(exc: Optional[BaseException]) -> bool:
    """
    Default transient-error classifier.

    True for TransientFailure and for database errors carrying SQLSTATE
    40001 or 55P03 (psycopg2 exposes it as `pgcode`, psycopg 3 as
    `sqlstate`). A generic Abort is judged by its cause.
    """
    if exc is None or isinstance(exc, AbortWithCode):
        return False
    if isinstance(exc, Abort):
        return isinstance(exc.cause, BaseException) and is_transient(exc.cause)
    if isinstance(exc, TransientFailure):
        return True
    code = getattr(exc, "pgcode", None) or getattr(exc, "sqlstate", None)
    return code in TRANSIENT_SQLSTATES


# =============================================================================
# SHORTHANDS
# =============================================================================

def abort(status: int, cause: Union[BaseException, str, None] = None):
    raise AbortWithCode(status, cause)


def forbidden(cause: Union[BaseException, str, None] = None):
    raise AbortWithCode(HTTPStatus.FORBIDDEN, cause)


def bad_request(cause: Union[BaseException, str, None] = None):
    raise AbortWithCode(HTTPStatus.BAD_REQUEST, cause)


@contextmanager
def abort_on(status: int, *exc_types: Type[BaseException]) -> Iterator[None]:
    """
    Turn the listed exceptions into AbortWithCode(status).

        with abort_on(404, KeyError):
            user = users[user_id]

    With no exc_types, any Exception is converted. Aborts pass through
    untouched.
    """
    catch = exc_types or (Exception,)
    try:
        yield
    except Abort:
        raise
    except catch as e:
        raise AbortWithCode(status, e) from e
