"""
=============================================================================
RESPONSE ENVELOPE
=============================================================================

What a handler returns. Every reply knows how to render itself into a
transport HTTPResponse; the dispatcher calls render() and writes the
result exactly once.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   success({"message": "hi"})                                        │
    │       → {"success":true,"code":0,"data":{"message":"hi"}}           │
    │                                                                      │
    │   fail(Errors.NAME_TAKEN)                                           │
    │       → {"success":false,"code":1001,"msg":"name already taken"}    │
    │                                                                      │
    │   ResponseFile("report.csv", b"...")                                │
    │       → Content-Disposition: attachment; filename=report.csv        │
    │         + ETag / Range / If-Modified-Since handling                  │
    │                                                                      │
    │   ResponseRedirect("https://example.com", 307)                      │
    │       → 307, Location: https://example.com                          │
    └─────────────────────────────────────────────────────────────────────┘

`msg` is left out when empty and `data` when None. Payloads may be plain
JSON values, pydantic models, dataclasses, datetimes and anything else
pydantic knows how to dump.

=============================================================================
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from http import HTTPStatus
from typing import Any, BinaryIO, Dict, Optional, Union

from pydantic_core import to_jsonable_python

from .http import HTTPRequest, HTTPResponse, serve_content


JSON_CONTENT_TYPE = "application/json"

# Written with status 200 when every attempt failed transiently
BUSY_BODY = b'{"ok":false,"msg":"Server is busy, please try later!"}'


@dataclass(frozen=True)
class Response:
    """The JSON envelope. `code` is 0 on success."""

    success: bool
    code: int = 0
    msg: str = ""
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "code": self.code}
        if self.msg:
            out["msg"] = self.msg
        if self.data is not None:
            out["data"] = to_jsonable_python(self.data)
        return out

    def to_json(self) -> bytes:
        return json.dumps(
            self.to_dict(), separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    def render(self, request: HTTPRequest) -> HTTPResponse:
        return HTTPResponse(
            status=HTTPStatus.OK,
            headers={"Content-Type": JSON_CONTENT_TYPE},
            body=self.to_json(),
        )


class FailCode(IntEnum):
    """
    Base for application failure codes.

        class Errors(FailCode):
            NAME_TAKEN = 1001, "name already taken"
            NO_QUOTA = 1002, "quota exhausted"

        fail(Errors.NAME_TAKEN)
    """

    def __new__(cls, value: int, message: str = ""):
        member = int.__new__(cls, value)
        member._value_ = value
        member._message = message
        return member

    @property
    def message(self) -> str:
        return self._message


def success(data: Any = None) -> Response:
    return Response(success=True, code=0, data=data)


def fail(code: Union[FailCode, int], msg: Optional[str] = None) -> Response:
    """Failure envelope; `msg` defaults to the code's own message."""
    if msg is None:
        msg = getattr(code, "message", "")
    return Response(success=False, code=int(code), msg=msg)


def fail_with_msg(code: Union[FailCode, int], msg: str) -> Response:
    return Response(success=False, code=int(code), msg=msg)


@dataclass(frozen=True)
class ResponseFile:
    """A download. `content` may be bytes or a seekable binary file."""

    file_name: str
    content: Union[bytes, BinaryIO]
    modtime: Optional[datetime] = None

    def render(self, request: HTTPRequest) -> HTTPResponse:
        response = serve_content(request, self.file_name, self.content, self.modtime)
        response.headers["Content-Disposition"] = f"attachment; filename={self.file_name}"
        return response


@dataclass(frozen=True)
class ResponseRedirect:
    url: str
    code: int = HTTPStatus.FOUND

    def __post_init__(self):
        if not 300 <= int(self.code) < 400:
            raise ValueError(f"redirect code must be 3xx, got {self.code}")

    def render(self, request: HTTPRequest) -> HTTPResponse:
        return HTTPResponse(status=int(self.code), headers={"Location": self.url})


def busy_response() -> HTTPResponse:
    return HTTPResponse(
        status=HTTPStatus.OK,
        headers={"Content-Type": JSON_CONTENT_TYPE},
        body=BUSY_BODY,
    )


def echo(req) -> Response:
    """Handler answering with the decoded JSON request body."""
    return success(req.unmarshal())
