"""
=============================================================================
REQUEST ADAPTERS
=============================================================================

Turn a transport HTTPRequest into the object a handler receives.

    ┌──────────────┬───────────────────────────┬──────────────────────────┐
    │ Adapter      │ Built from                │ Decode failure           │
    ├──────────────┼───────────────────────────┼──────────────────────────┤
    │ Request      │ body bytes (JSON)         │ unmarshal() → 400        │
    │ RequestForm  │ multipart/form-data body  │ at build time → 500      │
    │ RequestGet   │ query string              │ unmarshal() → 400        │
    └──────────────┴───────────────────────────┴──────────────────────────┘

All three carry the same common part:

    req   the transport HTTPRequest (headers, path, body)
    res   the ResponseWriter, for headers only
    ip    client address without the port

Decoding into caller types goes through pydantic, so a handler may ask for
a BaseModel, a dataclass, or any annotation TypeAdapter accepts:

    class Hi(BaseModel):
        name: str

    def hi(req: Request) -> Response:
        body = req.unmarshal(Hi)

=============================================================================
"""

import dataclasses
import json
import logging
from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass, field
from functools import lru_cache
from http import HTTPStatus
from typing import (
    Any, BinaryIO, Dict, List, Optional, Tuple, Union,
    get_args, get_origin, get_type_hints,
)

from pydantic import BaseModel, TypeAdapter
from python_multipart import create_form_parser

from .errors import Abort, AbortWithCode
from .http import HTTPRequest, ResponseWriter


logger = logging.getLogger(__name__)

DEFAULT_MAX_FORM_MEMORY = 32 << 20
MULTIPART = "multipart/form-data"


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


@dataclass
class CommonRequest:
    req: HTTPRequest
    res: ResponseWriter
    ip: str = ""

    def close(self) -> None:
        """Release per-request resources once the response is written."""


# =============================================================================
# JSON BODY
# =============================================================================

@dataclass
class Request(CommonRequest):
    """A request whose body is JSON."""

    data: bytes = b""

    def unmarshal(self, target: Any = None) -> Any:
        """
        Decode the body.

        With no target the plain JSON value is returned (dict, list, ...).
        Otherwise the body is validated into `target`.

        Raises:
            AbortWithCode: 400 if the body does not decode.
        """
        try:
            if target is None:
                return json.loads(self.data)
            return _adapter(target).validate_json(self.data)
        except ValueError as e:
            raise AbortWithCode(HTTPStatus.BAD_REQUEST, e) from e


def build_request(http_request: HTTPRequest, writer: ResponseWriter) -> Request:
    return Request(
        req=http_request,
        res=writer,
        ip=http_request.remote_ip,
        data=http_request.body,
    )


# =============================================================================
# FORMS
# =============================================================================

@dataclass
class FormFile:
    """
    One uploaded file part.

    Small parts live in memory; parts over the memory limit were spilled
    to a temporary file by the parser. Either way `file` is positioned at
    the start.
    """

    field_name: str
    filename: str
    file: BinaryIO
    size: int

    def read(self) -> bytes:
        self.file.seek(0)
        return self.file.read()


@dataclass
class Form:
    values: Dict[str, List[str]] = field(default_factory=dict)
    files: Dict[str, List[FormFile]] = field(default_factory=dict)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a text field."""
        found = self.values.get(name)
        return found[0] if found else default

    def file(self, name: str) -> Optional[FormFile]:
        found = self.files.get(name)
        return found[0] if found else None

    def close(self) -> None:
        for parts in self.files.values():
            for part in parts:
                part.file.close()


@dataclass
class RequestForm(CommonRequest):
    data: Form = field(default_factory=Form)

    def close(self) -> None:
        self.data.close()


def _text(raw: Union[bytes, str, None]) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


def parse_form(http_request: HTTPRequest, max_memory: int = DEFAULT_MAX_FORM_MEMORY) -> Form:
    """
    Parse a multipart/form-data body.

    Raises:
        ValueError: If the content type is not multipart/form-data or the
            body is malformed (python-multipart's FormParserError is a
            ValueError).
    """
    content_type = http_request.get_header("content-type") or ""
    if content_type.partition(";")[0].strip().lower() != MULTIPART:
        raise ValueError(f"Content-Type isn't {MULTIPART}: {content_type!r}")

    form = Form()

    def on_field(f):
        form.values.setdefault(_text(f.field_name), []).append(_text(f.value))

    def on_file(f):
        f.file_object.seek(0)
        name = _text(f.field_name)
        form.files.setdefault(name, []).append(FormFile(
            field_name=name,
            filename=_text(f.file_name),
            file=f.file_object,
            size=f.size,
        ))

    parser = create_form_parser(
        {"Content-Type": content_type},
        on_field,
        on_file,
        config={"MAX_MEMORY_FILE_SIZE": max_memory},
    )
    parser.write(http_request.body)
    parser.finalize()
    logger.debug(f"Parsed form: {len(form.values)} fields, {len(form.files)} files")
    return form


def build_request_form(
    http_request: HTTPRequest,
    writer: ResponseWriter,
    max_memory: int = DEFAULT_MAX_FORM_MEMORY,
) -> RequestForm:
    """
    Raises:
        Abort: If the body cannot be parsed as a form (answered with 500).
    """
    try:
        form = parse_form(http_request, max_memory)
    except Exception as e:
        raise Abort(e) from e
    return RequestForm(req=http_request, res=writer, ip=http_request.remote_ip, data=form)


# =============================================================================
# QUERY STRING
# =============================================================================

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, SequenceABC)


def _is_sequence(annotation: Any) -> bool:
    if annotation in (list, tuple, set, frozenset):
        return True
    origin = get_origin(annotation)
    if origin is Union:
        return any(_is_sequence(arg) for arg in get_args(annotation) if arg is not type(None))
    return origin in _SEQUENCE_ORIGINS


def _query_fields(target: Any) -> List[Tuple[str, str, Any]]:
    """(query key, input key, annotation) for each field of a model or dataclass."""
    if isinstance(target, type) and issubclass(target, BaseModel):
        return [
            (info.alias or name, info.alias or name, info.annotation)
            for name, info in target.model_fields.items()
        ]
    if dataclasses.is_dataclass(target) and isinstance(target, type):
        hints = get_type_hints(target)
        return [
            (f.metadata.get("query", f.name), f.name, hints.get(f.name, Any))
            for f in dataclasses.fields(target)
            if f.init
        ]
    raise TypeError(f"cannot unmarshal a query string into {target!r}")


@dataclass
class RequestGet(CommonRequest):
    raw_query: str = ""

    def unmarshal(self, target: Any) -> Any:
        """
        Map query parameters onto a pydantic model or dataclass.

        Keys are field aliases (dataclasses: `field(metadata={"query": ...})`)
        or field names. Sequence fields collect every value; other fields
        take the last one. Unknown parameters are ignored.

        Raises:
            AbortWithCode: 400 if a value does not convert.
            TypeError: If `target` is neither a model nor a dataclass.
        """
        params = self.req.query_params
        data: Dict[str, Any] = {}
        for key, input_key, annotation in _query_fields(target):
            values = params.get(key)
            if not values:
                continue
            data[input_key] = list(values) if _is_sequence(annotation) else values[-1]

        try:
            return _adapter(target).validate_python(data)
        except ValueError as e:
            raise AbortWithCode(HTTPStatus.BAD_REQUEST, e) from e


def build_request_get(http_request: HTTPRequest, writer: ResponseWriter) -> RequestGet:
    return RequestGet(
        req=http_request,
        res=writer,
        ip=http_request.remote_ip,
        raw_query=http_request.raw_query,
    )
