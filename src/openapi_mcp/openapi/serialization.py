"""
Name: Request serialization.
Description: Turns typed call input into wire values: path template expansion, OpenAPI query parameter styles, cookie headers, file loading and request body encoding (JSON, text, binary, form-urlencoded, multipart and single raw file). The body kind is selected in one place and each kind has one encoder.
"""

import base64
import binascii
import json
import os
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

from pydantic import BaseModel, Field

from ..errors import ErrorCode, OpenApiMcpError
from .models import EndpointDefinition, FileDescriptor

_PATH_TEMPLATE = re.compile(r"\{([^}]+)\}")

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"

MULTIPART_FORM_DATA = "multipart/form-data"
FORM_URLENCODED = "application/x-www-form-urlencoded"
OCTET_STREAM = "application/octet-stream"

QueryPairs = List[Tuple[str, str]]


def stringify(value: Any) -> str:
    """Render a scalar the way it appears on the wire."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def encode_component(value: Any) -> str:
    return quote(stringify(value), safe=_URI_COMPONENT_SAFE)


def _flatten_pairs(value: Dict[str, Any]) -> List[str]:
    flat = []
    for key, item in value.items():
        flat.extend([str(key), stringify(item)])
    return flat


def expand_path(path_template: str, path_params: Optional[Dict[str, Any]]) -> str:
    """Substitute ``{name}`` placeholders with percent-encoded values.

    Args:
        path_template: Path such as ``/pets/{petId}``
        path_params: Values keyed by placeholder name

    Returns:
        The expanded path

    Raises:
        OpenApiMcpError: REQUEST_ERROR when a placeholder has no value
    """
    path_params = path_params or {}

    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = path_params.get(name)
        if value is None:
            raise OpenApiMcpError(ErrorCode.REQUEST_ERROR, f"Missing path parameter '{name}'")
        if isinstance(value, (list, tuple)):
            return ",".join(encode_component(item) for item in value)
        if isinstance(value, dict):
            return encode_component(",".join(_flatten_pairs(value)))
        return encode_component(value)

    return _PATH_TEMPLATE.sub(substitute, path_template)


def join_url(base_url: str, path: str) -> str:
    """Join a base URL and a path with exactly one slash."""
    return base_url.rstrip("/") + (path if path.startswith("/") else f"/{path}")


def serialize_query_value(key: str, value: Any, style: str, explode: bool) -> QueryPairs:
    """Serialize one query parameter into (name, value) pairs."""
    if style == "deepObject" and isinstance(value, dict):
        return [
            (f"{key}[{nested_key}]", stringify(nested_value))
            for nested_key, nested_value in value.items()
            if nested_value is not None
        ]

    if isinstance(value, (list, tuple)):
        if explode:
            return [(key, stringify(item)) for item in value]
        return [(key, ",".join(stringify(item) for item in value))]

    if isinstance(value, dict):
        if explode:
            return [(str(item_key), stringify(item)) for item_key, item in value.items()]
        return [(key, ",".join(_flatten_pairs(value)))]

    return [(key, stringify(value))]


def serialize_query(endpoint: EndpointDefinition, query: Optional[Dict[str, Any]]) -> QueryPairs:
    """Serialize call query values using the endpoint's declared parameter styles.

    Undeclared names use ``form`` style with ``explode`` on. Null values are skipped.

    Args:
        endpoint: The endpoint being called
        query: Query values keyed by parameter name

    Returns:
        Ordered (name, value) pairs
    """
    declared = {
        param.get("name"): param for param in endpoint.parameters if param.get("in") == "query"
    }

    pairs: QueryPairs = []
    for key, value in (query or {}).items():
        if value is None:
            continue
        param = declared.get(key) or {}
        style = param.get("style") or "form"
        explode = param.get("explode")
        pairs.extend(serialize_query_value(key, value, style, True if explode is None else explode))
    return pairs


def build_url(base_url: str, path: str, query_pairs: QueryPairs) -> str:
    url = join_url(base_url, path)
    if query_pairs:
        url = f"{url}?{urlencode(query_pairs)}"
    return url


def cookie_header(cookies: Dict[str, str]) -> Optional[str]:
    """Join cookies as ``k=v; k=v`` with percent-encoded components."""
    if not cookies:
        return None
    return "; ".join(
        f"{encode_component(key)}={encode_component(value)}" for key, value in cookies.items()
    )


class LoadedFile(BaseModel):
    """File content ready to be sent."""

    field: str
    filename: str
    content: bytes
    content_type: Optional[str] = None


def load_file(field: str, descriptor: FileDescriptor) -> LoadedFile:
    """Load the bytes of one file descriptor.

    Args:
        field: Form field name the file is sent under
        descriptor: The file to load

    Returns:
        The loaded file

    Raises:
        OpenApiMcpError: REQUEST_ERROR when the descriptor has zero or several
            sources, the base64 is invalid or the path cannot be read
    """
    sources = [
        name for name in ("base64", "text", "path") if getattr(descriptor, name) is not None
    ]
    if len(sources) != 1:
        raise OpenApiMcpError(
            ErrorCode.REQUEST_ERROR,
            f"File '{field}' must have exactly one of base64, text or path",
            {"field": field, "sources": sources},
        )

    filename = descriptor.filename
    if descriptor.base64 is not None:
        try:
            content = base64.b64decode(descriptor.base64, validate=True)
        except (binascii.Error, ValueError):
            raise OpenApiMcpError(
                ErrorCode.REQUEST_ERROR, f"File '{field}' has invalid base64 content"
            )
    elif descriptor.text is not None:
        content = descriptor.text.encode("utf-8")
    else:
        try:
            with open(descriptor.path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise OpenApiMcpError(
                ErrorCode.REQUEST_ERROR,
                f"Unable to read file '{descriptor.path}'",
                {"field": field, "cause": str(e)},
            )
        filename = filename or os.path.basename(descriptor.path)

    return LoadedFile(
        field=field,
        filename=filename or field,
        content=content,
        content_type=descriptor.content_type,
    )


class BodyKind(str, Enum):
    """How a request body is put on the wire."""

    none = "none"
    json = "json"
    text = "text"
    binary = "binary"
    form = "form"
    multipart = "multipart"
    file = "file"


class EncodedBody(BaseModel):
    """An encoded request body.

    ``content_type`` None means the existing header is left alone. When
    ``strip_content_type`` is set the caller's Content-Type is removed so the
    transport can add the multipart boundary.
    """

    kind: BodyKind
    content: Optional[bytes] = None
    multipart: List[Tuple[str, Tuple[Optional[str], Any, Optional[str]]]] = Field(
        default_factory=list
    )
    content_type: Optional[str] = None
    default_content_type: Optional[str] = None
    strip_content_type: bool = False


def _media_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def select_body_kind(body: Any, files: Dict[str, FileDescriptor], content_type: Optional[str]) -> BodyKind:
    """Decide how a body is encoded.

    Raises:
        OpenApiMcpError: REQUEST_ERROR for combinations that cannot be encoded
    """
    media_type = _media_type(content_type)

    if media_type == MULTIPART_FORM_DATA:
        return BodyKind.multipart

    if media_type == FORM_URLENCODED:
        if files:
            raise OpenApiMcpError(
                ErrorCode.REQUEST_ERROR,
                f"Files cannot be sent as {FORM_URLENCODED}; use {MULTIPART_FORM_DATA}",
            )
        return BodyKind.form

    if files:
        if body is None:
            if len(files) == 1:
                return BodyKind.file
            raise OpenApiMcpError(
                ErrorCode.REQUEST_ERROR,
                f"Several files without a body are ambiguous; use {MULTIPART_FORM_DATA}",
                {"files": list(files.keys())},
            )
        if isinstance(body, (str, bytes)):
            raise OpenApiMcpError(
                ErrorCode.REQUEST_ERROR, "Files cannot be combined with a string or binary body"
            )
        if content_type:
            raise OpenApiMcpError(
                ErrorCode.REQUEST_ERROR,
                f"Files with an object body must be sent as {MULTIPART_FORM_DATA}",
                {"contentType": content_type},
            )
        return BodyKind.multipart

    if body is None:
        return BodyKind.none
    if isinstance(body, str):
        return BodyKind.text
    if isinstance(body, bytes):
        return BodyKind.binary
    return BodyKind.json


def flatten_form_fields(body: Any) -> QueryPairs:
    """Flatten an object payload into form fields.

    Scalars are stringified, nested objects JSON-encoded and arrays repeated.
    """
    if body is None:
        return []
    if not isinstance(body, dict):
        raise OpenApiMcpError(
            ErrorCode.REQUEST_ERROR, "Form bodies must be objects of field values"
        )

    fields: QueryPairs = []
    for key, value in body.items():
        if value is None:
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        fields.extend((str(key), stringify(item)) for item in items if item is not None)
    return fields


def _encode_none(body, files, content_type) -> EncodedBody:
    return EncodedBody(kind=BodyKind.none)


def _encode_json(body, files, content_type) -> EncodedBody:
    return EncodedBody(
        kind=BodyKind.json,
        content=json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8"),
        content_type=content_type,
        default_content_type="application/json",
    )


def _encode_text(body, files, content_type) -> EncodedBody:
    return EncodedBody(
        kind=BodyKind.text,
        content=body.encode("utf-8"),
        content_type=content_type,
        default_content_type="text/plain",
    )


def _encode_binary(body, files, content_type) -> EncodedBody:
    return EncodedBody(
        kind=BodyKind.binary,
        content=body,
        content_type=content_type,
        default_content_type=OCTET_STREAM,
    )


def _encode_form(body, files, content_type) -> EncodedBody:
    if isinstance(body, bytes):
        content = body
    elif isinstance(body, str):
        content = body.encode("utf-8")
    else:
        content = urlencode(flatten_form_fields(body)).encode("utf-8")
    return EncodedBody(kind=BodyKind.form, content=content, content_type=content_type)


def _encode_multipart(body, files, content_type) -> EncodedBody:
    parts = [(name, (None, value, None)) for name, value in flatten_form_fields(body)]
    for field, descriptor in files.items():
        loaded = load_file(field, descriptor)
        parts.append(
            (field, (loaded.filename, loaded.content, loaded.content_type or OCTET_STREAM))
        )
    return EncodedBody(kind=BodyKind.multipart, multipart=parts, strip_content_type=True)


def _encode_file(body, files, content_type) -> EncodedBody:
    field, descriptor = next(iter(files.items()))
    loaded = load_file(field, descriptor)
    return EncodedBody(
        kind=BodyKind.file,
        content=loaded.content,
        content_type=content_type or loaded.content_type,
        default_content_type=OCTET_STREAM,
    )


BODY_ENCODERS: Dict[BodyKind, Callable[[Any, Dict[str, FileDescriptor], Optional[str]], EncodedBody]] = {
    BodyKind.none: _encode_none,
    BodyKind.json: _encode_json,
    BodyKind.text: _encode_text,
    BodyKind.binary: _encode_binary,
    BodyKind.form: _encode_form,
    BodyKind.multipart: _encode_multipart,
    BodyKind.file: _encode_file,
}


def encode_body(
    body: Any,
    files: Optional[Dict[str, FileDescriptor]] = None,
    content_type: Optional[str] = None,
) -> EncodedBody:
    """Encode a request body.

    Args:
        body: Payload (str, bytes, JSON-serializable value or None)
        files: Files to upload keyed by field name
        content_type: Explicit content type override

    Returns:
        The encoded body

    Raises:
        OpenApiMcpError: REQUEST_ERROR when the body and files cannot be encoded together
    """
    files = files or {}
    kind = select_body_kind(body, files, content_type)
    return BODY_ENCODERS[kind](body, files, content_type)
