"""Content-Length framing and JSON-RPC 2.0 envelope helpers.

A frame on the wire is::

    Content-Length: <N>\\r\\n
    \\r\\n
    <N bytes of UTF-8 JSON>

Only ``Content-Length`` is interpreted; any other header line is ignored.
"""

from __future__ import annotations

import json
import typing as t

from mcp.types import ErrorData

from ..errors import FrameDecodeError, FrameHeaderError

JSON = t.Dict[str, t.Any]
RequestId = t.Union[str, int]

HEADER_TERMINATOR = b"\r\n\r\n"
_CONTENT_LENGTH = "content-length"
JSONRPC_VERSION = "2.0"


def encode_frame(value: t.Any) -> bytes:
    body = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


def parse_content_length(header: bytes) -> int:
    """Return the body length declared in a header block.

    ``header`` may include the trailing blank line. Raises FrameHeaderError if
    no header line yields a non-negative decimal length.
    """
    text = header.decode("ascii", errors="replace")
    for line in text.split("\r\n"):
        name, sep, value = line.partition(":")
        if not sep or name.strip().lower() != _CONTENT_LENGTH:
            continue
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            raise FrameHeaderError(f"Invalid Content-Length value: {value!r}")
        return int(value)
    raise FrameHeaderError(f"Missing Content-Length header in {text.strip()!r}")


def decode_body(body: bytes) -> t.Any:
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FrameDecodeError(f"Frame body is not valid JSON: {exc}", body) from exc


def make_request(request_id: RequestId, method: str, params: t.Optional[JSON] = None) -> JSON:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method, "params": params or {}}


def make_notification(method: str, params: t.Optional[JSON] = None) -> JSON:
    return {"jsonrpc": JSONRPC_VERSION, "method": method, "params": params or {}}


def make_response(request_id: RequestId, result: t.Any) -> JSON:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def make_error_response(request_id: RequestId, code: int, message: str, data: t.Any = None) -> JSON:
    error = ErrorData(code=code, message=message, data=data)
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error.model_dump(exclude_none=True)}
