from __future__ import annotations

import typing as t


class AgentLinkError(Exception):
    """Base class for every error raised by agentlink."""


class TransportError(AgentLinkError):
    """The byte stream closed or failed; fatal to the engine."""


class FrameHeaderError(TransportError):
    """A frame header carried no usable Content-Length; the stream is unusable."""


class FrameDecodeError(AgentLinkError):
    """A frame body was not valid UTF-8 JSON. Only that frame is lost."""

    def __init__(self, message: str, body: bytes = b"") -> None:
        super().__init__(message)
        self.body = body


class JsonRpcError(AgentLinkError):
    """Structured error returned by the peer (or raised by a local handler)."""

    def __init__(self, code: int, message: str, data: t.Any = None) -> None:
        super().__init__(f"JSON-RPC Error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class EngineStoppedError(JsonRpcError):
    STOPPED_CODE = -32000

    def __init__(self, message: str = "Client stopped") -> None:
        super().__init__(self.STOPPED_CODE, message)


class RequestTimeoutError(AgentLinkError, TimeoutError):
    """A local wait expired. Distinct from any peer-reported error."""


class ProtocolVersionMismatchError(AgentLinkError):
    def __init__(self, expected: int, actual: t.Optional[int]) -> None:
        if actual is None:
            detail = "but server does not report a protocol version. Please update your server to ensure compatibility."
        else:
            detail = (
                f"but server reports version {actual}. "
                "Please update your SDK or server to ensure compatibility."
            )
        super().__init__(f"SDK protocol version mismatch: SDK expects version {expected}, {detail}")
        self.expected = expected
        self.actual = actual


class SessionEventError(AgentLinkError):
    """Raised by send_and_wait when the session emits session.error."""

    def __init__(self, message: str, event: t.Any = None) -> None:
        super().__init__(message)
        self.event = event
