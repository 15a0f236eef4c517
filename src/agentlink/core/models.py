from __future__ import annotations

import enum
import typing as t
from dataclasses import dataclass, field


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class PermissionKind(str, enum.Enum):
    APPROVED = "approved"
    DENIED_BY_RULES = "denied-by-rules"
    DENIED_NO_APPROVAL = "denied-no-approval-rule-and-could-not-request-from-user"
    DENIED_BY_USER = "denied-interactively-by-user"


class SessionEventType(str, enum.Enum):
    """Known session event types. The peer may emit others; SessionEvent.type stays a plain str."""

    SESSION_START = "session.start"
    SESSION_RESUME = "session.resume"
    SESSION_ERROR = "session.error"
    SESSION_IDLE = "session.idle"
    SESSION_INFO = "session.info"
    SESSION_MODEL_CHANGE = "session.model_change"
    SESSION_HANDOFF = "session.handoff"
    SESSION_TRUNCATION = "session.truncation"
    SESSION_SNAPSHOT_REWIND = "session.snapshot_rewind"
    SESSION_SHUTDOWN = "session.shutdown"
    SESSION_USAGE_INFO = "session.usage_info"
    SESSION_COMPACTION_START = "session.compaction_start"
    SESSION_COMPACTION_COMPLETE = "session.compaction_complete"
    USER_MESSAGE = "user.message"
    PENDING_MESSAGES_MODIFIED = "pending_messages.modified"
    ASSISTANT_TURN_START = "assistant.turn_start"
    ASSISTANT_INTENT = "assistant.intent"
    ASSISTANT_REASONING = "assistant.reasoning"
    ASSISTANT_REASONING_DELTA = "assistant.reasoning_delta"
    ASSISTANT_MESSAGE = "assistant.message"
    ASSISTANT_MESSAGE_DELTA = "assistant.message_delta"
    ASSISTANT_TURN_END = "assistant.turn_end"
    ASSISTANT_USAGE = "assistant.usage"
    ABORT = "abort"
    TOOL_USER_REQUESTED = "tool.user_requested"
    TOOL_EXECUTION_START = "tool.execution_start"
    TOOL_EXECUTION_PARTIAL_RESULT = "tool.execution_partial_result"
    TOOL_EXECUTION_PROGRESS = "tool.execution_progress"
    TOOL_EXECUTION_COMPLETE = "tool.execution_complete"
    SKILL_INVOKED = "skill.invoked"
    SUBAGENT_STARTED = "subagent.started"
    SUBAGENT_COMPLETED = "subagent.completed"
    SUBAGENT_FAILED = "subagent.failed"
    SUBAGENT_SELECTED = "subagent.selected"
    HOOK_START = "hook.start"
    HOOK_END = "hook.end"
    SYSTEM_MESSAGE = "system.message"


class SessionLifecycleEventType(str, enum.Enum):
    SESSION_CREATED = "session.created"
    SESSION_DELETED = "session.deleted"
    SESSION_UPDATED = "session.updated"
    SESSION_FOREGROUND = "session.foreground"
    SESSION_BACKGROUND = "session.background"


def event_type_key(event_type: t.Union[str, enum.Enum]) -> str:
    """Plain string key for an event type given as str or enum member."""
    if isinstance(event_type, enum.Enum):
        return str(event_type.value)
    return event_type


# Events
@dataclass
class SessionEvent:
    type: str
    data: t.Dict[str, t.Any] = field(default_factory=dict)
    id: t.Optional[str] = None
    timestamp: t.Optional[str] = None
    parent_id: t.Optional[str] = None
    ephemeral: t.Optional[bool] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "SessionEvent":
        payload = data.get("data")
        return cls(
            type=data.get("type", ""),
            data=payload if isinstance(payload, dict) else {},
            id=data.get("id"),
            timestamp=data.get("timestamp"),
            parent_id=data.get("parentId"),
            ephemeral=data.get("ephemeral"),
        )


@dataclass
class SessionLifecycleMetadata:
    start_time: t.Optional[str] = None
    modified_time: t.Optional[str] = None
    summary: t.Optional[str] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "SessionLifecycleMetadata":
        return cls(
            start_time=data.get("startTime"),
            modified_time=data.get("modifiedTime"),
            summary=data.get("summary"),
        )


@dataclass
class SessionLifecycleEvent:
    type: str
    session_id: t.Optional[str] = None
    metadata: t.Optional[SessionLifecycleMetadata] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "SessionLifecycleEvent":
        metadata = data.get("metadata")
        return cls(
            type=data.get("type", ""),
            session_id=data.get("sessionId"),
            metadata=SessionLifecycleMetadata.from_dict(metadata) if isinstance(metadata, dict) else None,
        )


# Peer callbacks
@dataclass
class PermissionRequest:
    kind: str
    tool_call_id: t.Optional[str] = None
    extra: t.Dict[str, t.Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "PermissionRequest":
        return cls(
            kind=data.get("kind", ""),
            tool_call_id=data.get("toolCallId"),
            extra={k: v for k, v in data.items() if k not in ("kind", "toolCallId")},
        )


@dataclass
class PermissionRequestResult:
    kind: t.Union[PermissionKind, str]
    rules: t.Optional[t.List[t.Any]] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        out: t.Dict[str, t.Any] = {"kind": event_type_key(self.kind)}
        if self.rules is not None:
            out["rules"] = self.rules
        return out


@dataclass
class UserInputRequest:
    question: str
    choices: t.Optional[t.List[str]] = None
    allow_freeform: bool = True

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "UserInputRequest":
        return cls(
            question=data.get("question", ""),
            choices=data.get("choices"),
            allow_freeform=data.get("allowFreeform", True),
        )


@dataclass
class UserInputResponse:
    answer: str
    was_freeform: bool = False

    def to_wire(self) -> t.Dict[str, t.Any]:
        return {"answer": self.answer, "wasFreeform": self.was_freeform}


# Peer query responses
@dataclass
class PingResponse:
    message: t.Optional[str] = None
    timestamp: t.Optional[int] = None
    protocol_version: t.Optional[int] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "PingResponse":
        return cls(
            message=data.get("message"),
            timestamp=data.get("timestamp"),
            protocol_version=data.get("protocolVersion"),
        )


@dataclass
class GetStatusResponse:
    version: t.Optional[str] = None
    protocol_version: t.Optional[int] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "GetStatusResponse":
        return cls(version=data.get("version"), protocol_version=data.get("protocolVersion"))


@dataclass
class GetAuthStatusResponse:
    is_authenticated: bool = False
    auth_type: t.Optional[str] = None
    host: t.Optional[str] = None
    login: t.Optional[str] = None
    status_message: t.Optional[str] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "GetAuthStatusResponse":
        return cls(
            is_authenticated=bool(data.get("isAuthenticated", False)),
            auth_type=data.get("authType"),
            host=data.get("host"),
            login=data.get("login"),
            status_message=data.get("statusMessage"),
        )


@dataclass
class ModelCapabilities:
    supports: t.Dict[str, t.Any] = field(default_factory=dict)
    limits: t.Dict[str, t.Any] = field(default_factory=dict)

    @property
    def vision(self) -> bool:
        return bool(self.supports.get("vision"))

    @property
    def max_context_window_tokens(self) -> t.Optional[int]:
        return self.limits.get("max_context_window_tokens")


@dataclass
class ModelInfo:
    id: str
    name: t.Optional[str] = None
    capabilities: ModelCapabilities = field(default_factory=ModelCapabilities)
    policy: t.Optional[t.Dict[str, t.Any]] = None
    billing: t.Optional[t.Dict[str, t.Any]] = None
    supported_reasoning_efforts: t.Optional[t.List[str]] = None
    default_reasoning_effort: t.Optional[str] = None

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "ModelInfo":
        caps = data.get("capabilities") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name"),
            capabilities=ModelCapabilities(
                supports=caps.get("supports") or {},
                limits=caps.get("limits") or {},
            ),
            policy=data.get("policy"),
            billing=data.get("billing"),
            supported_reasoning_efforts=data.get("supportedReasoningEfforts"),
            default_reasoning_effort=data.get("defaultReasoningEffort"),
        )


@dataclass
class SessionMetadata:
    session_id: str
    start_time: t.Optional[str] = None
    modified_time: t.Optional[str] = None
    summary: t.Optional[str] = None
    is_remote: bool = False

    @classmethod
    def from_dict(cls, data: t.Dict[str, t.Any]) -> "SessionMetadata":
        return cls(
            session_id=data.get("sessionId", ""),
            start_time=data.get("startTime"),
            modified_time=data.get("modifiedTime"),
            summary=data.get("summary"),
            is_remote=bool(data.get("isRemote", False)),
        )


@dataclass
class StopError:
    message: str
