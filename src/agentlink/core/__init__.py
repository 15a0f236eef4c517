"""Core module: RPC engine, sessions and the client that routes peer callbacks."""

from .client import Client
from .config import (
    CustomAgentConfig,
    InfiniteSessionConfig,
    ProviderConfig,
    ResumeSessionConfig,
    SessionConfig,
    SessionHooks,
    SystemMessageConfig,
)
from .handlers import EventHandlerRegistry
from .models import (
    ConnectionState,
    GetAuthStatusResponse,
    GetStatusResponse,
    ModelInfo,
    PermissionKind,
    PermissionRequest,
    PermissionRequestResult,
    PingResponse,
    SessionEvent,
    SessionEventType,
    SessionLifecycleEvent,
    SessionLifecycleEventType,
    SessionMetadata,
    StopError,
    UserInputRequest,
    UserInputResponse,
)
from .registry import SessionRegistry
from .rpc import RpcEngine
from .session import Session
from .tools import (
    Tool,
    ToolInvocation,
    ToolResult,
    ToolResultType,
    define_tool,
    normalize_tool_result,
    unsupported_tool_result,
)

__all__ = [
    # Connection
    "Client",
    "RpcEngine",
    "ConnectionState",
    # Sessions
    "Session",
    "SessionRegistry",
    "SessionConfig",
    "ResumeSessionConfig",
    "SessionHooks",
    "SystemMessageConfig",
    "ProviderConfig",
    "CustomAgentConfig",
    "InfiniteSessionConfig",
    "EventHandlerRegistry",
    # Events
    "SessionEvent",
    "SessionEventType",
    "SessionLifecycleEvent",
    "SessionLifecycleEventType",
    # Callbacks
    "PermissionKind",
    "PermissionRequest",
    "PermissionRequestResult",
    "UserInputRequest",
    "UserInputResponse",
    # Tools
    "Tool",
    "ToolInvocation",
    "ToolResult",
    "ToolResultType",
    "define_tool",
    "normalize_tool_result",
    "unsupported_tool_result",
    # Peer queries
    "PingResponse",
    "GetStatusResponse",
    "GetAuthStatusResponse",
    "ModelInfo",
    "SessionMetadata",
    "StopError",
]
