"""agentlink

Client for a long-running agent process spoken to over Content-Length framed
JSON-RPC 2.0: a symmetric RPC engine, conversation sessions, and routing of
the agent's callbacks (tools, permissions, user input, hooks).
"""

from .core import (
    Client,
    ConnectionState,
    CustomAgentConfig,
    InfiniteSessionConfig,
    PermissionKind,
    PermissionRequest,
    PermissionRequestResult,
    ProviderConfig,
    ResumeSessionConfig,
    RpcEngine,
    Session,
    SessionConfig,
    SessionEvent,
    SessionEventType,
    SessionHooks,
    SessionLifecycleEvent,
    SessionLifecycleEventType,
    SystemMessageConfig,
    Tool,
    ToolInvocation,
    ToolResult,
    ToolResultType,
    UserInputRequest,
    UserInputResponse,
    define_tool,
)
from .errors import (
    AgentLinkError,
    EngineStoppedError,
    FrameDecodeError,
    FrameHeaderError,
    JsonRpcError,
    ProtocolVersionMismatchError,
    RequestTimeoutError,
    SessionEventError,
    TransportError,
)
from .protocol_version import SDK_PROTOCOL_VERSION
from .transport import FramedStream, create_memory_pipe
from .utils import CacheConfig, ClientConfig, TimeoutConfig

__all__ = [
    "Client",
    "ClientConfig",
    "TimeoutConfig",
    "CacheConfig",
    "ConnectionState",
    "RpcEngine",
    "FramedStream",
    "create_memory_pipe",
    "Session",
    "SessionConfig",
    "ResumeSessionConfig",
    "SessionHooks",
    "SystemMessageConfig",
    "ProviderConfig",
    "CustomAgentConfig",
    "InfiniteSessionConfig",
    "SessionEvent",
    "SessionEventType",
    "SessionLifecycleEvent",
    "SessionLifecycleEventType",
    "PermissionKind",
    "PermissionRequest",
    "PermissionRequestResult",
    "UserInputRequest",
    "UserInputResponse",
    "Tool",
    "ToolInvocation",
    "ToolResult",
    "ToolResultType",
    "define_tool",
    "AgentLinkError",
    "TransportError",
    "FrameHeaderError",
    "FrameDecodeError",
    "JsonRpcError",
    "EngineStoppedError",
    "RequestTimeoutError",
    "ProtocolVersionMismatchError",
    "SessionEventError",
    "SDK_PROTOCOL_VERSION",
]

__version__ = "0.1.0"
