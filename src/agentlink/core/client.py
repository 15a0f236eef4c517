from __future__ import annotations

import asyncio
import inspect
import json
import logging
import typing as t

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS

from ..cache.ttl_cache import TTLCache
from ..errors import (
    AgentLinkError,
    EngineStoppedError,
    JsonRpcError,
    ProtocolVersionMismatchError,
    TransportError,
)
from ..protocol_version import get_sdk_protocol_version
from ..transport.stream import FramedStream
from ..utils.config import ClientConfig
from .config import ResumeSessionConfig, SessionConfig
from .handlers import EventHandlerRegistry, Unsubscribe
from .models import (
    ConnectionState,
    GetAuthStatusResponse,
    GetStatusResponse,
    ModelInfo,
    PingResponse,
    SessionEvent,
    SessionLifecycleEvent,
    SessionMetadata,
    StopError,
    event_type_key,
)
from .registry import SessionRegistry
from .rpc import RpcEngine
from .session import Session
from .tools import ToolInvocation, normalize_tool_result, tool_error_result, unsupported_tool_result

_logger = logging.getLogger(__name__)

_MODELS_KEY = "models"
NOT_CONNECTED = "Client not connected. Call start() first."


class Client:
    """Connection to one agent peer over a duplex byte stream.

    Owns the RpcEngine and the SessionRegistry. ``start()`` verifies the peer's
    protocol version; afterwards sessions can be created or resumed, and peer
    callbacks (events, tool calls, permission and user-input requests, hooks)
    are routed to the addressed Session.

    Usage::

        async with Client.from_process(proc) as client:
            session = await client.create_session(SessionConfig(model="gpt-5"))
            reply = await session.send_and_wait("hello")
    """

    def __init__(
        self,
        reader: t.Any,
        writer: t.Any,
        config: t.Optional[ClientConfig] = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._config = config or ClientConfig()
        self._engine: t.Optional[RpcEngine] = None
        self._state = ConnectionState.DISCONNECTED
        self._start_lock = asyncio.Lock()

        self._sessions = SessionRegistry()
        self._lifecycle: EventHandlerRegistry[SessionLifecycleEvent] = EventHandlerRegistry("lifecycle")

        cache_cfg = self._config.cache
        self._models_cache: t.Optional[TTLCache] = (
            TTLCache(max_size=cache_cfg.models_max_size, ttl_seconds=cache_cfg.models_ttl_seconds)
            if cache_cfg.models_enabled
            else None
        )
        self._models_lock = asyncio.Lock()

    @classmethod
    def from_process(cls, process: asyncio.subprocess.Process, config: t.Optional[ClientConfig] = None) -> "Client":
        """Talk to an agent spawned with stdin/stdout pipes."""
        if process.stdout is None or process.stdin is None:
            raise ValueError("process must be started with stdin=PIPE and stdout=PIPE")
        return cls(process.stdout, process.stdin, config)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def __aenter__(self) -> "Client":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ---- lifecycle ----

    async def start(self) -> None:
        async with self._start_lock:
            if self._state == ConnectionState.CONNECTED:
                return
            if self._engine is not None:
                raise AgentLinkError("Client cannot be restarted on a used stream")
            self._state = ConnectionState.CONNECTING
            engine = RpcEngine(
                FramedStream(self._reader, self._writer),
                default_timeout=self._config.timeouts.request_seconds,
            )
            self._attach_handlers(engine)
            self._engine = engine
            try:
                engine.start()
                await self._verify_protocol_version()
            except BaseException:
                self._state = ConnectionState.ERROR
                await engine.stop()
                raise
            self._state = ConnectionState.CONNECTED
            _logger.info("Client connected")

    async def stop(self) -> t.List[StopError]:
        """Destroy every session, then shut the connection down.

        Per-session failures do not abort the shutdown; they are returned.
        """
        errors: t.List[StopError] = []
        engine = self._engine
        if engine is not None and engine.is_running:
            for session in self._sessions.pop_all():
                session.fail_waiters(EngineStoppedError)
                try:
                    await session.destroy(timeout=self._config.timeouts.stop_seconds)
                except Exception as exc:
                    errors.append(StopError(f"Failed to destroy session {session.session_id}: {exc}"))
        await self._shutdown()
        for error in errors:
            _logger.warning(error.message)
        return errors

    async def force_stop(self) -> None:
        """Shut down without asking the peer to destroy sessions."""
        await self._shutdown()

    async def _shutdown(self) -> None:
        for session in self._sessions.pop_all():
            session.fail_waiters(EngineStoppedError)
        if self._engine is not None:
            await self._engine.stop()
        if self._models_cache is not None:
            self._models_cache.clear()
        self._state = ConnectionState.DISCONNECTED

    async def _verify_protocol_version(self) -> None:
        expected = get_sdk_protocol_version()
        ping = await self.ping()
        if ping.protocol_version != expected:
            raise ProtocolVersionMismatchError(expected, ping.protocol_version)
        _logger.info("Peer protocol version %s verified", expected)

    def _on_engine_closed(self, error: t.Optional[BaseException]) -> None:
        reason = f"Connection lost: {error}" if error is not None else "Connection closed by peer"
        for session in self._sessions.pop_all():
            session.fail_waiters(lambda: TransportError(reason))
        if self._models_cache is not None:
            self._models_cache.clear()
        self._state = ConnectionState.ERROR if error is not None else ConnectionState.DISCONNECTED
        _logger.warning("Connection to peer ended (%s)", error or "end of stream")

    def _require_engine(self) -> RpcEngine:
        if self._engine is None or not self._engine.is_running:
            raise AgentLinkError(NOT_CONNECTED)
        return self._engine

    async def _ensure_connected(self) -> RpcEngine:
        if self._state != ConnectionState.CONNECTED:
            if not self._config.auto_start or self._engine is not None:
                raise AgentLinkError(NOT_CONNECTED)
            await self.start()
        return self._require_engine()

    # ---- sessions ----

    async def create_session(self, config: t.Optional[SessionConfig] = None) -> Session:
        config = config or SessionConfig()
        engine = await self._ensure_connected()
        return await self._open_session(engine, "session.create", config.to_wire(), config, config.session_id)

    async def resume_session(self, session_id: str, config: t.Optional[ResumeSessionConfig] = None) -> Session:
        config = config or ResumeSessionConfig()
        engine = await self._ensure_connected()
        return await self._open_session(engine, "session.resume", config.to_wire_for(session_id), config, session_id)

    async def _open_session(
        self,
        engine: RpcEngine,
        method: str,
        payload: t.Dict[str, t.Any],
        config: SessionConfig,
        known_id: t.Optional[str],
    ) -> Session:
        # with the id known up front, register first so no early event is dropped
        early = self._new_session(engine, known_id, None, config) if known_id else None
        if early is not None:
            self._sessions.add(early)
        try:
            response = await engine.send_request(method, payload)
        except BaseException:
            if early is not None:
                self._sessions.remove(early.session_id, early)
            raise

        session_id = (response or {}).get("sessionId")
        if not session_id:
            if early is not None:
                self._sessions.remove(early.session_id, early)
            raise AgentLinkError(f"{method} response did not include a sessionId")
        workspace_path = response.get("workspacePath")

        if early is not None and early.session_id == session_id:
            early.workspace_path = workspace_path
            return early
        if early is not None:
            self._sessions.remove(early.session_id, early)
        session = self._new_session(engine, session_id, workspace_path, config)
        self._sessions.add(session)
        _logger.debug("Opened session %s via %s", session_id, method)
        return session

    def _new_session(
        self,
        engine: RpcEngine,
        session_id: str,
        workspace_path: t.Optional[str],
        config: SessionConfig,
    ) -> Session:
        session = Session(
            session_id,
            engine,
            workspace_path,
            send_and_wait_timeout=self._config.timeouts.send_and_wait_seconds,
            on_destroyed=lambda s: self._sessions.remove(s.session_id, s),
        )
        session.register_tools(config.tools)
        session.register_permission_handler(config.on_permission_request)
        session.register_user_input_handler(config.on_user_input_request)
        session.register_hooks(config.hooks)
        return session

    def get_session(self, session_id: str) -> t.Optional[Session]:
        return self._sessions.get(session_id)

    # ---- peer queries ----

    async def ping(self, message: t.Optional[str] = None) -> PingResponse:
        result = await self._require_engine().send_request("ping", {"message": message})
        return PingResponse.from_dict(result or {})

    async def get_status(self) -> GetStatusResponse:
        result = await self._require_engine().send_request("status.get", {})
        return GetStatusResponse.from_dict(result or {})

    async def get_auth_status(self) -> GetAuthStatusResponse:
        result = await self._require_engine().send_request("auth.getStatus", {})
        return GetAuthStatusResponse.from_dict(result or {})

    async def list_models(self) -> t.List[ModelInfo]:
        """Available models. Cached until stop() (or the configured TTL); returns a copy."""
        engine = self._require_engine()
        async with self._models_lock:
            if self._models_cache is not None:
                cached = self._models_cache.get(_MODELS_KEY)
                if cached is not None:
                    return list(cached)
            result = await engine.send_request("models.list", {})
            models = [ModelInfo.from_dict(m) for m in (result or {}).get("models") or []]
            if self._models_cache is not None:
                self._models_cache.set(_MODELS_KEY, models)
            return list(models)

    async def list_sessions(self) -> t.List[SessionMetadata]:
        result = await self._require_engine().send_request("session.list", {})
        return [SessionMetadata.from_dict(s) for s in (result or {}).get("sessions") or []]

    async def get_last_session_id(self) -> t.Optional[str]:
        result = await self._require_engine().send_request("session.getLastId", {})
        return (result or {}).get("sessionId")

    async def delete_session(self, session_id: str) -> None:
        """Permanently delete a session on the peer and forget it locally."""
        result = await self._require_engine().send_request("session.delete", {"sessionId": session_id}) or {}
        if not result.get("success"):
            error = result.get("error") or "Unknown error"
            raise AgentLinkError(f"Failed to delete session {session_id}: {error}")
        self._sessions.remove(session_id)

    async def get_foreground_session_id(self) -> t.Optional[str]:
        result = await self._require_engine().send_request("session.getForeground", {})
        return (result or {}).get("sessionId")

    async def set_foreground_session_id(self, session_id: str) -> None:
        result = await self._require_engine().send_request("session.setForeground", {"sessionId": session_id}) or {}
        if not result.get("success"):
            raise AgentLinkError(result.get("error") or "Failed to set foreground session")

    # ---- lifecycle subscriptions ----

    def on(self, *args: t.Any) -> Unsubscribe:
        """Subscribe to session lifecycle events: ``on(handler)`` or ``on(event_type, handler)``."""
        if len(args) == 1 and callable(args[0]):
            return self._lifecycle.add(args[0])
        if len(args) == 2 and isinstance(args[0], str) and callable(args[1]):
            return self._lifecycle.add(args[1], event_type_key(args[0]))
        raise ValueError("on() expects (handler) or (event_type, handler)")

    # ---- peer callbacks ----

    def _attach_handlers(self, engine: RpcEngine) -> None:
        engine.set_notification_handler(self._handle_notification)
        engine.set_request_handler("tool.call", self._handle_tool_call)
        engine.set_request_handler("permission.request", self._handle_permission_request)
        engine.set_request_handler("userInput.request", self._handle_user_input_request)
        engine.set_request_handler("hooks.invoke", self._handle_hooks_invoke)
        engine.set_close_handler(self._on_engine_closed)

    def _handle_notification(self, method: str, params: t.Dict[str, t.Any]) -> None:
        if method == "session.event":
            session_id = params.get("sessionId")
            event = params.get("event")
            if not session_id or not isinstance(event, dict):
                _logger.debug("Ignoring malformed session.event")
                return
            session = self._sessions.get(session_id)
            if session is None:
                _logger.debug("Dropping %s event for unknown session %s", event.get("type"), session_id)
                return
            session.dispatch_event(SessionEvent.from_dict(event))
        elif method == "session.lifecycle":
            self._lifecycle.dispatch(SessionLifecycleEvent.from_dict(params))
        else:
            _logger.debug("Ignoring notification %s", method)

    def _lookup(self, session_id: str, missing: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise JsonRpcError(INTERNAL_ERROR, missing)
        return session

    async def _handle_tool_call(self, params: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        session_id = params.get("sessionId")
        tool_call_id = params.get("toolCallId")
        tool_name = params.get("toolName")
        if not (session_id and tool_call_id and tool_name):
            raise JsonRpcError(INVALID_PARAMS, "Invalid tool call payload")
        session = self._lookup(session_id, f"Unknown session {session_id}")

        handler = session.get_tool_handler(tool_name)
        if handler is None:
            return {"result": unsupported_tool_result(tool_name).to_wire()}

        arguments = params.get("arguments")
        invocation = ToolInvocation(session_id, tool_call_id, tool_name, arguments)
        try:
            value = handler(arguments, invocation)
            if inspect.isawaitable(value):
                value = await value
            wire = normalize_tool_result(value).to_wire()
            json.dumps(wire)
        except Exception as exc:
            _logger.exception("Tool %s failed in session %s", tool_name, session_id)
            wire = tool_error_result(exc).to_wire()
        return {"result": wire}

    async def _handle_permission_request(self, params: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        session_id = params.get("sessionId")
        request = params.get("permissionRequest")
        if not session_id or not isinstance(request, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid permission request payload")
        session = self._lookup(session_id, f"Session not found: {session_id}")
        return {"result": await session.handle_permission_request(request)}

    async def _handle_user_input_request(self, params: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        session_id = params.get("sessionId")
        if not session_id or not params.get("question"):
            raise JsonRpcError(INVALID_PARAMS, "Invalid user input request payload")
        session = self._lookup(session_id, f"Session not found: {session_id}")
        return await session.handle_user_input_request(params)

    async def _handle_hooks_invoke(self, params: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        session_id = params.get("sessionId")
        hook_type = params.get("hookType")
        if not session_id or not hook_type:
            raise JsonRpcError(INVALID_PARAMS, "Invalid hooks invoke payload")
        session = self._lookup(session_id, f"Session not found: {session_id}")
        output = await session.handle_hooks_invoke(hook_type, params.get("input"))
        return {} if output is None else {"output": output}
