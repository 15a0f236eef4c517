from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import typing as t

from mcp.types import INTERNAL_ERROR

from ..errors import AgentLinkError, JsonRpcError, RequestTimeoutError, SessionEventError
from .config import PermissionHandler, SessionHooks, UserInputHandler
from .handlers import EventHandlerRegistry, Unsubscribe
from .models import (
    PermissionKind,
    PermissionRequest,
    PermissionRequestResult,
    SessionEvent,
    SessionEventType,
    UserInputRequest,
    UserInputResponse,
    event_type_key,
)
from .rpc import RpcEngine
from .tools import Tool, ToolHandler

_logger = logging.getLogger(__name__)

_DENIED = {"kind": PermissionKind.DENIED_NO_APPROVAL.value}


async def _call(handler: t.Callable[..., t.Any], *args: t.Any) -> t.Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Session:
    """One conversation with the peer agent.

    Sessions are created by ``Client.create_session`` / ``Client.resume_session``
    and share the client's RpcEngine. Peer traffic addressed to this session is
    routed here by the client: events through ``dispatch_event`` and callbacks
    through the ``handle_*`` coroutines.
    """

    def __init__(
        self,
        session_id: str,
        engine: RpcEngine,
        workspace_path: t.Optional[str] = None,
        *,
        send_and_wait_timeout: float = 60.0,
        on_destroyed: t.Optional[t.Callable[["Session"], None]] = None,
    ) -> None:
        self._session_id = session_id
        self._engine = engine
        self._workspace_path = workspace_path
        self._send_and_wait_timeout = send_and_wait_timeout
        self._on_destroyed = on_destroyed

        self._events: EventHandlerRegistry[SessionEvent] = EventHandlerRegistry("session event")
        self._lock = threading.Lock()
        self._tool_handlers: t.Dict[str, ToolHandler] = {}
        self._permission_handler: t.Optional[PermissionHandler] = None
        self._user_input_handler: t.Optional[UserInputHandler] = None
        self._hooks: t.Optional[SessionHooks] = None
        self._waiters: t.Set[asyncio.Future] = set()
        self._destroyed = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def workspace_path(self) -> t.Optional[str]:
        return self._workspace_path

    @workspace_path.setter
    def workspace_path(self, value: t.Optional[str]) -> None:
        self._workspace_path = value

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __repr__(self) -> str:
        return f"Session(session_id={self._session_id!r}, destroyed={self._destroyed})"

    # ---- conversation ----

    async def send(
        self,
        prompt: str,
        attachments: t.Optional[t.List[t.Dict[str, t.Any]]] = None,
        mode: t.Optional[str] = None,
        response_format: t.Optional[str] = None,
        image_options: t.Optional[t.Dict[str, t.Any]] = None,
    ) -> str:
        """Queue a prompt and return the message id without waiting for the turn."""
        payload: t.Dict[str, t.Any] = {"sessionId": self._session_id, "prompt": prompt}
        if attachments is not None:
            payload["attachments"] = attachments
        if mode is not None:
            payload["mode"] = mode
        if response_format is not None:
            payload["responseFormat"] = response_format
        if image_options is not None:
            payload["imageOptions"] = image_options
        response = await self._engine.send_request("session.send", payload)
        return (response or {}).get("messageId")

    async def send_and_wait(
        self,
        prompt: str,
        attachments: t.Optional[t.List[t.Dict[str, t.Any]]] = None,
        mode: t.Optional[str] = None,
        response_format: t.Optional[str] = None,
        image_options: t.Optional[t.Dict[str, t.Any]] = None,
        timeout: t.Optional[float] = None,
    ) -> t.Optional[SessionEvent]:
        """Send a prompt and wait until the session goes idle.

        Returns the last ``assistant.message`` event of the turn, or None if the
        turn produced none. Raises SessionEventError when the session reports
        ``session.error`` and RequestTimeoutError when ``timeout`` expires first.
        If the connection ends or the session is destroyed mid-turn, the error
        passed to ``fail_waiters`` is raised instead.
        """
        wait_for = self._send_and_wait_timeout if timeout is None else timeout
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        with self._lock:
            self._waiters.add(done)
        last_message: t.List[SessionEvent] = []

        def watch(event: SessionEvent) -> None:
            if done.done():
                return
            if event.type == SessionEventType.ASSISTANT_MESSAGE.value:
                last_message[:] = [event]
            elif event.type == SessionEventType.SESSION_IDLE.value:
                done.set_result(last_message[0] if last_message else None)
            elif event.type == SessionEventType.SESSION_ERROR.value:
                message = event.data.get("message") or "Unknown error"
                done.set_exception(SessionEventError(message, event))

        # subscribe before sending so events racing the response are not lost
        unsubscribe = self.on(watch)
        try:
            await self.send(prompt, attachments, mode, response_format, image_options)
            try:
                return await asyncio.wait_for(done, wait_for)
            except asyncio.TimeoutError:
                raise RequestTimeoutError(f"Timeout after {wait_for}s waiting for session.idle") from None
        finally:
            unsubscribe()
            with self._lock:
                self._waiters.discard(done)
            if not done.done():
                done.cancel()
            elif not done.cancelled():
                done.exception()  # mark retrieved

    def on(self, *args: t.Any) -> Unsubscribe:
        """Subscribe to session events.

        ``on(handler)`` receives every event; ``on(event_type, handler)`` only
        events of that type. Returns a callable that removes the subscription.
        """
        if len(args) == 1 and callable(args[0]):
            return self._events.add(args[0])
        if len(args) == 2 and isinstance(args[0], str) and callable(args[1]):
            return self._events.add(args[1], event_type_key(args[0]))
        raise ValueError("on() expects (handler) or (event_type, handler)")

    async def get_messages(self) -> t.List[SessionEvent]:
        response = await self._engine.send_request("session.getMessages", {"sessionId": self._session_id})
        events = (response or {}).get("events") or []
        return [SessionEvent.from_dict(event) for event in events]

    async def abort(self) -> None:
        await self._engine.send_request("session.abort", {"sessionId": self._session_id})

    async def destroy(self, timeout: t.Optional[float] = None) -> None:
        """Destroy the session on the peer and drop every local handler.

        Local state is released even if the peer call fails. Calling it again
        re-issues the peer call.
        """
        try:
            await self._engine.send_request("session.destroy", {"sessionId": self._session_id}, timeout)
        finally:
            self._release()

    def fail_waiters(self, make_error: t.Callable[[], BaseException]) -> None:
        """Wake every running send_and_wait with an error from ``make_error``."""
        with self._lock:
            waiters = list(self._waiters)
            self._waiters.clear()
        for done in waiters:
            if not done.done():
                done.set_exception(make_error())

    def _release(self) -> None:
        self.fail_waiters(lambda: AgentLinkError(f"Session {self._session_id} was destroyed"))
        self._events.clear()
        with self._lock:
            self._tool_handlers.clear()
            self._permission_handler = None
            self._user_input_handler = None
            self._hooks = None
        first = not self._destroyed
        self._destroyed = True
        if first and self._on_destroyed is not None:
            self._on_destroyed(self)

    # ---- registration, used by Client ----

    def register_tools(self, tools: t.Optional[t.Iterable[Tool]]) -> None:
        with self._lock:
            self._tool_handlers = {
                tool.name: tool.handler for tool in tools or () if tool.name and tool.handler is not None
            }

    def register_permission_handler(self, handler: t.Optional[PermissionHandler]) -> None:
        with self._lock:
            self._permission_handler = handler

    def register_user_input_handler(self, handler: t.Optional[UserInputHandler]) -> None:
        with self._lock:
            self._user_input_handler = handler

    def register_hooks(self, hooks: t.Optional[SessionHooks]) -> None:
        with self._lock:
            self._hooks = hooks

    # ---- routing surface, used by Client ----

    def dispatch_event(self, event: SessionEvent) -> None:
        self._events.dispatch(event)

    def get_tool_handler(self, name: str) -> t.Optional[ToolHandler]:
        with self._lock:
            return self._tool_handlers.get(name)

    async def handle_permission_request(self, request: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        with self._lock:
            handler = self._permission_handler
        if handler is None:
            return dict(_DENIED)
        try:
            result = await _call(handler, PermissionRequest.from_dict(request), {"session_id": self._session_id})
        except Exception:
            _logger.exception("Permission handler failed for session %s", self._session_id)
            return dict(_DENIED)
        if isinstance(result, PermissionRequestResult):
            return result.to_wire()
        if isinstance(result, (str, PermissionKind)):
            return {"kind": event_type_key(result)}
        if isinstance(result, dict):
            return result
        _logger.warning("Permission handler returned %r; denying", result)
        return dict(_DENIED)

    async def handle_user_input_request(self, params: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
        with self._lock:
            handler = self._user_input_handler
        if handler is None:
            raise JsonRpcError(INTERNAL_ERROR, "User input requested but no handler registered")
        request = UserInputRequest.from_dict(params)
        result = await _call(handler, request, {"session_id": self._session_id})
        if isinstance(result, UserInputResponse):
            return result.to_wire()
        if isinstance(result, str):
            return {"answer": result, "wasFreeform": result not in (request.choices or [])}
        if isinstance(result, dict):
            if not isinstance(result.get("answer"), str):
                raise JsonRpcError(INTERNAL_ERROR, "User input handler returned a dict without an answer")
            return {"answer": result["answer"], "wasFreeform": bool(result.get("wasFreeform", False))}
        raise JsonRpcError(INTERNAL_ERROR, f"User input handler returned {type(result).__name__}")

    async def handle_hooks_invoke(self, hook_type: str, hook_input: t.Any) -> t.Any:
        """Run the hook registered for ``hook_type``; None when absent or failing."""
        with self._lock:
            hooks = self._hooks
        if hooks is None:
            return None
        handler = hooks.handler_for(hook_type)
        if handler is None:
            return None
        try:
            return await _call(handler, hook_input, {"session_id": self._session_id})
        except Exception:
            _logger.exception("Hook %s failed for session %s", hook_type, self._session_id)
            return None
