from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
import typing as t
import uuid

from mcp.types import INTERNAL_ERROR, METHOD_NOT_FOUND, ErrorData

from ..errors import (
    AgentLinkError,
    EngineStoppedError,
    FrameDecodeError,
    FrameHeaderError,
    JsonRpcError,
    RequestTimeoutError,
    TransportError,
)
from ..monitoring.metrics import (
    rpc_frame_errors_total,
    rpc_inbound_messages_total,
    rpc_request_latency_seconds,
    rpc_requests_total,
)
from ..transport.framing import (
    JSON,
    RequestId,
    make_error_response,
    make_notification,
    make_request,
    make_response,
)
from ..transport.stream import FramedStream

_logger = logging.getLogger(__name__)

RequestHandler = t.Callable[[JSON], t.Any]
NotificationHandler = t.Callable[[str, JSON], None]
CloseHandler = t.Callable[[t.Optional[BaseException]], None]


class RpcEngine:
    """Symmetric JSON-RPC 2.0 endpoint over a FramedStream.

    Outgoing requests are correlated to responses through a table of futures
    keyed by request id. Incoming requests are answered by handlers registered
    per method; incoming notifications go to a single notification handler.

    One reader task pulls frames. Responses and notifications are handled
    inline so that per-session event order is preserved. Each incoming request
    runs in its own task so a slow handler never stalls the reader.
    """

    def __init__(self, stream: FramedStream, *, default_timeout: float = 30.0) -> None:
        self._stream = stream
        self._default_timeout = default_timeout

        self._pending: t.Dict[RequestId, asyncio.Future] = {}
        self._pending_lock = threading.Lock()

        self._request_handlers: t.Dict[str, RequestHandler] = {}
        self._handlers_lock = threading.Lock()
        self._notification_handler: t.Optional[NotificationHandler] = None
        self._close_handler: t.Optional[CloseHandler] = None

        self._reader_task: t.Optional[asyncio.Task] = None
        self._incoming_tasks: t.Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._reader_task is not None and not self._stopped

    # ---- registration ----

    def set_request_handler(self, method: str, handler: t.Optional[RequestHandler]) -> None:
        with self._handlers_lock:
            if handler is None:
                self._request_handlers.pop(method, None)
            else:
                self._request_handlers[method] = handler

    def set_notification_handler(self, handler: t.Optional[NotificationHandler]) -> None:
        self._notification_handler = handler

    def set_close_handler(self, handler: t.Optional[CloseHandler]) -> None:
        """Called once when the read loop ends by itself (EOF or transport fault)."""
        self._close_handler = handler

    # ---- lifecycle ----

    def start(self) -> None:
        if self._stopped:
            raise AgentLinkError("Engine was stopped; create a new engine on a fresh stream")
        if self._reader_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._reader_task = loop.create_task(self._read_loop(), name="agentlink-rpc-reader")
        _logger.info("RPC engine started")

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True

        current = asyncio.current_task()
        tasks = [task for task in self._incoming_tasks if task is not current]
        if self._reader_task is not None and self._reader_task is not current:
            tasks.append(self._reader_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._fail_pending(lambda: EngineStoppedError())
        await self._stream.close()
        _logger.info("RPC engine stopped")

    # ---- outgoing ----

    async def send_request(
        self,
        method: str,
        params: t.Optional[JSON] = None,
        timeout: t.Optional[float] = None,
    ) -> t.Any:
        loop = asyncio.get_running_loop()
        request_id = str(uuid.uuid4())
        future: asyncio.Future = loop.create_future()
        with self._pending_lock:
            if not self.is_running:
                raise EngineStoppedError()
            self._pending[request_id] = future

        wait_for = self._default_timeout if timeout is None else timeout
        started = time.monotonic()
        outcome = "ok"
        try:
            try:
                await self._stream.write_message(make_request(request_id, method, params))
            except (TransportError, TypeError, ValueError):
                outcome = "error"
                raise
            try:
                return await asyncio.wait_for(future, wait_for)
            except asyncio.TimeoutError:
                outcome = "timeout"
                raise RequestTimeoutError(
                    f"Request '{method}' timed out after {wait_for}s"
                ) from None
            except EngineStoppedError:
                outcome = "stopped"
                raise
            except (JsonRpcError, TransportError):
                outcome = "error"
                raise
        finally:
            with self._pending_lock:
                self._pending.pop(request_id, None)
            if future.done() and not future.cancelled():
                future.exception()  # mark retrieved when the write itself failed
            rpc_requests_total.inc(method=method, outcome=outcome)
            rpc_request_latency_seconds.observe(time.monotonic() - started, method=method)

    async def send_notification(self, method: str, params: t.Optional[JSON] = None) -> None:
        if not self.is_running:
            raise EngineStoppedError()
        await self._stream.write_message(make_notification(method, params))

    # ---- incoming ----

    async def _read_loop(self) -> None:
        error: t.Optional[BaseException] = None
        try:
            while True:
                try:
                    message = await self._stream.read_message()
                except FrameDecodeError as exc:
                    rpc_frame_errors_total.inc(reason="decode")
                    _logger.error("Dropping undecodable frame: %s", exc)
                    continue
                if message is None:
                    _logger.info("Peer closed the stream")
                    break
                await self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except FrameHeaderError as exc:
            rpc_frame_errors_total.inc(reason="header")
            _logger.error("Unusable frame header, stopping reader: %s", exc)
            error = exc
        except TransportError as exc:
            _logger.error("Transport failure, stopping reader: %s", exc)
            error = exc
        except Exception as exc:
            _logger.exception("Unexpected error in RPC read loop")
            error = exc

        await self._on_reader_exit(error)

    async def _on_reader_exit(self, error: t.Optional[BaseException]) -> None:
        if self._stopped:
            return
        self._stopped = True
        for task in list(self._incoming_tasks):
            task.cancel()
        if error is None:
            self._fail_pending(lambda: TransportError("Connection closed by peer"))
        else:
            self._fail_pending(lambda: TransportError(f"Connection lost: {error}"))
        await self._stream.close()
        handler = self._close_handler
        if handler is not None:
            try:
                handler(error)
            except Exception:
                _logger.exception("Close handler raised")

    async def _dispatch(self, message: t.Any) -> None:
        if not isinstance(message, dict):
            rpc_frame_errors_total.inc(reason="shape")
            _logger.warning("Ignoring non-object message: %r", message)
            return

        method = message.get("method")
        request_id = message.get("id")
        has_id = request_id is not None

        if method is None and has_id and ("result" in message or "error" in message):
            rpc_inbound_messages_total.inc(kind="response")
            self._resolve(request_id, message)
        elif isinstance(method, str) and not has_id:
            rpc_inbound_messages_total.inc(kind="notification")
            self._notify(method, message.get("params") or {})
        elif isinstance(method, str):
            rpc_inbound_messages_total.inc(kind="request")
            await self._accept_request(request_id, method, message.get("params") or {})
        else:
            rpc_frame_errors_total.inc(reason="shape")
            _logger.warning("Ignoring message that is not a request, response or notification")

    def _resolve(self, request_id: RequestId, message: JSON) -> None:
        with self._pending_lock:
            future = self._pending.get(request_id)
        if future is None or future.done():
            _logger.debug("Dropping response for unknown or expired request %s", request_id)
            return

        error = message.get("error")
        if error is not None:
            try:
                data = ErrorData.model_validate(error)
                future.set_exception(JsonRpcError(data.code, data.message, data.data))
            except ValueError:
                future.set_exception(JsonRpcError(INTERNAL_ERROR, "Invalid error object", error))
        else:
            future.set_result(message.get("result"))

    def _notify(self, method: str, params: JSON) -> None:
        handler = self._notification_handler
        if handler is None:
            _logger.debug("No notification handler for %s", method)
            return
        try:
            handler(method, params)
        except Exception:
            _logger.exception("Notification handler failed for %s", method)

    async def _accept_request(self, request_id: RequestId, method: str, params: JSON) -> None:
        with self._handlers_lock:
            handler = self._request_handlers.get(method)
        if handler is None:
            _logger.debug("No handler for incoming request %s", method)
            await self._respond(
                make_error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}"),
                method,
            )
            return

        task = asyncio.get_running_loop().create_task(
            self._run_handler(request_id, method, handler, params)
        )
        self._incoming_tasks.add(task)
        task.add_done_callback(self._incoming_tasks.discard)

    async def _run_handler(
        self, request_id: RequestId, method: str, handler: RequestHandler, params: JSON
    ) -> None:
        try:
            result = handler(params)
            if inspect.isawaitable(result):
                result = await result
            response = make_response(request_id, {} if result is None else result)
        except asyncio.CancelledError:
            raise
        except JsonRpcError as exc:
            response = make_error_response(request_id, exc.code, exc.message, exc.data)
        except Exception as exc:
            _logger.exception("Handler for %s raised", method)
            response = make_error_response(request_id, INTERNAL_ERROR, str(exc))
        await self._respond(response, method)

    async def _respond(self, response: JSON, method: str) -> None:
        try:
            await self._stream.write_message(response)
        except (TypeError, ValueError) as exc:
            _logger.error("Result of %s is not JSON serializable: %s", method, exc)
            await self._respond(
                make_error_response(response["id"], INTERNAL_ERROR, f"Unserializable result: {exc}"),
                method,
            )
        except TransportError as exc:
            _logger.warning("Could not send response for %s: %s", method, exc)

    def _fail_pending(self, make_error: t.Callable[[], BaseException]) -> None:
        with self._pending_lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(make_error())
