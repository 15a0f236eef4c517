"""Shared fixtures: a scripted agent peer on the far end of an in-memory pipe."""

from __future__ import annotations

import asyncio
import inspect
import itertools
import typing as t

import pytest
import pytest_asyncio

from agentlink import Client, ClientConfig, TimeoutConfig
from agentlink.monitoring import metrics
from agentlink.transport import FramedStream, create_memory_pipe

PROTOCOL_VERSION = 2


class PeerError(Exception):
    """Raise from a scripted responder to answer with a JSON-RPC error."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class FakePeer:
    """Plays the agent process: answers scripted requests, records the rest.

    Requests with a scripted responder are answered automatically (optionally
    followed by notifications). Every other inbound message is queued for the
    test to inspect with ``next_message``.
    """

    def __init__(self, reader, writer) -> None:
        self.stream = FramedStream(reader, writer)
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.calls: t.List[t.Dict[str, t.Any]] = []
        self._responders: t.Dict[str, t.Callable[[dict], t.Any]] = {}
        self._followups: t.Dict[str, t.List[t.Tuple[str, dict]]] = {}
        self._pending: t.Dict[t.Any, asyncio.Future] = {}
        self._ids = itertools.count(1000)
        self._task: t.Optional[asyncio.Task] = None

    def script(
        self,
        method: str,
        result: t.Any = None,
        then: t.Optional[t.List[t.Tuple[str, dict]]] = None,
        error: t.Optional[t.Tuple[int, str]] = None,
    ) -> None:
        """Answer ``method`` with ``result`` (called with params if callable) or with ``error``."""
        if error is not None:

            def fail(params, _e=error):
                raise PeerError(*_e)

            self._responders[method] = fail
        else:
            self._responders[method] = result if callable(result) else (lambda params, _r=result: _r)
        self._followups[method] = list(then or [])

    def params_of(self, method: str) -> t.List[dict]:
        """Params of every request the client sent for ``method``, oldest first."""
        return [call.get("params") for call in self.calls if call["method"] == method]

    def unscript(self, method: str) -> None:
        self._responders.pop(method, None)
        self._followups.pop(method, None)

    async def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            message = await self.stream.read_message()
            if message is None:
                return
            if "method" in message and "id" in message:
                self.calls.append(message)
                responder = self._responders.get(message["method"])
                if responder is None:
                    await self.inbox.put(message)
                    continue
                await self._answer(message, responder)
            elif "id" in message:
                future = self._pending.pop(message["id"], None)
                if future is not None and not future.done():
                    future.set_result(message)
            else:
                await self.inbox.put(message)

    async def _answer(self, message: dict, responder: t.Callable[[dict], t.Any]) -> None:
        try:
            result = responder(message.get("params") or {})
            if inspect.isawaitable(result):
                result = await result
        except PeerError as exc:
            await self.send_error(message["id"], exc.code, exc.message)
            return
        await self.respond(message["id"], result)
        for method, params in self._followups.get(message["method"], []):
            await self.notify(method, params)

    async def respond(self, request_id: t.Any, result: t.Any) -> None:
        await self.stream.write_message({"jsonrpc": "2.0", "id": request_id, "result": result})

    async def send_error(self, request_id: t.Any, code: int, message: str) -> None:
        await self.stream.write_message(
            {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}
        )

    async def notify(self, method: str, params: dict) -> None:
        await self.stream.write_message({"jsonrpc": "2.0", "method": method, "params": params})

    async def emit(self, session_id: str, event_type: str, data: t.Optional[dict] = None) -> None:
        await self.notify("session.event", {"sessionId": session_id, "event": {"type": event_type, "data": data or {}}})

    async def request(self, method: str, params: dict, timeout: float = 2.0) -> dict:
        """Send a request to the client and return the full response message."""
        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        await self.stream.write_message({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        return await asyncio.wait_for(future, timeout)

    async def next_message(self, timeout: float = 2.0) -> dict:
        return await asyncio.wait_for(self.inbox.get(), timeout)

    async def close(self) -> None:
        await self.stream.close()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)


def fast_config(**overrides: t.Any) -> ClientConfig:
    timeouts = TimeoutConfig(request_seconds=2.0, send_and_wait_seconds=2.0, stop_seconds=1.0)
    return ClientConfig(timeouts=timeouts, **overrides)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty RPC metrics."""
    metrics.reset_all()
    yield


@pytest_asyncio.fixture
async def peer_pipe():
    """A started FakePeer plus the client-side (reader, writer) of the pipe."""
    client_end, peer_end = create_memory_pipe()
    peer = FakePeer(*peer_end)
    peer.script("ping", {"message": "pong", "timestamp": 0, "protocolVersion": PROTOCOL_VERSION})
    await peer.start()
    yield peer, client_end
    await peer.close()


@pytest_asyncio.fixture
async def peer(peer_pipe):
    return peer_pipe[0]


@pytest_asyncio.fixture
async def client(peer_pipe):
    """A Client wired to the peer but not started."""
    _, (reader, writer) = peer_pipe
    c = Client(reader, writer, config=fast_config())
    yield c
    await c.force_stop()


@pytest_asyncio.fixture
async def connected_client(client):
    await client.start()
    return client


@pytest_asyncio.fixture
async def session(peer, connected_client):
    """A session ``s1`` opened through session.create."""
    peer.script("session.create", {"sessionId": "s1"})
    return await connected_client.create_session()


@pytest_asyncio.fixture
async def make_client(peer_pipe):
    """Factory for a Client on the peer pipe with custom ClientConfig overrides."""
    _, (reader, writer) = peer_pipe
    made = []

    def factory(**overrides: t.Any) -> Client:
        c = Client(reader, writer, config=fast_config(**overrides))
        made.append(c)
        return c

    yield factory
    for c in made:
        await c.force_stop()
