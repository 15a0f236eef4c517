"""Unit tests for Session."""

import asyncio

import pytest

from agentlink.core.models import SessionEventType
from agentlink.errors import AgentLinkError, JsonRpcError, RequestTimeoutError, SessionEventError


def event_params(session_id, event_type, data=None):
    return {"sessionId": session_id, "event": {"type": event_type, "data": data or {}}}


@pytest.mark.asyncio
class TestSend:
    """Test session.send and history retrieval."""

    async def test_send_returns_message_id(self, peer, session):
        """Test send() issues session.send and returns the message id."""
        peer.script("session.send", {"messageId": "m1"})

        message_id = await session.send("hi")

        assert message_id == "m1"
        assert peer.params_of("session.send") == [{"sessionId": "s1", "prompt": "hi"}]

    async def test_send_optional_fields(self, peer, session):
        """Test optional send fields are only included when provided."""
        peer.script("session.send", {"messageId": "m2"})
        attachments = [{"type": "file", "path": "/tmp/a.py"}]

        await session.send("look", attachments=attachments, mode="immediate", response_format="text")

        params = peer.params_of("session.send")[-1]
        assert params["attachments"] == attachments
        assert params["mode"] == "immediate"
        assert params["responseFormat"] == "text"
        assert "imageOptions" not in params

    async def test_get_messages(self, peer, session):
        """Test history is fetched from the peer and parsed into events."""
        peer.script(
            "session.getMessages",
            {
                "events": [
                    {"id": "e1", "type": "user.message", "data": {"content": "hi"}},
                    {"id": "e2", "parentId": "e1", "type": "assistant.message", "data": {"content": "hello"}},
                ]
            },
        )

        events = await session.get_messages()

        assert [e.type for e in events] == ["user.message", "assistant.message"]
        assert events[1].parent_id == "e1"
        assert events[1].data == {"content": "hello"}
        assert peer.params_of("session.getMessages") == [{"sessionId": "s1"}]

    async def test_abort_keeps_handlers(self, peer, session, connected_client):
        """Test abort() calls the peer and leaves subscriptions in place."""
        peer.script("session.abort", {})
        seen = []
        session.on(lambda e: seen.append(e.type))

        await session.abort()
        await peer.emit("s1", "abort")
        await connected_client.ping()

        assert peer.params_of("session.abort") == [{"sessionId": "s1"}]
        assert seen == ["abort"]


@pytest.mark.asyncio
class TestSendAndWait:
    """Test the blocking send-and-wait-for-idle flow."""

    async def test_returns_last_assistant_message(self, peer, session):
        """Test the last assistant.message before session.idle is returned."""
        peer.script(
            "session.send",
            {"messageId": "m1"},
            then=[
                ("session.event", event_params("s1", "assistant.message", {"content": "first"})),
                ("session.event", event_params("s1", "assistant.message", {"content": "hello"})),
                ("session.event", event_params("s1", "session.idle")),
            ],
        )

        reply = await session.send_and_wait("hi")

        assert reply is not None
        assert reply.type == SessionEventType.ASSISTANT_MESSAGE
        assert reply.data["content"] == "hello"

    async def test_idle_without_message_returns_none(self, peer, session):
        """Test a turn with no assistant message returns None."""
        peer.script("session.send", {"messageId": "m1"}, then=[("session.event", event_params("s1", "session.idle"))])

        assert await session.send_and_wait("hi") is None

    async def test_session_error_raises(self, peer, session):
        """Test session.error surfaces its message."""
        peer.script(
            "session.send",
            {"messageId": "m1"},
            then=[("session.event", event_params("s1", "session.error", {"message": "model overloaded"}))],
        )

        with pytest.raises(SessionEventError) as exc_info:
            await session.send_and_wait("hi")
        assert str(exc_info.value) == "model overloaded"
        assert exc_info.value.event.type == "session.error"

    async def test_session_error_default_message(self, peer, session):
        """Test session.error without a message uses a default."""
        peer.script("session.send", {"messageId": "m1"}, then=[("session.event", event_params("s1", "session.error"))])

        with pytest.raises(SessionEventError, match="Unknown error"):
            await session.send_and_wait("hi")

    async def test_timeout(self, peer, session):
        """Test waiting past the timeout raises RequestTimeoutError."""
        peer.script("session.send", {"messageId": "m1"})

        with pytest.raises(RequestTimeoutError):
            await session.send_and_wait("hi", timeout=0.05)

    async def test_send_failure_propagates(self, peer, session):
        """Test an RPC error from session.send is raised unchanged."""
        peer.script("session.send", error=(-32010, "session busy"))

        with pytest.raises(JsonRpcError) as exc_info:
            await session.send_and_wait("hi")
        assert exc_info.value.code == -32010

    @pytest.mark.parametrize("outcome", ["idle", "error", "timeout"])
    async def test_temporary_handler_removed(self, peer, session, connected_client, outcome):
        """Test the internal subscription is gone after every exit path."""
        followups = {
            "idle": [("session.event", event_params("s1", "session.idle"))],
            "error": [("session.event", event_params("s1", "session.error", {"message": "x"}))],
            "timeout": [],
        }[outcome]
        peer.script("session.send", {"messageId": "m1"}, then=followups)
        before = len(session._events)

        try:
            await session.send_and_wait("hi", timeout=0.1)
        except (SessionEventError, RequestTimeoutError):
            pass

        assert len(session._events) == before
        # Verify later events are still delivered without error
        await peer.emit("s1", "assistant.message", {"content": "late"})
        await connected_client.ping()


@pytest.mark.asyncio
class TestSubscriptions:
    """Test on() and event dispatch."""

    async def test_typed_then_wildcard_in_order(self, peer, session, connected_client):
        """Test dispatch order for typed and wildcard handlers."""
        calls = []
        session.on(lambda e: calls.append(("wild", e.type)))
        session.on("assistant.message", lambda e: calls.append(("typed", e.type)))

        await peer.emit("s1", "assistant.message", {"content": "a"})
        await peer.emit("s1", "session.idle")
        await connected_client.ping()

        assert calls == [
            ("typed", "assistant.message"),
            ("wild", "assistant.message"),
            ("wild", "session.idle"),
        ]

    async def test_events_keep_peer_order(self, peer, session, connected_client):
        """Test many events are delivered in emission order."""
        seen = []
        session.on(lambda e: seen.append(e.data["n"]))

        for n in range(25):
            await peer.emit("s1", "assistant.message_delta", {"n": n})
        await connected_client.ping()

        assert seen == list(range(25))

    async def test_failing_handler_does_not_block_others(self, peer, session, connected_client):
        """Test a raising event handler is contained."""
        seen = []

        def broken(event):
            raise RuntimeError("bad handler")

        session.on(broken)
        session.on(lambda e: seen.append(e.type))

        await peer.emit("s1", "session.info")
        await connected_client.ping()

        assert seen == ["session.info"]

    async def test_unsubscribe(self, peer, session, connected_client):
        """Test an unsubscribed handler receives nothing further."""
        seen = []
        unsubscribe = session.on("session.info", lambda e: seen.append(e.type))

        await peer.emit("s1", "session.info")
        await connected_client.ping()
        unsubscribe()
        unsubscribe()
        await peer.emit("s1", "session.info")
        await connected_client.ping()

        assert seen == ["session.info"]

    async def test_invalid_arguments(self, session):
        """Test bad on() argument shapes raise ValueError."""
        with pytest.raises(ValueError):
            session.on()
        with pytest.raises(ValueError):
            session.on("session.idle")
        with pytest.raises(ValueError):
            session.on(1, lambda e: None)


@pytest.mark.asyncio
class TestDestroy:
    """Test session teardown."""

    async def test_destroy_clears_state(self, peer, session, connected_client):
        """Test destroy() calls the peer, drops handlers and unregisters the session."""
        peer.script("session.destroy", {})
        session.on(lambda e: None)

        await session.destroy()

        assert session.destroyed
        assert len(session._events) == 0
        assert session.get_tool_handler("anything") is None
        assert connected_client.get_session("s1") is None
        assert peer.params_of("session.destroy") == [{"sessionId": "s1"}]

    async def test_destroy_twice_reissues_rpc(self, peer, session):
        """Test a second destroy() just repeats the peer call."""
        peer.script("session.destroy", {})

        await session.destroy()
        await session.destroy()

        assert len(peer.params_of("session.destroy")) == 2
        assert session.destroyed

    async def test_destroy_failure_still_releases(self, peer, session, connected_client):
        """Test local state is released even if the peer rejects destroy."""
        peer.script("session.destroy", error=(-32603, "already gone"))

        with pytest.raises(JsonRpcError):
            await session.destroy()

        assert session.destroyed
        assert connected_client.get_session("s1") is None

    async def test_destroy_wakes_send_and_wait(self, peer, session, connected_client):
        """Test destroying a session mid-turn ends the waiting send_and_wait."""
        peer.script("session.send", {"messageId": "m1"})
        peer.script("session.destroy", {})
        task = asyncio.create_task(session.send_and_wait("hi", timeout=5.0))
        while not peer.params_of("session.send"):
            await asyncio.sleep(0.01)
        await connected_client.ping()

        await session.destroy()

        with pytest.raises(AgentLinkError, match="s1 was destroyed"):
            await asyncio.wait_for(task, 1.0)

    async def test_events_after_destroy_are_dropped(self, peer, session, connected_client):
        """Test events addressed to a destroyed session go nowhere."""
        peer.script("session.destroy", {})
        seen = []
        session.on(lambda e: seen.append(e))
        await session.destroy()

        await peer.emit("s1", "session.idle")
        await connected_client.ping()

        assert seen == []

    async def test_concurrent_sends(self, peer, session):
        """Test concurrent send() calls each get their own message id."""
        counter = iter(range(100))
        peer.script("session.send", lambda params: {"messageId": f"m{next(counter)}-{params['prompt']}"})

        ids = await asyncio.gather(*(session.send(f"p{i}") for i in range(5)))

        assert sorted(i.split("-")[1] for i in ids) == [f"p{i}" for i in range(5)]
