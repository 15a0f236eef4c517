"""Shared fixtures and sample payloads for unit tests."""

from __future__ import annotations

import pytest
import pytest_asyncio

from agentlink.core.rpc import RpcEngine
from agentlink.transport import FramedStream, create_memory_pipe


@pytest.fixture
def sample_event_dict():
    """A session event as the peer sends it."""
    return {
        "id": "evt-1",
        "timestamp": "2025-01-01T00:00:00Z",
        "parentId": "evt-0",
        "ephemeral": False,
        "type": "assistant.message",
        "data": {"content": "hello"},
    }


@pytest.fixture
def tool_call_params():
    """Sample tool.call params addressed to session s1."""
    return {
        "sessionId": "s1",
        "toolCallId": "call-1",
        "toolName": "echo",
        "arguments": {"text": "hi"},
    }


@pytest_asyncio.fixture
async def engine_pair():
    """A started RpcEngine, the peer's FramedStream and the peer's raw writer."""
    client_end, peer_end = create_memory_pipe()
    engine = RpcEngine(FramedStream(*client_end), default_timeout=1.0)
    engine.start()
    peer = FramedStream(*peer_end)
    yield engine, peer, peer_end[1]
    await engine.stop()
    await peer.close()
