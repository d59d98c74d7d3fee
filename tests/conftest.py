"""Shared fixtures: a dict-chunk adapter and mock HTTP plumbing."""
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from chatstream.models import ChatOptions, ModelInfo, ToolCall, UsageRecord


class FakeAdapter:
    """Adapter whose chunks are plain dicts keyed by channel name.

    A chunk such as ``{"content": "Hel", "usage": {"input_tokens": 3}}``
    feeds the content and usage channels.
    """

    service_id = "fake"
    is_local = False
    default_model = "fake-model"

    def __init__(self):
        self.requests: List[ChatOptions] = []

    def build_wire_request(self, options: ChatOptions) -> Dict[str, Any]:
        self.requests.append(options)
        return {
            "model": options.model,
            "system": options.system,
            "messages": options.messages,
            "think": options.think,
        }

    def parse_content(self, chunk: Any) -> str:
        return chunk.get("content", "") if isinstance(chunk, dict) else ""

    def parse_thinking(self, chunk: Any) -> str:
        return chunk.get("thinking", "") if isinstance(chunk, dict) else ""

    def parse_token_usage(self, chunk: Any) -> Optional[UsageRecord]:
        usage = chunk.get("usage") if isinstance(chunk, dict) else None
        return UsageRecord(**usage) if isinstance(usage, dict) else None

    def parse_tool_calls(self, chunk: Any) -> List[Any]:
        if not isinstance(chunk, dict):
            return []
        return chunk.get("tool_calls") or []

    def build_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        return f"https://fake.test/chat?key={credential}"

    def build_streaming_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        return f"https://fake.test/stream?key={credential}"

    def build_models_url(self, credential: Optional[str]) -> str:
        return "https://fake.test/models"

    def parse_model(self, raw: Dict[str, Any]) -> ModelInfo:
        return ModelInfo(model=raw["id"], name=raw.get("name") or raw["id"])


class MinimalAdapter:
    """Only the required capabilities."""

    service_id = "minimal"
    is_local = True

    def build_wire_request(self, options: ChatOptions) -> Dict[str, Any]:
        return {"messages": options.messages}

    def parse_content(self, chunk: Any) -> str:
        return chunk.get("content", "") if isinstance(chunk, dict) else ""

    def build_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        return "https://minimal.test/chat"

    def build_streaming_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        return "https://minimal.test/stream"


def sse_body(records: List[Any], done: bool = True) -> bytes:
    """Encode records as a text/event-stream body."""
    lines = [f"data: {json.dumps(record)}\n\n" for record in records]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


async def aiter_chunks(chunks: List[Any]):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def fake_adapter():
    """Create a FakeAdapter instance."""
    return FakeAdapter()


@pytest.fixture
def minimal_adapter():
    return MinimalAdapter()


@pytest.fixture
def extractors(fake_adapter):
    """Extended-mode extractors of the fake adapter, in registration order."""
    return {
        "content": fake_adapter.parse_content,
        "thinking": fake_adapter.parse_thinking,
        "usage": fake_adapter.parse_token_usage,
        "tool_calls": fake_adapter.parse_tool_calls,
    }


@pytest.fixture
async def mock_client():
    """Factory for an AsyncClient routed through an httpx.MockTransport handler."""
    clients: List[httpx.AsyncClient] = []

    def factory(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


@pytest.fixture
def chunks_source():
    """Factory turning a list of chunks into an async iterator."""
    return aiter_chunks


@pytest.fixture
def sse():
    """Encoder for text/event-stream bodies."""
    return sse_body


@pytest.fixture
def tool_call():
    return ToolCall(id="call_1", name="lookup", input={"q": "x"})
