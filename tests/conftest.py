"""Shared test fixtures for llm-bridge tests."""

import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_BASE_URL = "http://api.test.local/v1"
MOCK_API_KEY = "sk-test-123"

MOCK_MODEL_1 = "gpt-3.5-turbo"
MOCK_MODEL_2 = "gpt-4"
MOCK_MODELS = [MOCK_MODEL_1, MOCK_MODEL_2]

MOCK_MODELS_RESPONSE = {
    "object": "list",
    "data": [
        {"id": MOCK_MODEL_1, "object": "model"},
        {"id": MOCK_MODEL_2, "object": "model"},
    ]
}

MOCK_COMPLETION_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1699000000,
    "model": MOCK_MODEL_1,
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "The capital of France is Paris."
            },
            "finish_reason": "stop"
        }
    ],
    "usage": {
        "prompt_tokens": 10,
        "completion_tokens": 8,
        "total_tokens": 18
    }
}

MOCK_STREAMING_CHUNKS = [
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"role":"assistant","content":""},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"content":"The"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"content":" capital"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"content":" of"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"content":" France"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"content":" is"},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{"content":" Paris."},"finish_reason":null}]}',
    'data: {"id":"chatcmpl-123","object":"chat.completion.chunk","created":1699000000,"model":"gpt-3.5-turbo","choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}',
    'data: [DONE]',
]

MOCK_EMBEDDINGS_RESPONSE = {
    "object": "list",
    "data": [
        {"object": "embedding", "index": 0, "embedding": [0.1, 0.2, 0.3]},
        {"object": "embedding", "index": 1, "embedding": [0.4, 0.5, 0.6]},
    ],
    "model": "text-embedding-ada-002",
}


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Data Models
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_messages():
    """Return sample conversation messages."""
    from llm_bridge.config import Message
    return [
        Message(role="system", content="You are a helpful assistant."),
        Message(role="user", content="What is the capital of France?"),
    ]


@pytest.fixture
def client_config():
    """ClientConfig pointing at the mock endpoint, with fast retries."""
    from llm_bridge.config import ClientConfig
    return ClientConfig(
        api_key=MOCK_API_KEY,
        api_endpoint=MOCK_BASE_URL,
        max_retries=1,
        timeout_seconds=5.0,
        backoff_seconds=0.01,
    )


@pytest.fixture
def fast_backoff():
    """Backoff short enough to keep retry tests quick."""
    from llm_bridge.guarded import BackoffPolicy
    return BackoffPolicy(backoff_seconds=0.01)


@pytest.fixture
def queue():
    """Fresh admission queue."""
    from llm_bridge.queue import RequestIdQueue
    return RequestIdQueue()


# ─────────────────────────────────────────────────────────────────────
# FIXTURES - Requester Mocking
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_requester():
    """Requester returning a fixed generation and a fixed stream."""
    from llm_bridge.adapters.schema import ChatGeneration

    requester = MagicMock()
    requester.completion = AsyncMock(
        return_value=ChatGeneration(text="The capital of France is Paris.", finish_reason="stop")
    )

    async def completion_stream(params) -> AsyncGenerator[str, None]:
        for chunk in ["The capital", " of France", " is Paris."]:
            yield chunk

    requester.completion_stream = completion_stream
    requester.embeddings = AsyncMock(return_value=[[0.1, 0.2, 0.3]])
    requester.list_models = AsyncMock(return_value=MOCK_MODELS.copy())
    requester.dispose = AsyncMock()
    return requester


@pytest.fixture
def mock_models_response():
    """Return mock /models response."""
    return MOCK_MODELS_RESPONSE.copy()


@pytest.fixture
def mock_completion_response():
    """Return mock /chat/completions response."""
    return MOCK_COMPLETION_RESPONSE.copy()


@pytest.fixture
def mock_streaming_chunks():
    """Return mock streaming response chunks."""
    return MOCK_STREAMING_CHUNKS.copy()


@pytest.fixture
def mock_embeddings_response():
    """Return mock /embeddings response for two inputs."""
    return MOCK_EMBEDDINGS_RESPONSE.copy()
