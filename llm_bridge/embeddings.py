"""
Embedding clients.

BatchedEmbeddings splits documents into requester-sized batches and runs
each request through guarded_call. FakeEmbeddings is the last-resort
fallback the Registry hands out when no real provider can be built.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from llm_bridge.adapters.base import EmbeddingsRequester
from llm_bridge.adapters.schema import EmbeddingsRequestParams
from llm_bridge.config import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SECONDS
from llm_bridge.errors import BridgeError, ErrorCode
from llm_bridge.guarded import BackoffPolicy, guarded_call

logger = logging.getLogger(__name__)


class Embeddings(ABC):
    """Turns text into vectors."""

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        ...

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        ...


def chunk_list(items: list, size: int) -> list[list]:
    """Split items into consecutive chunks of at most size elements."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchedEmbeddings(Embeddings):
    """
    Embeddings backed by an EmbeddingsRequester.

    Design decisions:
    - Batching: at most batch_size documents per request
    - Newlines replaced by spaces unless strip_new_lines=False
    - Every request is guarded (deadline + retry)
    """

    def __init__(
        self,
        client: EmbeddingsRequester,
        model: str = "text-embedding-ada-002",
        batch_size: int = 512,
        strip_new_lines: bool = True,
        timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff: Optional[BackoffPolicy] = None,
    ):
        self.model = model
        self.batch_size = batch_size
        self.strip_new_lines = strip_new_lines
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._backoff = backoff
        self._client = client

    def _clean(self, text: str) -> str:
        return text.replace("\n", " ") if self.strip_new_lines else text

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        batches = chunk_list([self._clean(t) for t in texts], self.batch_size)

        embeddings: list[list[float]] = []
        for batch in batches:
            data = await self._embedding_with_retry(
                EmbeddingsRequestParams(model=self.model, input=batch)
            )
            embeddings.extend(data[: len(batch)])
        return embeddings

    async def embed_query(self, text: str) -> list[float]:
        return await self._embedding_with_retry(
            EmbeddingsRequestParams(model=self.model, input=self._clean(text))
        )

    async def _embedding_with_retry(self, request: EmbeddingsRequestParams):
        request.timeout_seconds = self.timeout_seconds

        async def call():
            data = await self._client.embeddings(request)
            if not data:
                logger.error(f"Empty embeddings result from {self.model}: {data!r}")
                raise BridgeError(ErrorCode.API_REQUEST_FAILED)
            return data

        return await guarded_call(
            call,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            backoff=self._backoff,
        )


class FakeEmbeddings(Embeddings):
    """Constant vectors. Lets retrieval wiring run with no embedding provider."""

    VECTOR = [0.1, 0.2, 0.3, 0.4]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [list(self.VECTOR) for _ in texts]

    async def embed_query(self, text: str) -> list[float]:
        return list(self.VECTOR)
