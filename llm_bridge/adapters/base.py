"""
Adapter protocols - the contracts between the chat host and LLM platforms.

This is the WHAT (interface), not the HOW (implementation).
See openai.py and qwen.py for concrete implementations.

Two layers:
- Requesters speak a vendor's wire format (one HTTP call per method).
- Providers are what the Registry holds: they list models and build
  ChatModel / Embeddings objects bound to a requester.
"""

from typing import Any, AsyncGenerator, Optional, Protocol, Union, TYPE_CHECKING

from llm_bridge.adapters.schema import (
    ChatGeneration,
    EmbeddingsRequestParams,
    ModelRequestParams,
)

if TYPE_CHECKING:
    from llm_bridge.embeddings import Embeddings
    from llm_bridge.model import ChatModel


class ModelRequester(Protocol):
    """Contract for chat completion backends."""

    async def completion(self, params: ModelRequestParams) -> ChatGeneration:
        """
        Get a complete (non-streaming) response.

        Raises:
            Exception on model error; the guarded executor decides on retry
        """
        ...

    def completion_stream(self, params: ModelRequestParams) -> AsyncGenerator[str, None]:
        """Stream text chunks as they arrive from the model."""
        ...

    async def dispose(self) -> None:
        """Release connections and any per-conversation server state."""
        ...


class EmbeddingsRequester(Protocol):
    """Contract for embedding backends."""

    async def embeddings(self, params: EmbeddingsRequestParams) -> Union[list[float], list[list[float]]]:
        """One vector for a str input, one vector per item for a list input."""
        ...


class ModelProvider(Protocol):
    """
    Contract for a platform that can build chat models.

    Registered by name; create_model() is only called for names that
    is_supported() accepts.
    """

    name: str
    description: Optional[str]

    async def list_models(self) -> list[str]:
        ...

    async def is_supported(self, model_name: str) -> bool:
        ...

    async def recommend_model(self) -> Optional[str]:
        ...

    async def create_model(self, model_name: str, **params: Any) -> "ChatModel":
        ...

    async def dispose(self) -> None:
        ...

    def get_extra_info(self) -> dict[str, Any]:
        ...


class EmbeddingsProvider(Protocol):
    """Contract for a platform that can build embedding clients."""

    name: str

    async def is_supported(self, model_name: str) -> bool:
        ...

    async def create_embeddings(self, model_name: Optional[str], **params: Any) -> "Embeddings":
        ...

    async def dispose(self) -> None:
        ...


class VectorStoreRetrieverProvider(Protocol):
    """Contract for a vector-store backend. Backends live outside this package."""

    name: str

    async def create_vector_store_retriever(self, **params: Any) -> Any:
        """Build a retriever; params always include 'embeddings'."""
        ...

    async def dispose(self) -> None:
        ...
