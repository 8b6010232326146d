"""
Registry - name-keyed home for model, embeddings and vector-store providers.

One Registry is created at startup and passed to whatever needs it (the
middlewares, the CLI). Every register_* call returns an async disposer that
disposes the provider and unregisters it.

Usage:
    registry = Registry()
    unregister = registry.register_model_provider(QwenClient(config))

    model = await registry.create_model("qwen/qwen-turbo")
    ...
    await unregister()

Model names are "provider/model"; only the first "/" separates them, so
model ids that contain slashes themselves still work.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from llm_bridge.adapters.base import (
    EmbeddingsProvider,
    ModelProvider,
    VectorStoreRetrieverProvider,
)
from llm_bridge.embeddings import Embeddings, FakeEmbeddings
from llm_bridge.errors import BridgeError, ErrorCode
from llm_bridge.queue import RequestIdQueue

logger = logging.getLogger(__name__)

Disposer = Callable[[], Awaitable[None]]

DEFAULT_RECOMMENDED_EMBEDDINGS = ["openai", "huggingface"]
DEFAULT_RECOMMENDED_VECTOR_STORES = ["milvus", "chroma", "pinecone"]


def split_model_name(mixed_name: str) -> tuple[str, str]:
    """
    Split "provider/model" into its parts.

    Examples:
        >>> split_model_name("qwen/qwen-turbo")
        ("qwen", "qwen-turbo")
        >>> split_model_name("openai/ft:gpt-3.5/custom")
        ("openai", "ft:gpt-3.5/custom")
        >>> split_model_name("qwen")
        ("qwen", "")
    """
    provider_name, _, model_name = mixed_name.partition("/")
    return provider_name, model_name


class Registry:
    """
    Explicit provider registry.

    Holds providers and tools by name, plus the recommend lists used to
    pick default embeddings and vector-store retrievers.
    """

    def __init__(self, queue: Optional[RequestIdQueue] = None):
        self.queue = queue or RequestIdQueue()
        self._model_providers: dict[str, ModelProvider] = {}
        self._embeddings_providers: dict[str, EmbeddingsProvider] = {}
        self._vector_store_providers: dict[str, VectorStoreRetrieverProvider] = {}
        self._tools: dict[str, Any] = {}
        self._recommended: dict[str, list[str]] = {}

    # ─────────────────────────────────────────────────────────────────
    # REGISTRATION
    # ─────────────────────────────────────────────────────────────────

    def register_model_provider(self, provider: ModelProvider) -> Disposer:
        self._model_providers[provider.name] = provider
        logger.info(f"Registered model provider '{provider.name}'")

        async def dispose() -> None:
            await provider.dispose()
            if self._model_providers.get(provider.name) is provider:
                del self._model_providers[provider.name]

        return dispose

    def register_embeddings_provider(self, provider: EmbeddingsProvider) -> Disposer:
        self._embeddings_providers[provider.name] = provider
        logger.info(f"Registered embeddings provider '{provider.name}'")

        async def dispose() -> None:
            await provider.dispose()
            if self._embeddings_providers.get(provider.name) is provider:
                del self._embeddings_providers[provider.name]

        return dispose

    def register_vector_store_retriever_provider(self, provider: VectorStoreRetrieverProvider) -> Disposer:
        self._vector_store_providers[provider.name] = provider
        logger.info(f"Registered vector store retriever provider '{provider.name}'")

        async def dispose() -> None:
            await provider.dispose()
            if self._vector_store_providers.get(provider.name) is provider:
                del self._vector_store_providers[provider.name]

        return dispose

    def register_tool(self, name: str, tool: Any) -> Disposer:
        self._tools[name] = tool

        async def dispose() -> None:
            if self._tools.get(name) is tool:
                del self._tools[name]

        return dispose

    # ─────────────────────────────────────────────────────────────────
    # RECOMMEND LISTS
    # ─────────────────────────────────────────────────────────────────

    @property
    def recommend_embeddings(self) -> list[str]:
        return list(self._recommended.get("embeddings", DEFAULT_RECOMMENDED_EMBEDDINGS))

    @recommend_embeddings.setter
    def recommend_embeddings(self, names: list[str]) -> None:
        self._recommended["embeddings"] = list(names)

    @property
    def recommend_vector_store_retrievers(self) -> list[str]:
        return list(self._recommended.get("vector_store_retrievers", DEFAULT_RECOMMENDED_VECTOR_STORES))

    @recommend_vector_store_retrievers.setter
    def recommend_vector_store_retrievers(self, names: list[str]) -> None:
        self._recommended["vector_store_retrievers"] = list(names)

    # ─────────────────────────────────────────────────────────────────
    # CREATION
    # ─────────────────────────────────────────────────────────────────

    async def create_model(self, mixed_model_name: str, **params: Any):
        """
        Build a chat model from "provider/model".

        Raises:
            BridgeError: MODEL_ADAPTER_NOT_FOUND if no provider serves it
        """
        provider_name, model_name = split_model_name(mixed_model_name)
        provider = self._model_providers.get(provider_name)
        if provider is not None and await provider.is_supported(model_name):
            return await provider.create_model(model_name, **params)

        logger.warning(f"No provider found for model '{mixed_model_name}'")
        raise BridgeError(ErrorCode.MODEL_ADAPTER_NOT_FOUND)

    async def create_embeddings(self, mixed_model_name: str, **params: Any) -> Embeddings:
        """
        Build embeddings from "provider/model".

        Raises:
            BridgeError: MODEL_ADAPTER_NOT_FOUND if no provider serves it
        """
        provider_name, model_name = split_model_name(mixed_model_name)
        provider = self._embeddings_providers.get(provider_name)
        if provider is not None and await provider.is_supported(model_name):
            return await provider.create_embeddings(model_name, **params)

        logger.warning(f"No provider found for embeddings '{mixed_model_name}'")
        raise BridgeError(ErrorCode.MODEL_ADAPTER_NOT_FOUND)

    async def get_default_embeddings(self, **params: Any) -> Embeddings:
        """
        Pick embeddings by walking the recommend list.

        Fallback order:
        1. First recommended provider that is registered and builds cleanly
        2. The only registered provider, if exactly one exists
        3. FakeEmbeddings
        """
        model_name = params.pop("model_name", None)

        for name in self.recommend_embeddings:
            provider = self._embeddings_providers.get(name)
            if provider is None:
                continue
            try:
                return await provider.create_embeddings(model_name, **params)
            except Exception as e:
                logger.warning(f"Failed to create embeddings '{name}', trying next one: {e}")

        providers = list(self._embeddings_providers.values())
        if len(providers) != 1:
            logger.error("Cannot select an embeddings provider, falling back to fake embeddings")
            return FakeEmbeddings()

        return await providers[0].create_embeddings(model_name, **params)

    async def get_default_vector_store_retriever(self, **params: Any) -> Any:
        """
        Pick a vector-store retriever by walking the recommend list.

        Fills params["embeddings"] with get_default_embeddings() when absent.

        Raises:
            BridgeError: VECTOR_STORE_INIT_ERROR when nothing can be selected
        """
        if params.get("embeddings") is None:
            params["embeddings"] = await self.get_default_embeddings(**params)

        for name in self.recommend_vector_store_retrievers:
            provider = self._vector_store_providers.get(name)
            if provider is None:
                continue
            try:
                return await provider.create_vector_store_retriever(**params)
            except Exception as e:
                logger.warning(f"Failed to create vector store retriever '{name}', trying next one: {e}")

        providers = list(self._vector_store_providers.values())
        if len(providers) != 1:
            logger.error("Cannot select a vector store retriever")
            raise BridgeError(ErrorCode.VECTOR_STORE_INIT_ERROR)

        return await providers[0].create_vector_store_retriever(**params)

    async def create_vector_store_retriever(self, mixed_name: str, **params: Any) -> Any:
        """
        Build a retriever from "provider/name".

        Raises:
            BridgeError: MODEL_ADAPTER_NOT_FOUND if the provider is not registered
        """
        if params.get("embeddings") is None:
            params["embeddings"] = await self.get_default_embeddings(**params)

        provider_name, _ = split_model_name(mixed_name)
        provider = self._vector_store_providers.get(provider_name)
        if provider is None:
            logger.warning(f"No provider found for vector store retriever '{mixed_name}'")
            raise BridgeError(ErrorCode.MODEL_ADAPTER_NOT_FOUND)
        return await provider.create_vector_store_retriever(**params)

    # ─────────────────────────────────────────────────────────────────
    # SELECTION
    # ─────────────────────────────────────────────────────────────────

    def select_tools(self, predicate: Callable[[str, Any], bool]) -> list[Any]:
        return [tool for name, tool in self._tools.items() if predicate(name, tool)]

    async def select_model_providers(
        self,
        predicate: Optional[Callable[[str, ModelProvider], Awaitable[bool]]] = None,
    ) -> list[ModelProvider]:
        """Providers for which the async predicate holds (all when omitted)."""
        results = []
        for name, provider in self._model_providers.items():
            if predicate is None or await predicate(name, provider):
                results.append(provider)
        return results

    # ─────────────────────────────────────────────────────────────────
    # TEARDOWN
    # ─────────────────────────────────────────────────────────────────

    async def dispose(self) -> None:
        """Dispose every registered provider, then forget them all."""
        for provider in [
            *self._model_providers.values(),
            *self._embeddings_providers.values(),
            *self._vector_store_providers.values(),
        ]:
            try:
                await provider.dispose()
            except Exception as e:
                logger.warning(f"Failed to dispose provider '{provider.name}': {e}")
        self.clear()

    def clear(self) -> None:
        """Forget all providers and tools without disposing them."""
        self._model_providers.clear()
        self._embeddings_providers.clear()
        self._vector_store_providers.clear()
        self._tools.clear()
        self._recommended.clear()


def register_default_providers(registry: Registry) -> None:
    """
    Register providers based on environment variables.

    Additive: registers all configured providers, not just one.
    - OpenAI-compatible: if OPENAI_API_KEY is set (OPENAI_BASE_URL optional)
    - Qwen: if DASHSCOPE_API_KEY is set, as model and embeddings provider
    """
    from llm_bridge.config import (
        ClientConfig,
        get_openai_api_key,
        get_openai_base_url,
        get_qwen_api_key,
    )

    openai_key = get_openai_api_key()
    if openai_key:
        from llm_bridge.adapters.openai import OpenAIModelProvider
        config = ClientConfig.from_env(api_key=openai_key, api_endpoint=get_openai_base_url())
        registry.register_model_provider(OpenAIModelProvider(config, queue=registry.queue))

    qwen_key = get_qwen_api_key()
    if qwen_key:
        from llm_bridge.adapters.qwen import QwenClient
        client = QwenClient(ClientConfig.from_env(api_key=qwen_key), queue=registry.queue)
        registry.register_model_provider(client)
        registry.register_embeddings_provider(client.embeddings_provider())
