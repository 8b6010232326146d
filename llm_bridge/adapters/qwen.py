"""
QwenClient - Qwen (DashScope) platform client.

Serves both chat models and embeddings through DashScope's OpenAI-compatible
mode, so requests go through OpenAIRequester.

Key differences from OpenAIModelProvider:
- No discovery endpoint: the model table is fixed
- One client answers for both LLM and embedding model names
"""

import logging
from typing import Any, Optional, Union

from llm_bridge.adapters.openai import OpenAIRequester
from llm_bridge.adapters.schema import ModelInfo, ModelType
from llm_bridge.config import ClientConfig, DEFAULT_QWEN_BASE_URL
from llm_bridge.embeddings import BatchedEmbeddings
from llm_bridge.errors import BridgeError, ErrorCode
from llm_bridge.guarded import BackoffPolicy
from llm_bridge.model import ChatModel, ChatModelInput
from llm_bridge.queue import RequestIdQueue

logger = logging.getLogger(__name__)

QWEN_MODELS: list[str] = ["qwen-turbo", "qwen-plus", "text-embedding-v1"]
QWEN_MAX_TOKENS = 8000


class QwenClient:
    """
    Qwen implementation of ModelProvider.

    Usage:
        client = QwenClient(ClientConfig(api_key="sk-..."))
        await client.init()
        model = await client.create_model("qwen-turbo")
    """

    name = "qwen"
    description: Optional[str] = "Qwen models served by DashScope"

    def __init__(
        self,
        config: ClientConfig,
        queue: Optional[RequestIdQueue] = None,
        requester: Optional[OpenAIRequester] = None,
    ):
        if config.api_endpoint == ClientConfig().api_endpoint:
            config = config.model_copy(update={"api_endpoint": DEFAULT_QWEN_BASE_URL})
        self._config = config
        self._queue = queue
        self._requester = requester or OpenAIRequester(config)
        self._models: Optional[dict[str, ModelInfo]] = None

    async def init(self) -> None:
        """Build the model index."""
        self._models = {model.name: model for model in await self.get_models()}
        logger.debug(f"{self.name}: indexed {len(self._models)} model(s)")

    async def get_models(self) -> list[ModelInfo]:
        if self._models is not None:
            return list(self._models.values())

        return [
            ModelInfo(
                name=name,
                type=ModelType.LLM if "qwen" in name else ModelType.EMBEDDINGS,
                max_tokens=QWEN_MAX_TOKENS,
                supports_chat_mode="qwen" in name,
            )
            for name in QWEN_MODELS
        ]

    async def model_index(self) -> dict[str, ModelInfo]:
        if self._models is None:
            await self.init()
        return self._models

    async def list_models(self) -> list[str]:
        return [m.name for m in await self.get_models() if m.type == ModelType.LLM]

    async def is_supported(self, model_name: str) -> bool:
        info = (await self.model_index()).get(model_name)
        return info is not None and info.type == ModelType.LLM

    async def recommend_model(self) -> Optional[str]:
        models = await self.list_models()
        return models[0] if models else None

    async def create_model(self, model_name: str, **params: Any) -> Union[ChatModel, BatchedEmbeddings]:
        """
        Build a ChatModel or BatchedEmbeddings for model_name.

        Raises:
            BridgeError: MODEL_NOT_FOUND for names outside the model table
        """
        info = (await self.model_index()).get(model_name)
        if info is None:
            raise BridgeError(ErrorCode.MODEL_NOT_FOUND)

        backoff = BackoffPolicy(backoff_seconds=self._config.backoff_seconds)

        if info.type == ModelType.EMBEDDINGS:
            return BatchedEmbeddings(
                client=self._requester,
                model=model_name,
                batch_size=params.get("batch_size", 25),
                timeout_seconds=params.get("timeout_seconds", self._config.timeout_seconds),
                max_retries=params.get("max_retries", self._config.max_retries),
                backoff=backoff,
            )

        return ChatModel(
            ChatModelInput(
                requester=self._requester,
                model=model_name,
                model_max_context_size=info.max_tokens,
                max_tokens=params.get("max_tokens", self._config.max_tokens),
                temperature=params.get("temperature", self._config.temperature),
                timeout_seconds=params.get("timeout_seconds", self._config.timeout_seconds),
                max_retries=params.get("max_retries", self._config.max_retries),
                backoff=backoff,
                max_concurrency=params.get("max_concurrency", self._config.max_concurrency),
                llm_type="qwen",
            ),
            queue=self._queue,
        )

    async def dispose(self) -> None:
        self._models = None
        await self._requester.dispose()

    def get_extra_info(self) -> dict[str, Any]:
        return self._config.model_dump(exclude={"api_key"})

    def embeddings_provider(self) -> "QwenEmbeddingsProvider":
        """EmbeddingsProvider view of this client, for Registry registration."""
        return QwenEmbeddingsProvider(self)


class QwenEmbeddingsProvider:
    """Exposes a QwenClient's embedding models through the EmbeddingsProvider contract."""

    name = "qwen"

    def __init__(self, client: QwenClient):
        self._client = client

    async def is_supported(self, model_name: str) -> bool:
        info = (await self._client.model_index()).get(model_name)
        return info is not None and info.type == ModelType.EMBEDDINGS

    async def create_embeddings(self, model_name: Optional[str] = None, **params: Any) -> BatchedEmbeddings:
        embeddings = await self._client.create_model(model_name or "text-embedding-v1", **params)
        if not isinstance(embeddings, BatchedEmbeddings):
            raise BridgeError(ErrorCode.EMBEDDINGS_INIT_ERROR)
        return embeddings

    async def dispose(self) -> None:
        """The owning QwenClient releases the shared requester."""
        return None
