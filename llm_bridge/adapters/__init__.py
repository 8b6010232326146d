"""
Adapters for LLM platforms.

Provider-agnostic architecture: protocols define WHAT, implementations
(openai, qwen) define HOW. Implementations are imported from their
modules directly since they depend on llm_bridge.model.
"""

from .base import (
    EmbeddingsProvider,
    EmbeddingsRequester,
    ModelProvider,
    ModelRequester,
    VectorStoreRetrieverProvider,
)
from .schema import ChatGeneration, ModelInfo, ModelRequestParams, ModelType

__all__ = [
    "ChatGeneration",
    "EmbeddingsProvider",
    "EmbeddingsRequester",
    "ModelInfo",
    "ModelProvider",
    "ModelRequestParams",
    "ModelRequester",
    "ModelType",
    "VectorStoreRetrieverProvider",
]
