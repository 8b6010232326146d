"""Tests for Registry - registration, routing by "provider/model", default selection."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from llm_bridge.embeddings import FakeEmbeddings
from llm_bridge.errors import BridgeError, ErrorCode
from llm_bridge.factory import Registry, register_default_providers, split_model_name


def make_model_provider(name, models):
    provider = MagicMock()
    provider.name = name
    provider.list_models = AsyncMock(return_value=models)
    provider.is_supported = AsyncMock(side_effect=lambda model: model in models)
    provider.create_model = AsyncMock(side_effect=lambda model, **params: f"{name}:{model}")
    provider.dispose = AsyncMock()
    return provider


def make_embeddings_provider(name, fail=False):
    provider = MagicMock()
    provider.name = name
    provider.is_supported = AsyncMock(return_value=True)
    if fail:
        provider.create_embeddings = AsyncMock(side_effect=RuntimeError(f"{name} broken"))
    else:
        provider.create_embeddings = AsyncMock(return_value=f"{name}-embeddings")
    provider.dispose = AsyncMock()
    return provider


def make_vector_store_provider(name, fail=False):
    provider = MagicMock()
    provider.name = name
    if fail:
        provider.create_vector_store_retriever = AsyncMock(side_effect=RuntimeError(f"{name} down"))
    else:
        provider.create_vector_store_retriever = AsyncMock(return_value=f"{name}-retriever")
    provider.dispose = AsyncMock()
    return provider


@pytest.fixture
def registry():
    return Registry()


# ─────────────────────────────────────────────────────────────────────
# Name splitting
# ─────────────────────────────────────────────────────────────────────


class TestSplitModelName:
    def test_provider_and_model(self):
        assert split_model_name("qwen/qwen-turbo") == ("qwen", "qwen-turbo")

    def test_only_first_slash_splits(self):
        assert split_model_name("openai/org/custom-model") == ("openai", "org/custom-model")

    def test_no_slash(self):
        assert split_model_name("qwen") == ("qwen", "")


# ─────────────────────────────────────────────────────────────────────
# Registration and disposal
# ─────────────────────────────────────────────────────────────────────


class TestRegistration:
    @pytest.mark.asyncio
    async def test_disposer_unregisters(self, registry):
        provider = make_model_provider("qwen", ["qwen-turbo"])
        unregister = registry.register_model_provider(provider)

        assert await registry.select_model_providers() == [provider]

        await unregister()

        provider.dispose.assert_awaited_once()
        assert await registry.select_model_providers() == []

    @pytest.mark.asyncio
    async def test_stale_disposer_keeps_replacement(self, registry):
        old = make_model_provider("qwen", ["qwen-turbo"])
        new = make_model_provider("qwen", ["qwen-plus"])
        unregister_old = registry.register_model_provider(old)
        registry.register_model_provider(new)

        await unregister_old()

        assert await registry.select_model_providers() == [new]

    @pytest.mark.asyncio
    async def test_embeddings_disposer(self, registry):
        provider = make_embeddings_provider("qwen")
        unregister = registry.register_embeddings_provider(provider)

        await unregister()

        provider.dispose.assert_awaited_once()
        assert isinstance(await registry.get_default_embeddings(), FakeEmbeddings)

    @pytest.mark.asyncio
    async def test_tool_disposer(self, registry):
        unregister = registry.register_tool("search", "search-tool")
        assert registry.select_tools(lambda name, tool: True) == ["search-tool"]

        await unregister()
        assert registry.select_tools(lambda name, tool: True) == []

    @pytest.mark.asyncio
    async def test_dispose_all(self, registry):
        model_provider = make_model_provider("qwen", [])
        model_provider.dispose = AsyncMock(side_effect=RuntimeError("already closed"))
        embeddings_provider = make_embeddings_provider("openai")
        registry.register_model_provider(model_provider)
        registry.register_embeddings_provider(embeddings_provider)

        await registry.dispose()

        embeddings_provider.dispose.assert_awaited_once()
        assert await registry.select_model_providers() == []

    def test_registries_are_independent(self):
        first, second = Registry(), Registry()
        first.register_tool("search", object())

        assert second.select_tools(lambda name, tool: True) == []
        assert first.queue is not second.queue


# ─────────────────────────────────────────────────────────────────────
# Routing
# ─────────────────────────────────────────────────────────────────────


class TestCreateModel:
    @pytest.mark.asyncio
    async def test_routes_to_provider(self, registry):
        registry.register_model_provider(make_model_provider("openai", ["gpt-4"]))
        registry.register_model_provider(make_model_provider("qwen", ["qwen-turbo"]))

        assert await registry.create_model("qwen/qwen-turbo") == "qwen:qwen-turbo"
        assert await registry.create_model("openai/gpt-4") == "openai:gpt-4"

    @pytest.mark.asyncio
    async def test_params_forwarded(self, registry):
        provider = make_model_provider("qwen", ["qwen-turbo"])
        registry.register_model_provider(provider)

        await registry.create_model("qwen/qwen-turbo", temperature=0.2)

        provider.create_model.assert_awaited_once_with("qwen-turbo", temperature=0.2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["nobody/qwen-turbo", "qwen/qwen-ultra"])
    async def test_no_match(self, registry, name):
        registry.register_model_provider(make_model_provider("qwen", ["qwen-turbo"]))

        with pytest.raises(BridgeError) as exc_info:
            await registry.create_model(name)

        assert exc_info.value.code == ErrorCode.MODEL_ADAPTER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_create_embeddings(self, registry):
        registry.register_embeddings_provider(make_embeddings_provider("qwen"))

        assert await registry.create_embeddings("qwen/text-embedding-v1") == "qwen-embeddings"

        with pytest.raises(BridgeError):
            await registry.create_embeddings("openai/text-embedding-ada-002")

    @pytest.mark.asyncio
    async def test_select_model_providers_predicate(self, registry):
        registry.register_model_provider(make_model_provider("openai", ["gpt-4"]))
        qwen = make_model_provider("qwen", ["qwen-turbo"])
        registry.register_model_provider(qwen)

        async def serves_qwen(name, provider):
            return await provider.is_supported("qwen-turbo")

        assert await registry.select_model_providers(serves_qwen) == [qwen]


# ─────────────────────────────────────────────────────────────────────
# Default embeddings and retrievers
# ─────────────────────────────────────────────────────────────────────


class TestDefaultEmbeddings:
    @pytest.mark.asyncio
    async def test_first_recommended_wins(self, registry):
        registry.register_embeddings_provider(make_embeddings_provider("huggingface"))
        registry.register_embeddings_provider(make_embeddings_provider("openai"))

        assert await registry.get_default_embeddings() == "openai-embeddings"

    @pytest.mark.asyncio
    async def test_failing_recommended_skipped(self, registry):
        registry.register_embeddings_provider(make_embeddings_provider("openai", fail=True))
        registry.register_embeddings_provider(make_embeddings_provider("huggingface"))

        assert await registry.get_default_embeddings() == "huggingface-embeddings"

    @pytest.mark.asyncio
    async def test_single_unrecommended_provider(self, registry):
        provider = make_embeddings_provider("qwen")
        registry.register_embeddings_provider(provider)

        assert await registry.get_default_embeddings(model_name="text-embedding-v1") == "qwen-embeddings"
        provider.create_embeddings.assert_awaited_once_with("text-embedding-v1")

    @pytest.mark.asyncio
    async def test_ambiguous_falls_back_to_fake(self, registry):
        registry.register_embeddings_provider(make_embeddings_provider("qwen"))
        registry.register_embeddings_provider(make_embeddings_provider("local"))

        assert isinstance(await registry.get_default_embeddings(), FakeEmbeddings)

    @pytest.mark.asyncio
    async def test_custom_recommend_list(self, registry):
        registry.register_embeddings_provider(make_embeddings_provider("openai"))
        registry.register_embeddings_provider(make_embeddings_provider("qwen"))
        registry.recommend_embeddings = ["qwen"]

        assert registry.recommend_embeddings == ["qwen"]
        assert await registry.get_default_embeddings() == "qwen-embeddings"


class TestDefaultVectorStoreRetriever:
    @pytest.mark.asyncio
    async def test_recommended_order(self, registry):
        registry.register_vector_store_retriever_provider(make_vector_store_provider("pinecone"))
        chroma = make_vector_store_provider("chroma")
        registry.register_vector_store_retriever_provider(chroma)

        assert await registry.get_default_vector_store_retriever() == "chroma-retriever"
        embeddings = chroma.create_vector_store_retriever.call_args.kwargs["embeddings"]
        assert isinstance(embeddings, FakeEmbeddings)

    @pytest.mark.asyncio
    async def test_failing_recommended_skipped(self, registry):
        registry.register_vector_store_retriever_provider(make_vector_store_provider("milvus", fail=True))
        registry.register_vector_store_retriever_provider(make_vector_store_provider("chroma"))

        assert await registry.get_default_vector_store_retriever(embeddings="e") == "chroma-retriever"

    @pytest.mark.asyncio
    async def test_nothing_registered(self, registry):
        with pytest.raises(BridgeError) as exc_info:
            await registry.get_default_vector_store_retriever()

        assert exc_info.value.code == ErrorCode.VECTOR_STORE_INIT_ERROR

    @pytest.mark.asyncio
    async def test_create_by_name(self, registry):
        registry.register_vector_store_retriever_provider(make_vector_store_provider("faiss"))

        assert await registry.create_vector_store_retriever("faiss/docs", embeddings="e") == "faiss-retriever"

        with pytest.raises(BridgeError) as exc_info:
            await registry.create_vector_store_retriever("milvus/docs", embeddings="e")
        assert exc_info.value.code == ErrorCode.MODEL_ADAPTER_NOT_FOUND


# ─────────────────────────────────────────────────────────────────────
# Environment-driven registration
# ─────────────────────────────────────────────────────────────────────


class TestRegisterDefaultProviders:
    @pytest.mark.asyncio
    async def test_nothing_configured(self, registry):
        with patch.dict("os.environ", {}, clear=True):
            register_default_providers(registry)

        assert await registry.select_model_providers() == []

    @pytest.mark.asyncio
    async def test_both_configured(self, registry):
        env = {"OPENAI_API_KEY": "sk-openai", "DASHSCOPE_API_KEY": "sk-qwen"}
        with patch.dict("os.environ", env, clear=True):
            register_default_providers(registry)

        names = [p.name for p in await registry.select_model_providers()]
        assert names == ["openai", "qwen"]
        assert await registry.create_embeddings("qwen/text-embedding-v1")

    @pytest.mark.asyncio
    async def test_openai_base_url(self, registry):
        env = {"OPENAI_API_KEY": "sk-openai", "OPENAI_BASE_URL": "http://localhost:1234/v1/"}
        with patch.dict("os.environ", env, clear=True):
            register_default_providers(registry)

        provider = (await registry.select_model_providers())[0]
        assert provider.get_extra_info()["api_endpoint"] == "http://localhost:1234/v1"
