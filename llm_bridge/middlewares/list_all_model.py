"""Middleware: answer the list_model command with every "provider/model" id."""

from llm_bridge.factory import Registry
from llm_bridge.middlewares.chain import (
    ChainContext,
    ChainMiddlewareRunStatus,
    ChatChain,
    Session,
)

LIST_MODEL_COMMAND = "list_model"
HEADER = "Available models:"
FOOTER = "\nUse set_model <model> to choose the default model."


async def list_all_models(registry: Registry) -> list[str]:
    """All models of all registered providers, as "provider/model"."""
    models = []
    for provider in await registry.select_model_providers():
        for model in await provider.list_models():
            models.append(f"{provider.name}/{model}")
    return models


def apply(chain: ChatChain, registry: Registry) -> None:
    async def handler(session: Session, context: ChainContext) -> ChainMiddlewareRunStatus:
        if context.command != LIST_MODEL_COMMAND:
            return ChainMiddlewareRunStatus.SKIPPED

        lines = [HEADER, *await list_all_models(registry), FOOTER]
        context.message = "\n".join(lines)
        return ChainMiddlewareRunStatus.STOP

    chain.middleware("list_all_model", handler).after("lifecycle-handle_command")
