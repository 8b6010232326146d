"""
OpenAI-compatible requester and model provider.

Any endpoint that speaks the OpenAI REST shape (/models, /chat/completions,
/embeddings) works here: OpenAI itself, proxies, vLLM, LM Studio, and the
DashScope compatible mode used by the Qwen client.
"""

import json
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from llm_bridge.adapters.schema import (
    ChatGeneration,
    EmbeddingsRequestParams,
    ModelRequestParams,
)
from llm_bridge.config import ClientConfig
from llm_bridge.errors import BridgeError, ErrorCode
from llm_bridge.model import ChatModel, ChatModelInput
from llm_bridge.guarded import BackoffPolicy
from llm_bridge.queue import RequestIdQueue

logger = logging.getLogger(__name__)


class OpenAIRequestError(Exception):
    """Error reported by an OpenAI-compatible API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _normalize_tools_for_openai(tools: list[dict]) -> list[dict]:
    """Wrap flat tool definitions in the OpenAI {"type": "function"} envelope."""
    normalized = []
    for tool in tools:
        if tool.get("type") == "function" and "function" in tool:
            normalized.append(tool)
        else:
            normalized.append({"type": "function", "function": tool})
    return normalized


def parse_error_message(body: bytes) -> str:
    """Extract a user-friendly message from an error response body."""
    try:
        data = json.loads(body)
        error = data.get("error", {})
        if isinstance(error, dict):
            message = error.get("message")
            if message:
                return message
        elif isinstance(error, str):
            return error
    except (ValueError, AttributeError):
        pass
    return body.decode(errors="replace")[:500]


def build_chat_payload(params: ModelRequestParams) -> dict:
    """Translate ModelRequestParams into a /chat/completions body."""
    payload: dict[str, Any] = {
        "model": params.model,
        "messages": params.messages,
        "stream": params.stream,
    }
    optional = {
        "temperature": params.temperature,
        "max_tokens": params.max_tokens,
        "top_p": params.top_p,
        "frequency_penalty": params.frequency_penalty,
        "presence_penalty": params.presence_penalty,
        "n": params.n,
        "logit_bias": params.logit_bias,
        "stop": params.stop,
        "user": params.id,
    }
    payload.update({k: v for k, v in optional.items() if v is not None})
    if params.tools:
        payload["tools"] = _normalize_tools_for_openai(params.tools)
    return payload


class OpenAIRequester:
    """
    Requester for OpenAI-compatible endpoints.

    Implements ModelRequester and EmbeddingsRequester. HTTP failures are
    raised as OpenAIRequestError so the guarded executor can retry them;
    a missing key fails fast with API_KEY_UNAVAILABLE.
    """

    def __init__(self, config: ClientConfig):
        self._config = config
        self._base_url = config.api_endpoint.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if not self._config.api_key:
            raise BridgeError(ErrorCode.API_KEY_UNAVAILABLE)
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

    def _timeout(self, timeout_seconds: Optional[float]) -> float:
        return timeout_seconds if timeout_seconds is not None else self._config.timeout_seconds

    async def list_models(self) -> list[str]:
        """Fetch model ids from GET /models."""
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.get(f"{self._base_url}/models", headers=self._headers())
        except httpx.HTTPError as e:
            raise BridgeError(ErrorCode.NETWORK_ERROR, e) from e

        if response.status_code >= 400:
            raise BridgeError(
                ErrorCode.MODEL_INIT_ERROR,
                OpenAIRequestError(parse_error_message(response.content), response.status_code),
            )
        data = response.json()
        return [m["id"] for m in data.get("data", [])]

    async def completion(self, params: ModelRequestParams) -> ChatGeneration:
        payload = build_chat_payload(params.model_copy(update={"stream": False}))
        try:
            async with httpx.AsyncClient(timeout=self._timeout(params.timeout_seconds)) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise OpenAIRequestError(f"Timeout calling '{params.model}': {e}") from e
        except httpx.HTTPError as e:
            raise OpenAIRequestError(f"HTTP error calling '{params.model}': {e}") from e

        if response.status_code >= 400:
            raise OpenAIRequestError(
                f"API error for '{params.model}': {parse_error_message(response.content)}",
                response.status_code,
            )

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise OpenAIRequestError(f"No choices returned for '{params.model}': {data}")
        message = choices[0].get("message", {})
        return ChatGeneration(
            text=message.get("content") or "",
            tool_calls=message.get("tool_calls") or [],
            finish_reason=choices[0].get("finish_reason"),
        )

    async def completion_stream(self, params: ModelRequestParams) -> AsyncGenerator[str, None]:
        """Stream content deltas from a server-sent-events response."""
        payload = build_chat_payload(params.model_copy(update={"stream": True}))
        try:
            async with httpx.AsyncClient(timeout=self._timeout(params.timeout_seconds)) as client:
                async with client.stream(
                    "POST",
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    if response.status_code >= 400:
                        error_body = await response.aread()
                        raise OpenAIRequestError(
                            f"API error for '{params.model}': {parse_error_message(error_body)}",
                            response.status_code,
                        )

                    async for line in response.aiter_lines():
                        if not line.startswith("data: "):
                            continue
                        data = line[6:]
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError:
                            continue
                        choices = chunk.get("choices", [])
                        if not choices:
                            continue
                        content = choices[0].get("delta", {}).get("content")
                        if content:
                            yield content
        except httpx.TimeoutException as e:
            raise OpenAIRequestError(f"Timeout streaming '{params.model}': {e}") from e
        except httpx.HTTPError as e:
            raise OpenAIRequestError(f"HTTP error streaming '{params.model}': {e}") from e

    async def embeddings(self, params: EmbeddingsRequestParams):
        try:
            async with httpx.AsyncClient(timeout=self._timeout(params.timeout_seconds)) as client:
                response = await client.post(
                    f"{self._base_url}/embeddings",
                    json={"model": params.model, "input": params.input},
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            raise OpenAIRequestError(f"HTTP error embedding with '{params.model}': {e}") from e

        if response.status_code >= 400:
            raise OpenAIRequestError(
                f"API error for '{params.model}': {parse_error_message(response.content)}",
                response.status_code,
            )

        vectors = [item["embedding"] for item in response.json().get("data", [])]
        if isinstance(params.input, str):
            return vectors[0] if vectors else None
        return vectors

    async def dispose(self) -> None:
        """Stateless over HTTP; nothing to release."""
        return None


class OpenAIModelProvider:
    """
    OpenAI-compatible implementation of ModelProvider.

    The model list is fetched once and cached for the provider's lifetime.
    """

    description: Optional[str] = "OpenAI model provider, provides gpt-3.5 / gpt-4 models"

    def __init__(
        self,
        config: ClientConfig,
        name: str = "openai",
        queue: Optional[RequestIdQueue] = None,
        requester: Optional[OpenAIRequester] = None,
    ):
        self.name = name
        self._config = config
        self._queue = queue
        self._requester = requester or OpenAIRequester(config)
        self._models: Optional[list[str]] = None

    async def list_models(self) -> list[str]:
        if self._models is None:
            self._models = await self._requester.list_models()
            logger.info(f"{self.name}: {len(self._models)} model(s) available")
        return list(self._models)

    async def is_supported(self, model_name: str) -> bool:
        return model_name in await self.list_models()

    async def recommend_model(self) -> Optional[str]:
        for model in await self.list_models():
            if "gpt-3.5" in model:
                return model
        return None

    async def create_model(self, model_name: str, **params: Any) -> ChatModel:
        """
        Build a ChatModel for model_name.

        Raises:
            BridgeError: MODEL_NOT_FOUND if the endpoint does not list it
        """
        if not await self.is_supported(model_name):
            raise BridgeError(ErrorCode.MODEL_NOT_FOUND)

        return ChatModel(
            ChatModelInput(
                requester=self._requester,
                model=model_name,
                temperature=params.get("temperature", self._config.temperature),
                max_tokens=params.get("max_tokens", self._config.max_tokens),
                timeout_seconds=params.get("timeout_seconds", self._config.timeout_seconds),
                max_retries=params.get("max_retries", self._config.max_retries),
                backoff=BackoffPolicy(backoff_seconds=self._config.backoff_seconds),
                max_concurrency=params.get("max_concurrency", self._config.max_concurrency),
                llm_type="openai",
            ),
            queue=self._queue,
        )

    async def dispose(self) -> None:
        self._models = None
        await self._requester.dispose()

    def get_extra_info(self) -> dict[str, Any]:
        """Non-secret configuration, for display."""
        return self._config.model_dump(exclude={"api_key"})
