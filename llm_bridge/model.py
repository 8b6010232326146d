"""
ChatModel - provider-agnostic chat model bound to one requester.

Every request goes through the same path:
1. Wait for an admission ticket on the model's queue (if one is attached)
2. Run the requester call under guarded_call (deadline + retry + backoff)
3. Release the ticket, whatever happened

Providers build ChatModels; callers never talk to requesters directly.
"""

import logging
import uuid
from contextlib import AsyncExitStack
from typing import Any, AsyncGenerator, Optional, Union

from pydantic import BaseModel, ConfigDict

from llm_bridge.adapters.base import ModelRequester
from llm_bridge.adapters.schema import ChatGeneration, ModelRequestParams
from llm_bridge.config import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    Message,
)
from llm_bridge.guarded import BackoffPolicy, guarded_call
from llm_bridge.queue import RequestIdQueue
from llm_bridge.tokens import count_tokens, get_encoding, get_model_context_size

logger = logging.getLogger(__name__)

# Options a caller may override per request
CALL_KEYS = (
    "model",
    "temperature",
    "max_tokens",
    "top_p",
    "frequency_penalty",
    "presence_penalty",
    "n",
    "logit_bias",
    "stop",
    "stream",
    "tools",
    "id",
    "timeout_seconds",
)


class ChatModelInput(BaseModel):
    """Constructor defaults for a ChatModel."""
    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    requester: Any
    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    n: Optional[int] = None
    logit_bias: Optional[dict[str, float]] = None
    stop: Optional[list[str]] = None
    stream: bool = False
    tools: Optional[list[dict]] = None
    id: Optional[str] = None
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff: BackoffPolicy = BackoffPolicy()
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    model_max_context_size: Optional[int] = None
    llm_type: str = "openai"


MessageLike = Union[Message, dict]


def _to_openai_messages(messages: list[MessageLike]) -> list[dict]:
    return [m.to_openai() if isinstance(m, Message) else dict(m) for m in messages]


class ChatModel:
    """
    Chat model wrapper enforcing timeout, retry and per-model admission.

    Usage:
        model = ChatModel(ChatModelInput(requester=requester, model="qwen-turbo"), queue=queue)
        generation = await model.generate([{"role": "user", "content": "Hi"}])
    """

    def __init__(self, options: ChatModelInput, queue: Optional[RequestIdQueue] = None):
        self._options = options
        self._requester: ModelRequester = options.requester
        self._queue = queue
        self._encoding = None

    @property
    def model_name(self) -> str:
        return self._options.model

    @property
    def llm_type(self) -> str:
        return self._options.llm_type

    @property
    def queue(self) -> Optional[RequestIdQueue]:
        return self._queue

    def invocation_params(self, **options: Any) -> ModelRequestParams:
        """
        Merge per-call options over constructor defaults.

        max_tokens of -1 means "as many as the model allows" and is sent as
        unset.

        Raises:
            TypeError: On an option that is not a call key
        """
        unknown = set(options) - set(CALL_KEYS)
        if unknown:
            raise TypeError(f"Unknown call options: {sorted(unknown)}")

        merged = {}
        for key in CALL_KEYS:
            value = options.get(key)
            merged[key] = value if value is not None else getattr(self._options, key)

        if merged["max_tokens"] == -1:
            merged["max_tokens"] = None

        return ModelRequestParams(messages=[], **merged)

    async def generate(self, messages: list[MessageLike], **options: Any) -> ChatGeneration:
        """
        Get one generation for messages.

        Waits for admission on this model's queue first when a queue is
        attached. Streaming mode collects the stream into one generation.

        Raises:
            RequestTimeout: The request (all attempts) exceeded timeout_seconds
            Exception: The requester's last failure after retries
        """
        params = self.invocation_params(**options)
        params.messages = _to_openai_messages(messages)

        if self._queue is None:
            return await self._guarded_generate(params)

        ticket_id = params.id or uuid.uuid4().hex
        async with self._queue.ticket(params.model, ticket_id, self._options.max_concurrency):
            return await self._guarded_generate(params)

    async def _guarded_generate(self, params: ModelRequestParams) -> ChatGeneration:
        logger.debug(f"Requesting {params.model} (stream={params.stream})")

        async def run() -> ChatGeneration:
            if params.stream:
                chunks = [chunk async for chunk in self._requester.completion_stream(params)]
                return ChatGeneration(text="".join(chunks))
            return await self._requester.completion(params)

        return await guarded_call(
            run,
            timeout_seconds=params.timeout_seconds,
            max_retries=self._options.max_retries,
            backoff=self._options.backoff,
        )

    async def stream(self, messages: list[MessageLike], **options: Any) -> AsyncGenerator[str, None]:
        """
        Stream text chunks for messages.

        Opening the stream (up to the first chunk) runs as a guarded call:
        retried, and bounded by timeout_seconds so a silent backend cannot
        hold the admission ticket forever. Once chunks have been yielded a
        failure propagates, since a partial answer has already reached the
        caller.
        """
        params = self.invocation_params(**options)
        params.messages = _to_openai_messages(messages)
        params.stream = True

        async def open_stream() -> tuple[AsyncGenerator[str, None], Optional[str]]:
            stream = self._requester.completion_stream(params)
            try:
                first = await stream.__anext__()
            except StopAsyncIteration:
                return stream, None
            except BaseException:
                await stream.aclose()
                raise
            return stream, first

        async with AsyncExitStack() as stack:
            if self._queue is not None:
                ticket_id = params.id or uuid.uuid4().hex
                await stack.enter_async_context(
                    self._queue.ticket(params.model, ticket_id, self._options.max_concurrency)
                )

            stream, first = await guarded_call(
                open_stream,
                timeout_seconds=params.timeout_seconds,
                max_retries=self._options.max_retries,
                backoff=self._options.backoff,
            )
            if first is None:
                return
            yield first
            async for chunk in stream:
                yield chunk

    async def clear_context(self) -> None:
        """Drop any conversation state held by the requester."""
        await self._requester.dispose()

    def get_model_max_context_size(self) -> int:
        if self._options.model_max_context_size is not None:
            return self._options.model_max_context_size
        return get_model_context_size(self._options.model or "gpt2")

    async def get_num_tokens(self, text: str) -> int:
        """Token count with the model's tiktoken encoding (loaded once per model)."""
        if self._encoding is None:
            self._encoding = get_encoding(self._options.model)
        return count_tokens(text, self._encoding)
