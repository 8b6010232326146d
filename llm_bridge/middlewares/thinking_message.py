"""
Middleware: tell the user the bot is still working when a reply is slow.

If no reply has gone out after send_thinking_message_timeout seconds, a
notice is sent with {count} replaced by the number of requests queued ahead
(context.options["queue_count"], set by whoever enqueues the request). The
notice is recalled when the reply arrives (ThinkingMessage.finish) or just
before the platform's recall window closes.
"""

import asyncio
import logging
from typing import Any, Optional

from llm_bridge.config import (
    THINKING_MESSAGE_COUNT_WAIT_SECONDS,
    THINKING_MESSAGE_POLL_SECONDS,
    THINKING_MESSAGE_RECALL_SECONDS,
    ThinkingConfig,
)
from llm_bridge.middlewares.chain import (
    ChainContext,
    ChainMiddlewareRunStatus,
    ChatChain,
    Session,
)

logger = logging.getLogger(__name__)

THINKING_OPTION = "thinking_message"
QUEUE_COUNT_OPTION = "queue_count"


class ThinkingMessage:
    """Delayed, self-recalling "still thinking" notice for one request."""

    def __init__(
        self,
        session: Session,
        options: dict[str, Any],
        config: ThinkingConfig,
        recall_after_seconds: float = THINKING_MESSAGE_RECALL_SECONDS,
        count_wait_seconds: float = THINKING_MESSAGE_COUNT_WAIT_SECONDS,
    ):
        self._session = session
        self._options = options
        self._config = config
        self._recall_after = recall_after_seconds
        self._count_wait = count_wait_seconds
        self._task: Optional[asyncio.Task] = None
        self._recall_task: Optional[asyncio.Task] = None
        self._cancelled = False
        self.message_id: Optional[str] = None

    def start(self) -> "ThinkingMessage":
        self._task = asyncio.create_task(self._run())
        return self

    async def _run(self) -> None:
        await asyncio.sleep(self._config.send_thinking_message_timeout)

        count = await self._wait_for_queue_count()
        if self._cancelled:
            return

        text = self._config.thinking_message.replace(
            "{count}", str(count) if count is not None else "unknown"
        )
        try:
            message_ids = await self._session.send(text)
        except Exception as e:
            logger.error(f"Failed to send thinking message: {e}")
            return
        self.message_id = message_ids[0] if message_ids else None
        self._recall_task = asyncio.create_task(self._recall_later())

    async def _wait_for_queue_count(self) -> Optional[int]:
        loop = asyncio.get_running_loop()
        give_up_at = loop.time() + self._count_wait
        while not self._cancelled and self._options.get(QUEUE_COUNT_OPTION) is None:
            if loop.time() >= give_up_at:
                break
            await asyncio.sleep(THINKING_MESSAGE_POLL_SECONDS)
        return self._options.get(QUEUE_COUNT_OPTION)

    async def _recall_later(self) -> None:
        await asyncio.sleep(self._recall_after)
        await self.recall()

    async def recall(self) -> None:
        """Delete the notice if it was sent. Delete failures are logged only."""
        message_id, self.message_id = self.message_id, None
        if message_id is None:
            return
        try:
            await self._session.delete_message(message_id)
        except Exception as e:
            logger.error(f"Failed to recall thinking message {message_id}: {e}")

    def cancel(self) -> None:
        """Stop the notice from being sent if it has not gone out yet."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def finish(self) -> None:
        """The reply is ready: cancel the pending notice and recall a sent one."""
        self.cancel()
        if self._recall_task is not None and not self._recall_task.done():
            self._recall_task.cancel()
        await self.recall()


def apply(chain: ChatChain, config: ThinkingConfig) -> None:
    async def handler(session: Session, context: ChainContext) -> ChainMiddlewareRunStatus:
        if not config.send_thinking_message or context.command:
            return ChainMiddlewareRunStatus.SKIPPED

        context.options[THINKING_OPTION] = ThinkingMessage(session, context.options, config).start()
        return ChainMiddlewareRunStatus.CONTINUE

    chain.middleware("thinking_message_send", handler).before("lifecycle-prepare")
