"""
Guarded calls - run a model operation under a deadline with retry and backoff.

The deadline covers the whole call: every attempt and every backoff sleep.
Inside the deadline, ordinary failures are retried with a configurable
backoff; after the last retry the final failure surfaces unchanged.

Usage:
    result = await guarded_call(
        lambda: requester.completion(params),
        timeout_seconds=60,
        max_retries=3,
    )
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from llm_bridge.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
)
from llm_bridge.errors import RequestTimeout
from llm_bridge.queue import RequestIdQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class BackoffPolicy(BaseModel):
    """
    Wait between retries.

    Fixed by default. With exponential=True the wait starts at
    backoff_seconds and doubles per retry, capped at max_backoff_seconds.
    """
    backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    exponential: bool = False
    max_backoff_seconds: float = 60.0

    def wait_strategy(self):
        if self.exponential:
            return wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.max_backoff_seconds,
            )
        return wait_fixed(self.backoff_seconds)


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if a failed attempt should be retried.

    Deadline expiry and cancellation are terminal; any other Exception
    raised by the operation is retried.
    """
    if isinstance(exception, RequestTimeout):
        return False
    return isinstance(exception, Exception)


async def call_with_timeout(operation: Operation[T], timeout_seconds: Optional[float]) -> T:
    """
    Race operation against a deadline.

    On expiry the operation is cancelled and RequestTimeout is raised.
    Anything the operation raises itself (a TimeoutError from a socket
    read included) propagates unchanged. A timeout of None disables the
    deadline.
    """
    if timeout_seconds is None:
        return await operation()

    task = asyncio.ensure_future(operation())
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    except BaseException:
        task.cancel()
        raise

    if task in done or not task.cancel():
        return task.result()

    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Operation failed after its deadline: {task.exception()!r}")

    origin = asyncio.TimeoutError(f"Deadline of {timeout_seconds}s exceeded")
    raise RequestTimeout(origin) from origin


async def retry_call(
    operation: Operation[T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff: Optional[BackoffPolicy] = None,
) -> T:
    """
    Invoke operation, retrying failures up to max_retries times.

    Makes at most max_retries + 1 attempts. The last failure is re-raised
    as-is once retries are exhausted.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")
    backoff = backoff or BackoffPolicy()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=backoff.wait_strategy(),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await operation()


async def guarded_call(
    operation: Operation[T],
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff: Optional[BackoffPolicy] = None,
) -> T:
    """
    Run operation with retry and backoff, all under one deadline.

    Args:
        operation: Zero-argument callable returning an awaitable
        timeout_seconds: Deadline for the whole call; None disables it
        max_retries: Retries after the first attempt
        backoff: Wait between retries (fixed 5s when omitted)

    Returns:
        The operation's result

    Raises:
        RequestTimeout: Deadline exceeded (never retried)
        Exception: The operation's last failure after retries are exhausted
    """
    return await call_with_timeout(
        lambda: retry_call(operation, max_retries=max_retries, backoff=backoff),
        timeout_seconds,
    )


async def admitted_call(
    queue: RequestIdQueue,
    key: str,
    ticket_id: str,
    max_concurrent: int,
    operation: Operation[T],
    timeout_seconds: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    backoff: Optional[BackoffPolicy] = None,
) -> T:
    """
    Wait for admission on key, run a guarded call, then release the ticket.

    The ticket is released whether the call succeeds, fails or times out,
    so a failed request never starves the queue behind it.
    """
    async with queue.ticket(key, ticket_id, max_concurrent):
        logger.debug(f"Admitted {ticket_id} for '{key}'")
        return await guarded_call(
            operation,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
            backoff=backoff,
        )
