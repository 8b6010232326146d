"""
RequestIdQueue - per-key FIFO admission queue for in-flight model requests.

Each key (a model name, an account, ...) holds an ordered list of ticket ids.
A ticket is admitted while its index in that list is below the caller's
concurrency limit, so the first N arrivals run and everyone else waits in
arrival order until a ticket ahead of them is removed.

Usage:
    queue = RequestIdQueue()

    async with queue.ticket("qwen-turbo", request_id, max_concurrent=2):
        response = await requester.completion(params)

Callers that use add()/wait() directly MUST call remove() in a finally
block, otherwise the key's list grows forever and later tickets starve.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class DuplicateTicketError(ValueError):
    """A ticket id was added twice under the same key."""
    pass


class RequestIdQueue:
    """
    FIFO ticket queue bounding concurrent callers per key.

    All mutation happens under one queue-wide lock. A key gets its own
    asyncio.Condition (sharing that lock) while callers are blocked on it,
    notified on every add/remove for the key, so waiters re-check their
    position only when it can change. The condition is dropped once its
    last waiter returns.

    A key's id list is kept after it empties: a wait() on an id that was
    removed must see the key and report the ticket as vanished, not
    register it again.
    """

    def __init__(self):
        self._queue: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()
        self._conditions: dict[str, asyncio.Condition] = {}
        self._waiters: dict[str, int] = {}

    def _notify(self, key: str) -> None:
        """Wake key's waiters, if any. Caller must hold self._lock."""
        condition = self._conditions.get(key)
        if condition is not None:
            condition.notify_all()

    def _append(self, key: str, request_id: str) -> None:
        """Append under the lock. Caller must hold self._lock."""
        ids = self._queue.setdefault(key, [])
        if request_id in ids:
            raise DuplicateTicketError(
                f"Request id '{request_id}' is already queued for '{key}'"
            )
        ids.append(request_id)
        self._notify(key)

    async def add(self, key: str, request_id: str) -> None:
        """Append request_id to the end of key's queue."""
        async with self._lock:
            self._append(key, request_id)

    async def remove(self, key: str, request_id: str) -> None:
        """Remove request_id from key's queue. No-op if absent."""
        async with self._lock:
            ids = self._queue.get(key)
            if ids is None:
                return
            try:
                ids.remove(request_id)
            except ValueError:
                return
            self._notify(key)

    async def wait(self, key: str, request_id: str, max_concurrent: int) -> None:
        """
        Block until request_id is admitted or has vanished from the queue.

        If key has no queue yet, request_id registers itself first. Returns
        once its index is below max_concurrent, or once someone else has
        removed it.

        Raises:
            ValueError: If max_concurrent is below 1 (nothing could ever run)
        """
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")

        async with self._lock:
            if key not in self._queue:
                self._append(key, request_id)

            def admitted_or_vanished() -> bool:
                ids = self._queue[key]
                if request_id not in ids:
                    return True
                return ids.index(request_id) < max_concurrent

            if admitted_or_vanished():
                return

            logger.debug(
                f"Request {request_id} waiting for '{key}' "
                f"(position {self._queue[key].index(request_id)}, limit {max_concurrent})"
            )
            condition = self._conditions.get(key)
            if condition is None:
                condition = self._conditions[key] = asyncio.Condition(self._lock)
            self._waiters[key] = self._waiters.get(key, 0) + 1
            try:
                await condition.wait_for(admitted_or_vanished)
            finally:
                # wait_for re-acquires the lock even when cancelled
                self._waiters[key] -= 1
                if not self._waiters[key]:
                    del self._waiters[key]
                    del self._conditions[key]

    async def enqueue_and_wait(self, key: str, request_id: str, max_concurrent: int) -> None:
        """Register request_id at the back of key's queue, then wait for admission."""
        await self.add(key, request_id)
        await self.wait(key, request_id, max_concurrent)

    async def get_queue_length(self, key: str) -> int:
        """Number of tickets (admitted and waiting) currently held for key."""
        async with self._lock:
            return len(self._queue.get(key, ()))

    @asynccontextmanager
    async def ticket(self, key: str, request_id: str, max_concurrent: int) -> AsyncIterator[None]:
        """
        Hold an admission ticket for the duration of the block.

        The ticket is removed on exit even if the block raises or the
        waiting caller is cancelled.
        """
        await self.add(key, request_id)
        try:
            await self.wait(key, request_id, max_concurrent)
            yield
        finally:
            await self.remove(key, request_id)
