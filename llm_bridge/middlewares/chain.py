"""
ChatChain - ordered middleware pipeline for one incoming chat message.

Middlewares are registered by name and run in order until one returns
STOP. Placement can be pinned relative to another middleware:

    chain.middleware("list_all_model", handler).after("lifecycle-handle_command")

Anchors that are not registered are ignored, so plugins can reference host
lifecycle steps that may not exist in a given deployment.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class ChainMiddlewareRunStatus(str, Enum):
    SKIPPED = "skipped"
    CONTINUE = "continue"
    STOP = "stop"


class Session(Protocol):
    """The chat host's view of one conversation."""

    async def send(self, text: str) -> list[str]:
        """Send text; returns the ids of the messages created."""
        ...

    async def delete_message(self, message_id: str) -> None:
        ...


@dataclass
class ChainContext:
    """State passed along the chain for one message."""
    command: Optional[str] = None
    message: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)


Middleware = Callable[[Session, ChainContext], Awaitable[ChainMiddlewareRunStatus]]


@dataclass
class ChainMiddleware:
    name: str
    handler: Middleware
    anchor: Optional[str] = None
    placement: Optional[str] = None  # "before" | "after"

    def before(self, name: str) -> "ChainMiddleware":
        self.anchor, self.placement = name, "before"
        return self

    def after(self, name: str) -> "ChainMiddleware":
        self.anchor, self.placement = name, "after"
        return self


class ChatChain:
    """Runs registered middlewares in resolved order."""

    def __init__(self):
        self._middlewares: list[ChainMiddleware] = []

    def middleware(self, name: str, handler: Middleware) -> ChainMiddleware:
        """
        Register handler under name.

        Raises:
            ValueError: If name is already registered
        """
        if any(m.name == name for m in self._middlewares):
            raise ValueError(f"Middleware '{name}' is already registered")
        middleware = ChainMiddleware(name=name, handler=handler)
        self._middlewares.append(middleware)
        return middleware

    def remove(self, name: str) -> None:
        self._middlewares = [m for m in self._middlewares if m.name != name]

    def ordered(self) -> list[ChainMiddleware]:
        """
        Resolve placement constraints into a run order.

        Unanchored middlewares keep registration order; anchored ones are
        inserted next to their anchor once it has been placed.

        Raises:
            ValueError: On circular placement constraints
        """
        names = {m.name for m in self._middlewares}
        order = [m for m in self._middlewares if m.anchor is None or m.anchor not in names]
        pending = [m for m in self._middlewares if m not in order]

        while pending:
            progressed = False
            for middleware in list(pending):
                index = next((i for i, m in enumerate(order) if m.name == middleware.anchor), None)
                if index is None:
                    continue
                order.insert(index if middleware.placement == "before" else index + 1, middleware)
                pending.remove(middleware)
                progressed = True
            if not progressed:
                raise ValueError(
                    f"Circular middleware placement: {[m.name for m in pending]}"
                )
        return order

    async def run(self, session: Session, context: ChainContext) -> ChainContext:
        """Run middlewares in order until one returns STOP."""
        for middleware in self.ordered():
            status = await middleware.handler(session, context)
            logger.debug(f"Middleware {middleware.name}: {status.value}")
            if status == ChainMiddlewareRunStatus.STOP:
                break
        return context
