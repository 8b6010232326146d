"""
Chat-host middlewares.

Each module exposes apply(chain, ...) which registers its middleware on a
ChatChain.
"""

from .chain import ChainContext, ChainMiddlewareRunStatus, ChatChain, Session

__all__ = ["ChainContext", "ChainMiddlewareRunStatus", "ChatChain", "Session"]
