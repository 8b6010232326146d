"""
llm-bridge: uniform access to LLM platforms for chat-bot hosts.

Requests are admitted per model by RequestIdQueue and executed by
guarded_call (deadline + retry + backoff).
"""

from llm_bridge.errors import BridgeError, ErrorCode, RequestTimeout
from llm_bridge.guarded import BackoffPolicy, admitted_call, guarded_call
from llm_bridge.queue import DuplicateTicketError, RequestIdQueue

__all__ = [
    "BackoffPolicy",
    "BridgeError",
    "DuplicateTicketError",
    "ErrorCode",
    "RequestIdQueue",
    "RequestTimeout",
    "admitted_call",
    "guarded_call",
]
