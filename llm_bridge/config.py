"""
Configuration constants and Pydantic models for llm-bridge.
"""

import os
from typing import Optional, Union

from pydantic import BaseModel


# ─────────────────────────────────────────────────────────────────────
# DEFAULTS
# ─────────────────────────────────────────────────────────────────────

DEFAULT_TIMEOUT_SECONDS: float = 60.0
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_BACKOFF_SECONDS: float = 5.0
DEFAULT_MAX_CONCURRENCY: int = 3
DEFAULT_TEMPERATURE: float = 0.8
DEFAULT_SYSTEM_PROMPT: str = "You are a helpful assistant."

DEFAULT_OPENAI_BASE_URL: str = "https://api.openai.com/v1"
DEFAULT_QWEN_BASE_URL: str = "https://dashscope.aliyuncs.com/compatible-mode/v1"


# ─────────────────────────────────────────────────────────────────────
# INTERNAL CONSTANTS
# ─────────────────────────────────────────────────────────────────────

# Thinking messages are recalled shortly before most chat platforms stop
# allowing message deletion (2 minutes).
THINKING_MESSAGE_RECALL_SECONDS: float = 2 * 60 - 3
THINKING_MESSAGE_POLL_SECONDS: float = 0.01
# Give up waiting for the queue position after this long and send "unknown".
THINKING_MESSAGE_COUNT_WAIT_SECONDS: float = 10.0


# ─────────────────────────────────────────────────────────────────────
# RETRY / TIMEOUT CONFIGURATION
# ─────────────────────────────────────────────────────────────────────

def get_max_retries() -> int:
    """
    Get max retry attempts from environment or default.

    Set LLM_BRIDGE_MAX_RETRIES in .env (default: 3).
    """
    try:
        return int(os.environ.get("LLM_BRIDGE_MAX_RETRIES", str(DEFAULT_MAX_RETRIES)))
    except ValueError:
        return DEFAULT_MAX_RETRIES


def get_timeout_seconds() -> float:
    """
    Get the request deadline in seconds.

    Set LLM_BRIDGE_TIMEOUT_SECONDS in .env (default: 60).
    """
    try:
        return float(os.environ.get("LLM_BRIDGE_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


def get_retry_backoff_seconds() -> float:
    """
    Get the wait between retries in seconds.

    Set LLM_BRIDGE_RETRY_BACKOFF_SECONDS in .env (default: 5).
    """
    try:
        return float(
            os.environ.get("LLM_BRIDGE_RETRY_BACKOFF_SECONDS", str(DEFAULT_RETRY_BACKOFF_SECONDS))
        )
    except ValueError:
        return DEFAULT_RETRY_BACKOFF_SECONDS


def get_max_concurrency() -> int:
    """
    Get how many requests per model may be in flight at once.

    Set LLM_BRIDGE_MAX_CONCURRENCY in .env (default: 3).
    """
    try:
        return int(os.environ.get("LLM_BRIDGE_MAX_CONCURRENCY", str(DEFAULT_MAX_CONCURRENCY)))
    except ValueError:
        return DEFAULT_MAX_CONCURRENCY


# ─────────────────────────────────────────────────────────────────────
# PROVIDER CREDENTIALS
# ─────────────────────────────────────────────────────────────────────

def get_openai_api_key() -> str | None:
    """Get OpenAI-compatible API key from environment."""
    return os.environ.get("OPENAI_API_KEY")


def get_openai_base_url() -> str:
    """Get OpenAI-compatible base URL, stripped of trailing slashes."""
    return os.environ.get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL).rstrip("/")


def get_qwen_api_key() -> str | None:
    """Get DashScope (Qwen) API key from environment."""
    return os.environ.get("DASHSCOPE_API_KEY")


# ─────────────────────────────────────────────────────────────────────
# DATA MODELS
# ─────────────────────────────────────────────────────────────────────

class ClientConfig(BaseModel):
    """Per-platform client settings, read at call time."""
    api_key: Optional[str] = None
    api_endpoint: str = DEFAULT_OPENAI_BASE_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_tokens: int = -1
    temperature: float = DEFAULT_TEMPERATURE

    @classmethod
    def from_env(cls, api_key: Optional[str] = None, api_endpoint: Optional[str] = None) -> "ClientConfig":
        """Build a config whose retry/timeout knobs come from the environment."""
        return cls(
            api_key=api_key,
            api_endpoint=api_endpoint or DEFAULT_OPENAI_BASE_URL,
            max_retries=get_max_retries(),
            timeout_seconds=get_timeout_seconds(),
            backoff_seconds=get_retry_backoff_seconds(),
            max_concurrency=get_max_concurrency(),
        )


class ThinkingConfig(BaseModel):
    """Settings for the "still thinking" notice sent while a request waits."""
    send_thinking_message: bool = True
    thinking_message: str = "I'm still thinking, there are {count} requests ahead of you..."
    send_thinking_message_timeout: float = 15.0


class Message(BaseModel):
    """A single message in a conversation.

    Content can be:
    - str: Plain text message
    - list: Multimodal content parts in OpenAI format
    """
    role: str  # "user", "assistant", or "system"
    content: Union[str, list]

    def get_text(self) -> str:
        """Extract text content from message."""
        if isinstance(self.content, str):
            return self.content
        for part in self.content:
            if isinstance(part, dict) and part.get("type") == "text":
                return part.get("text", "")
        return ""

    def to_openai(self) -> dict:
        return {"role": self.role, "content": self.content}
