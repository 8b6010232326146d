"""Context window sizes and token counts for well-known models."""

import logging
import math
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_SIZE = 4097
DEFAULT_ENCODING = "cl100k_base"

# Longest prefix wins, so "gpt-4-32k" is matched before "gpt-4".
_CONTEXT_SIZES: dict[str, int] = {
    "gpt-4o": 128000,
    "gpt-4-turbo": 128000,
    "gpt-4-1106": 128000,
    "gpt-4-32k": 32768,
    "gpt-4": 8192,
    "gpt-3.5-turbo-16k": 16384,
    "gpt-3.5-turbo-1106": 16385,
    "gpt-3.5-turbo": 4096,
    "text-davinci-003": 4097,
    "text-davinci-002": 4097,
    "code-davinci-002": 8000,
    "qwen-turbo": 8000,
    "qwen-plus": 32000,
    "qwen-max": 8000,
}


def get_model_context_size(model_name: str) -> int:
    """Return the context window for model_name, or DEFAULT_CONTEXT_SIZE if unknown."""
    match = ""
    for prefix in _CONTEXT_SIZES:
        if model_name.startswith(prefix) and len(prefix) > len(match):
            match = prefix
    return _CONTEXT_SIZES[match] if match else DEFAULT_CONTEXT_SIZE


def get_encoding(model_name: str) -> Optional["tiktoken.Encoding"]:
    """
    Tokenizer for model_name.

    Models tiktoken does not know (qwen-*, local models) use cl100k_base.
    Returns None if no encoding can be loaded (e.g. the BPE file cannot
    be fetched).
    """
    try:
        try:
            return tiktoken.encoding_for_model(model_name)
        except KeyError:
            return tiktoken.get_encoding(DEFAULT_ENCODING)
    except Exception as e:
        logger.warning(f"Failed to load tokenizer for {model_name}: {e}")
        return None


def estimate_tokens(text: str) -> int:
    """Rough token count: about four characters per token."""
    return math.ceil(len(text) / 4)


def count_tokens(text: str, encoding: Optional["tiktoken.Encoding"]) -> int:
    """Token count from encoding, or the character estimate if encoding fails."""
    if encoding is None:
        return estimate_tokens(text)
    try:
        return len(encoding.encode(text))
    except Exception as e:
        logger.warning(f"Error counting tokens: {e}")
        return estimate_tokens(text)
