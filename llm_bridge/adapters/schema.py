from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ModelType(str, Enum):
    """What a platform model can be used for."""
    LLM = "llm"
    EMBEDDINGS = "embeddings"


class ModelInfo(BaseModel):
    """Static description of one model offered by a platform."""
    name: str
    type: ModelType = ModelType.LLM
    max_tokens: Optional[int] = None
    supports_chat_mode: bool = True


class ModelRequestParams(BaseModel):
    """
    Standardized request object for chat completion across all requesters.

    Requesters translate this into their vendor's wire format; the chat
    model and the guarded executor only ever deal with this shape.
    """
    model: str
    messages: List[Dict[str, Any]]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    n: Optional[int] = None
    logit_bias: Optional[Dict[str, float]] = None
    stop: Optional[List[str]] = None
    stream: bool = False
    tools: Optional[List[Dict[str, Any]]] = None
    id: Optional[str] = None
    timeout_seconds: Optional[float] = None


class EmbeddingsRequestParams(BaseModel):
    model: str
    input: Union[str, List[str]]
    timeout_seconds: Optional[float] = None


class ChatGeneration(BaseModel):
    """
    Standardized response object from a requester.

    Abstracts away vendor response schemas into the text plus any tool
    calls the model emitted.
    """
    text: str
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)
    finish_reason: Optional[str] = None
