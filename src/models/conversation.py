"""
Conversation Models

Uniform message shapes shared by every LLM provider. Each provider
translates these into its own wire format, so the orchestrator never
deals with vendor-specific payloads.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class TurnRole(str, Enum):
    """Roles a client may send in the conversation history."""
    USER = "user"
    ASSISTANT = "assistant"


class MessageRole(str, Enum):
    """Roles inside a provider request."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ConversationTurn(BaseModel):
    """One prior turn, replayed on every request."""

    role: TurnRole
    text: str = ""


class ToolCall(BaseModel):
    """A model-issued request to run one registry tool."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: Optional[str] = None


class ChatMessage(BaseModel):
    """
    One message sent to a provider.

    Exactly one of these shapes:
    - plain text (system / user / assistant)
    - assistant message carrying a tool_call
    - tool message carrying the tool result in content (JSON text)
    """

    role: MessageRole
    content: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_name: Optional[str] = None

    @classmethod
    def system(cls, text: str) -> "ChatMessage":
        return cls(role=MessageRole.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role=MessageRole.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role=MessageRole.ASSISTANT, content=text)

    @classmethod
    def tool_request(cls, call: ToolCall) -> "ChatMessage":
        return cls(role=MessageRole.ASSISTANT, tool_call=call)

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> "ChatMessage":
        return cls(role=MessageRole.TOOL, content=content, tool_name=call.name, tool_call=call)


class ProviderReply(BaseModel):
    """What a provider returned: either text or a tool call."""

    text: Optional[str] = None
    tool_call: Optional[ToolCall] = None

    @model_validator(mode="after")
    def validate_shape(self) -> "ProviderReply":
        if self.tool_call is None and not (self.text and self.text.strip()):
            raise ValueError("Provider reply has neither text nor tool call")
        return self

    @property
    def is_tool_call(self) -> bool:
        return self.tool_call is not None


class ProviderKind(str, Enum):
    """Wire protocol spoken by a provider."""
    GEMINI = "gemini"
    OPENAI_COMPATIBLE = "openai_compatible"


class ProviderSpec(BaseModel):
    """Static description of one LLM backend."""

    name: str
    kind: ProviderKind
    endpoint: str
    credential: Optional[str] = None
    model_id: str
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)

    @property
    def is_configured(self) -> bool:
        return bool(self.credential and self.credential.strip())
