"""
LLM Provider Interface

Every backend (Gemini, Groq, OpenRouter, ...) exposes the same `send`
method over the uniform ChatMessage / ProviderReply models.

DESIGN DECISION: The base class owns the failure contract.
Whatever goes wrong inside a backend (network error, HTTP error, timeout,
malformed payload, raw tool syntax written as text) leaves `send` as a
ProviderError, so the chain only has to handle one exception type.
There are no retries here: a failed attempt moves straight to the next
provider.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Literal, Optional

from src.models.conversation import ChatMessage, ProviderReply, ProviderSpec


ToolChoice = Literal["auto", "none"]


class ProviderError(Exception):
    """One provider failed to produce a usable reply."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class AllProvidersExhaustedError(Exception):
    """No configured provider produced a reply."""

    def __init__(self, failures: Optional[dict[str, str]] = None):
        self.failures = failures or {}
        if self.failures:
            detail = "; ".join(f"{name}: {reason}" for name, reason in self.failures.items())
        else:
            detail = "no providers configured"
        super().__init__(f"All LLM providers failed ({detail})")


def looks_like_tool_output(text: str, tool_names: list[str]) -> bool:
    """
    True when text is raw JSON or tool-call syntax rather than prose.

    Such text must never be shown to the user as an answer.
    """
    stripped = text.strip()
    if not stripped:
        return True
    if "```json" in stripped.lower():
        return True
    if stripped[0] in "{[":
        try:
            json.loads(stripped)
            return True
        except ValueError:
            pass
    return any(f"{name}(" in stripped for name in tool_names)


class LLMProvider(ABC):
    """
    Base class for chat-completion backends.

    Subclasses implement `_send`; callers use `send`.
    """

    def __init__(self, spec: ProviderSpec, timeout: float = 25.0):
        self._spec = spec
        self._timeout = timeout

    @property
    def spec(self) -> ProviderSpec:
        return self._spec

    @property
    def name(self) -> str:
        return self._spec.name

    @property
    def model_id(self) -> str:
        return self._spec.model_id

    @property
    def is_configured(self) -> bool:
        return self._spec.is_configured

    async def send(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
        tool_choice: ToolChoice = "auto",
    ) -> ProviderReply:
        """
        Submit messages and return text or a tool call.

        Args:
            messages: System, history, user and tool messages in order
            tools: JSON-schema tool declarations
            tool_choice: "auto" lets the model call a tool, "none" forces
                         a plain-text answer (tools are still declared so
                         earlier tool messages stay valid)

        Raises:
            ProviderError: On any failure, including the attempt timeout
                           and a text reply that is raw tool output
        """
        if not self.is_configured:
            raise ProviderError(self.name, "no credential configured")

        try:
            reply = await asyncio.wait_for(
                self._send(messages, tools, tool_choice),
                timeout=self._timeout,
            )
        except ProviderError:
            raise
        except asyncio.TimeoutError:
            raise ProviderError(self.name, f"timed out after {self._timeout:.0f}s")
        except Exception as e:
            raise ProviderError(self.name, f"{type(e).__name__}: {e}") from e

        tool_names = [tool["name"] for tool in tools or []]
        if not reply.is_tool_call and looks_like_tool_output(reply.text or "", tool_names):
            raise ProviderError(self.name, "reply was raw tool output")
        return reply

    @abstractmethod
    async def _send(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]],
        tool_choice: ToolChoice,
    ) -> ProviderReply:
        pass
