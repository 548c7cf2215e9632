"""
OpenAI-Compatible Provider

Speaks the `/chat/completions` protocol shared by Groq, OpenRouter and
most hosted model gateways. Plain httpx, no vendor SDK.
"""

import json
from typing import Any, Optional

import httpx

from src.models.conversation import (
    ChatMessage,
    MessageRole,
    ProviderReply,
    ProviderSpec,
    ToolCall,
)
from src.services.llm.interface import LLMProvider, ProviderError, ToolChoice


class OpenAICompatibleProvider(LLMProvider):
    """Chat completions over HTTP with function tools."""

    def __init__(
        self,
        spec: ProviderSpec,
        timeout: float = 25.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(spec, timeout)
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.spec.endpoint.rstrip('/')}/chat/completions"

    def _to_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        converted = []
        for message in messages:
            if message.role == MessageRole.ASSISTANT and message.tool_call:
                call = message.tool_call
                converted.append({
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [{
                        "id": call.call_id or "call_0",
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments, ensure_ascii=False),
                        },
                    }],
                })
            elif message.role == MessageRole.TOOL:
                converted.append({
                    "role": "tool",
                    "tool_call_id": (message.tool_call.call_id if message.tool_call else None) or "call_0",
                    "name": message.tool_name,
                    "content": message.content or "",
                })
            else:
                converted.append({"role": message.role.value, "content": message.content or ""})
        return converted

    def _parse(self, data: dict[str, Any]) -> ProviderReply:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.name, "response has no choices")

        message = choices[0].get("message") or {}
        tool_calls = message.get("tool_calls") or []
        if tool_calls:
            first = tool_calls[0]
            function = first["function"]
            raw_args = function.get("arguments") or "{}"
            arguments = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
            return ProviderReply(tool_call=ToolCall(
                name=function["name"],
                arguments=arguments or {},
                call_id=first.get("id"),
            ))

        return ProviderReply(text=(message.get("content") or "").strip())

    async def _send(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]],
        tool_choice: ToolChoice,
    ) -> ProviderReply:
        payload: dict[str, Any] = {
            "model": self.model_id,
            "messages": self._to_messages(messages),
            "temperature": self.spec.temperature,
            "max_tokens": self.spec.max_tokens,
        }
        if tools:
            payload["tools"] = [{"type": "function", "function": tool} for tool in tools]
            payload["tool_choice"] = tool_choice

        headers = {
            "Authorization": f"Bearer {self.spec.credential}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=payload, headers=headers)

        if response.status_code >= 400:
            raise ProviderError(
                self.name,
                f"HTTP {response.status_code}: {response.text[:200]}",
            )

        return self._parse(response.json())
