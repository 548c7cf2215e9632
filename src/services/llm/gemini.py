"""
Gemini Provider

Uses the google-generativeai SDK with native function calling.
Tool declarations arrive as JSON schema and are converted to Gemini's
schema dialect (upper-case type names, no additionalProperties).
"""

import json
from typing import Any, Optional

import google.generativeai as genai

from src.models.conversation import (
    ChatMessage,
    MessageRole,
    ProviderReply,
    ToolCall,
)
from src.services.llm.interface import LLMProvider, ProviderError, ToolChoice


# JSON-schema keys Gemini understands
_SCHEMA_KEYS = {"type", "description", "enum", "properties", "required", "items", "format", "nullable"}

# genai.configure is process-global, so one Gemini key per process
_configured_key: Optional[str] = None


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert a JSON schema into the subset Gemini accepts."""
    converted = {}
    for key, value in schema.items():
        if key not in _SCHEMA_KEYS:
            continue
        if key == "type":
            converted["type"] = str(value).upper()
        elif key == "properties":
            converted["properties"] = {
                name: to_gemini_schema(prop) for name, prop in value.items()
            }
        elif key == "items":
            converted["items"] = to_gemini_schema(value)
        else:
            converted[key] = value
    return converted


class GeminiProvider(LLMProvider):
    """Google Gemini through google-generativeai."""

    def _configure_genai(self):
        """Configure Google Generative AI once for this process."""
        global _configured_key
        if _configured_key == self.spec.credential:
            return
        if _configured_key is not None:
            raise ProviderError(self.name, "a different Gemini API key is already configured")
        genai.configure(api_key=self.spec.credential)
        _configured_key = self.spec.credential

    def _to_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [{
            "function_declarations": [
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": to_gemini_schema(tool["parameters"]),
                }
                for tool in tools
            ]
        }]

    def _to_contents(
        self,
        messages: list[ChatMessage],
    ) -> tuple[Optional[str], list[dict[str, Any]]]:
        """Split out the system instruction and map the rest to contents."""
        system_parts = []
        contents = []

        for message in messages:
            if message.role == MessageRole.SYSTEM:
                system_parts.append(message.content or "")
            elif message.role == MessageRole.USER:
                contents.append({"role": "user", "parts": [{"text": message.content or ""}]})
            elif message.role == MessageRole.ASSISTANT and message.tool_call:
                contents.append({
                    "role": "model",
                    "parts": [{
                        "function_call": {
                            "name": message.tool_call.name,
                            "args": message.tool_call.arguments,
                        }
                    }],
                })
            elif message.role == MessageRole.ASSISTANT:
                contents.append({"role": "model", "parts": [{"text": message.content or ""}]})
            else:
                contents.append({
                    "role": "function",
                    "parts": [{
                        "function_response": {
                            "name": message.tool_name,
                            "response": {"content": json.loads(message.content or "{}")},
                        }
                    }],
                })

        system = "\n\n".join(system_parts) or None
        return system, contents

    def _parse(self, response) -> ProviderReply:
        if not response.candidates:
            raise ProviderError(self.name, "response has no candidates")

        texts = []
        for part in response.candidates[0].content.parts:
            call = part.function_call
            if call and call.name:
                args = type(call).to_dict(call).get("args") or {}
                return ProviderReply(tool_call=ToolCall(name=call.name, arguments=args))
            if part.text:
                texts.append(part.text)

        return ProviderReply(text="".join(texts).strip())

    async def _send(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]],
        tool_choice: ToolChoice,
    ) -> ProviderReply:
        self._configure_genai()
        system, contents = self._to_contents(messages)

        model = genai.GenerativeModel(
            model_name=self.model_id,
            system_instruction=system,
            generation_config={
                "temperature": self.spec.temperature,
                "max_output_tokens": self.spec.max_tokens,
            },
            tools=self._to_tools(tools) if tools else None,
        )

        kwargs = {}
        if tools:
            mode = "AUTO" if tool_choice == "auto" else "NONE"
            kwargs["tool_config"] = {"function_calling_config": {"mode": mode}}

        response = await model.generate_content_async(contents, **kwargs)
        return self._parse(response)
