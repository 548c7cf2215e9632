"""
Provider Chain

An ordered list of interchangeable LLM backends.

Selection policy:
1. Try providers strictly in configured priority order
2. Skip providers without a credential
3. One attempt per provider, no retries, no backoff
4. The first success wins; later providers are never called
5. If nothing succeeded, raise AllProvidersExhaustedError
"""

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from src.models.conversation import (
    ChatMessage,
    ProviderKind,
    ProviderReply,
    ProviderSpec,
)
from src.services.llm.gemini import GeminiProvider
from src.services.llm.interface import (
    AllProvidersExhaustedError,
    LLMProvider,
    ProviderError,
)
from src.services.llm.openai_compatible import OpenAICompatibleProvider


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChainResult:
    """The reply together with the provider that produced it."""

    provider: LLMProvider
    reply: ProviderReply


class ProviderChain:
    """Failover over an ordered list of providers."""

    def __init__(self, providers: list[LLMProvider]):
        self._providers = list(providers)

    @property
    def providers(self) -> list[LLMProvider]:
        return list(self._providers)

    @property
    def configured_providers(self) -> list[LLMProvider]:
        return [p for p in self._providers if p.is_configured]

    async def send(
        self,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> ChainResult:
        failures: dict[str, str] = {}

        for provider in self._providers:
            if not provider.is_configured:
                logger.info("provider_skipped", provider=provider.name, reason="no_credential")
                failures[provider.name] = "not configured"
                continue

            try:
                reply = await provider.send(messages, tools)
            except ProviderError as e:
                logger.warning(
                    "provider_attempt_failed",
                    provider=provider.name,
                    model=provider.model_id,
                    error=str(e),
                )
                failures[provider.name] = str(e)
                continue

            logger.info(
                "provider_succeeded",
                provider=provider.name,
                model=provider.model_id,
                tool_call=reply.tool_call.name if reply.tool_call else None,
            )
            return ChainResult(provider=provider, reply=reply)

        logger.error("all_providers_exhausted", failures=failures)
        raise AllProvidersExhaustedError(failures)


_PROVIDER_CLASSES = {
    ProviderKind.GEMINI: GeminiProvider,
    ProviderKind.OPENAI_COMPATIBLE: OpenAICompatibleProvider,
}


def build_provider_chain(
    specs: list[ProviderSpec],
    timeout: float = 25.0,
) -> ProviderChain:
    """Create one provider per spec, keeping the configured order."""
    providers = [_PROVIDER_CLASSES[spec.kind](spec, timeout=timeout) for spec in specs]
    return ProviderChain(providers)
