"""LLM provider services package."""

from src.services.llm.chain import ChainResult, ProviderChain, build_provider_chain
from src.services.llm.gemini import GeminiProvider
from src.services.llm.interface import (
    AllProvidersExhaustedError,
    LLMProvider,
    ProviderError,
    looks_like_tool_output,
)
from src.services.llm.openai_compatible import OpenAICompatibleProvider

__all__ = [
    "AllProvidersExhaustedError",
    "ChainResult",
    "GeminiProvider",
    "LLMProvider",
    "OpenAICompatibleProvider",
    "ProviderChain",
    "ProviderError",
    "build_provider_chain",
    "looks_like_tool_output",
]
