"""Services package."""

from src.services.identity import (
    IdentityResolverInterface,
    JWTIdentityResolver,
    UnauthorizedError,
)
from src.services.llm import (
    AllProvidersExhaustedError,
    LLMProvider,
    ProviderChain,
    ProviderError,
    build_provider_chain,
)
from src.services.storage import (
    ConnectionError,
    InteractionLogStoreInterface,
    LedgerStoreInterface,
    ProfileStoreInterface,
    StorageError,
)

__all__ = [
    # Identity
    "IdentityResolverInterface",
    "JWTIdentityResolver",
    "UnauthorizedError",
    # LLM providers
    "AllProvidersExhaustedError",
    "LLMProvider",
    "ProviderChain",
    "ProviderError",
    "build_provider_chain",
    # Storage services
    "ConnectionError",
    "InteractionLogStoreInterface",
    "LedgerStoreInterface",
    "ProfileStoreInterface",
    "StorageError",
]
