"""Caller identity package."""

from src.services.identity.resolver import (
    IdentityResolverInterface,
    JWTIdentityResolver,
    UnauthorizedError,
    extract_bearer_token,
)

__all__ = [
    "IdentityResolverInterface",
    "JWTIdentityResolver",
    "UnauthorizedError",
    "extract_bearer_token",
]
