"""
Caller Identity Resolution

Turns the Authorization header into an owner id before any advisor logic
runs. Tokens are HS256 JWTs as issued by the auth backend (Supabase-style:
the user id is the `sub` claim, audience `authenticated`).
"""

from abc import ABC, abstractmethod
from typing import Optional

import jwt
import structlog


logger = structlog.get_logger(__name__)


class UnauthorizedError(Exception):
    """No resolvable caller identity."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token part of 'Bearer <token>'."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authorization header must be 'Bearer <token>'")
    return token.strip()


class IdentityResolverInterface(ABC):
    """Resolves a bearer token to an owner id."""

    @abstractmethod
    async def resolve(self, token: str) -> str:
        """
        Raises:
            UnauthorizedError: If the token does not identify a user
        """
        pass


class JWTIdentityResolver(IdentityResolverInterface):
    """Verifies HS256 tokens with a shared secret."""

    def __init__(
        self,
        secret: Optional[str],
        audience: Optional[str] = "authenticated",
        algorithms: Optional[list[str]] = None,
    ):
        self._secret = secret
        self._audience = audience or None
        self._algorithms = algorithms or ["HS256"]

        if not secret:
            logger.warning("jwt_secret_missing", detail="every request will be rejected")

    async def resolve(self, token: str) -> str:
        if not self._secret:
            raise UnauthorizedError("Token verification is not configured")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=self._algorithms,
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.info("token_rejected", error=str(e))
            raise UnauthorizedError("Invalid token")

        owner_id = payload.get("sub")
        if not owner_id:
            raise UnauthorizedError("Token has no subject")
        return str(owner_id)
