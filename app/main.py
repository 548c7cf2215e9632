"""
HTTP API for the Fiscal Advisor

The mobile app talks to a single endpoint:

    POST /advise  {query, history[]}  →  {answer}

DESIGN PRINCIPLES:
1. The caller is identified before any advisor logic runs
2. Every failure is a JSON body with an "error" key
3. Model output is never returned on failure, only a generic message
4. No per-user state: each request carries its full history
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.audit import create_correlation_id
from src.config import get_settings, validate_all_settings
from src.models.conversation import ConversationTurn
from src.orchestrator import ConversationOrchestrator, create_app_components
from src.queries import DataUnavailableError
from src.services.identity import (
    IdentityResolverInterface,
    UnauthorizedError,
    extract_bearer_token,
)
from src.services.llm import AllProvidersExhaustedError


logger = structlog.get_logger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

GENERIC_ERROR = "El asesor no está disponible en este momento. Intenta de nuevo."
DATA_ERROR = "No se pudieron leer tus datos financieros. Intenta de nuevo."


class AdviseRequest(BaseModel):
    """Body of POST /advise."""

    model_config = ConfigDict(str_strip_whitespace=True)

    query: str = Field(..., min_length=1)
    history: list[ConversationTurn] = Field(default_factory=list)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(
    orchestrator: Optional[ConversationOrchestrator] = None,
    identity_resolver: Optional[IdentityResolverInterface] = None,
) -> FastAPI:
    """
    Build the ASGI app.

    Components not passed in are created from settings.
    """
    settings = get_settings()

    if orchestrator is None or identity_resolver is None:
        logger.info("settings_checked", **validate_all_settings())
        default_orchestrator, default_resolver, _ = create_app_components(settings)
        orchestrator = orchestrator or default_orchestrator
        identity_resolver = identity_resolver or default_resolver

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Background interaction log writes
        await orchestrator.flush_logs()

    app = FastAPI(title="Fiscal Advisor", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.cors_origins_list or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOW_HEADERS,
        allow_credentials=False,
    )

    @app.get("/health")
    async def health():
        """Health check endpoint (does not call any provider)."""
        return {
            "status": "ok",
            "providers": {
                provider.name: provider.is_configured
                for provider in orchestrator.chain.providers
            },
        }

    @app.post("/advise")
    async def advise(
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ):
        correlation_id = create_correlation_id()

        try:
            token = extract_bearer_token(authorization)
            owner_id = await identity_resolver.resolve(token)
        except UnauthorizedError as e:
            logger.info("request_unauthorized", reason=str(e), correlation_id=str(correlation_id))
            return _error("Unauthorized", 401)

        try:
            body = AdviseRequest.model_validate(await request.json())
        except (ValidationError, ValueError) as e:
            logger.info("invalid_request_body", error=str(e), correlation_id=str(correlation_id))
            return _error("Invalid request body: 'query' is required", 400)

        try:
            turn = await orchestrator.answer(
                owner_id=owner_id,
                query=body.query,
                history=body.history,
                correlation_id=correlation_id,
            )
        except AllProvidersExhaustedError:
            return _error(GENERIC_ERROR, 500)
        except DataUnavailableError:
            return _error(DATA_ERROR, 500)
        except Exception as e:
            logger.exception("advise_unexpected_error", error=str(e), correlation_id=str(correlation_id))
            return _error(GENERIC_ERROR, 500)

        return {"answer": turn.answer}

    return app


logging.basicConfig(level=logging.INFO, format="%(message)s")

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
