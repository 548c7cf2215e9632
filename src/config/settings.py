"""
Configuration Management for the Fiscal Advisor

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Provider credentials are read once at startup and turned into an ordered
list of ProviderSpec objects that is handed to the provider chain.
A missing API key disables that provider; it never fails startup.
"""

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.conversation import ProviderKind, ProviderSpec


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key (provider disabled when empty)"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class GroqSettings(BaseSettings):
    """Groq (OpenAI-compatible) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GROQ_",
        env_file=".env",
        extra="ignore"
    )

    api_key: Optional[str] = None
    model_name: str = "llama-3.3-70b-versatile"
    base_url: str = "https://api.groq.com/openai/v1"


class OpenRouterSettings(BaseSettings):
    """OpenRouter (OpenAI-compatible) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OPENROUTER_",
        env_file=".env",
        extra="ignore"
    )

    api_key: Optional[str] = None
    model_name: str = "meta-llama/llama-3.3-70b-instruct"
    base_url: str = "https://openrouter.ai/api/v1"


class AdvisorSettings(BaseSettings):
    """Behaviour of the conversational advisor."""

    model_config = SettingsConfigDict(
        env_prefix="ADVISOR_",
        env_file=".env",
        extra="ignore"
    )

    timezone: str = Field(
        default="America/Santiago",
        description="Civil timezone used for every period calculation"
    )
    provider_order: str = Field(
        default="gemini,groq,openrouter",
        description="Comma-separated provider priority order"
    )
    provider_timeout_seconds: float = Field(
        default=25.0,
        gt=0,
        le=120,
        description="Upper bound for a single provider attempt"
    )
    max_top_expenses: int = Field(
        default=15,
        ge=1,
        description="Expense groups rendered into the model context"
    )
    search_limit: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum records returned by search_transactions"
    )
    tip_marker: str = Field(
        default="propina",
        description="Title marker that identifies tips (excluded from service metrics)"
    )
    anchor_datetime: Optional[datetime] = Field(
        default=None,
        description="Pin the advisor's notion of 'now' (ISO 8601)"
    )
    assistant_name: str = "Asesor RegistBar"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def provider_order_list(self) -> list[str]:
        return [
            name.strip().lower()
            for name in self.provider_order.split(",")
            if name.strip()
        ]


class AuthSettings(BaseSettings):
    """Bearer token verification."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        extra="ignore"
    )

    jwt_secret: Optional[str] = Field(
        default=None,
        description="HS256 secret used to sign caller tokens"
    )
    jwt_audience: Optional[str] = Field(
        default="authenticated",
        description="Expected 'aud' claim (empty to skip the check)"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = "Transactions"
    goals_sheet_name: str = "Goals"
    profiles_sheet_name: str = "Profiles"
    interactions_sheet_name: str = "AIInteractions"

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """HTTP application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = False
    cors_allow_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )
    use_storage: bool = Field(
        default=True,
        description="Use Google Sheets; falls back to in-memory stores when False"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def groq(self) -> GroqSettings:
        return GroqSettings()

    @property
    def openrouter(self) -> OpenRouterSettings:
        return OpenRouterSettings()

    @property
    def advisor(self) -> AdvisorSettings:
        return AdvisorSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    def provider_specs(self) -> list[ProviderSpec]:
        """
        Build the ordered provider list from ADVISOR_PROVIDER_ORDER.

        Unknown names in the order are ignored. Providers without a key
        are still listed so the chain can report them as skipped.
        """
        gemini = self.gemini
        groq = self.groq
        openrouter = self.openrouter

        available = {
            "gemini": ProviderSpec(
                name="gemini",
                kind=ProviderKind.GEMINI,
                endpoint="https://generativelanguage.googleapis.com",
                credential=gemini.api_key,
                model_id=gemini.model_name,
                temperature=gemini.temperature,
                max_tokens=gemini.max_tokens,
            ),
            "groq": ProviderSpec(
                name="groq",
                kind=ProviderKind.OPENAI_COMPATIBLE,
                endpoint=groq.base_url,
                credential=groq.api_key,
                model_id=groq.model_name,
            ),
            "openrouter": ProviderSpec(
                name="openrouter",
                kind=ProviderKind.OPENAI_COMPATIBLE,
                endpoint=openrouter.base_url,
                credential=openrouter.api_key,
                model_id=openrouter.model_name,
            ),
        }

        return [
            available[name]
            for name in self.advisor.provider_order_list
            if name in available
        ]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("advisor", "auth", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    for spec in settings.provider_specs():
        results[f"provider_{spec.name}"] = spec.is_configured

    return results
