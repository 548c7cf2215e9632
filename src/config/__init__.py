"""Configuration package."""

from src.config.settings import (
    AdvisorSettings,
    AppSettings,
    AuthSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    GroqSettings,
    OpenRouterSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AdvisorSettings",
    "AppSettings",
    "AuthSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "GroqSettings",
    "OpenRouterSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
