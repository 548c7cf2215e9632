"""Interaction logging package."""

from src.audit.logger import InteractionLogger, create_correlation_id

__all__ = ["InteractionLogger", "create_correlation_id"]
