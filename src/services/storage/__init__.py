"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory stores back local
development and tests.
"""

from src.services.storage.interface import (
    ConnectionError,
    InteractionLogStoreInterface,
    LedgerStoreInterface,
    ProfileStoreInterface,
    StorageError,
)
from src.services.storage.memory import (
    InMemoryInteractionLogStore,
    InMemoryLedgerStore,
    InMemoryProfileStore,
)
from src.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsInteractionLogStore,
    GoogleSheetsLedgerStore,
    GoogleSheetsProfileStore,
)

__all__ = [
    # Interfaces
    "InteractionLogStoreInterface",
    "LedgerStoreInterface",
    "ProfileStoreInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryInteractionLogStore",
    "InMemoryLedgerStore",
    "InMemoryProfileStore",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsInteractionLogStore",
    "GoogleSheetsLedgerStore",
    "GoogleSheetsProfileStore",
]
