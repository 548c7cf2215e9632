"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for the stores the advisor
talks to. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the orchestration logic decoupled from storage implementation

The ledger and profile stores are READ-ONLY from the advisor's point of
view. The interaction log is append-only.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from src.models.interaction import InteractionLogEntry
from src.models.ledger import FinancialRecord, Goal, Profile


class LedgerStoreInterface(ABC):
    """
    Read access to a user's financial records.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_records(
        self,
        owner_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[FinancialRecord]:
        """
        List records owned by owner_id with occurred_at in [start, end].

        Args:
            owner_id: The record owner
            start: Inclusive lower bound (None = unbounded)
            end: Inclusive upper bound (None = unbounded)

        Returns:
            Matching records, in no particular order

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def search_records(
        self,
        owner_id: str,
        text: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[FinancialRecord]:
        """
        Find records whose title contains text (case-insensitive).

        Args:
            owner_id: The record owner
            text: Substring to look for in the title (None = any)
            start: Inclusive lower bound (None = unbounded)
            end: Inclusive upper bound (None = unbounded)
            limit: Maximum number of results

        Returns:
            Matching records, newest first

        Raises:
            StorageError: If the read fails
        """
        pass


class ProfileStoreInterface(ABC):
    """Read access to user profiles and savings goals."""

    @abstractmethod
    async def get_profile(self, owner_id: str) -> Optional[Profile]:
        """Return the profile, or None when the user never completed it."""
        pass

    @abstractmethod
    async def list_active_goals(self, owner_id: str) -> list[Goal]:
        """Return the user's active goals (possibly empty)."""
        pass


class InteractionLogStoreInterface(ABC):
    """
    Abstract interface for the interaction log.

    Entries are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_entry(self, entry: InteractionLogEntry) -> bool:
        """
        Append an entry to the log.

        Returns:
            True if logged successfully

        Raises:
            StorageError: If the write fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
