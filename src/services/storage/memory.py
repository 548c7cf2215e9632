"""
In-Memory Storage

Used for local development without Google Sheets and by the test suite.
Filtering semantics mirror the Google Sheets implementation exactly.
"""

from datetime import datetime
from typing import Iterable, Optional

from src.models.interaction import InteractionLogEntry
from src.models.ledger import FinancialRecord, Goal, Profile
from src.services.storage.interface import (
    InteractionLogStoreInterface,
    LedgerStoreInterface,
    ProfileStoreInterface,
)


def filter_records(
    records: Iterable[FinancialRecord],
    owner_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    text: Optional[str] = None,
) -> list[FinancialRecord]:
    """Apply owner, date window and title filters."""
    needle = text.lower() if text else None
    matched = []
    for record in records:
        if record.owner_id != owner_id:
            continue
        if start and record.occurred_at < start:
            continue
        if end and record.occurred_at > end:
            continue
        if needle and needle not in (record.title or "").lower():
            continue
        matched.append(record)
    return matched


class InMemoryLedgerStore(LedgerStoreInterface):
    """Ledger held in a Python list."""

    def __init__(self, records: Optional[Iterable[FinancialRecord]] = None):
        self._records = list(records or [])

    def add(self, record: FinancialRecord) -> None:
        self._records.append(record)

    async def list_records(
        self,
        owner_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[FinancialRecord]:
        return filter_records(self._records, owner_id, start, end)

    async def search_records(
        self,
        owner_id: str,
        text: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[FinancialRecord]:
        matched = filter_records(self._records, owner_id, start, end, text)
        matched.sort(key=lambda r: r.occurred_at, reverse=True)
        return matched[:limit]


class InMemoryProfileStore(ProfileStoreInterface):
    """Profiles and goals held in dictionaries."""

    def __init__(
        self,
        profiles: Optional[Iterable[Profile]] = None,
        goals: Optional[Iterable[Goal]] = None,
    ):
        self._profiles = {p.owner_id: p for p in profiles or []}
        self._goals = list(goals or [])

    async def get_profile(self, owner_id: str) -> Optional[Profile]:
        return self._profiles.get(owner_id)

    async def list_active_goals(self, owner_id: str) -> list[Goal]:
        return [g for g in self._goals if g.owner_id == owner_id and g.is_active]


class InMemoryInteractionLogStore(InteractionLogStoreInterface):
    """Append-only list of interaction entries."""

    def __init__(self):
        self.entries: list[InteractionLogEntry] = []

    async def append_entry(self, entry: InteractionLogEntry) -> bool:
        self.entries.append(entry)
        return True
