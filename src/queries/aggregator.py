"""
Ledger Aggregation Engine

DESIGN DECISION: Aggregation is DETERMINISTIC.
The LLM only names a period or a search term. This engine fetches the
actual records and computes every figure the model is allowed to quote.

At no point does the LLM compute or estimate numbers itself.
It can only see what this engine returns from storage.

This is the critical boundary that prevents hallucination.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog

from src.models.ledger import (
    DateRange,
    FinancialRecord,
    ServiceMetric,
    SummaryResult,
    TransactionType,
    format_clp,
)
from src.services.storage import LedgerStoreInterface, ProfileStoreInterface


logger = structlog.get_logger(__name__)


class DataUnavailableError(Exception):
    """The ledger or profile store could not be read."""
    pass


class LedgerAggregator:
    """
    Produces SummaryResult objects and transaction searches.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - is_real_data is False when no record matched
    - Storage failures surface as DataUnavailableError, never as zeros
    """

    def __init__(
        self,
        ledger: LedgerStoreInterface,
        profiles: Optional[ProfileStoreInterface] = None,
        max_top_expenses: int = 15,
        search_limit: int = 20,
        tip_marker: str = "propina",
    ):
        self._ledger = ledger
        self._profiles = profiles
        self._max_top_expenses = max_top_expenses
        self._search_limit = search_limit
        self._tip_marker = tip_marker.lower()

    async def summarize(
        self,
        owner_id: str,
        date_range: Optional[DateRange],
        period_label: str,
    ) -> SummaryResult:
        """
        Aggregate the owner's records inside date_range.

        date_range=None means no date filter (all records).
        """
        try:
            records = await self._ledger.list_records(
                owner_id,
                start=date_range.start if date_range else None,
                end=date_range.end if date_range else None,
            )
        except Exception as e:
            logger.error("ledger_read_failed", owner_id=owner_id, error=str(e))
            raise DataUnavailableError(f"Could not read transactions: {e}") from e

        user_name, goals_text = await self._profile_context(owner_id)

        income = sum(
            (r.amount for r in records if r.direction == TransactionType.INCOME),
            Decimal("0"),
        )
        breakdown = self.expense_breakdown(records)
        expense = sum(breakdown.values(), Decimal("0"))

        return SummaryResult(
            user_name=user_name,
            goals_text=goals_text,
            income=income,
            expense=expense,
            balance=income - expense,
            top_expenses_text=self.render_top_expenses(breakdown),
            all_services_metrics=self.service_metrics(records),
            is_real_data=len(records) > 0,
            period_requested=period_label,
            record_count=len(records),
            expense_breakdown=breakdown,
            date_range=date_range,
        )

    async def search(
        self,
        owner_id: str,
        text: Optional[str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[FinancialRecord]:
        """Up to search_limit records whose title contains text, newest first."""
        try:
            records = await self._ledger.search_records(
                owner_id,
                text=text or None,
                start=start,
                end=end,
                limit=self._search_limit,
            )
        except Exception as e:
            logger.error("ledger_search_failed", owner_id=owner_id, error=str(e))
            raise DataUnavailableError(f"Could not search transactions: {e}") from e

        return records[:self._search_limit]

    def expense_breakdown(
        self,
        records: list[FinancialRecord],
    ) -> dict[str, Decimal]:
        """Expense totals grouped by title (category when untitled)."""
        groups: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for record in records:
            if record.direction == TransactionType.EXPENSE:
                groups[record.label] += abs(record.amount)
        return dict(groups)

    def render_top_expenses(self, breakdown: dict[str, Decimal]) -> str:
        """Largest expense groups first, capped to bound the prompt."""
        ranked = sorted(breakdown.items(), key=lambda item: item[1], reverse=True)
        return "\n".join(
            f"- {label}: {format_clp(total)}"
            for label, total in ranked[:self._max_top_expenses]
        )

    def service_metrics(self, records: list[FinancialRecord]) -> list[ServiceMetric]:
        """Per-service count and income, tips excluded, best first."""
        counts: dict[str, int] = defaultdict(int)
        totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))

        for record in records:
            if record.direction != TransactionType.INCOME:
                continue
            if self._tip_marker in (record.title or "").lower():
                continue
            counts[record.label] += 1
            totals[record.label] += record.amount

        metrics = [
            ServiceMetric(title=title, count=counts[title], income=totals[title])
            for title in totals
        ]
        metrics.sort(key=lambda m: m.income, reverse=True)
        return metrics

    async def _profile_context(self, owner_id: str) -> tuple[str, str]:
        """Display name and goals text, for prompt context only."""
        if self._profiles is None:
            return "", ""

        try:
            profile = await self._profiles.get_profile(owner_id)
            goals = await self._profiles.list_active_goals(owner_id)
        except Exception as e:
            logger.error("profile_read_failed", owner_id=owner_id, error=str(e))
            raise DataUnavailableError(f"Could not read profile or goals: {e}") from e

        user_name = profile.display_name if profile else ""
        goals_text = "\n".join(f"- {goal.describe()}" for goal in goals)
        return user_name, goals_text
