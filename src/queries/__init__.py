"""Ledger query package: period resolution and aggregation."""

from src.queries.aggregator import DataUnavailableError, LedgerAggregator
from src.queries.periods import PeriodResolver, UnknownPeriodError

__all__ = [
    "DataUnavailableError",
    "LedgerAggregator",
    "PeriodResolver",
    "UnknownPeriodError",
]
