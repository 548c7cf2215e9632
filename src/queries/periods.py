"""
Period Resolution

Turns a symbolic period ("today", "last_month", "custom" + month/year)
into a concrete inclusive range of civil time.

This is DETERMINISTIC - no LLM involvement. The model only names the
period; the boundaries are always computed here.

DESIGN DECISION: Boundaries are computed with the IANA timezone database
(zoneinfo), not a fixed UTC offset, so daylight-saving changes in
America/Santiago do not shift days by an hour.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from src.models.ledger import DateRange, PeriodQuery, PeriodToken


class UnknownPeriodError(ValueError):
    """The requested period token is not supported."""

    def __init__(self, period: str):
        self.period = period
        valid = ", ".join(token.value for token in PeriodToken)
        super().__init__(f"Unknown period '{period}'. Valid periods: {valid}")


class PeriodResolver:
    """
    Resolves PeriodQuery objects in a fixed civil timezone.

    Returns None for the 'total' period (no date filter).
    Raises UnknownPeriodError for anything it does not recognise;
    an unknown token is never widened to "all records".
    """

    def __init__(self, timezone: str = "America/Santiago"):
        self._tz = ZoneInfo(timezone)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def localize(self, moment: datetime) -> datetime:
        """Express moment in the civil zone (naive values are assumed civil)."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self._tz)
        return moment.astimezone(self._tz)

    def resolve(
        self,
        query: PeriodQuery,
        now: datetime,
    ) -> Optional[DateRange]:
        try:
            token = PeriodToken(query.period)
        except ValueError:
            raise UnknownPeriodError(query.period)

        today = self.localize(now).date()

        if token == PeriodToken.TOTAL:
            return None

        if token == PeriodToken.TODAY:
            return self._days(today, today)

        if token == PeriodToken.YESTERDAY:
            yesterday = today - timedelta(days=1)
            return self._days(yesterday, yesterday)

        if token == PeriodToken.THIS_WEEK:
            monday = today - timedelta(days=today.weekday())
            return self._days(monday, monday + timedelta(days=6))

        if token == PeriodToken.LAST_WEEK:
            monday = today - timedelta(days=today.weekday() + 7)
            return self._days(monday, monday + timedelta(days=6))

        if token == PeriodToken.THIS_MONTH:
            return self._month(today.year, today.month)

        if token == PeriodToken.LAST_MONTH:
            last_day_prev = today.replace(day=1) - timedelta(days=1)
            return self._month(last_day_prev.year, last_day_prev.month)

        if token == PeriodToken.THIS_YEAR:
            return self._year(today.year)

        if token == PeriodToken.LAST_YEAR:
            return self._year(today.year - 1)

        # CUSTOM
        year = query.year or today.year
        if query.month:
            return self._month(year, query.month)
        return self._year(year)

    def start_of_day(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self._tz)

    def end_of_day(self, day: date) -> datetime:
        """
        Last instant before the next day starts.

        Computed in UTC: when DST ends the clock repeats an hour before
        midnight, and that hour belongs to `day`.
        """
        next_start = self.start_of_day(day + timedelta(days=1)).astimezone(timezone.utc)
        return (next_start - timedelta(microseconds=1)).astimezone(self._tz)

    def _days(self, first: date, last: date) -> DateRange:
        """Range from the start of `first` to the end of `last`."""
        return DateRange(start=self.start_of_day(first), end=self.end_of_day(last))

    def _month(self, year: int, month: int) -> DateRange:
        last_day = calendar.monthrange(year, month)[1]
        return self._days(date(year, month, 1), date(year, month, last_day))

    def _year(self, year: int) -> DateRange:
        return self._days(date(year, 1, 1), date(year, 12, 31))

    def describe(self, query: PeriodQuery) -> str:
        """Label used in results and logs, e.g. 'custom 2024-02'."""
        if query.period == PeriodToken.CUSTOM.value:
            if query.month:
                year = f"{query.year}-" if query.year else ""
                return f"custom {year}{query.month:02d}"
            if query.year:
                return f"custom {query.year}"
        return query.period
