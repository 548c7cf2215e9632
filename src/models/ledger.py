"""
Ledger Data Models for the Fiscal Advisor

These models define the strict schemas for the financial data the advisor
reads. The advisor NEVER writes ledger data: records, goals and profiles
are created elsewhere and only queried here.

DESIGN DECISION: The sign convention is normalized at the model boundary.
Expenses may arrive as negative numbers (the mobile app stores them that
way) but every FinancialRecord holds them as positive magnitudes, so the
aggregation code never has to guess.
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money movement."""
    INCOME = "income"
    EXPENSE = "expense"


class TransactionCategory(str, Enum):
    """
    Categories used by the mobile app.

    service: a haircut/shave, tip: gratuity, supply: products bought,
    other: anything else (chair rent, commissions paid, ...).
    """
    SERVICE = "service"
    TIP = "tip"
    SUPPLY = "supply"
    OTHER = "other"


class PeriodToken(str, Enum):
    """Symbolic periods the model may request."""
    TODAY = "today"
    YESTERDAY = "yesterday"
    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    THIS_YEAR = "this_year"
    LAST_YEAR = "last_year"
    CUSTOM = "custom"
    TOTAL = "total"  # No date filter


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class FinancialRecord(BaseModel):
    """
    A single income or expense entry.

    amount is the value actually credited (income) or spent (expense).
    For services paid through a chair-rental/commission model the gross
    charged and the commission are kept separately for reference.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    occurred_at: datetime
    direction: TransactionType
    category: TransactionCategory = TransactionCategory.OTHER
    title: Optional[str] = None
    amount: Decimal
    gross_amount: Optional[Decimal] = None
    commission_amount: Optional[Decimal] = None

    @field_validator("occurred_at")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("occurred_at must be timezone-aware")
        return v

    @field_validator("title")
    @classmethod
    def blank_title_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def normalize_expense_sign(self) -> "FinancialRecord":
        """Expenses are stored as positive magnitudes."""
        if self.direction == TransactionType.EXPENSE and self.amount < 0:
            self.amount = -self.amount
        return self

    @property
    def label(self) -> str:
        """Grouping label: the title, or the category when untitled."""
        return self.title or self.category.value

    def to_tool_dict(self) -> dict:
        """Compact JSON-safe representation handed to the model."""
        return {
            "title": self.title,
            "type": self.direction.value,
            "category": self.category.value,
            "amount": json_number(self.amount),
            "date": self.occurred_at.isoformat(),
        }


class Goal(BaseModel):
    """A savings goal. Read-only for the advisor."""
    model_config = ConfigDict(str_strip_whitespace=True)

    owner_id: str
    title: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., ge=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[date] = None
    is_active: bool = True

    def describe(self) -> str:
        text = (
            f"{self.title}: {format_clp(self.current_amount)} de "
            f"{format_clp(self.target_amount)}"
        )
        if self.deadline:
            text += f" (plazo {self.deadline.isoformat()})"
        return text


class Profile(BaseModel):
    """The subset of the user profile the advisor needs."""

    owner_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return (self.first_name or "").strip()


# =============================================================================
# PERIODS
# =============================================================================

class PeriodQuery(BaseModel):
    """
    A requested period as sent by the model.

    period is kept as a plain string; PeriodResolver decides whether it is
    a known token so that unknown values can be reported explicitly.
    """

    period: str
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=1970, le=2200)

    @field_validator("period")
    @classmethod
    def normalize_period(cls, v: str) -> str:
        return v.strip().lower()


class DateRange(BaseModel):
    """Inclusive range of civil time: [start, end]."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("Range end cannot be before start")
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @property
    def days(self) -> int:
        """Number of civil days covered."""
        return (self.end.date() - self.start.date()).days + 1

    def describe(self) -> str:
        return f"{self.start.date().isoformat()} a {self.end.date().isoformat()}"


# =============================================================================
# AGGREGATION RESULT
# =============================================================================

class ServiceMetric(BaseModel):
    """Performance of one service (grouped by title)."""

    title: str
    count: int = Field(..., ge=0)
    income: Decimal


class SummaryResult(BaseModel):
    """
    Aggregated view of a ledger slice.

    Produced by LedgerAggregator, consumed once by the orchestrator.
    is_real_data is True only when at least one record matched; when it is
    False every numeric field is zero and must not be presented as data.
    """

    user_name: str = ""
    goals_text: str = ""
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    top_expenses_text: str = ""
    all_services_metrics: list[ServiceMetric] = Field(default_factory=list)
    is_real_data: bool = False
    period_requested: str
    record_count: int = 0
    expense_breakdown: dict[str, Decimal] = Field(default_factory=dict)
    date_range: Optional[DateRange] = None

    def to_tool_payload(self) -> dict[str, Any]:
        """Render for the model as a JSON-safe dict."""
        payload = {
            "period_requested": self.period_requested,
            "is_real_data": self.is_real_data,
            "record_count": self.record_count,
            "user_name": self.user_name,
            "goals": self.goals_text,
        }
        if self.date_range is not None:
            payload["date_range"] = {
                "start": self.date_range.start.isoformat(),
                "end": self.date_range.end.isoformat(),
            }
        if not self.is_real_data:
            payload["note"] = "No hay registros para este periodo."
            return payload

        payload.update({
            "income": json_number(self.income),
            "expense": json_number(self.expense),
            "balance": json_number(self.balance),
            "top_expenses": self.top_expenses_text,
            "services": [
                {
                    "title": metric.title,
                    "count": metric.count,
                    "income": json_number(metric.income),
                }
                for metric in self.all_services_metrics
            ],
            "granularity": "period_totals_only",
        })
        return payload


# =============================================================================
# HELPERS
# =============================================================================

def json_number(value: Decimal) -> Union[int, float]:
    """Decimal to int when integral, float otherwise."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def format_clp(amount: Decimal) -> str:
    """
    Format an amount as Chilean pesos: $11.000

    CLP has no minor unit, so amounts are rounded to whole pesos.
    """
    whole = int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    sign = "-" if whole < 0 else ""
    return f"{sign}${abs(whole):,}".replace(",", ".")

