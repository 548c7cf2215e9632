"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The barber (or their accountant) can view the data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for one shop)
- Limited query capabilities (we filter in Python)
- gspread is blocking, so every call runs in a worker thread

The implementation follows the abstract interfaces, so we can swap
to PostgreSQL later without changing the advisor.
"""

import asyncio
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from zoneinfo import ZoneInfo

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import GoogleSheetsSettings, get_settings
from src.models.interaction import InteractionLogEntry
from src.models.ledger import (
    FinancialRecord,
    Goal,
    Profile,
    TransactionCategory,
    TransactionType,
)
from src.services.storage.interface import (
    ConnectionError,
    InteractionLogStoreInterface,
    LedgerStoreInterface,
    ProfileStoreInterface,
    StorageError,
)
from src.services.storage.memory import filter_records


logger = structlog.get_logger(__name__)


# Column layout of each worksheet (header row)
TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "date",
    "type",
    "category",
    "title",
    "amount",
    "gross_amount",
    "commission_amount",
]

GOAL_COLUMNS = [
    "user_id",
    "title",
    "target_amount",
    "current_amount",
    "deadline",
    "is_active",
]

PROFILE_COLUMNS = [
    "user_id",
    "first_name",
    "last_name",
]

INTERACTION_COLUMNS = [
    "entry_id",
    "created_at",
    "correlation_id",
    "user_id",
    "query",
    "response",
    "provider_used",
    "model_used",
    "context_json",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read_rows(self, title: str, columns: list[str]) -> list[dict[str, Any]]:
        """All data rows of a worksheet as dicts keyed by header."""
        sheet = self.get_worksheet(title, columns)
        return sheet.get_all_records(
            expected_headers=columns,
            value_render_option="UNFORMATTED_VALUE",
        )


# =============================================================================
# Row parsing helpers
# =============================================================================

# Sheets serial dates count days from this epoch
_SERIAL_EPOCH = datetime(1899, 12, 30)

# "8.000" / "1,500": thousands grouping or decimal mark, cannot tell which
_GROUPED_NUMBER = re.compile(r"^-?\d{1,3}([.,]\d{3})+$")


def _decimal(value: Any) -> Optional[Decimal]:
    """
    Parse an amount cell.

    Rows are read unformatted, so numeric cells arrive as int/float.
    Text cells must be plain numbers; separators are never guessed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    text = str(value).strip()
    if "," in text or _GROUPED_NUMBER.match(text):
        raise ValueError(f"Ambiguous number: {value!r}")
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")


def _timestamp(value: Any, tz: ZoneInfo) -> datetime:
    if isinstance(value, (int, float)):
        return (_SERIAL_EPOCH + timedelta(days=value)).replace(tzinfo=tz)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz)
    return moment


def _date(value: Any) -> Optional[date]:
    if isinstance(value, (int, float)):
        return (_SERIAL_EPOCH + timedelta(days=value)).date()
    text = _text(value)
    return date.fromisoformat(text[:10]) if text else None


def _text(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return text or None


def row_to_record(row: dict[str, Any], tz: ZoneInfo) -> FinancialRecord:
    """Convert a Transactions row into a FinancialRecord."""
    return FinancialRecord(
        id=str(row["id"]),
        owner_id=str(row["user_id"]),
        occurred_at=_timestamp(row["date"], tz),
        direction=TransactionType(str(row["type"]).strip().lower()),
        category=TransactionCategory(
            (_text(row.get("category")) or "other").lower()
        ),
        title=_text(row.get("title")),
        amount=_decimal(row["amount"]) or Decimal("0"),
        gross_amount=_decimal(row.get("gross_amount")),
        commission_amount=_decimal(row.get("commission_amount")),
    )


def row_to_goal(row: dict[str, Any]) -> Goal:
    """Convert a Goals row into a Goal."""
    return Goal(
        owner_id=str(row["user_id"]),
        title=str(row["title"]),
        target_amount=_decimal(row["target_amount"]) or Decimal("0"),
        current_amount=_decimal(row.get("current_amount")) or Decimal("0"),
        deadline=_date(row.get("deadline")),
        is_active=str(row.get("is_active", "TRUE")).strip().lower() not in ("false", "0", "no"),
    )


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    One transaction per row. Rows that fail to parse are skipped and
    reported in the log; they never abort the whole read.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        timezone: str = "America/Santiago",
    ):
        self._client = client or GoogleSheetsClient()
        self._tz = ZoneInfo(timezone)

    def _load(self) -> list[FinancialRecord]:
        rows = self._client.read_rows(
            self._client.settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
        )
        records = []
        for index, row in enumerate(rows, start=2):  # Row 1 is the header
            try:
                records.append(row_to_record(row, self._tz))
            except (KeyError, ValueError) as e:
                logger.warning("ledger_row_skipped", row=index, error=str(e))
        return records

    async def _all_records(self) -> list[FinancialRecord]:
        try:
            return await asyncio.to_thread(self._load)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read transactions: {e}")

    async def list_records(
        self,
        owner_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[FinancialRecord]:
        records = await self._all_records()
        return filter_records(records, owner_id, start, end)

    async def search_records(
        self,
        owner_id: str,
        text: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 20,
    ) -> list[FinancialRecord]:
        records = await self._all_records()
        matched = filter_records(records, owner_id, start, end, text)
        # Sort by date descending (newest first)
        matched.sort(key=lambda r: r.occurred_at, reverse=True)
        return matched[:limit]


class GoogleSheetsProfileStore(ProfileStoreInterface):
    """Profiles and goals read from their own worksheets."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def get_profile(self, owner_id: str) -> Optional[Profile]:
        try:
            rows = await asyncio.to_thread(
                self._client.read_rows,
                self._client.settings.profiles_sheet_name,
                PROFILE_COLUMNS,
            )
        except Exception as e:
            raise StorageError(f"Failed to read profiles: {e}")

        for row in rows:
            if str(row.get("user_id")) == owner_id:
                return Profile(
                    owner_id=owner_id,
                    first_name=_text(row.get("first_name")),
                    last_name=_text(row.get("last_name")),
                )
        return None

    async def list_active_goals(self, owner_id: str) -> list[Goal]:
        try:
            rows = await asyncio.to_thread(
                self._client.read_rows,
                self._client.settings.goals_sheet_name,
                GOAL_COLUMNS,
            )
        except Exception as e:
            raise StorageError(f"Failed to read goals: {e}")

        goals = []
        for row in rows:
            if str(row.get("user_id")) != owner_id:
                continue
            try:
                goal = row_to_goal(row)
            except (KeyError, ValueError) as e:
                logger.warning("goal_row_skipped", owner_id=owner_id, error=str(e))
                continue
            if goal.is_active:
                goals.append(goal)
        return goals


class GoogleSheetsInteractionLogStore(InteractionLogStoreInterface):
    """
    Google Sheets implementation of the interaction log.

    Entries are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _append(self, row: list) -> None:
        sheet = self._client.get_worksheet(
            self._client.settings.interactions_sheet_name,
            INTERACTION_COLUMNS,
            rows=5000,  # More rows for the log
        )
        sheet.append_row(row, value_input_option="RAW")

    async def append_entry(self, entry: InteractionLogEntry) -> bool:
        try:
            await asyncio.to_thread(self._append, entry.to_sheets_row())
            return True
        except Exception as e:
            raise StorageError(f"Failed to append interaction: {e}")
