"""
Tests for the Google Sheets stores.

The gspread client is replaced by an in-process fake that returns rows
the way get_all_records does.
"""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.models.ledger import TransactionType
from src.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    GoogleSheetsProfileStore,
    StorageError,
)
from src.services.storage.google_sheets import TRANSACTION_COLUMNS, row_to_goal, row_to_record
from tests.fakes import OWNER, SANTIAGO


class FakeSheetsClient:
    """Serves fixed rows per worksheet title."""

    def __init__(self, sheets=None, error=None):
        self.settings = SimpleNamespace(
            transactions_sheet_name="Transactions",
            goals_sheet_name="Goals",
            profiles_sheet_name="Profiles",
            interactions_sheet_name="AIInteractions",
        )
        self._sheets = sheets or {}
        self._error = error

    def read_rows(self, title, columns):
        if self._error:
            raise self._error
        return self._sheets.get(title, [])


TRANSACTIONS = [
    {"id": "t1", "user_id": OWNER, "date": "2026-01-10T13:00:00Z", "type": "income",
     "category": "service", "title": "Corte", "amount": 8000, "gross_amount": "", "commission_amount": ""},
    {"id": "t2", "user_id": OWNER, "date": "2026-01-10 16:00:00", "type": "EXPENSE",
     "category": "", "title": "Shampoo Premium", "amount": "-2500", "gross_amount": "", "commission_amount": ""},
    {"id": "t3", "user_id": OWNER, "date": "not a date", "type": "income",
     "category": "service", "title": "Roto", "amount": 1, "gross_amount": "", "commission_amount": ""},
    {"id": "t4", "user_id": "other", "date": "2026-01-10T10:00:00-03:00", "type": "income",
     "category": "tip", "title": "Propina", "amount": 1000, "gross_amount": "", "commission_amount": ""},
]


class TestRowParsing:
    """Row to model conversion."""

    def test_utc_suffix(self):
        """Test that 'Z' timestamps are read as UTC."""
        record = row_to_record(TRANSACTIONS[0], SANTIAGO)
        assert record.occurred_at == datetime(2026, 1, 10, 13, 0, tzinfo=timezone.utc)
        assert record.gross_amount is None

    def test_naive_timestamp_is_civil_time(self):
        """Test that naive timestamps get the civil timezone."""
        record = row_to_record(TRANSACTIONS[1], SANTIAGO)
        assert record.occurred_at.tzinfo == SANTIAGO
        assert record.direction == TransactionType.EXPENSE
        assert record.amount == Decimal("2500")
        assert record.category.value == "other"

    def test_bad_row_raises(self):
        with pytest.raises(ValueError):
            row_to_record(TRANSACTIONS[2], SANTIAGO)

    @pytest.mark.parametrize("amount", ["1,500", "8.000", "1.500.000", "-2,500"])
    def test_grouped_amount_text_is_rejected(self, amount):
        """Test that separators are never guessed, so 1,500 cannot become 1.5."""
        row = {**TRANSACTIONS[0], "amount": amount}
        with pytest.raises(ValueError):
            row_to_record(row, SANTIAGO)

    @pytest.mark.parametrize("amount, expected", [
        (8000, Decimal("8000")),
        (8000.0, Decimal("8000")),
        ("1500", Decimal("1500")),
        ("2500.5", Decimal("2500.5")),
    ])
    def test_unformatted_amounts(self, amount, expected):
        row = {**TRANSACTIONS[0], "amount": amount}
        assert row_to_record(row, SANTIAGO).amount == expected

    def test_serial_date(self):
        """Test that a date cell read unformatted (serial number) is civil time."""
        # 46032.5 is 2026-01-10 12:00
        row = {**TRANSACTIONS[0], "date": 46032.5}
        record = row_to_record(row, SANTIAGO)
        assert record.occurred_at == datetime(2026, 1, 10, 12, 0, tzinfo=SANTIAGO)

    def test_goal_row(self):
        """Test goal parsing, including the is_active flag."""
        goal = row_to_goal({
            "user_id": OWNER,
            "title": "Sillón",
            "target_amount": "300000",
            "current_amount": "",
            "deadline": "2026-06-30T00:00:00",
            "is_active": "FALSE",
        })
        assert goal.current_amount == Decimal("0")
        assert goal.deadline == date(2026, 6, 30)
        assert goal.is_active is False


class TestGoogleSheetsLedgerStore:
    """Filtering on top of sheet rows."""

    def test_bad_rows_are_skipped(self):
        """Test that one broken row does not abort the read."""
        store = GoogleSheetsLedgerStore(FakeSheetsClient({"Transactions": TRANSACTIONS}))
        records = asyncio.run(store.list_records(OWNER))
        assert sorted(r.id for r in records) == ["t1", "t2"]

    def test_search(self):
        store = GoogleSheetsLedgerStore(FakeSheetsClient({"Transactions": TRANSACTIONS}))
        records = asyncio.run(store.search_records(OWNER, text="SHAMPOO"))
        assert [r.id for r in records] == ["t2"]

    def test_read_failure(self):
        """Test that API failures surface as StorageError."""
        store = GoogleSheetsLedgerStore(FakeSheetsClient(error=RuntimeError("quota")))
        with pytest.raises(StorageError):
            asyncio.run(store.list_records(OWNER))


class TestGoogleSheetsProfileStore:
    """Profiles and goals."""

    def test_profile_and_active_goals(self):
        client = FakeSheetsClient({
            "Profiles": [{"user_id": OWNER, "first_name": "Pedro", "last_name": "Soto"}],
            "Goals": [
                {"user_id": OWNER, "title": "Sillón", "target_amount": 300000,
                 "current_amount": 50000, "deadline": "", "is_active": "TRUE"},
                {"user_id": OWNER, "title": "Viejo", "target_amount": 1000,
                 "current_amount": 0, "deadline": "", "is_active": "FALSE"},
            ],
        })
        store = GoogleSheetsProfileStore(client)

        profile = asyncio.run(store.get_profile(OWNER))
        goals = asyncio.run(store.list_active_goals(OWNER))

        assert profile.display_name == "Pedro"
        assert [g.title for g in goals] == ["Sillón"]

    def test_unknown_profile(self):
        store = GoogleSheetsProfileStore(FakeSheetsClient())
        assert asyncio.run(store.get_profile(OWNER)) is None


class TestGoogleSheetsClient:
    """Worksheet reads."""

    def test_rows_are_read_unformatted(self, monkeypatch):
        """Test that display formatting (e.g. CLP "8.000") never reaches the parser."""
        calls = []

        class FakeWorksheet:
            def get_all_records(self, **kwargs):
                calls.append(kwargs)
                return [TRANSACTIONS[0]]

        client = GoogleSheetsClient(SimpleNamespace(credentials_path="unused", spreadsheet_id="unused"))
        monkeypatch.setattr(client, "get_worksheet", lambda title, columns: FakeWorksheet())

        rows = client.read_rows("Transactions", TRANSACTION_COLUMNS)

        assert rows == [TRANSACTIONS[0]]
        assert calls[0]["value_render_option"] == "UNFORMATTED_VALUE"
        assert calls[0]["expected_headers"] == TRANSACTION_COLUMNS
