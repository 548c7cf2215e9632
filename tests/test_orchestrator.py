"""
Tests for the ConversationOrchestrator

Integration tests for full advisor turns with faked providers and
in-memory stores. The fake providers build their second-pass answer
from the tool result they receive, the way a real model is told to.
"""

import asyncio
import re
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from src.audit import InteractionLogger
from src.models.conversation import ConversationTurn, MessageRole, TurnRole
from src.models.ledger import format_clp
from src.orchestrator import (
    AdvisorTurn,
    ConversationOrchestrator,
    ConversationState,
    InvalidTransitionError,
)
from src.queries import DataUnavailableError, LedgerAggregator, PeriodResolver
from src.services.llm import AllProvidersExhaustedError, ProviderChain, looks_like_tool_output
from src.services.storage import InMemoryInteractionLogStore, InMemoryLedgerStore
from tests.fakes import (
    NOW,
    OWNER,
    SANTIAGO,
    FailingInteractionLogStore,
    FailingLedgerStore,
    FakeProvider,
    SlowInteractionLogStore,
    expense,
    income,
    last_tool_payload,
    text,
    tool,
)


QUESTION = "¿Cuánto gané hoy?"

TODAY_LEDGER = [
    income("t1", "8000", datetime(2026, 1, 10, 10, 0, tzinfo=SANTIAGO)),
    income("t2", "5000", datetime(2026, 1, 10, 13, 0, tzinfo=SANTIAGO)),
    expense("t3", "-2000", datetime(2026, 1, 10, 16, 0, tzinfo=SANTIAGO), title="Navajas"),
]

TOOL_PATH = [
    ConversationState.COMPOSING,
    ConversationState.AWAITING_FIRST_RESPONSE,
    ConversationState.TOOL_REQUESTED,
    ConversationState.EXECUTING_TOOL,
    ConversationState.AWAITING_SECOND_RESPONSE,
    ConversationState.RESPONDING,
    ConversationState.DONE,
]


def answer_from_summary(messages):
    """What a well-behaved model does with a summary result."""
    payload = last_tool_payload(messages)
    if not payload.get("is_real_data"):
        return text("No tengo registros de movimientos para hoy.")
    return text(f"Hoy llevas un balance de **{format_clp(Decimal(payload['balance']))}**.")


def answer_from_search(messages):
    payload = last_tool_payload(messages)
    titles = ", ".join(t["title"] for t in payload["transactions"])
    return text(f"Encontré {payload['count']} movimiento(s): {titles}.")


def explain_error(messages):
    payload = last_tool_payload(messages)
    return text(f"No puedo hacer eso ({payload['error']}).")


def connection_reset(messages):
    raise RuntimeError("connection reset")


def build(providers, ledger=None, log_store=None):
    log_store = log_store if log_store is not None else InMemoryInteractionLogStore()
    orchestrator = ConversationOrchestrator(
        chain=ProviderChain(providers),
        aggregator=LedgerAggregator(ledger if ledger is not None else InMemoryLedgerStore(TODAY_LEDGER)),
        resolver=PeriodResolver("America/Santiago"),
        interaction_logger=InteractionLogger(log_store),
        clock=lambda: NOW,
    )
    return orchestrator, log_store


def ask(orchestrator, query=QUESTION, history=None):
    """Run one turn and wait for its log write."""
    async def run():
        turn = await orchestrator.answer(OWNER, query, history or [])
        await orchestrator.flush_logs()
        return turn

    return asyncio.run(run())


class TestToolPath:
    """Question → tool call → ledger → answer."""

    def test_todays_earnings(self):
        """Test the 'how much did I make today' scenario end to end."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="today"),
            answer_from_summary,
        ])
        orchestrator, log_store = build([provider])

        turn = ask(orchestrator)

        assert "11.000" in turn.answer
        assert turn.states == TOOL_PATH
        assert turn.tool_result["income"] == 13000
        assert turn.tool_result["expense"] == 2000
        assert turn.tool_result["balance"] == 11000
        assert turn.tool_result["is_real_data"] is True

    def test_no_data_today(self):
        """Test that an empty ledger yields an answer with no figures."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="today"),
            answer_from_summary,
        ])
        orchestrator, _ = build([provider], ledger=InMemoryLedgerStore())

        turn = ask(orchestrator)

        assert turn.tool_result["is_real_data"] is False
        assert "balance" not in turn.tool_result
        assert "registros" in turn.answer
        assert not re.search(r"\d", turn.answer)

    def test_second_pass_shape(self):
        """Test the reduced message list and text-only request."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="today"),
            answer_from_summary,
        ])
        orchestrator, _ = build([provider])

        ask(orchestrator, history=[ConversationTurn(role=TurnRole.USER, text="hola")])

        first, second = provider.calls
        assert first["tool_choice"] == "auto"
        assert first["tools"]
        assert second["tool_choice"] == "none"
        roles = [m.role for m in second["messages"]]
        assert roles == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT, MessageRole.TOOL]
        assert second["messages"][1].content == QUESTION
        assert second["messages"][2].tool_call.name == "get_financial_summary"

    def test_search_transactions(self):
        """Test the shampoo search scenario."""
        ledger = InMemoryLedgerStore([
            expense("s1", "-2500", datetime(2026, 1, 8, 11, 0, tzinfo=SANTIAGO), title="Shampoo Premium"),
            expense("s2", "-1800", datetime(2026, 1, 9, 11, 0, tzinfo=SANTIAGO), title="Acondicionador"),
        ])
        provider = FakeProvider("groq", replies=[
            tool("search_transactions", query="shampoo"),
            answer_from_search,
        ])
        orchestrator, _ = build([provider], ledger=ledger)

        turn = ask(orchestrator, query="¿Cuánto pagué por el shampoo?")

        transactions = turn.tool_result["transactions"]
        assert [t["title"] for t in transactions] == ["Shampoo Premium"]
        assert transactions[0]["amount"] == 2500
        assert "Acondicionador" not in turn.answer

    def test_search_with_date_window(self):
        """Test that search dates are whole civil days."""
        ledger = InMemoryLedgerStore([
            income("c1", "8000", datetime(2026, 1, 9, 23, 30, tzinfo=SANTIAGO)),
            income("c2", "8000", datetime(2026, 1, 10, 0, 15, tzinfo=SANTIAGO)),
            income("c3", "8000", datetime(2026, 1, 10, 23, 59, tzinfo=SANTIAGO)),
        ])
        provider = FakeProvider("groq", replies=[
            tool("search_transactions", query="corte", startDate="2026-01-10", endDate="2026-01-10"),
            answer_from_search,
        ])
        orchestrator, _ = build([provider], ledger=ledger)

        turn = ask(orchestrator, query="¿Qué cortes hice hoy?")

        assert turn.tool_result["count"] == 2


class TestRecoverableToolErrors:
    """Errors the model is told about instead of failing the turn."""

    def test_unsupported_tool(self):
        """Test that an unknown tool name is answered with a structured error."""
        provider = FakeProvider("gemini", replies=[tool("delete_transactions", id="t1"), explain_error])
        orchestrator, log_store = build([provider])

        turn = ask(orchestrator)

        assert turn.state == ConversationState.DONE
        assert turn.tool_result["error"] == "unsupported_tool"
        assert turn.tool_result["is_real_data"] is False
        assert "unsupported_tool" in turn.answer
        assert len(log_store.entries) == 1

    def test_unknown_period(self):
        """Test that an unknown period is reported, not widened."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="fortnight"),
            explain_error,
        ])
        orchestrator, _ = build([provider])

        turn = ask(orchestrator)

        assert turn.tool_result["error"] == "unknown_period"
        assert "this_month" in turn.tool_result["valid_periods"]
        assert "income" not in turn.tool_result

    def test_invalid_arguments(self):
        """Test that schema violations are reported to the model."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="custom", month=13),
            explain_error,
        ])
        orchestrator, _ = build([provider])

        turn = ask(orchestrator)

        assert turn.tool_result["error"] == "invalid_arguments"


class TestPlainTextPath:
    """Questions answered without a tool."""

    def test_direct_answer(self):
        """Test the short state path and the log entry."""
        provider = FakeProvider("gemini", replies=[text("¡Hola! ¿En qué te ayudo?")])
        orchestrator, log_store = build([provider])

        turn = ask(orchestrator, query="hola")

        assert turn.answer == "¡Hola! ¿En qué te ayudo?"
        assert turn.states == [
            ConversationState.COMPOSING,
            ConversationState.AWAITING_FIRST_RESPONSE,
            ConversationState.RESPONDING,
            ConversationState.DONE,
        ]
        assert turn.used_tool is False
        assert len(provider.calls) == 1
        assert log_store.entries[0].context_data is None

    def test_history_is_replayed(self):
        """Test role mapping, blank turns and the repeated question."""
        provider = FakeProvider("gemini", replies=[text("Claro.")])
        orchestrator, _ = build([provider])
        history = [
            ConversationTurn(role=TurnRole.USER, text="hola"),
            ConversationTurn(role=TurnRole.ASSISTANT, text="¡Hola!"),
            ConversationTurn(role=TurnRole.ASSISTANT, text="   "),
            ConversationTurn(role=TurnRole.USER, text=QUESTION),
        ]

        ask(orchestrator, history=history)

        messages = provider.calls[0]["messages"]
        assert [(m.role, m.content) for m in messages[1:]] == [
            (MessageRole.USER, "hola"),
            (MessageRole.ASSISTANT, "¡Hola!"),
            (MessageRole.USER, QUESTION),
        ]

    def test_system_prompt_uses_clock(self):
        """Test that the prompt states the injected civil date."""
        provider = FakeProvider("gemini", replies=[text("ok")])
        orchestrator, _ = build([provider])

        ask(orchestrator)

        system = provider.calls[0]["messages"][0]
        assert system.role == MessageRole.SYSTEM
        assert "sábado 10 de enero de 2026, 20:00" in system.content


class TestFailover:
    """Provider selection across the two passes."""

    def test_second_pass_uses_same_provider(self):
        """Test that the provider that asked for the tool gets the result."""
        a = FakeProvider("a", error=RuntimeError("down"))
        b = FakeProvider("b", replies=[tool("get_financial_summary", period="today"), answer_from_summary])
        c = FakeProvider("c", replies=[text("unused")])
        orchestrator, log_store = build([a, b, c])

        turn = ask(orchestrator)

        assert turn.provider_name == "b"
        assert turn.model_id == "b-model"
        assert len(a.calls) == 1
        assert len(b.calls) == 2
        assert len(c.calls) == 0
        assert log_store.entries[0].provider_used == "b"

    def test_second_pass_failure_is_fatal(self):
        """Test that no other provider is tried once a tool result exists."""
        a = FakeProvider("a", replies=[tool("get_financial_summary", period="today"), connection_reset])
        b = FakeProvider("b", replies=[text("unused")])
        orchestrator, log_store = build([a, b])

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            ask(orchestrator)

        assert "a" in exc_info.value.failures
        assert b.calls == []
        assert log_store.entries == []

    def test_raw_json_first_reply_moves_to_next_provider(self):
        """Test that a first reply written as tool JSON counts as a provider failure."""
        a = FakeProvider("a", replies=[text('{"name": "get_financial_summary", "args": {"period": "today"}}')])
        b = FakeProvider("b", replies=[text("Hola, soy tu asesor.")])
        orchestrator, log_store = build([a, b])

        turn = ask(orchestrator, "hola")

        assert turn.answer == "Hola, soy tu asesor."
        assert turn.provider_name == "b"
        assert len(a.calls) == 1
        assert log_store.entries[0].provider_used == "b"

    def test_tool_syntax_first_reply_moves_to_next_provider(self):
        a = FakeProvider("a", replies=[text("search_transactions(query='shampoo')")])
        b = FakeProvider("b", replies=[text("No encontré ese producto.")])
        orchestrator, _ = build([a, b])

        turn = ask(orchestrator, "¿Cuánto gasté en shampoo?")

        assert turn.provider_name == "b"

    def test_all_providers_fail(self):
        """Test that exhaustion fails the turn and writes no log entry."""
        a = FakeProvider("a", error=RuntimeError("down"))
        b = FakeProvider("b", configured=False)
        orchestrator, log_store = build([a, b])

        with pytest.raises(AllProvidersExhaustedError):
            ask(orchestrator)

        assert log_store.entries == []

    def test_second_tool_call_is_rejected(self):
        """Test that the final pass must be text."""
        a = FakeProvider("a", replies=[
            tool("get_financial_summary", period="today"),
            tool("get_financial_summary", period="this_month"),
        ])
        orchestrator, _ = build([a])

        with pytest.raises(AllProvidersExhaustedError):
            ask(orchestrator)


class TestOutputGuard:
    """Raw tool output never reaches the user."""

    def test_json_final_text_rejected(self):
        """Test that a JSON echo of the tool result fails the turn."""
        a = FakeProvider("a", replies=[
            tool("get_financial_summary", period="today"),
            text('{"income": 13000, "balance": 11000}'),
        ])
        orchestrator, log_store = build([a])

        with pytest.raises(AllProvidersExhaustedError):
            ask(orchestrator)
        assert log_store.entries == []

    def test_tool_syntax_rejected(self):
        """Test that tool-call syntax written as text fails the turn."""
        a = FakeProvider("a", replies=[text("get_financial_summary(period='today')")])
        orchestrator, _ = build([a])

        with pytest.raises(AllProvidersExhaustedError):
            ask(orchestrator)

    @pytest.mark.parametrize("value, expected", [
        ('{"a": 1}', True),
        ("[1, 2]", True),
        ("```json\n{}\n```", True),
        ("", True),
        ("search_transactions(query='x')", True),
        ("Ganaste **$11.000** hoy.", False),
        ("{no es json} pero es texto", False),
    ])
    def test_looks_like_tool_output(self, value, expected):
        names = ["get_financial_summary", "search_transactions"]
        assert looks_like_tool_output(value, names) is expected


class TestFatalDataErrors:
    """Ledger failures fail the turn."""

    def test_ledger_unavailable(self):
        """Test that the model never answers without data."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="today"),
            answer_from_summary,
        ])
        orchestrator, log_store = build([provider], ledger=FailingLedgerStore())

        with pytest.raises(DataUnavailableError):
            ask(orchestrator)

        assert len(provider.calls) == 1
        assert log_store.entries == []


class TestInteractionLogging:
    """Side effects of a finished turn."""

    def test_entry_written_on_done(self):
        """Test the logged fields."""
        provider = FakeProvider("gemini", replies=[
            tool("get_financial_summary", period="today"),
            answer_from_summary,
        ])
        orchestrator, log_store = build([provider])

        turn = ask(orchestrator)

        entry = log_store.entries[0]
        assert entry.owner_id == OWNER
        assert entry.query == QUESTION
        assert entry.response == turn.answer
        assert entry.provider_used == "gemini"
        assert entry.model_used == "gemini-model"
        assert entry.context_data == turn.tool_result
        assert entry.correlation_id == turn.correlation_id

    def test_logging_failure_does_not_fail_turn(self):
        """Test that a broken log store still returns the answer."""
        provider = FakeProvider("gemini", replies=[text("Hola")])
        log_store = FailingInteractionLogStore()
        orchestrator, _ = build([provider], log_store=log_store)

        turn = ask(orchestrator)

        assert turn.answer == "Hola"
        assert log_store.attempts == 1

    def test_answer_does_not_wait_for_log_write(self):
        """Test that the turn returns while the storage write is still pending."""
        provider = FakeProvider("gemini", replies=[text("Hola")])
        log_store = SlowInteractionLogStore()
        orchestrator, _ = build([provider], log_store=log_store)

        async def run():
            turn = await orchestrator.answer(OWNER, "hola")
            written_before_return = len(log_store.entries)
            await orchestrator.flush_logs()
            return turn, written_before_return

        turn, written_before_return = asyncio.run(run())

        assert turn.answer == "Hola"
        assert written_before_return == 0
        assert len(log_store.entries) == 1


class TestAdvisorTurn:
    """State machine rules."""

    def _turn(self):
        return AdvisorTurn(owner_id=OWNER, query="q", correlation_id=uuid4())

    def test_cannot_skip_states(self):
        """Test that DONE is not reachable from COMPOSING."""
        turn = self._turn()
        with pytest.raises(InvalidTransitionError):
            turn.advance(ConversationState.DONE)

    def test_fail_from_any_open_state(self):
        """Test that FAILED is reachable mid-turn."""
        turn = self._turn()
        turn.advance(ConversationState.AWAITING_FIRST_RESPONSE)
        turn.fail(RuntimeError("boom"))
        assert turn.state == ConversationState.FAILED
        assert turn.error == "RuntimeError: boom"

    def test_terminal_states_are_final(self):
        """Test that nothing follows DONE."""
        turn = self._turn()
        for state in TOOL_PATH[1:]:
            turn.advance(state)
        with pytest.raises(InvalidTransitionError):
            turn.advance(ConversationState.FAILED)
