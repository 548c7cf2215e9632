"""
Main Orchestrator for the Fiscal Advisor

This module ties together all the components and defines the
end-to-end flow of one advisor turn:

    question + history → provider chain → (tool call → ledger → provider) → answer

DESIGN DECISION: The turn is an explicit state machine.
Every transition is recorded on the AdvisorTurn, so the two-pass
tool-calling flow can be asserted step by step instead of being hidden
in nested branches.

The orchestrator enforces the boundaries:
- No figure reaches the model unless the ledger produced it
- A failed ledger read fails the turn (the model never guesses)
- Raw tool-call syntax never reaches the user
- Every answered turn is logged
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

import structlog

from src.agents import (
    GET_FINANCIAL_SUMMARY,
    SEARCH_TRANSACTIONS,
    FinancialSummaryArgs,
    InvalidToolArgumentsError,
    SearchTransactionsArgs,
    ToolRegistry,
    UnsupportedToolError,
    build_system_prompt,
)
from src.audit import InteractionLogger, create_correlation_id
from src.config import Settings, get_settings
from src.models.conversation import ChatMessage, ConversationTurn, ToolCall, TurnRole
from src.models.interaction import InteractionLogEntry
from src.models.ledger import PeriodQuery, PeriodToken
from src.queries import LedgerAggregator, PeriodResolver, UnknownPeriodError
from src.services.identity import IdentityResolverInterface, JWTIdentityResolver
from src.services.llm import (
    AllProvidersExhaustedError,
    ProviderChain,
    ProviderError,
    build_provider_chain,
    looks_like_tool_output,
)
from src.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsInteractionLogStore,
    GoogleSheetsLedgerStore,
    GoogleSheetsProfileStore,
    InMemoryInteractionLogStore,
    InMemoryLedgerStore,
    InMemoryProfileStore,
)


logger = structlog.get_logger(__name__)


class ConversationState(str, Enum):
    """States of one advisor turn."""
    COMPOSING = "composing"
    AWAITING_FIRST_RESPONSE = "awaiting_first_response"
    TOOL_REQUESTED = "tool_requested"
    EXECUTING_TOOL = "executing_tool"
    AWAITING_SECOND_RESPONSE = "awaiting_second_response"
    RESPONDING = "responding"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    ConversationState.COMPOSING: {ConversationState.AWAITING_FIRST_RESPONSE},
    ConversationState.AWAITING_FIRST_RESPONSE: {
        ConversationState.RESPONDING,
        ConversationState.TOOL_REQUESTED,
    },
    ConversationState.TOOL_REQUESTED: {ConversationState.EXECUTING_TOOL},
    ConversationState.EXECUTING_TOOL: {ConversationState.AWAITING_SECOND_RESPONSE},
    ConversationState.AWAITING_SECOND_RESPONSE: {ConversationState.RESPONDING},
    ConversationState.RESPONDING: {ConversationState.DONE},
    ConversationState.DONE: set(),
    ConversationState.FAILED: set(),
}

_TERMINAL = {ConversationState.DONE, ConversationState.FAILED}


class InvalidTransitionError(Exception):
    """A turn tried to move to a state it cannot reach."""

    def __init__(self, current: ConversationState, target: ConversationState):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from {current.value} to {target.value}")


@dataclass
class AdvisorTurn:
    """
    Everything that happened during one question/answer cycle.

    `states` holds every state the turn went through, in order.
    """

    owner_id: str
    query: str
    correlation_id: UUID
    state: ConversationState = ConversationState.COMPOSING
    states: list[ConversationState] = field(
        default_factory=lambda: [ConversationState.COMPOSING]
    )
    answer: Optional[str] = None
    provider_name: Optional[str] = None
    model_id: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def advance(self, target: ConversationState) -> None:
        """Move to target. Any non-terminal state may move to FAILED."""
        allowed = _TRANSITIONS[self.state]
        if target == ConversationState.FAILED and self.state not in _TERMINAL:
            allowed = allowed | {ConversationState.FAILED}
        if target not in allowed:
            raise InvalidTransitionError(self.state, target)
        self.state = target
        self.states.append(target)

    def fail(self, error: Exception) -> None:
        self.error = f"{type(error).__name__}: {error}"
        if self.state not in _TERMINAL:
            self.advance(ConversationState.FAILED)

    @property
    def used_tool(self) -> bool:
        return self.tool_call is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationOrchestrator:
    """
    Runs advisor turns.

    FLOW:
    1. Compose [system prompt, history, question]
    2. Ask the provider chain (tools offered)
    3. Plain text → answer
    4. Tool call → run it against the ledger, then ask the SAME provider
       again with the result and no further tool calls allowed

    The orchestrator holds no per-user state; every turn is independent.
    """

    def __init__(
        self,
        chain: ProviderChain,
        aggregator: LedgerAggregator,
        resolver: Optional[PeriodResolver] = None,
        registry: Optional[ToolRegistry] = None,
        interaction_logger: Optional[InteractionLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        assistant_name: str = "Asesor RegistBar",
    ):
        self._chain = chain
        self._aggregator = aggregator
        self._resolver = resolver or PeriodResolver()
        self._registry = registry or ToolRegistry()
        self._interaction_logger = interaction_logger or InteractionLogger()
        self._clock = clock or _utcnow
        self._assistant_name = assistant_name

    @property
    def chain(self) -> ProviderChain:
        return self._chain

    def now(self) -> datetime:
        """Current moment in the civil timezone."""
        return self._resolver.localize(self._clock())

    def compose(
        self,
        query: str,
        history: list[ConversationTurn],
        now: datetime,
    ) -> list[ChatMessage]:
        """
        Build the first-pass message list.

        Blank turns are dropped. Clients send the full history, which may
        already end with the current question; it is not repeated.
        """
        turns = [turn for turn in history if turn.text.strip()]
        if turns and turns[-1].role == TurnRole.USER and turns[-1].text.strip() == query.strip():
            turns = turns[:-1]

        messages = [ChatMessage.system(self._system_prompt(now))]
        for turn in turns:
            if turn.role == TurnRole.USER:
                messages.append(ChatMessage.user(turn.text))
            else:
                messages.append(ChatMessage.assistant(turn.text))
        messages.append(ChatMessage.user(query))
        return messages

    async def answer(
        self,
        owner_id: str,
        query: str,
        history: Optional[list[ConversationTurn]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AdvisorTurn:
        """
        Answer one question.

        Returns the finished turn (state DONE). The interaction log write
        runs in the background; see flush_logs.

        Raises:
            AllProvidersExhaustedError: No provider produced a usable answer
            DataUnavailableError: The ledger could not be read
        """
        turn = AdvisorTurn(
            owner_id=owner_id,
            query=query,
            correlation_id=correlation_id or create_correlation_id(),
        )

        try:
            await self._run(turn, history or [])
        except Exception as e:
            turn.fail(e)
            self._interaction_logger.turn_failed(
                owner_id=owner_id,
                error_type=type(e).__name__,
                error_message=str(e),
                correlation_id=turn.correlation_id,
                provider=turn.provider_name,
            )
            raise

        self._interaction_logger.record_in_background(InteractionLogEntry(
            correlation_id=turn.correlation_id,
            owner_id=owner_id,
            query=query,
            response=turn.answer,
            provider_used=turn.provider_name,
            model_used=turn.model_id,
            context_data=turn.tool_result,
        ))
        return turn

    async def flush_logs(self) -> None:
        """Wait for interaction log writes still in flight."""
        await self._interaction_logger.flush()

    async def _run(self, turn: AdvisorTurn, history: list[ConversationTurn]) -> None:
        now = self.now()
        messages = self.compose(turn.query, history, now)

        # First pass
        turn.advance(ConversationState.AWAITING_FIRST_RESPONSE)
        first = await self._chain.send(messages, self._registry.schemas())
        turn.provider_name = first.provider.name
        turn.model_id = first.provider.model_id

        if not first.reply.is_tool_call:
            turn.advance(ConversationState.RESPONDING)
            # The chain already rejected raw tool output on this pass
            turn.answer = first.reply.text.strip()
            turn.advance(ConversationState.DONE)
            return

        call = first.reply.tool_call
        turn.tool_call = call
        turn.advance(ConversationState.TOOL_REQUESTED)

        # Tool execution
        turn.advance(ConversationState.EXECUTING_TOOL)
        turn.tool_result = await self.execute_tool(turn.owner_id, call, now)

        # Second pass, same provider, text only
        turn.advance(ConversationState.AWAITING_SECOND_RESPONSE)
        followup = [
            messages[0],
            ChatMessage.user(turn.query),
            ChatMessage.tool_request(call),
            ChatMessage.tool_result(call, json.dumps(turn.tool_result, ensure_ascii=False)),
        ]
        provider = first.provider
        try:
            second = await provider.send(
                followup,
                tools=self._registry.schemas(),
                tool_choice="none",
            )
        except ProviderError as e:
            logger.warning(
                "second_pass_failed",
                provider=provider.name,
                model=provider.model_id,
                error=str(e),
            )
            raise AllProvidersExhaustedError({provider.name: str(e)}) from e

        if second.is_tool_call:
            raise AllProvidersExhaustedError({
                provider.name: f"requested tool '{second.tool_call.name}' on the final pass",
            })

        turn.advance(ConversationState.RESPONDING)
        turn.answer = self._final_text(provider.name, second.text)
        turn.advance(ConversationState.DONE)

    def _final_text(self, provider_name: str, text: Optional[str]) -> str:
        text = (text or "").strip()
        if looks_like_tool_output(text, self._registry.names):
            logger.warning("unusable_final_text", provider=provider_name, length=len(text))
            raise AllProvidersExhaustedError({provider_name: "reply was empty or raw tool output"})
        return text

    async def execute_tool(
        self,
        owner_id: str,
        call: ToolCall,
        now: datetime,
    ) -> dict[str, Any]:
        """
        Run one tool call and return the JSON-safe result for the model.

        Unsupported tools, bad arguments and unknown periods become
        structured error results so the model can explain them.

        Raises:
            DataUnavailableError: The ledger could not be read (fatal)
        """
        try:
            args = self._registry.parse_arguments(call)
        except UnsupportedToolError as e:
            logger.warning("unsupported_tool_requested", owner_id=owner_id, tool=call.name)
            return {
                "error": "unsupported_tool",
                "message": f"La herramienta '{e.name}' no está disponible.",
                "available_tools": self._registry.names,
                "is_real_data": False,
            }
        except InvalidToolArgumentsError as e:
            logger.warning("invalid_tool_arguments", owner_id=owner_id, tool=call.name, detail=e.detail)
            return {
                "error": "invalid_arguments",
                "message": e.detail,
                "is_real_data": False,
            }

        if call.name == GET_FINANCIAL_SUMMARY:
            result = await self._financial_summary(owner_id, args, now)
        elif call.name == SEARCH_TRANSACTIONS:
            result = await self._search_transactions(owner_id, args)
        else:
            # Registered but not wired to the ledger
            result = {
                "error": "unsupported_tool",
                "message": f"La herramienta '{call.name}' no está disponible.",
                "available_tools": self._registry.names,
                "is_real_data": False,
            }

        logger.info(
            "tool_executed",
            owner_id=owner_id,
            tool=call.name,
            is_real_data=result.get("is_real_data"),
            error=result.get("error"),
        )
        return result

    async def _financial_summary(
        self,
        owner_id: str,
        args: FinancialSummaryArgs,
        now: datetime,
    ) -> dict[str, Any]:
        query = PeriodQuery(period=args.period, month=args.month, year=args.year)
        try:
            date_range = self._resolver.resolve(query, now)
        except UnknownPeriodError as e:
            return {
                "error": "unknown_period",
                "message": str(e),
                "valid_periods": [token.value for token in PeriodToken],
                "is_real_data": False,
            }

        summary = await self._aggregator.summarize(
            owner_id,
            date_range,
            self._resolver.describe(query),
        )
        return summary.to_tool_payload()

    async def _search_transactions(
        self,
        owner_id: str,
        args: SearchTransactionsArgs,
    ) -> dict[str, Any]:
        start = self._resolver.start_of_day(args.start_date) if args.start_date else None
        end = self._resolver.end_of_day(args.end_date) if args.end_date else None

        records = await self._aggregator.search(owner_id, args.query, start=start, end=end)
        return {
            "query": args.query or "",
            "is_real_data": len(records) > 0,
            "count": len(records),
            "transactions": [record.to_tool_dict() for record in records],
        }

    def _system_prompt(self, now: datetime) -> str:
        return build_system_prompt(
            now,
            assistant_name=self._assistant_name,
            timezone_name=self._resolver.tz.key,
        )


def create_app_components(
    settings: Optional[Settings] = None,
    use_storage: Optional[bool] = None,
) -> tuple[ConversationOrchestrator, IdentityResolverInterface, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings())
        use_storage: Whether to initialize Google Sheets storage.
                    Defaults to APP_USE_STORAGE. When False, or when
                    Sheets is not configured, empty in-memory stores
                    are used instead.

    Returns:
        (orchestrator, identity_resolver, sheets_client)
    """
    settings = settings or get_settings()
    advisor = settings.advisor
    if use_storage is None:
        use_storage = settings.app.use_storage

    sheets_client = None
    ledger_store = None
    profile_store = None
    log_store = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            ledger_store = GoogleSheetsLedgerStore(sheets_client, timezone=advisor.timezone)
            profile_store = GoogleSheetsProfileStore(sheets_client)
            log_store = GoogleSheetsInteractionLogStore(sheets_client)
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e), fallback="in_memory")
            sheets_client = None

    if sheets_client is None:
        ledger_store = InMemoryLedgerStore()
        profile_store = InMemoryProfileStore()
        log_store = InMemoryInteractionLogStore()

    resolver = PeriodResolver(advisor.timezone)
    aggregator = LedgerAggregator(
        ledger_store,
        profiles=profile_store,
        max_top_expenses=advisor.max_top_expenses,
        search_limit=advisor.search_limit,
        tip_marker=advisor.tip_marker,
    )
    chain = build_provider_chain(
        settings.provider_specs(),
        timeout=advisor.provider_timeout_seconds,
    )

    clock = None
    if advisor.anchor_datetime is not None:
        anchor = resolver.localize(advisor.anchor_datetime)

        def clock() -> datetime:
            return anchor

    orchestrator = ConversationOrchestrator(
        chain=chain,
        aggregator=aggregator,
        resolver=resolver,
        interaction_logger=InteractionLogger(log_store),
        clock=clock,
        assistant_name=advisor.assistant_name,
    )

    auth = settings.auth
    identity_resolver = JWTIdentityResolver(auth.jwt_secret, audience=auth.jwt_audience)

    return orchestrator, identity_resolver, sheets_client
