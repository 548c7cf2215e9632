"""
Data Models Package

This package contains all Pydantic models used by the Fiscal Advisor.
All data flowing through the system must conform to these schemas.
"""

from src.models.ledger import (
    DateRange,
    FinancialRecord,
    Goal,
    PeriodQuery,
    PeriodToken,
    Profile,
    ServiceMetric,
    SummaryResult,
    TransactionCategory,
    TransactionType,
    format_clp,
    json_number,
)
from src.models.conversation import (
    ChatMessage,
    ConversationTurn,
    MessageRole,
    ProviderKind,
    ProviderReply,
    ProviderSpec,
    ToolCall,
    TurnRole,
)
from src.models.interaction import InteractionLogEntry

__all__ = [
    # Ledger models
    "DateRange",
    "FinancialRecord",
    "Goal",
    "PeriodQuery",
    "PeriodToken",
    "Profile",
    "ServiceMetric",
    "SummaryResult",
    "TransactionCategory",
    "TransactionType",
    "format_clp",
    "json_number",
    # Conversation models
    "ChatMessage",
    "ConversationTurn",
    "MessageRole",
    "ProviderKind",
    "ProviderReply",
    "ProviderSpec",
    "ToolCall",
    "TurnRole",
    # Interaction log
    "InteractionLogEntry",
]
