"""AI agent package: tool registry and prompts."""

from src.agents.prompts import build_system_prompt, format_civil_datetime
from src.agents.tools import (
    GET_FINANCIAL_SUMMARY,
    SEARCH_TRANSACTIONS,
    FinancialSummaryArgs,
    InvalidToolArgumentsError,
    SearchTransactionsArgs,
    ToolDefinition,
    ToolRegistry,
    UnsupportedToolError,
)

__all__ = [
    "GET_FINANCIAL_SUMMARY",
    "SEARCH_TRANSACTIONS",
    "FinancialSummaryArgs",
    "InvalidToolArgumentsError",
    "SearchTransactionsArgs",
    "ToolDefinition",
    "ToolRegistry",
    "UnsupportedToolError",
    "build_system_prompt",
    "format_civil_datetime",
]
