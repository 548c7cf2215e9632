"""
Tool Registry

The fixed catalog of actions the model may request. Nothing outside this
registry is ever executed: an unknown tool name raises
UnsupportedToolError, which the orchestrator turns into a structured
"capability not available" result for the model.

CRITICAL BOUNDARIES:
- Tools are READ-ONLY views of the ledger
- Arguments are validated by Pydantic before anything runs
- The registry is immutable once built
"""

import copy
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any, Iterable, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, model_validator

from src.models.conversation import ToolCall
from src.models.ledger import PeriodToken


GET_FINANCIAL_SUMMARY = "get_financial_summary"
SEARCH_TRANSACTIONS = "search_transactions"


class UnsupportedToolError(Exception):
    """The model asked for a tool that is not in the registry."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unsupported tool: {name}")


class InvalidToolArgumentsError(Exception):
    """The model sent arguments that do not match the tool schema."""

    def __init__(self, name: str, detail: str):
        self.name = name
        self.detail = detail
        super().__init__(f"Invalid arguments for {name}: {detail}")


class FinancialSummaryArgs(BaseModel):
    """Arguments of get_financial_summary."""

    period: str
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=1970, le=2200)


class SearchTransactionsArgs(BaseModel):
    """Arguments of search_transactions."""

    query: Optional[str] = None
    start_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("start_date", "startDate"),
    )
    end_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("end_date", "endDate"),
    )

    @model_validator(mode="after")
    def validate_window(self) -> "SearchTransactionsArgs":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


@dataclass(frozen=True)
class ToolDefinition:
    """Name, description and argument schema of one tool."""

    name: str
    description: str
    parameters: dict[str, Any]
    arguments_model: type[BaseModel]

    def declaration(self) -> dict[str, Any]:
        """Provider-neutral declaration (JSON schema parameters)."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": copy.deepcopy(self.parameters),
        }


DEFAULT_TOOLS = (
    ToolDefinition(
        name=GET_FINANCIAL_SUMMARY,
        description=(
            "Obtiene los totales reales de ingresos, gastos y balance del "
            "usuario para un periodo, junto con sus gastos principales y el "
            "rendimiento por servicio. Úsala siempre que el usuario pregunte "
            "por dinero, ganancias, gastos o totales."
        ),
        parameters={
            "type": "object",
            "properties": {
                "period": {
                    "type": "string",
                    "enum": [token.value for token in PeriodToken],
                    "description": (
                        "Periodo a consultar. 'custom' usa month/year; "
                        "'total' considera todos los registros."
                    ),
                },
                "month": {"type": "integer", "description": "Mes 1-12 (solo con custom)"},
                "year": {"type": "integer", "description": "Año (solo con custom)"},
            },
            "required": ["period"],
        },
        arguments_model=FinancialSummaryArgs,
    ),
    ToolDefinition(
        name=SEARCH_TRANSACTIONS,
        description=(
            "Busca transacciones específicas por nombre (por ejemplo un "
            "servicio o un insumo) y devuelve las más recientes, con fecha "
            "y monto individual."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Texto a buscar en el título"},
                "start_date": {"type": "string", "description": "Fecha inicial YYYY-MM-DD (opcional)"},
                "end_date": {"type": "string", "description": "Fecha final YYYY-MM-DD (opcional)"},
            },
        },
        arguments_model=SearchTransactionsArgs,
    ),
)


class ToolRegistry:
    """Immutable lookup of the tools exposed to the model."""

    def __init__(self, tools: Iterable[ToolDefinition] = DEFAULT_TOOLS):
        self._tools = MappingProxyType({tool.name: tool for tool in tools})

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise UnsupportedToolError(name)

    def schemas(self) -> list[dict[str, Any]]:
        """Declarations to send to the provider (fresh copies)."""
        return [tool.declaration() for tool in self._tools.values()]

    def parse_arguments(self, call: ToolCall) -> BaseModel:
        """
        Validate a tool call against its schema.

        Raises:
            UnsupportedToolError: Unknown tool name
            InvalidToolArgumentsError: Arguments do not validate
        """
        tool = self.get(call.name)
        try:
            return tool.arguments_model.model_validate(call.arguments)
        except ValidationError as e:
            detail = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidToolArgumentsError(call.name, detail)
