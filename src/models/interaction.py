"""
Interaction Log Models

Every answered question is recorded for audit. This provides:
1. Traceability of what the advisor told each user
2. Which provider/model produced the answer
3. The exact data the answer was grounded on

DESIGN DECISION: The interaction log is append-only. We never delete or
modify entries.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InteractionLogEntry(BaseModel):
    """One completed question/answer exchange."""

    # Identity
    entry_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="When the answer was produced (UTC)"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID shared by every log event of the same request"
    )

    owner_id: str
    query: str
    response: str
    provider_used: str
    model_used: str
    context_data: Optional[dict[str, Any]] = Field(
        default=None,
        description="Raw tool result the answer was grounded on (None if no tool ran)"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.

        The full response and context are left out of local logs.
        """
        return {
            "entry_id": str(self.entry_id),
            "created_at": self.created_at.isoformat(),
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "owner_id": self.owner_id,
            "provider_used": self.provider_used,
            "model_used": self.model_used,
            "used_tool": self.context_data is not None,
            "query_length": len(self.query),
            "response_length": len(self.response),
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [entry_id, created_at, correlation_id, owner_id, query, response,
         provider_used, model_used, context_json]
        """
        return [
            str(self.entry_id),
            self.created_at.isoformat(),
            str(self.correlation_id) if self.correlation_id else "",
            self.owner_id,
            self.query,
            self.response,
            self.provider_used,
            self.model_used,
            json.dumps(self.context_data, ensure_ascii=False) if self.context_data is not None else "",
        ]
