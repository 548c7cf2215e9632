"""
Interaction Logger

DESIGN DECISION: Every answered question is logged.
This provides:
1. Complete traceability of what the advisor said
2. Debugging capability (which provider, which data)
3. A record of the exact figures each answer was grounded on

The interaction logger:
- Gracefully handles failures (a logging failure never fails the answer)
- Never hides a failure: it is always reported in the structured log
- Supports correlation IDs to trace related events
"""

import asyncio
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.interaction import InteractionLogEntry
from src.services.storage import InteractionLogStoreInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class InteractionLogger:
    """
    Central interaction logging service.

    Logs entries both to:
    1. Structured local log (for debugging)
    2. The interaction log store (for persistence)
    """

    def __init__(
        self,
        storage: Optional[InteractionLogStoreInterface] = None,
    ):
        """
        Initialize interaction logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("interactions")
        self._pending: set[asyncio.Task] = set()

    async def record(self, entry: InteractionLogEntry) -> bool:
        """
        Log a completed interaction.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self._logger.info("interaction_completed", **entry.to_log_dict())

        if self._storage:
            try:
                return await self._storage.append_entry(entry)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "interaction_log_storage_failed",
                    error=str(e),
                    entry_id=str(entry.entry_id),
                    correlation_id=str(entry.correlation_id) if entry.correlation_id else None,
                )
                return False

        return True

    def record_in_background(self, entry: InteractionLogEntry) -> asyncio.Task:
        """
        Schedule `record` without waiting for the storage write.

        The task is held until it finishes so it is not garbage collected
        mid-write. Must be called from a running event loop.
        """
        task = asyncio.get_running_loop().create_task(self.record(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def flush(self) -> None:
        """Wait for every scheduled write (used at shutdown)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def turn_failed(
        self,
        owner_id: str,
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        provider: Optional[str] = None,
    ) -> None:
        """
        Report a failed turn.

        Failed turns are NOT persisted to the interaction log;
        they only appear in the structured local log.
        """
        self._logger.error(
            "advisor_turn_failed",
            owner_id=owner_id,
            error_type=error_type,
            error_message=error_message,
            provider=provider,
            correlation_id=str(correlation_id) if correlation_id else None,
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of each request and pass it through all
    subsequent operations.
    """
    return uuid4()
