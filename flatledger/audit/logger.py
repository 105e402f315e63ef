"""
Audit Logger

DESIGN DECISION: Every significant reconciliation action is logged.
This provides:
1. Complete traceability of how a transaction got its match
2. Debugging capability when a sync or rematch misbehaves
3. A history of manual overrides

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash a sync if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from flatledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from flatledger.models.transaction import MatchResult
from flatledger.services.storage import AuditStorageInterface


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


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=log_level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("flatledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_sync_started(self, correlation_id: UUID, cursor: Optional[str]) -> None:
        await self.log(AuditEventBuilder.sync_started(correlation_id, cursor))

    async def log_sync_completed(
        self,
        inserted: int,
        updated: int,
        error_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log the end of a sync run."""
        event = AuditEventBuilder.sync_completed(
            inserted=inserted,
            updated=updated,
            error_count=error_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sync_failed(self, error_message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.sync_failed(error_message, correlation_id))

    async def log_transaction_ingested(
        self,
        transaction_id: UUID,
        external_id: str,
        is_new: bool,
        correlation_id: UUID,
    ) -> None:
        """Log a transaction insert or fact refresh."""
        event = AuditEventBuilder.transaction_ingested(
            transaction_id=transaction_id,
            external_id=external_id,
            is_new=is_new,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_matched(
        self,
        transaction_id: UUID,
        result: MatchResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an automatic person match."""
        event = AuditEventBuilder.transaction_matched(
            transaction_id=transaction_id,
            person_id=result.person_id,
            person_kind=result.target.kind.value,
            match_type=result.match_type.value,
            confidence=result.confidence,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_categorized(
        self,
        transaction_id: UUID,
        category_id: UUID,
        rule_id: Optional[UUID],
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an automatic expense categorization."""
        event = AuditEventBuilder.expense_categorized(
            transaction_id=transaction_id,
            category_id=category_id,
            rule_id=rule_id,
            confidence=confidence,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rematch_completed(
        self,
        kind: str,
        matched: int,
        total: int,
        failure_count: int,
        correlation_id: UUID,
        landlord_matched: int = 0,
    ) -> None:
        """Log the outcome of a person or expense rematch."""
        event = AuditEventBuilder.rematch_completed(
            kind=kind,
            matched=matched,
            total=total,
            failure_count=failure_count,
            correlation_id=correlation_id,
            landlord_matched=landlord_matched,
        )
        await self.log(event)

    async def log_matches_cleared(self, cleared: int) -> None:
        await self.log(AuditEventBuilder.matches_cleared(cleared))

    async def log_manual_override(
        self,
        transaction_id: UUID,
        person_id: Optional[UUID],
        person_kind: Optional[str] = None,
        match_type: Optional[str] = None,
    ) -> None:
        """Log a manual match being set, or cleared when person_id is None."""
        if person_id is None:
            event = AuditEventBuilder.manual_override_cleared(transaction_id)
        else:
            event = AuditEventBuilder.manual_override_set(
                transaction_id=transaction_id,
                person_id=person_id,
                person_kind=person_kind or "flatmate",
                match_type=match_type or "rent_payment",
            )
        await self.log(event)

    async def log_expense_override(
        self,
        transaction_id: UUID,
        category_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.expense_override(transaction_id, category_id))

    async def log_refresh_triggered(self) -> None:
        await self.log(AuditEventBuilder.refresh_triggered())

    async def log_refresh_rate_limited(self, next_refresh_at: datetime) -> None:
        await self.log(AuditEventBuilder.refresh_rate_limited(next_refresh_at))

    async def log_schedule_saved(
        self,
        schedule_id: UUID,
        person_id: UUID,
        weekly_amount: str,
    ) -> None:
        await self.log(AuditEventBuilder.schedule_saved(schedule_id, person_id, weekly_amount))

    async def log_schedule_rejected(
        self,
        schedule_id: UUID,
        person_id: UUID,
        issues: list[dict],
    ) -> None:
        """Log a schedule refused at the write boundary."""
        await self.log(AuditEventBuilder.schedule_rejected(schedule_id, person_id, issues))

    async def log_storage_error(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed write that was collected instead of raised."""
        event = AuditEventBuilder.storage_error(
            entity_type=entity_type,
            entity_id=entity_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new operation (e.g., a sync run).
    Pass it through all subsequent operations.
    """
    return uuid4()
