"""
Audit Models for flatledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of why a transaction carries its match
2. Debugging information when a sync or rematch goes wrong
3. A record of every manual override and who it affected

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from flatledger.models.transaction import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of ingestion and reconciliation has its own event type.
    """
    # Ingestion
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    TRANSACTION_INGESTED = "transaction_ingested"
    TRANSACTION_UPDATED = "transaction_updated"

    # Source refresh
    REFRESH_TRIGGERED = "refresh_triggered"
    REFRESH_RATE_LIMITED = "refresh_rate_limited"

    # Matching
    TRANSACTION_MATCHED = "transaction_matched"
    EXPENSE_CATEGORIZED = "expense_categorized"
    REMATCH_COMPLETED = "rematch_completed"
    EXPENSE_REMATCH_COMPLETED = "expense_rematch_completed"
    MATCHES_CLEARED = "matches_cleared"

    # Manual overrides
    MANUAL_OVERRIDE_SET = "manual_override_set"
    MANUAL_OVERRIDE_CLEARED = "manual_override_cleared"
    EXPENSE_OVERRIDE_SET = "expense_override_set"
    EXPENSE_OVERRIDE_CLEARED = "expense_override_cleared"

    # Schedules
    SCHEDULE_SAVED = "schedule_saved"
    SCHEDULE_REJECTED = "schedule_rejected"

    # System events
    STORAGE_ERROR = "storage_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'schedule', 'sync')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one sync)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by an admin action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_matched(tx_id, person_id, ...)
        event = AuditEventBuilder.sync_completed(inserted, updated, errors)
    """

    @staticmethod
    def sync_started(correlation_id: UUID, cursor: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            entity_type="sync",
            correlation_id=correlation_id,
            description="Transaction sync started",
            details={"cursor": cursor},
        )

    @staticmethod
    def sync_completed(
        inserted: int,
        updated: int,
        error_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            severity=AuditSeverity.WARNING if error_count else AuditSeverity.INFO,
            entity_type="sync",
            correlation_id=correlation_id,
            description=f"Sync completed: {inserted} new, {updated} updated, {error_count} errors",
            details={
                "inserted": inserted,
                "updated": updated,
                "error_count": error_count,
            },
        )

    @staticmethod
    def sync_failed(error_message: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="sync",
            correlation_id=correlation_id,
            description="Sync failed",
            error_message=error_message,
        )

    @staticmethod
    def transaction_ingested(
        transaction_id: UUID,
        external_id: str,
        is_new: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.TRANSACTION_INGESTED
                if is_new
                else AuditEventType.TRANSACTION_UPDATED
            ),
            severity=AuditSeverity.DEBUG,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {'ingested' if is_new else 'refreshed'}: {external_id}",
            details={"external_id": external_id},
        )

    @staticmethod
    def transaction_matched(
        transaction_id: UUID,
        person_id: UUID,
        person_kind: str,
        match_type: str,
        confidence: float,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_MATCHED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Matched to {person_kind} as {match_type} ({confidence:.0%})",
            details={
                "person_id": str(person_id),
                "person_kind": person_kind,
                "match_type": match_type,
                "confidence": confidence,
            },
        )

    @staticmethod
    def expense_categorized(
        transaction_id: UUID,
        category_id: UUID,
        rule_id: Optional[UUID],
        confidence: float,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CATEGORIZED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Filed under expense category ({confidence:.0%})",
            details={
                "category_id": str(category_id),
                "rule_id": str(rule_id) if rule_id else None,
                "confidence": confidence,
            },
        )

    @staticmethod
    def rematch_completed(
        kind: str,
        matched: int,
        total: int,
        failure_count: int,
        correlation_id: UUID,
        landlord_matched: int = 0,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.EXPENSE_REMATCH_COMPLETED
            if kind == "expense"
            else AuditEventType.REMATCH_COMPLETED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING if failure_count else AuditSeverity.INFO,
            entity_type="rematch",
            correlation_id=correlation_id,
            description=f"Rematch ({kind}) matched {matched} of {total} transactions",
            details={
                "matched": matched,
                "landlord_matched": landlord_matched,
                "total": total,
                "failure_count": failure_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def matches_cleared(cleared: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATCHES_CLEARED,
            entity_type="rematch",
            description=f"Cleared {cleared} automatic matches",
            details={"cleared": cleared},
            is_user_action=True,
        )

    @staticmethod
    def manual_override_set(
        transaction_id: UUID,
        person_id: UUID,
        person_kind: str,
        match_type: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MANUAL_OVERRIDE_SET,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Manually matched to {person_kind} as {match_type}",
            details={
                "person_id": str(person_id),
                "person_kind": person_kind,
                "match_type": match_type,
            },
            is_user_action=True,
        )

    @staticmethod
    def manual_override_cleared(transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MANUAL_OVERRIDE_CLEARED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Manual match cleared",
            is_user_action=True,
        )

    @staticmethod
    def expense_override(
        transaction_id: UUID,
        category_id: Optional[UUID],
    ) -> AuditEvent:
        if category_id is None:
            return AuditEvent(
                event_type=AuditEventType.EXPENSE_OVERRIDE_CLEARED,
                entity_type="transaction",
                entity_id=transaction_id,
                description="Expense category removed",
                is_user_action=True,
            )
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_OVERRIDE_SET,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Expense category assigned manually",
            details={"category_id": str(category_id)},
            is_user_action=True,
        )

    @staticmethod
    def refresh_triggered() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFRESH_TRIGGERED,
            entity_type="source",
            description="Manual refresh of the transaction source triggered",
            is_user_action=True,
        )

    @staticmethod
    def refresh_rate_limited(next_refresh_at: datetime) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFRESH_RATE_LIMITED,
            severity=AuditSeverity.WARNING,
            entity_type="source",
            description="Manual refresh refused: cool-down still running",
            details={"next_refresh_at": next_refresh_at.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def schedule_saved(schedule_id: UUID, person_id: UUID, weekly_amount: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_SAVED,
            entity_type="schedule",
            entity_id=schedule_id,
            description=f"Payment schedule saved: {weekly_amount}/week",
            details={
                "person_id": str(person_id),
                "weekly_amount": weekly_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def schedule_rejected(
        schedule_id: UUID,
        person_id: UUID,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="schedule",
            entity_id=schedule_id,
            description=f"Payment schedule rejected with {len(issues)} issues",
            details={
                "person_id": str(person_id),
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Failed to persist {entity_type}",
            error_message=error_message,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
