"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Plug the engine into whatever database the host application uses
2. Use in-memory storage for testing
3. Add caching layers transparently
4. Keep matching and balance logic decoupled from persistence

The interface is intentionally simple - we're not building a full ORM.
Just the operations reconciliation needs.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from flatledger.models.audit import AuditEvent
from flatledger.models.expense import (
    ExpenseCategory,
    ExpenseMatchingRule,
    ExpenseTransactionMatch,
)
from flatledger.models.people import Flatmate, Landlord, PaymentSchedule
from flatledger.models.transaction import MatchState, Transaction


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transactions and their annotations.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """
        Retrieve a transaction by its internal ID.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> Optional[Transaction]:
        """
        Retrieve a transaction by its source identifier.

        Returns:
            The transaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a newly observed transaction.

        Raises:
            DuplicateError: If the external ID already exists
        """
        pass

    @abstractmethod
    async def update_transaction_facts(self, transaction: Transaction) -> Transaction:
        """
        Replace the source facts of an existing transaction.

        The stored match annotation MUST be left unchanged.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def save_match(self, transaction_id: UUID, state: MatchState) -> None:
        """
        Persist a transaction's match annotation.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        flatmate_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List transactions, oldest first.

        Args:
            date_from: Only transactions at or after this instant
            date_to: Only transactions at or before this instant
            flatmate_id: Only transactions matched to this flatmate

        Returns:
            List of matching transactions
        """
        pass

    @abstractmethod
    async def get_expense_match(self, transaction_id: UUID) -> Optional[ExpenseTransactionMatch]:
        """Get the expense match of a transaction, if any."""
        pass

    @abstractmethod
    async def save_expense_match(self, match: ExpenseTransactionMatch) -> None:
        """Insert or replace the (single) expense match of a transaction."""
        pass

    @abstractmethod
    async def delete_expense_match(self, transaction_id: UUID) -> bool:
        """
        Delete the expense match of a transaction.

        Returns:
            True if a match was deleted
        """
        pass

    @abstractmethod
    async def list_expense_matches(
        self,
        category_id: Optional[UUID] = None,
    ) -> list[ExpenseTransactionMatch]:
        """List expense matches, optionally for one category."""
        pass


class DirectoryStorageInterface(ABC):
    """
    Abstract interface for the people, schedules and rules that
    matching reads.
    """

    @abstractmethod
    async def list_flatmates(self) -> list[Flatmate]:
        pass

    @abstractmethod
    async def get_flatmate(self, flatmate_id: UUID) -> Optional[Flatmate]:
        pass

    @abstractmethod
    async def save_flatmate(self, flatmate: Flatmate) -> Flatmate:
        pass

    @abstractmethod
    async def delete_flatmate(self, flatmate_id: UUID) -> bool:
        """
        Delete a flatmate.

        Cascades: their schedules are deleted and transactions matched
        to them go back to Unmatched.
        """
        pass

    @abstractmethod
    async def list_landlords(self) -> list[Landlord]:
        pass

    @abstractmethod
    async def get_landlord(self, landlord_id: UUID) -> Optional[Landlord]:
        pass

    @abstractmethod
    async def save_landlord(self, landlord: Landlord) -> Landlord:
        pass

    @abstractmethod
    async def delete_landlord(self, landlord_id: UUID) -> bool:
        """Delete a landlord; transactions matched to them go back to Unmatched."""
        pass

    @abstractmethod
    async def list_schedules(self, person_id: Optional[UUID] = None) -> list[PaymentSchedule]:
        """List payment schedules, optionally for one flatmate."""
        pass

    @abstractmethod
    async def save_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        pass

    @abstractmethod
    async def delete_schedule(self, schedule_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_categories(self, active_only: bool = False) -> list[ExpenseCategory]:
        """List expense categories ordered by sort order."""
        pass

    @abstractmethod
    async def get_category(self, category_id: UUID) -> Optional[ExpenseCategory]:
        pass

    @abstractmethod
    async def get_category_by_slug(self, slug: str) -> Optional[ExpenseCategory]:
        pass

    @abstractmethod
    async def save_category(self, category: ExpenseCategory) -> ExpenseCategory:
        """
        Insert or update a category.

        Raises:
            DuplicateError: If another category already uses the slug
        """
        pass

    @abstractmethod
    async def list_rules(self, active_only: bool = True) -> list[ExpenseMatchingRule]:
        pass

    @abstractmethod
    async def save_rule(self, rule: ExpenseMatchingRule) -> ExpenseMatchingRule:
        pass


class SystemStateInterface(ABC):
    """
    Small key/value store for engine bookkeeping
    (sync cursor, last refresh, analysis start date).
    """

    @abstractmethod
    async def get_state(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_state(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete_state(self, key: str) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one sync run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
