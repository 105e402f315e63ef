"""
In-Memory Storage Implementation

DESIGN DECISION: The engine ships with a dict-backed store instead of a
database driver. Persistence technology belongs to the host application;
this implementation exists so the driver can run end-to-end in tests
and in small scripts.

TRADEOFFS:
- Nothing survives the process (fine for tests and one-off runs)
- No cross-call transactions (the driver writes one record at a time)
- Filtering happens in Python

Records are copied on the way in and on the way out so callers can never
mutate stored state by accident.
"""

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
from flatledger.models.transaction import (
    MatchState,
    PersonKind,
    Transaction,
    Unmatched,
)
from flatledger.services.storage.interface import (
    AuditStorageInterface,
    DirectoryStorageInterface,
    DuplicateError,
    NotFoundError,
    SystemStateInterface,
    TransactionStorageInterface,
)


class InMemoryStore(
    TransactionStorageInterface,
    DirectoryStorageInterface,
    SystemStateInterface,
):
    """
    Dict-backed implementation of the transaction, directory and
    system-state interfaces.
    """

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}
        self._external_index: dict[str, UUID] = {}
        self._expense_matches: dict[UUID, ExpenseTransactionMatch] = {}
        self._flatmates: dict[UUID, Flatmate] = {}
        self._landlords: dict[UUID, Landlord] = {}
        self._schedules: dict[UUID, PaymentSchedule] = {}
        self._categories: dict[UUID, ExpenseCategory] = {}
        self._rules: dict[UUID, ExpenseMatchingRule] = {}
        self._state: dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        tx = self._transactions.get(transaction_id)
        return tx.model_copy(deep=True) if tx else None

    async def get_by_external_id(self, external_id: str) -> Optional[Transaction]:
        transaction_id = self._external_index.get(external_id)
        if transaction_id is None:
            return None
        return await self.get_transaction(transaction_id)

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.external_id in self._external_index:
            raise DuplicateError(f"Transaction already exists: {transaction.external_id}")
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction ID already exists: {transaction.id}")

        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        self._external_index[transaction.external_id] = transaction.id
        return transaction

    async def update_transaction_facts(self, transaction: Transaction) -> Transaction:
        stored = self._transactions.get(transaction.id)
        if stored is None:
            raise NotFoundError(f"Transaction not found: {transaction.id}")

        # Only facts change; the stored annotation wins
        refreshed = stored.with_refreshed_facts(transaction)
        self._transactions[transaction.id] = refreshed.model_copy(deep=True)
        return refreshed

    async def save_match(self, transaction_id: UUID, state: MatchState) -> None:
        stored = self._transactions.get(transaction_id)
        if stored is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        self._transactions[transaction_id] = stored.with_match(state)

    async def list_transactions(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        flatmate_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        result = []
        for tx in self._transactions.values():
            if date_from and tx.timestamp < date_from:
                continue
            if date_to and tx.timestamp > date_to:
                continue
            if flatmate_id and tx.matched_flatmate_id != flatmate_id:
                continue
            result.append(tx.model_copy(deep=True))

        result.sort(key=lambda tx: tx.timestamp)
        return result

    async def get_expense_match(self, transaction_id: UUID) -> Optional[ExpenseTransactionMatch]:
        match = self._expense_matches.get(transaction_id)
        return match.model_copy() if match else None

    async def save_expense_match(self, match: ExpenseTransactionMatch) -> None:
        if match.transaction_id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {match.transaction_id}")
        self._expense_matches[match.transaction_id] = match.model_copy()

    async def delete_expense_match(self, transaction_id: UUID) -> bool:
        return self._expense_matches.pop(transaction_id, None) is not None

    async def list_expense_matches(
        self,
        category_id: Optional[UUID] = None,
    ) -> list[ExpenseTransactionMatch]:
        return [
            match.model_copy()
            for match in self._expense_matches.values()
            if category_id is None or match.category_id == category_id
        ]

    # -------------------------------------------------------------------------
    # People and schedules
    # -------------------------------------------------------------------------

    async def list_flatmates(self) -> list[Flatmate]:
        return [flatmate.model_copy() for flatmate in self._flatmates.values()]

    async def get_flatmate(self, flatmate_id: UUID) -> Optional[Flatmate]:
        flatmate = self._flatmates.get(flatmate_id)
        return flatmate.model_copy() if flatmate else None

    async def save_flatmate(self, flatmate: Flatmate) -> Flatmate:
        self._flatmates[flatmate.id] = flatmate.model_copy()
        return flatmate

    async def delete_flatmate(self, flatmate_id: UUID) -> bool:
        if self._flatmates.pop(flatmate_id, None) is None:
            return False

        self._schedules = {
            schedule_id: schedule
            for schedule_id, schedule in self._schedules.items()
            if schedule.person_id != flatmate_id
        }
        self._release_person(PersonKind.FLATMATE, flatmate_id)
        return True

    async def list_landlords(self) -> list[Landlord]:
        return [landlord.model_copy() for landlord in self._landlords.values()]

    async def get_landlord(self, landlord_id: UUID) -> Optional[Landlord]:
        landlord = self._landlords.get(landlord_id)
        return landlord.model_copy() if landlord else None

    async def save_landlord(self, landlord: Landlord) -> Landlord:
        self._landlords[landlord.id] = landlord.model_copy()
        return landlord

    async def delete_landlord(self, landlord_id: UUID) -> bool:
        if self._landlords.pop(landlord_id, None) is None:
            return False
        self._release_person(PersonKind.LANDLORD, landlord_id)
        return True

    def _release_person(self, kind: PersonKind, person_id: UUID) -> None:
        """Reset every annotation pointing at a deleted person."""
        for transaction_id, tx in self._transactions.items():
            target = tx.match_target
            if target and target.kind == kind and target.person_id == person_id:
                self._transactions[transaction_id] = tx.with_match(Unmatched())

    async def list_schedules(self, person_id: Optional[UUID] = None) -> list[PaymentSchedule]:
        schedules = [
            schedule.model_copy()
            for schedule in self._schedules.values()
            if person_id is None or schedule.person_id == person_id
        ]
        schedules.sort(key=lambda schedule: schedule.start_date)
        return schedules

    async def save_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        self._schedules[schedule.id] = schedule.model_copy()
        return schedule

    async def delete_schedule(self, schedule_id: UUID) -> bool:
        return self._schedules.pop(schedule_id, None) is not None

    # -------------------------------------------------------------------------
    # Expense categories and rules
    # -------------------------------------------------------------------------

    async def list_categories(self, active_only: bool = False) -> list[ExpenseCategory]:
        categories = [
            category.model_copy()
            for category in self._categories.values()
            if category.is_active or not active_only
        ]
        categories.sort(key=lambda category: (category.sort_order, category.name))
        return categories

    async def get_category(self, category_id: UUID) -> Optional[ExpenseCategory]:
        category = self._categories.get(category_id)
        return category.model_copy() if category else None

    async def get_category_by_slug(self, slug: str) -> Optional[ExpenseCategory]:
        for category in self._categories.values():
            if category.slug == slug:
                return category.model_copy()
        return None

    async def save_category(self, category: ExpenseCategory) -> ExpenseCategory:
        for existing in self._categories.values():
            if existing.slug == category.slug and existing.id != category.id:
                raise DuplicateError(f"Category slug already in use: {category.slug}")
        self._categories[category.id] = category.model_copy()
        return category

    async def list_rules(self, active_only: bool = True) -> list[ExpenseMatchingRule]:
        return [
            rule.model_copy()
            for rule in self._rules.values()
            if rule.is_active or not active_only
        ]

    async def save_rule(self, rule: ExpenseMatchingRule) -> ExpenseMatchingRule:
        if rule.category_id not in self._categories:
            raise NotFoundError(f"Category not found: {rule.category_id}")
        self._rules[rule.id] = rule.model_copy()
        return rule

    # -------------------------------------------------------------------------
    # System state
    # -------------------------------------------------------------------------

    async def get_state(self, key: str) -> Optional[str]:
        return self._state.get(key)

    async def set_state(self, key: str, value: str) -> None:
        self._state[key] = value

    async def delete_state(self, key: str) -> bool:
        return self._state.pop(key, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """
    List-backed audit log.

    Append-only: there is no way to remove or edit an event.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
