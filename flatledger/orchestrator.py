"""
Reconciliation Driver for flatledger

This module ties together all the components and defines the
end-to-end flows for:
1. Sync (source → upsert → match → categorize → persist)
2. Rematch (stored transactions → matcher → persist)
3. Manual overrides (admin decision → persist, never touched again)
4. Balances (schedules + matched payments → obligation ledger)

DESIGN DECISION: The driver enforces the boundaries:
- Matching is pure; only the driver reads and writes storage
- Manual annotations are never overwritten by automation
- Schedules are validated before they can reach the calculator
- One bad transaction never aborts a batch; failures are collected
- Every step is audited

Matching must be committed before balances are computed; the driver
always persists annotations before returning from a sync or rematch.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field
from tenacity import retry, stop_after_attempt, wait_exponential

from flatledger.audit import AuditLogger, configure_logging, create_correlation_id
from flatledger.config import (
    ReconciliationSettings,
    SourceSettings,
    get_settings,
)
from flatledger.matching.expense import (
    ExpenseAction,
    categorize_with,
    order_rules,
    resolve_expense_update,
)
from flatledger.matching.flatmate import (
    MatchContext,
    match_transaction,
    rematch_all as plan_rematch,
)
from flatledger.models.expense import (
    ExpenseCategory,
    ExpenseMatchingRule,
    ExpenseTransactionMatch,
)
from flatledger.models.obligation import (
    CurrentWeekStatus,
    FlatmateBalance,
    PaymentSummary,
)
from flatledger.models.people import Flatmate, Landlord, PaymentSchedule
from flatledger.models.transaction import (
    AutoMatched,
    ManualMatched,
    MatchTarget,
    MatchType,
    PersonKind,
    Transaction,
    Unmatched,
    utc_now,
)
from flatledger.models.validation import ValidationResult
from flatledger.obligations.calculator import (
    compute_obligations,
    current_week_status,
    default_window_start,
)
from flatledger.obligations.weeks import RentWeek
from flatledger.queries import ExpenseReportExecutor
from flatledger.services.source import SourceTransaction, TransactionSource
from flatledger.services.storage import (
    DirectoryStorageInterface,
    InMemoryAuditStorage,
    InMemoryStore,
    StorageError,
    SystemStateInterface,
    TransactionStorageInterface,
)
from flatledger.validation import RecordValidator


# System state keys
SYNC_CURSOR_KEY = "last_sync_cursor"
LAST_SYNC_KEY = "last_sync_at"
LAST_REFRESH_KEY = "last_manual_refresh"
ANALYSIS_START_KEY = "analysis_start_date"

ZERO = Decimal("0")


# =============================================================================
# ERRORS
# =============================================================================

class ReconciliationError(Exception):
    """Base exception for driver operations."""
    pass


class ReferenceNotFoundError(ReconciliationError):
    """A transaction, person or category referenced by an operation does not exist."""
    pass


class RecordRejectedError(ReconciliationError):
    """A record failed validation at the write boundary."""

    def __init__(self, result: ValidationResult, message: Optional[str] = None):
        self.result = result
        super().__init__(
            message or f"{result.record_type} rejected: {'; '.join(result.error_messages())}"
        )


class ScheduleRejectedError(RecordRejectedError):
    """A payment schedule failed validation and was not saved."""
    pass


# =============================================================================
# RESULTS
# =============================================================================

class SyncResult(BaseModel):
    inserted: int = 0
    updated: int = 0
    errors: list[str] = Field(default_factory=list)


class RematchResult(BaseModel):
    """Outcome of re-running the person matcher over every transaction."""

    matched_count: int = 0
    landlord_matched_count: int = 0
    total: int = 0
    skipped_manual: int = 0
    failures: list[str] = Field(default_factory=list)


class ExpenseRematchResult(BaseModel):
    matched: int = 0
    total: int = 0
    failures: list[str] = Field(default_factory=list)


class RefreshStatus(BaseModel):
    can_refresh: bool
    next_refresh_at: Optional[datetime] = None


class RefreshOutcome(BaseModel):
    """What happened when a manual refresh was requested."""

    success: bool
    message: str
    next_refresh_at: Optional[datetime] = None
    sync: Optional[SyncResult] = None


# =============================================================================
# DRIVER
# =============================================================================

class ReconciliationDriver:
    """
    Orchestrates ingestion, matching, overrides and balance computation.

    Flow for a sync:
    1. Fetch → Pull batches from the source since the stored cursor (retried)
    2. Upsert → Refresh facts of known transactions, insert new ones
    3. Match → New transactions only: person matcher, then expense categorizer
    4. Persist → Cursor and last-sync time, after the whole batch

    Known transactions keep their annotations. Re-matching them is an
    explicit operation (`rematch_all`).
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        directory: DirectoryStorageInterface,
        state: SystemStateInterface,
        source: Optional[TransactionSource] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[RecordValidator] = None,
        reconciliation_settings: Optional[ReconciliationSettings] = None,
        source_settings: Optional[SourceSettings] = None,
    ):
        self._transactions = transactions
        self._directory = directory
        self._state = state
        self._source = source
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or RecordValidator(directory)
        self._settings = reconciliation_settings or get_settings().reconciliation
        self._tz = self._settings.tzinfo
        self._logger = structlog.get_logger(__name__)

        source_settings = source_settings or get_settings().source
        self._retry_policy = retry(
            stop=stop_after_attempt(source_settings.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=source_settings.retry_min_wait_seconds,
                max=source_settings.retry_max_wait_seconds,
            ),
            reraise=True,
        )

    def _require_source(self) -> TransactionSource:
        if self._source is None:
            raise ReconciliationError("No transaction source configured")
        return self._source

    async def _load_match_context(self) -> MatchContext:
        return MatchContext.build(
            flatmates=await self._directory.list_flatmates(),
            landlords=await self._directory.list_landlords(),
            schedules=await self._directory.list_schedules(),
            tz=self._tz,
        )

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def sync(self, now: Optional[datetime] = None) -> SyncResult:
        """
        Pull new and updated transactions from the source.

        A source failure (after retries) ends the sync and is reported in
        `errors`. Per-transaction failures are collected and the rest of
        the batch continues.
        """
        source = self._require_source()
        now = now or utc_now()
        correlation_id = create_correlation_id()
        result = SyncResult()

        cursor = await self._state.get_state(SYNC_CURSOR_KEY)
        await self._audit_logger.log_sync_started(correlation_id, cursor)

        context = await self._load_match_context()
        rules = order_rules(await self._directory.list_rules())
        fetch = self._retry_policy(source.list_new)

        while True:
            try:
                batch = await fetch(cursor)
            except Exception as e:
                result.errors.append(f"Sync failed: {e}")
                await self._audit_logger.log_external_service_error(
                    service="transaction_source",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                await self._audit_logger.log_sync_failed(str(e), correlation_id)
                return result

            self._logger.info("sync_batch_fetched", items=len(batch.items), has_more=batch.has_more)

            for item in batch.items:
                try:
                    is_new = await self._upsert(item, context, rules, correlation_id)
                except (StorageError, ValueError) as e:
                    result.errors.append(f"Failed to process transaction {item.external_id}: {e}")
                    continue
                if is_new:
                    result.inserted += 1
                else:
                    result.updated += 1

            if batch.cursor:
                cursor = batch.cursor
            if not (batch.has_more and batch.cursor):
                break

        if cursor:
            await self._state.set_state(SYNC_CURSOR_KEY, cursor)
        await self._state.set_state(LAST_SYNC_KEY, now.isoformat())

        await self._audit_logger.log_sync_completed(
            inserted=result.inserted,
            updated=result.updated,
            error_count=len(result.errors),
            correlation_id=correlation_id,
        )
        return result

    async def _upsert(
        self,
        item: SourceTransaction,
        context: MatchContext,
        rules,
        correlation_id: UUID,
    ) -> bool:
        """Insert or refresh one transaction. Returns True if it was new."""
        fresh = item.to_transaction()
        existing = await self._transactions.get_by_external_id(fresh.external_id)

        if existing is not None:
            await self._transactions.update_transaction_facts(existing.with_refreshed_facts(fresh))
            await self._audit_logger.log_transaction_ingested(
                existing.id, fresh.external_id, is_new=False, correlation_id=correlation_id,
            )
            return False

        await self._transactions.insert_transaction(fresh)
        await self._audit_logger.log_transaction_ingested(
            fresh.id, fresh.external_id, is_new=True, correlation_id=correlation_id,
        )

        match = match_transaction(fresh, context)
        if match is not None:
            await self._transactions.save_match(fresh.id, match.to_state())
            await self._audit_logger.log_transaction_matched(fresh.id, match, correlation_id)

        category = categorize_with(fresh, rules)
        if category is not None:
            await self._transactions.save_expense_match(category.to_record(fresh.id))
            await self._audit_logger.log_expense_categorized(
                fresh.id,
                category.category_id,
                category.rule_id,
                category.confidence,
                correlation_id,
            )
        return True

    async def last_sync_time(self) -> Optional[datetime]:
        value = await self._state.get_state(LAST_SYNC_KEY)
        return datetime.fromisoformat(value) if value else None

    # -------------------------------------------------------------------------
    # Refresh guard
    # -------------------------------------------------------------------------

    async def can_trigger_refresh(self, now: Optional[datetime] = None) -> RefreshStatus:
        """Whether the refresh cool-down has elapsed."""
        now = now or utc_now()
        value = await self._state.get_state(LAST_REFRESH_KEY)
        if not value:
            return RefreshStatus(can_refresh=True)

        next_refresh_at = datetime.fromisoformat(value) + timedelta(
            minutes=self._settings.refresh_interval_minutes
        )
        if now >= next_refresh_at:
            return RefreshStatus(can_refresh=True)
        return RefreshStatus(can_refresh=False, next_refresh_at=next_refresh_at)

    async def trigger_refresh(self, now: Optional[datetime] = None) -> RefreshOutcome:
        """
        Ask the source to refresh from the bank, then sync.

        Refused while the cool-down is running.
        """
        source = self._require_source()
        now = now or utc_now()

        status = await self.can_trigger_refresh(now)
        if not status.can_refresh:
            await self._audit_logger.log_refresh_rate_limited(status.next_refresh_at)
            return RefreshOutcome(
                success=False,
                message=f"Rate limited. Next refresh available at {status.next_refresh_at.isoformat()}",
                next_refresh_at=status.next_refresh_at,
            )

        try:
            await self._retry_policy(source.request_refresh)()
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="transaction_source",
                error_message=str(e),
            )
            return RefreshOutcome(success=False, message=f"Failed to trigger refresh: {e}")

        await self._state.set_state(LAST_REFRESH_KEY, now.isoformat())
        await self._audit_logger.log_refresh_triggered()

        sync_result = await self.sync(now)
        return RefreshOutcome(
            success=True,
            message="Refresh triggered successfully",
            sync=sync_result,
        )

    # -------------------------------------------------------------------------
    # Rematch
    # -------------------------------------------------------------------------

    async def rematch_all(self) -> RematchResult:
        """
        Recompute the person match of every non-manual transaction.

        Transactions that no longer match go back to Unmatched. Write
        failures are collected; the batch always runs to the end.
        """
        correlation_id = create_correlation_id()
        context = await self._load_match_context()
        transactions = await self._transactions.list_transactions()

        plan = plan_rematch(transactions, context)
        result = RematchResult(
            matched_count=plan.matched_count,
            landlord_matched_count=plan.landlord_matched_count,
            total=plan.total,
            skipped_manual=plan.skipped_manual,
        )

        for transaction_id, state in plan.states.items():
            try:
                await self._transactions.save_match(transaction_id, state)
            except StorageError as e:
                result.failures.append(f"Failed to save match for {transaction_id}: {e}")
                await self._audit_logger.log_storage_error(
                    "transaction", transaction_id, str(e), correlation_id,
                )

        await self._audit_logger.log_rematch_completed(
            kind="person",
            matched=result.matched_count,
            total=result.total,
            failure_count=len(result.failures),
            correlation_id=correlation_id,
            landlord_matched=result.landlord_matched_count,
        )
        return result

    async def rematch_all_expenses(self) -> ExpenseRematchResult:
        """
        Re-categorize every outgoing transaction.

        Manual expense matches are skipped; stale automatic ones are removed.
        """
        correlation_id = create_correlation_id()
        rules = order_rules(await self._directory.list_rules())
        result = ExpenseRematchResult()

        for tx in await self._transactions.list_transactions():
            if tx.amount >= 0:
                continue
            result.total += 1

            try:
                existing = await self._transactions.get_expense_match(tx.id)
                update = resolve_expense_update(tx.id, existing, categorize_with(tx, rules))
                if update.action == ExpenseAction.UPSERT:
                    await self._transactions.save_expense_match(update.record)
                    result.matched += 1
                elif update.action == ExpenseAction.DELETE:
                    await self._transactions.delete_expense_match(tx.id)
            except StorageError as e:
                result.failures.append(f"Failed to categorize {tx.id}: {e}")
                await self._audit_logger.log_storage_error(
                    "expense_match", tx.id, str(e), correlation_id,
                )

        await self._audit_logger.log_rematch_completed(
            kind="expense",
            matched=result.matched,
            total=result.total,
            failure_count=len(result.failures),
            correlation_id=correlation_id,
        )
        return result

    async def clear_all_matches(self) -> int:
        """
        Reset every automatic person match to Unmatched.

        Manual matches are kept. Returns the number of matches cleared.
        """
        cleared = 0
        for tx in await self._transactions.list_transactions():
            if isinstance(tx.match, AutoMatched):
                await self._transactions.save_match(tx.id, Unmatched())
                cleared += 1

        await self._audit_logger.log_matches_cleared(cleared)
        return cleared

    # -------------------------------------------------------------------------
    # Manual overrides
    # -------------------------------------------------------------------------

    async def _get_transaction(self, transaction_id: UUID) -> Transaction:
        tx = await self._transactions.get_transaction(transaction_id)
        if tx is None:
            raise ReferenceNotFoundError(f"Transaction not found: {transaction_id}")
        return tx

    async def manual_override(
        self,
        transaction_id: UUID,
        target: Optional[MatchTarget],
        match_type: Optional[MatchType] = None,
    ) -> Transaction:
        """
        Pin a transaction to a person, or clear the pin.

        Flatmate matches default to rent_payment; landlord matches are
        always landlord_payment. Clearing returns the transaction to
        Unmatched so automation can claim it again.

        Raises:
            ReferenceNotFoundError: Unknown transaction or person
        """
        tx = await self._get_transaction(transaction_id)

        if target is None:
            state = Unmatched()
            await self._transactions.save_match(transaction_id, state)
            await self._audit_logger.log_manual_override(transaction_id, None)
            return tx.with_match(state)

        if target.kind == PersonKind.LANDLORD:
            person = await self._directory.get_landlord(target.person_id)
            match_type = MatchType.LANDLORD_PAYMENT
        else:
            person = await self._directory.get_flatmate(target.person_id)
            match_type = match_type or MatchType.RENT_PAYMENT

        if person is None:
            raise ReferenceNotFoundError(f"{target.kind.value.title()} not found: {target.person_id}")

        state = ManualMatched(target=target, match_type=match_type)
        await self._transactions.save_match(transaction_id, state)
        await self._audit_logger.log_manual_override(
            transaction_id,
            target.person_id,
            target.kind.value,
            match_type.value,
        )
        return tx.with_match(state)

    async def manual_expense_override(
        self,
        transaction_id: UUID,
        category_id: Optional[UUID],
    ) -> Optional[ExpenseTransactionMatch]:
        """
        Assign a transaction to an expense category by hand, or remove
        its category when `category_id` is None.

        Raises:
            ReferenceNotFoundError: Unknown transaction or category
        """
        await self._get_transaction(transaction_id)

        if category_id is None:
            await self._transactions.delete_expense_match(transaction_id)
            await self._audit_logger.log_expense_override(transaction_id, None)
            return None

        if await self._directory.get_category(category_id) is None:
            raise ReferenceNotFoundError(f"Category not found: {category_id}")

        record = ExpenseTransactionMatch.manual(transaction_id, category_id)
        await self._transactions.save_expense_match(record)
        await self._audit_logger.log_expense_override(transaction_id, category_id)
        return record

    # -------------------------------------------------------------------------
    # Directory writes
    # -------------------------------------------------------------------------

    async def add_schedule(self, schedule: PaymentSchedule) -> PaymentSchedule:
        """
        Validate and save a payment schedule (insert or replace by ID).

        Raises:
            ScheduleRejectedError: The schedule failed validation
        """
        result = await self._validator.validate_schedule(schedule)
        if not result.is_valid:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ]
            await self._audit_logger.log_schedule_rejected(schedule.id, schedule.person_id, issues)
            raise ScheduleRejectedError(result)

        saved = await self._directory.save_schedule(schedule)
        await self._audit_logger.log_schedule_saved(
            saved.id, saved.person_id, str(saved.weekly_amount),
        )
        return saved

    async def delete_schedule(self, schedule_id: UUID) -> bool:
        return await self._directory.delete_schedule(schedule_id)

    async def copy_schedule(self, schedule_id: UUID, target_person_id: UUID) -> PaymentSchedule:
        """
        Copy a schedule's dates and rate to another flatmate.

        Raises:
            ReferenceNotFoundError: Unknown schedule
            ReconciliationError: Target is the schedule's own flatmate
            ScheduleRejectedError: Target flatmate unknown
        """
        source = next(
            (s for s in await self._directory.list_schedules() if s.id == schedule_id),
            None,
        )
        if source is None:
            raise ReferenceNotFoundError(f"Schedule not found: {schedule_id}")
        if source.person_id == target_person_id:
            raise ReconciliationError("Cannot copy a schedule to the same flatmate")

        copy = PaymentSchedule(
            person_id=target_person_id,
            start_date=source.start_date,
            end_date=source.end_date,
            weekly_amount=source.weekly_amount,
            notes=f"{source.notes} (copied)" if source.notes else "Copied schedule",
        )
        return await self.add_schedule(copy)

    async def save_flatmate(self, flatmate: Flatmate) -> Flatmate:
        """
        Raises:
            RecordRejectedError: The flatmate failed validation
        """
        result = self._validator.validate_flatmate(flatmate)
        if not result.is_valid:
            raise RecordRejectedError(result)
        for warning in result.warnings:
            self._logger.warning("flatmate_saved_with_warning", flatmate_id=str(flatmate.id), warning=warning)
        return await self._directory.save_flatmate(flatmate)

    async def delete_flatmate(self, flatmate_id: UUID) -> bool:
        """Delete a flatmate, their schedules and their matches."""
        return await self._directory.delete_flatmate(flatmate_id)

    async def save_landlord(self, landlord: Landlord) -> Landlord:
        """
        Raises:
            RecordRejectedError: The landlord failed validation
        """
        result = self._validator.validate_landlord(landlord)
        if not result.is_valid:
            raise RecordRejectedError(result)
        for warning in result.warnings:
            self._logger.warning("landlord_saved_with_warning", landlord_id=str(landlord.id), warning=warning)
        return await self._directory.save_landlord(landlord)

    async def delete_landlord(self, landlord_id: UUID) -> bool:
        return await self._directory.delete_landlord(landlord_id)

    async def save_category(self, category: ExpenseCategory) -> ExpenseCategory:
        return await self._directory.save_category(category)

    async def save_rule(self, rule: ExpenseMatchingRule) -> ExpenseMatchingRule:
        """
        Raises:
            RecordRejectedError: The rule has no criteria
            ReferenceNotFoundError: Unknown category
        """
        result = self._validator.validate_rule(rule)
        if not result.is_valid:
            raise RecordRejectedError(result)
        if await self._directory.get_category(rule.category_id) is None:
            raise ReferenceNotFoundError(f"Category not found: {rule.category_id}")
        return await self._directory.save_rule(rule)

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    async def get_analysis_start_date(self) -> Optional[date]:
        """The household-wide analysis start, stored or configured."""
        value = await self._state.get_state(ANALYSIS_START_KEY)
        if value:
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                self._logger.warning("invalid_analysis_start_date", value=value)
        return self._settings.analysis_start_date

    async def set_analysis_start_date(self, start: Optional[date]) -> None:
        """Store the analysis start date; None clears it."""
        if start is None:
            await self._state.delete_state(ANALYSIS_START_KEY)
        else:
            await self._state.set_state(ANALYSIS_START_KEY, start.isoformat())

    async def _window_start(self, now: datetime, window_start: Optional[datetime]) -> datetime:
        if window_start is not None:
            return window_start
        return default_window_start(
            now,
            await self.get_analysis_start_date(),
            self._settings.default_lookback_days,
            self._tz,
        )

    async def _balance_for(
        self,
        flatmate: Flatmate,
        schedules: list[PaymentSchedule],
        transactions: list[Transaction],
        window_start: datetime,
        now: datetime,
    ) -> FlatmateBalance:
        summary = compute_obligations(
            person_id=flatmate.id,
            schedules=schedules,
            transactions=transactions,
            window_start=window_start,
            window_end=now,
            now=now,
            tz=self._tz,
            account_transactions=transactions,
        )
        return FlatmateBalance(
            person_id=flatmate.id,
            name=flatmate.name,
            email=flatmate.email,
            summary=summary,
        )

    async def compute_balances(
        self,
        now: Optional[datetime] = None,
        window_start: Optional[datetime] = None,
    ) -> PaymentSummary:
        """Obligation ledger for every flatmate, plus household totals."""
        now = now or utc_now()
        start = await self._window_start(now, window_start)

        flatmates = await self._directory.list_flatmates()
        schedules = await self._directory.list_schedules()
        transactions = await self._transactions.list_transactions(date_from=start, date_to=now)

        balances = []
        for flatmate in flatmates:
            own = [s for s in schedules if s.person_id == flatmate.id]
            balances.append(await self._balance_for(flatmate, own, transactions, start, now))

        total_due = sum((b.summary.total_due for b in balances), ZERO)
        total_paid = sum((b.summary.total_paid for b in balances), ZERO)
        return PaymentSummary(
            flatmates=balances,
            total_due=total_due,
            total_paid=total_paid,
            total_balance=total_paid - total_due,
        )

    async def compute_person_balance(
        self,
        person_id: UUID,
        now: Optional[datetime] = None,
        window_start: Optional[datetime] = None,
    ) -> FlatmateBalance:
        """
        Raises:
            ReferenceNotFoundError: Unknown flatmate
        """
        flatmate = await self._directory.get_flatmate(person_id)
        if flatmate is None:
            raise ReferenceNotFoundError(f"Flatmate not found: {person_id}")

        now = now or utc_now()
        start = await self._window_start(now, window_start)
        schedules = await self._directory.list_schedules(person_id=person_id)
        transactions = await self._transactions.list_transactions(date_from=start, date_to=now)
        return await self._balance_for(flatmate, schedules, transactions, start, now)

    async def current_week_summary(self, now: Optional[datetime] = None) -> list[CurrentWeekStatus]:
        """Who has paid what for the week containing `now`."""
        now = now or utc_now()
        week = RentWeek.containing(now, self._tz)
        transactions = await self._transactions.list_transactions(
            date_from=week.start,
            date_to=week.next_start,
        )

        summary = []
        for flatmate in await self._directory.list_flatmates():
            schedules = await self._directory.list_schedules(person_id=flatmate.id)
            summary.append(current_week_status(
                flatmate.id,
                schedules,
                transactions,
                now,
                self._tz,
                name=flatmate.name,
            ))
        return summary


def create_app_components(
    source: Optional[TransactionSource] = None,
) -> tuple[ReconciliationDriver, ExpenseReportExecutor, InMemoryStore]:
    """
    Factory function to create all application components.

    Wires the driver and the report executor to a shared in-memory
    store. Host applications with a real database construct
    ReconciliationDriver directly with their own storage.

    Args:
        source: Transaction source; sync and refresh need one

    Returns:
        (driver, report_executor, store)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    store = InMemoryStore()
    audit_logger = AuditLogger(InMemoryAuditStorage())

    driver = ReconciliationDriver(
        transactions=store,
        directory=store,
        state=store,
        source=source,
        audit_logger=audit_logger,
        reconciliation_settings=settings.reconciliation,
        source_settings=settings.source,
    )
    reports = ExpenseReportExecutor(store, store, settings.reconciliation.tzinfo)

    return driver, reports, store
