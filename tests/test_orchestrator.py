"""
Integration tests for the reconciliation driver.

Flows run end to end against the in-memory store and a scripted
transaction source (see conftest.py).
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from flatledger.audit import AuditLogger
from flatledger.matching.defaults import seed_default_expense_data
from flatledger.models import (
    AuditEventType,
    AutoMatched,
    ExpenseMatchingRule,
    ExpenseTransactionMatch,
    Flatmate,
    Landlord,
    ManualMatched,
    MatchTarget,
    MatchType,
    PaymentSchedule,
    PaymentStatus,
    PersonKind,
    Transaction,
    Unmatched,
    ValidationIssue,
    ValidationResult,
)
from flatledger.orchestrator import (
    ReconciliationDriver,
    ReconciliationError,
    RecordRejectedError,
    ReferenceNotFoundError,
    ScheduleRejectedError,
    create_app_components,
)
from flatledger.services.source import SourceBatch, SourceTransaction
from flatledger.services.storage import InMemoryStore, StorageError
from flatledger.validation import RecordValidator


UTC = timezone.utc
ACCOUNT = "12-3456-7890123-00"
NOW = datetime(2025, 5, 14, 12, tzinfo=UTC)  # Wednesday, week of Sat May 10


def source_item(external_id, amount, description="", **kwargs) -> SourceTransaction:
    return SourceTransaction(
        external_id=external_id,
        timestamp=kwargs.pop("timestamp", datetime(2025, 5, 12, 9, tzinfo=UTC)),
        amount=Decimal(amount),
        description=description,
        **kwargs,
    )


def stored_tx(external_id, amount, description="", **kwargs) -> Transaction:
    return source_item(external_id, amount, description, **kwargs).to_transaction()


@pytest.fixture
async def sam(store):
    flatmate = Flatmate(name="Sam", email="sam@example.com", bank_account_pattern=ACCOUNT)
    await store.save_flatmate(flatmate)
    await store.save_schedule(PaymentSchedule(
        person_id=flatmate.id,
        start_date=date(2025, 1, 1),
        weekly_amount=Decimal("250"),
    ))
    return flatmate


@pytest.fixture
async def alex(store):
    flatmate = Flatmate(name="Alex", email="alex@example.com", matching_name="A JONES")
    await store.save_flatmate(flatmate)
    return flatmate


@pytest.fixture
async def landlord(store):
    person = Landlord(name="Harbour Property", matching_name="HARBOUR PROPERTY")
    await store.save_landlord(person)
    return person


class TestSync:
    """Tests for the ingestion flow."""

    async def test_inserts_matches_and_categorizes(self, driver, store, source, sam):
        await seed_default_expense_data(store)
        power = await store.get_category_by_slug("power")
        source.batches = [SourceBatch(
            items=[
                source_item("rent-1", "250.00", f"Transfer {ACCOUNT}"),
                source_item("power-1", "-89.10", "DD", merchant="Mercury Energy"),
            ],
            cursor="c1",
        )]

        result = await driver.sync(NOW)

        assert result.inserted == 2
        assert result.updated == 0
        assert result.errors == []

        rent = await store.get_by_external_id("rent-1")
        assert isinstance(rent.match, AutoMatched)
        assert rent.matched_flatmate_id == sam.id
        assert rent.match_type == MatchType.RENT_PAYMENT
        assert rent.match_confidence == 0.95

        bill = await store.get_by_external_id("power-1")
        expense = await store.get_expense_match(bill.id)
        assert expense.category_id == power.id
        assert not expense.manual_match

    async def test_long_description_is_stored_and_matched(self, driver, store, source, sam):
        description = "x" * 1500 + f" Transfer {ACCOUNT}"
        source.batches = [SourceBatch(items=[source_item("long", "250.00", description)])]

        result = await driver.sync(NOW)

        assert result.inserted == 1
        assert result.errors == []
        stored = await store.get_by_external_id("long")
        assert stored.description == description
        assert stored.matched_flatmate_id == sam.id

        assert await store.get_state("last_sync_cursor") == "c1"
        assert await driver.last_sync_time() == NOW

    async def test_payload_is_normalized_at_ingestion(self, driver, store, source, sam):
        source.batches = [SourceBatch(items=[
            source_item("rent-1", "250.00", "Transfer", raw_payload={"meta": {"reference": ACCOUNT}}),
        ])]
        await driver.sync(NOW)

        tx = await store.get_by_external_id("rent-1")
        assert tx.supplementary.reference == ACCOUNT
        assert tx.matched_flatmate_id == sam.id

    async def test_resync_preserves_annotations(self, driver, store, source, sam, alex):
        source.batches = [SourceBatch(items=[source_item("rent-1", "250.00", f"Transfer {ACCOUNT}")], cursor="c1")]
        await driver.sync(NOW)
        tx = await store.get_by_external_id("rent-1")
        await driver.manual_override(tx.id, MatchTarget(kind=PersonKind.FLATMATE, person_id=alex.id))

        source.batches = [SourceBatch(
            items=[source_item("rent-1", "251.00", f"Transfer {ACCOUNT} corrected")],
            cursor="c2",
        )]
        result = await driver.sync(NOW)

        assert result.inserted == 0
        assert result.updated == 1
        refreshed = await store.get_transaction(tx.id)
        assert refreshed.amount == Decimal("251.00")
        assert refreshed.description.endswith("corrected")
        assert isinstance(refreshed.match, ManualMatched)
        assert refreshed.matched_flatmate_id == alex.id
        assert source.calls[-1] == "c1"

    async def test_known_transactions_are_not_rematched(self, driver, store, source):
        """A flatmate added after ingestion only applies after rematch_all."""
        source.batches = [SourceBatch(items=[source_item("rent-1", "250.00", f"Transfer {ACCOUNT}")])]
        await driver.sync(NOW)

        flatmate = Flatmate(email="late@example.com", bank_account_pattern=ACCOUNT)
        await store.save_flatmate(flatmate)
        source.batches = [SourceBatch(items=[source_item("rent-1", "250.00", f"Transfer {ACCOUNT}")])]
        await driver.sync(NOW)

        tx = await store.get_by_external_id("rent-1")
        assert isinstance(tx.match, Unmatched)

        await driver.rematch_all()
        tx = await store.get_by_external_id("rent-1")
        assert tx.matched_flatmate_id == flatmate.id

    async def test_pages_until_done(self, driver, store, source):
        source.batches = [
            SourceBatch(items=[source_item("a", "-1.00")], cursor="c1", has_more=True),
            SourceBatch(items=[source_item("b", "-2.00")], cursor="c2"),
        ]
        result = await driver.sync(NOW)

        assert result.inserted == 2
        assert source.calls == [None, "c1"]
        assert await store.get_state("last_sync_cursor") == "c2"

    async def test_source_failure_is_retried(self, driver, source):
        source.failures = 2
        source.batches = [SourceBatch(items=[source_item("a", "-1.00")], cursor="c1")]

        result = await driver.sync(NOW)

        assert result.inserted == 1
        assert result.errors == []
        assert len(source.calls) == 3

    async def test_source_failure_reported_after_retries(self, driver, store, source, audit_storage):
        source.failures = 10

        result = await driver.sync(NOW)

        assert result.inserted == 0
        assert len(result.errors) == 1
        assert "aggregator unavailable" in result.errors[0]
        assert len(source.calls) == 3
        assert await store.get_state("last_sync_cursor") is None

        events = await audit_storage.get_recent_events()
        assert AuditEventType.SYNC_FAILED in {e.event_type for e in events}

    async def test_bad_transaction_does_not_abort_batch(self, driver, store, source):
        source.batches = [SourceBatch(items=[
            source_item("bad", "-1.00", "x" * 1001),
            source_item("good", "-2.00", "fine"),
        ])]

        result = await driver.sync(NOW)

        assert result.inserted == 1
        assert len(result.errors) == 1
        assert "bad" in result.errors[0]
        assert await store.get_by_external_id("good") is not None

    async def test_sync_needs_a_source(self, store, reconciliation_settings, source_settings):
        driver = ReconciliationDriver(
            transactions=store,
            directory=store,
            state=store,
            reconciliation_settings=reconciliation_settings,
            source_settings=source_settings,
        )
        with pytest.raises(ReconciliationError, match="No transaction source"):
            await driver.sync(NOW)


class TestRefresh:
    """Tests for the manual refresh cool-down."""

    async def test_refresh_then_rate_limited(self, driver, source):
        status = await driver.can_trigger_refresh(NOW)
        assert status.can_refresh

        outcome = await driver.trigger_refresh(NOW)
        assert outcome.success
        assert outcome.sync is not None
        assert source.refresh_requests == 1

        later = NOW + timedelta(minutes=10)
        outcome = await driver.trigger_refresh(later)
        assert not outcome.success
        assert outcome.next_refresh_at == NOW + timedelta(minutes=90)
        assert source.refresh_requests == 1

        status = await driver.can_trigger_refresh(NOW + timedelta(minutes=90))
        assert status.can_refresh


class TestRematch:
    """Tests for rematch, clear and manual overrides."""

    async def test_rematch_all(self, driver, store, sam, landlord):
        incoming = stored_tx("rent-1", "250.00", f"Transfer {ACCOUNT}")
        outgoing = stored_tx("rent-out", "-1000.00", "HARBOUR PROPERTY")
        coffee = stored_tx("coffee", "-5.00", "COFFEE").with_match(AutoMatched(
            target=MatchTarget(kind=PersonKind.FLATMATE, person_id=sam.id),
            match_type=MatchType.OTHER,
            confidence=0.8,
        ))
        for tx in (incoming, outgoing, coffee):
            await store.insert_transaction(tx)

        result = await driver.rematch_all()

        assert result.total == 3
        assert result.matched_count == 1
        assert result.landlord_matched_count == 1
        assert result.failures == []
        assert (await store.get_transaction(outgoing.id)).matched_landlord_id == landlord.id
        assert isinstance((await store.get_transaction(coffee.id)).match, Unmatched)

    async def test_rematch_is_idempotent(self, driver, store, sam, landlord):
        for tx in (
            stored_tx("rent-1", "250.00", f"Transfer {ACCOUNT}"),
            stored_tx("rent-out", "-1000.00", "HARBOUR PROPERTY"),
            stored_tx("coffee", "-5.00", "COFFEE"),
        ):
            await store.insert_transaction(tx)

        await driver.rematch_all()
        first = {tx.id: tx.match for tx in await store.list_transactions()}
        await driver.rematch_all()
        second = {tx.id: tx.match for tx in await store.list_transactions()}

        assert first == second

    async def test_manual_override_survives_rematch(self, driver, store, sam, alex):
        tx = stored_tx("rent-1", "250.00", f"Transfer {ACCOUNT}")
        await store.insert_transaction(tx)

        await driver.manual_override(tx.id, MatchTarget(kind=PersonKind.FLATMATE, person_id=alex.id))
        before = (await store.get_transaction(tx.id)).match

        result = await driver.rematch_all()

        assert result.skipped_manual == 1
        assert (await store.get_transaction(tx.id)).match == before

    async def test_manual_override_defaults(self, driver, store, sam, landlord):
        tx = stored_tx("t", "-1000.00", "transfer")
        await store.insert_transaction(tx)

        updated = await driver.manual_override(tx.id, MatchTarget(kind=PersonKind.FLATMATE, person_id=sam.id))
        assert updated.match_type == MatchType.RENT_PAYMENT

        updated = await driver.manual_override(
            tx.id,
            MatchTarget(kind=PersonKind.LANDLORD, person_id=landlord.id),
            MatchType.OTHER,
        )
        assert updated.match_type == MatchType.LANDLORD_PAYMENT
        assert updated.matched_flatmate_id is None

    async def test_clearing_override_allows_rematch(self, driver, store, sam, alex):
        tx = stored_tx("rent-1", "250.00", f"Transfer {ACCOUNT}")
        await store.insert_transaction(tx)
        await driver.manual_override(tx.id, MatchTarget(kind=PersonKind.FLATMATE, person_id=alex.id))

        cleared = await driver.manual_override(tx.id, None)
        assert isinstance(cleared.match, Unmatched)

        await driver.rematch_all()
        assert (await store.get_transaction(tx.id)).matched_flatmate_id == sam.id

    async def test_manual_override_unknown_references(self, driver, store, sam):
        with pytest.raises(ReferenceNotFoundError):
            await driver.manual_override(uuid4(), MatchTarget(kind=PersonKind.FLATMATE, person_id=sam.id))

        tx = stored_tx("t", "10.00")
        await store.insert_transaction(tx)
        with pytest.raises(ReferenceNotFoundError):
            await driver.manual_override(tx.id, MatchTarget(kind=PersonKind.LANDLORD, person_id=uuid4()))

    async def test_clear_all_matches_keeps_manual(self, driver, store, sam, alex):
        auto = stored_tx("rent-1", "250.00", f"Transfer {ACCOUNT}")
        manual = stored_tx("rent-2", "250.00", f"Transfer {ACCOUNT}")
        for tx in (auto, manual):
            await store.insert_transaction(tx)
        await driver.rematch_all()
        await driver.manual_override(manual.id, MatchTarget(kind=PersonKind.FLATMATE, person_id=alex.id))

        assert await driver.clear_all_matches() == 1
        assert isinstance((await store.get_transaction(auto.id)).match, Unmatched)
        assert (await store.get_transaction(manual.id)).is_manual

    async def test_write_failures_are_collected(
        self, reconciliation_settings, source_settings, failing_store,
    ):
        store, failing_id = failing_store
        driver = ReconciliationDriver(
            transactions=store,
            directory=store,
            state=store,
            reconciliation_settings=reconciliation_settings,
            source_settings=source_settings,
        )
        result = await driver.rematch_all()

        assert result.total == 2
        assert len(result.failures) == 1
        assert str(failing_id) in result.failures[0]
        others = [tx for tx in await store.list_transactions() if tx.id != failing_id]
        assert others[0].matched_flatmate_id is not None


class FailingStore(InMemoryStore):
    """Refuses to save matches for one transaction."""

    def __init__(self, failing_id):
        super().__init__()
        self.failing_id = failing_id

    async def save_match(self, transaction_id, state):
        if transaction_id == self.failing_id:
            raise StorageError("write refused")
        await super().save_match(transaction_id, state)


@pytest.fixture
async def failing_store():
    bad = stored_tx("rent-bad", "250.00", f"Transfer {ACCOUNT}")
    good = stored_tx("rent-good", "250.00", f"Transfer {ACCOUNT}")
    store = FailingStore(bad.id)
    await store.save_flatmate(Flatmate(email="sam@example.com", bank_account_pattern=ACCOUNT))
    await store.insert_transaction(bad)
    await store.insert_transaction(good)
    return store, bad.id


class TestExpenses:
    """Tests for expense rematch and overrides."""

    async def test_rematch_all_expenses(self, driver, store):
        await seed_default_expense_data(store)
        power = await store.get_category_by_slug("power")
        groceries = await store.get_category_by_slug("groceries")

        bill = stored_tx("bill", "-80.00", merchant="Genesis Energy")
        stale = stored_tx("stale", "-10.00", merchant="Corner Dairy")
        pinned = stored_tx("pinned", "-30.00", merchant="Corner Dairy")
        refund = stored_tx("refund", "80.00", merchant="Genesis Energy")
        for tx in (bill, stale, pinned, refund):
            await store.insert_transaction(tx)
        await store.save_expense_match(ExpenseTransactionMatch(
            transaction_id=stale.id,
            category_id=groceries.id,
            rule_id=uuid4(),
            confidence=0.95,
        ))
        await driver.manual_expense_override(pinned.id, groceries.id)

        result = await driver.rematch_all_expenses()

        assert result.total == 3
        assert result.matched == 1
        assert (await store.get_expense_match(bill.id)).category_id == power.id
        assert await store.get_expense_match(stale.id) is None
        assert (await store.get_expense_match(pinned.id)).manual_match
        assert await store.get_expense_match(refund.id) is None

    async def test_manual_expense_override(self, driver, store):
        await seed_default_expense_data(store)
        power = await store.get_category_by_slug("power")
        tx = stored_tx("bill", "-80.00")
        await store.insert_transaction(tx)

        record = await driver.manual_expense_override(tx.id, power.id)
        assert record.manual_match
        assert (await store.get_expense_match(tx.id)).category_id == power.id

        assert await driver.manual_expense_override(tx.id, None) is None
        assert await store.get_expense_match(tx.id) is None

        with pytest.raises(ReferenceNotFoundError):
            await driver.manual_expense_override(tx.id, uuid4())


class TestDirectoryWrites:
    """Tests for validated writes."""

    async def test_schedule_for_unknown_flatmate_rejected(self, driver, store, audit_storage):
        schedule = PaymentSchedule(person_id=uuid4(), start_date=date(2025, 1, 1), weekly_amount=Decimal("200"))

        with pytest.raises(ScheduleRejectedError) as exc_info:
            await driver.add_schedule(schedule)

        assert exc_info.value.result.issues[0].issue_type == "not_found"
        assert await store.list_schedules() == []
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.SCHEDULE_REJECTED

    async def test_overlapping_schedule_saved_with_warning(self, driver, store, sam):
        bump = PaymentSchedule(
            person_id=sam.id,
            start_date=date(2025, 3, 1),
            end_date=date(2025, 5, 1),
            weekly_amount=Decimal("275"),
        )
        saved = await driver.add_schedule(bump)
        assert saved.id == bump.id
        assert len(await store.list_schedules(person_id=sam.id)) == 2

    async def test_copy_schedule(self, driver, store, sam, alex):
        original = (await store.list_schedules(person_id=sam.id))[0]

        copy = await driver.copy_schedule(original.id, alex.id)
        assert copy.person_id == alex.id
        assert copy.weekly_amount == original.weekly_amount
        assert copy.notes == "Copied schedule"

        with pytest.raises(ReconciliationError):
            await driver.copy_schedule(original.id, sam.id)
        with pytest.raises(ReferenceNotFoundError):
            await driver.copy_schedule(uuid4(), alex.id)

    async def test_flatmate_card_suffix_validated(self, driver):
        with pytest.raises(RecordRejectedError):
            await driver.save_flatmate(Flatmate(email="x@example.com", card_suffix="12a4"))

    async def test_rule_without_criteria_rejected(self, driver, store):
        await seed_default_expense_data(store)
        power = await store.get_category_by_slug("power")

        with pytest.raises(RecordRejectedError):
            await driver.save_rule(ExpenseMatchingRule(category_id=power.id, name="Empty"))

    async def test_delete_flatmate_releases_matches(self, driver, store, sam):
        tx = stored_tx("rent-1", "250.00", f"Transfer {ACCOUNT}")
        await store.insert_transaction(tx)
        await driver.rematch_all()

        assert await driver.delete_flatmate(sam.id)
        assert isinstance((await store.get_transaction(tx.id)).match, Unmatched)
        assert await store.list_schedules(person_id=sam.id) == []

    async def test_landlord_without_hints_is_saved(self, driver, store):
        landlord = await driver.save_landlord(Landlord(name="Harbour Property"))
        assert await store.get_landlord(landlord.id) is not None

    async def test_landlord_goes_through_validator(self, store, audit_storage, reconciliation_settings, source_settings):
        class StrictValidator(RecordValidator):
            def validate_landlord(self, landlord):
                return ValidationResult(record_type="landlord", issues=[ValidationIssue(
                    field="name",
                    issue_type="invalid_value",
                    message="Landlord name is reserved",
                    severity="error",
                )])

        driver = ReconciliationDriver(
            transactions=store,
            directory=store,
            state=store,
            audit_logger=AuditLogger(audit_storage),
            validator=StrictValidator(store),
            reconciliation_settings=reconciliation_settings,
            source_settings=source_settings,
        )

        with pytest.raises(RecordRejectedError, match="Landlord name is reserved"):
            await driver.save_landlord(Landlord(name="Harbour Property", matching_name="HARBOUR"))
        assert await store.list_landlords() == []

    async def test_delete_landlord_releases_matches(self, driver, store, landlord):
        tx = stored_tx("rent-out", "-1000.00", "HARBOUR PROPERTY")
        await store.insert_transaction(tx)
        await driver.rematch_all()
        assert (await store.get_transaction(tx.id)).matched_landlord_id == landlord.id

        assert await driver.delete_landlord(landlord.id)
        assert isinstance((await store.get_transaction(tx.id)).match, Unmatched)
        assert not await driver.delete_landlord(landlord.id)


class TestBalances:
    """Tests for balance computation through the driver."""

    async def test_compute_balances(self, driver, store, source, sam):
        source.batches = [SourceBatch(items=[
            source_item("w1", "250.00", f"Transfer {ACCOUNT}", timestamp=datetime(2025, 5, 5, tzinfo=UTC)),
            source_item("w2", "250.00", f"Transfer {ACCOUNT}", timestamp=datetime(2025, 5, 12, tzinfo=UTC)),
        ])]
        await driver.sync(NOW)

        summary = await driver.compute_balances(NOW, window_start=datetime(2025, 5, 3, tzinfo=UTC))

        assert len(summary.flatmates) == 1
        balance = summary.flatmates[0]
        assert balance.person_id == sam.id
        assert balance.summary.total_due == Decimal("500")
        assert balance.summary.total_paid == Decimal("500")
        assert summary.total_balance == Decimal("0")

        single = await driver.compute_person_balance(sam.id, NOW, window_start=datetime(2025, 5, 3, tzinfo=UTC))
        assert single.summary == balance.summary

    async def test_unknown_person_balance(self, driver):
        with pytest.raises(ReferenceNotFoundError):
            await driver.compute_person_balance(uuid4(), NOW)

    async def test_analysis_start_date(self, driver, sam):
        assert await driver.get_analysis_start_date() is None

        await driver.set_analysis_start_date(date(2025, 4, 1))
        assert await driver.get_analysis_start_date() == date(2025, 4, 1)
        summary = await driver.compute_balances(NOW)
        assert summary.flatmates[0].summary.window_start == datetime(2025, 4, 1, tzinfo=UTC)

        await driver.set_analysis_start_date(None)
        summary = await driver.compute_balances(NOW)
        assert summary.flatmates[0].summary.window_start == NOW - timedelta(days=180)

    async def test_current_week_summary(self, driver, store, source, sam, alex):
        source.batches = [SourceBatch(items=[
            source_item("w2", "250.00", f"Transfer {ACCOUNT}", timestamp=datetime(2025, 5, 12, tzinfo=UTC)),
        ])]
        await driver.sync(NOW)

        statuses = {s.person_id: s for s in await driver.current_week_summary(NOW)}

        assert statuses[sam.id].status == PaymentStatus.PAID
        assert statuses[sam.id].name == "Sam"
        # No schedule means nothing due
        assert statuses[alex.id].amount_due == Decimal("0")
        assert statuses[alex.id].status == PaymentStatus.PAID


class TestAppComponents:
    """Tests for the component factory."""

    def test_create_app_components(self):
        driver, reports, store = create_app_components()
        assert isinstance(store, InMemoryStore)
        assert reports is not None
        assert driver is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
