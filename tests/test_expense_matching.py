"""
Tests for the expense categorizer and the default expense data.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from flatledger.matching.defaults import default_categories, default_rules, seed_default_expense_data
from flatledger.matching.expense import (
    ExpenseAction,
    categorize_expense,
    compile_rule,
    order_rules,
    resolve_expense_update,
)
from flatledger.models import (
    CategoryMatch,
    ExpenseCategory,
    ExpenseMatchingRule,
    ExpenseTransactionMatch,
    MatchMode,
    Transaction,
)


def make_tx(amount="-120.00", **kwargs) -> Transaction:
    return Transaction(
        external_id=kwargs.pop("external_id", "tx-1"),
        timestamp=datetime(2025, 3, 14, tzinfo=timezone.utc),
        amount=Decimal(amount),
        **kwargs,
    )


@pytest.fixture
def power():
    return ExpenseCategory(name="Power", slug="power")


@pytest.fixture
def groceries():
    return ExpenseCategory(name="Groceries", slug="groceries")


@pytest.fixture
def rules(power, groceries):
    return [
        ExpenseMatchingRule(
            category_id=groceries.id,
            name="Aggregator groceries",
            priority=50,
            source_category="groceries",
        ),
        ExpenseMatchingRule(
            category_id=power.id,
            name="Mercury",
            priority=100,
            merchant_pattern="Mercury",
            match_mode=MatchMode.ANY,
        ),
    ]


class TestCategorizeExpense:
    """Tests for rule evaluation and priority."""

    def test_higher_priority_wins(self, rules, power):
        tx = make_tx(merchant="Mercury Energy", source_category="groceries")
        result = categorize_expense(tx, rules)
        assert result.category_id == power.id
        assert result.confidence == 0.95

    def test_falls_through_to_lower_priority(self, rules, groceries):
        tx = make_tx(merchant="Pak'nSave Albany", source_category="Groceries")
        result = categorize_expense(tx, rules)
        assert result.category_id == groceries.id

    def test_credits_never_categorized(self, rules):
        tx = make_tx("120.00", merchant="Mercury Energy")
        assert categorize_expense(tx, rules) is None

    def test_no_rule_matches(self, rules):
        assert categorize_expense(make_tx(merchant="Cafe"), rules) is None

    def test_inactive_rules_ignored(self, power):
        rule = ExpenseMatchingRule(
            category_id=power.id,
            name="Mercury",
            merchant_pattern="Mercury",
            is_active=False,
        )
        assert categorize_expense(make_tx(merchant="Mercury Energy"), [rule]) is None

    def test_any_mode_partial_confidence(self, power):
        """One of two criteria: 1/2 + 0.3."""
        rule = ExpenseMatchingRule(
            category_id=power.id,
            name="Mercury",
            merchant_pattern="Mercury",
            description_pattern="POWER BILL",
        )
        result = categorize_expense(make_tx(merchant="Mercury", description="DD 1234"), [rule])
        assert result.confidence == 0.8

    def test_all_mode_requires_every_field(self, power):
        rule = ExpenseMatchingRule(
            category_id=power.id,
            name="Mercury direct debit",
            merchant_pattern="Mercury",
            description_pattern="direct debit",
            match_mode=MatchMode.ALL,
        )
        assert categorize_expense(make_tx(merchant="Mercury"), [rule]) is None

        tx = make_tx(merchant="Mercury", description="Direct Debit 0042")
        assert categorize_expense(tx, [rule]).confidence == 0.95

    def test_account_pattern_uses_payload(self, power):
        rule = ExpenseMatchingRule(
            category_id=power.id,
            name="Power account",
            account_pattern="01-0102",
        )
        tx = make_tx(supplementary={"other_account": "01-0102-0333333-00"})
        assert categorize_expense(tx, [rule]).category_id == power.id

    def test_source_category_is_exact(self, groceries):
        rule = ExpenseMatchingRule(
            category_id=groceries.id,
            name="Aggregator",
            source_category="groceries",
        )
        assert categorize_expense(make_tx(source_category="groceries & household"), [rule]) is None
        assert categorize_expense(make_tx(source_category="GROCERIES"), [rule]) is not None

    def test_rule_without_criteria_never_matches(self, power):
        rule = ExpenseMatchingRule(category_id=power.id, name="Empty")
        assert compile_rule(rule).predicates == ()
        assert categorize_expense(make_tx(merchant="Mercury"), [rule]) is None

    def test_invalid_regex_degrades(self, power):
        rule = ExpenseMatchingRule(
            category_id=power.id,
            name="Broken",
            merchant_pattern="mercury(",
            is_regex=True,
        )
        assert categorize_expense(make_tx(merchant="Mercury Energy"), [rule]) is None
        assert categorize_expense(make_tx(merchant="MERCURY( ENERGY"), [rule]) is not None

    def test_equal_priority_keeps_input_order(self, power, groceries):
        first = ExpenseMatchingRule(category_id=power.id, name="A", merchant_pattern="Shop")
        second = ExpenseMatchingRule(category_id=groceries.id, name="B", merchant_pattern="Shop")
        assert [c.rule.id for c in order_rules([first, second])] == [first.id, second.id]


class TestResolveExpenseUpdate:
    """Tests for deciding what happens to a stored expense match."""

    def test_manual_kept(self):
        tx_id = uuid4()
        existing = ExpenseTransactionMatch.manual(tx_id, uuid4())
        fresh = CategoryMatch(category_id=uuid4(), rule_id=uuid4(), confidence=0.95)
        assert resolve_expense_update(tx_id, existing, fresh).action == ExpenseAction.KEEP

    def test_new_result_upserted(self):
        tx_id = uuid4()
        fresh = CategoryMatch(category_id=uuid4(), rule_id=uuid4(), confidence=0.95)
        update = resolve_expense_update(tx_id, None, fresh)
        assert update.action == ExpenseAction.UPSERT
        assert update.record.transaction_id == tx_id
        assert not update.record.manual_match

    def test_stale_auto_deleted(self):
        tx_id = uuid4()
        existing = CategoryMatch(category_id=uuid4(), rule_id=uuid4(), confidence=0.8).to_record(tx_id)
        assert resolve_expense_update(tx_id, existing, None).action == ExpenseAction.DELETE

    def test_nothing_to_do(self):
        assert resolve_expense_update(uuid4(), None, None).action == ExpenseAction.KEEP


class TestDefaultExpenseData:
    """Tests for the starter categories and rules."""

    def test_default_rules_categorize(self):
        power, groceries = default_categories()
        rules = default_rules(power, groceries)

        assert categorize_expense(make_tx(merchant="MERCURY NZ LTD"), rules).category_id == power.id
        assert categorize_expense(make_tx(merchant="Countdown Ponsonby"), rules).category_id == groceries.id
        assert categorize_expense(make_tx(source_category="groceries"), rules).category_id == groceries.id

    def test_power_rules_outrank_grocery_rules(self):
        power, groceries = default_categories()
        rules = default_rules(power, groceries)
        lowest_power = min(r.priority for r in rules if r.category_id == power.id)
        highest_grocery = max(r.priority for r in rules if r.category_id == groceries.id)
        assert lowest_power > highest_grocery

    async def test_seed_only_into_empty_store(self, store):
        assert await seed_default_expense_data(store) is True
        categories = await store.list_categories()
        assert [c.slug for c in categories] == ["power", "groceries"]
        rule_count = len(await store.list_rules())

        assert await seed_default_expense_data(store) is False
        assert len(await store.list_rules()) == rule_count


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
