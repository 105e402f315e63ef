"""
Tests for the write-boundary validator.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from flatledger.models import (
    ExpenseMatchingRule,
    Flatmate,
    Landlord,
    MatchMode,
    PaymentSchedule,
)
from flatledger.validation import RecordValidator


def schedule(person_id, start, end=None, amount="200") -> PaymentSchedule:
    return PaymentSchedule(
        person_id=person_id,
        start_date=start,
        end_date=end,
        weekly_amount=Decimal(amount),
    )


@pytest.fixture
async def flatmate(store):
    person = Flatmate(email="sam@example.com", card_suffix="4321")
    await store.save_flatmate(person)
    return person


@pytest.fixture
def validator(store):
    return RecordValidator(store)


class TestScheduleValidation:
    """Tests for payment schedule validation."""

    async def test_valid_schedule(self, validator, flatmate):
        result = await validator.validate_schedule(schedule(flatmate.id, date(2025, 1, 1)))
        assert result.is_valid
        assert result.issues == []
        assert result.record_type == "schedule"

    async def test_unknown_flatmate(self, validator):
        result = await validator.validate_schedule(schedule(uuid4(), date(2025, 1, 1)))
        assert not result.is_valid
        assert result.issues[0].issue_type == "not_found"

    async def test_zero_amount_is_a_warning(self, validator, flatmate):
        result = await validator.validate_schedule(schedule(flatmate.id, date(2025, 1, 1), amount="0"))
        assert result.is_valid
        assert len(result.warnings) == 1

    async def test_inverted_range_caught_without_storage(self):
        """Records built without model validation are still checked."""
        bad = PaymentSchedule.model_construct(
            id=uuid4(),
            person_id=uuid4(),
            start_date=date(2025, 5, 1),
            end_date=date(2025, 3, 1),
            weekly_amount=Decimal("-5"),
            notes=None,
        )
        result = await RecordValidator().validate_schedule(bad)
        assert {i.issue_type for i in result.issues} == {"invalid_range", "invalid_value"}
        assert result.error_count == 2

    async def test_overlap_is_a_warning(self, validator, store, flatmate):
        await store.save_schedule(schedule(flatmate.id, date(2025, 1, 1)))

        result = await validator.validate_schedule(
            schedule(flatmate.id, date(2025, 3, 1), date(2025, 5, 1), amount="220")
        )

        assert result.is_valid
        assert [i.issue_type for i in result.issues] == ["overlap"]

    async def test_adjacent_ranges_do_not_overlap(self, validator, store, flatmate):
        await store.save_schedule(schedule(flatmate.id, date(2025, 1, 1), date(2025, 2, 28)))
        result = await validator.validate_schedule(schedule(flatmate.id, date(2025, 3, 1)))
        assert result.issues == []

    async def test_resaving_same_schedule_is_not_an_overlap(self, validator, store, flatmate):
        existing = schedule(flatmate.id, date(2025, 1, 1))
        await store.save_schedule(existing)
        result = await validator.validate_schedule(existing)
        assert result.issues == []


class TestPeopleValidation:
    """Tests for flatmate and landlord validation."""

    def test_card_suffix_format(self, validator):
        result = validator.validate_flatmate(Flatmate(email="a@example.com", card_suffix="12345"))
        assert not result.is_valid
        assert result.issues[0].field == "card_suffix"

    def test_no_hints_is_a_warning(self, validator):
        result = validator.validate_flatmate(Flatmate(email="a@example.com"))
        assert result.is_valid
        assert "a@example.com" in result.warnings[0]

    def test_landlord_without_hints(self, validator):
        result = validator.validate_landlord(Landlord(name="Harbour Property"))
        assert result.is_valid
        assert len(result.warnings) == 1


class TestRuleValidation:
    """Tests for expense rule validation."""

    def test_rule_needs_a_criterion(self, validator):
        result = validator.validate_rule(ExpenseMatchingRule(category_id=uuid4(), name="Empty"))
        assert not result.is_valid

    def test_source_category_alone_is_enough(self, validator):
        result = validator.validate_rule(
            ExpenseMatchingRule(category_id=uuid4(), name="Aggregator", source_category="groceries")
        )
        assert result.is_valid

    def test_invalid_regex_is_a_warning(self, validator):
        result = validator.validate_rule(ExpenseMatchingRule(
            category_id=uuid4(),
            name="Broken",
            merchant_pattern="count(down",
            is_regex=True,
        ))
        assert result.is_valid
        assert result.issues[0].issue_type == "invalid_regex"

    def test_all_mode_with_one_criterion(self, validator):
        result = validator.validate_rule(ExpenseMatchingRule(
            category_id=uuid4(),
            name="Mercury",
            merchant_pattern="Mercury",
            match_mode=MatchMode.ALL,
        ))
        assert result.is_valid
        assert result.issues[0].severity == "info"

    def test_summary(self, validator):
        result = validator.validate_flatmate(Flatmate(email="a@example.com", card_suffix="12"))
        summary = validator.get_summary(result)
        assert "[error] card_suffix" in summary
        assert "last four digits" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
