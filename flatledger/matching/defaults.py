"""
Default Expense Data

Starter categories and rules for a New Zealand household: power bills
and supermarket shopping. Seeding only happens into an empty store, so
an admin's own categories are never touched.
"""

from flatledger.models.expense import (
    ExpenseCategory,
    ExpenseMatchingRule,
    MatchMode,
)
from flatledger.services.storage.interface import DirectoryStorageInterface


POWER_COMPANIES = (
    "Mercury",
    "Genesis",
    "Contact Energy",
    "Electric Kiwi",
    "Flick",
    "Meridian",
    "Powershop",
)

SUPERMARKETS = (
    "Countdown",
    "New World",
    "Pak'nSave",
    "PAK'N SAVE",
    "Four Square",
)

POWER_PRIORITY_BASE = 100
GROCERY_PRIORITY_BASE = 90
GROCERY_FALLBACK_PRIORITY = 50


def default_categories() -> tuple[ExpenseCategory, ExpenseCategory]:
    """The Power and Groceries categories, unsaved."""
    power = ExpenseCategory(
        name="Power",
        slug="power",
        icon="Zap",
        color="amber",
        track_allotments=True,
        sort_order=1,
    )
    groceries = ExpenseCategory(
        name="Groceries",
        slug="groceries",
        icon="ShoppingCart",
        color="emerald",
        track_allotments=False,
        sort_order=2,
    )
    return power, groceries


def default_rules(power: ExpenseCategory, groceries: ExpenseCategory) -> list[ExpenseMatchingRule]:
    """Merchant rules for both categories plus the aggregator-category fallback."""
    rules = [
        ExpenseMatchingRule(
            category_id=power.id,
            name=f"{company} Power",
            priority=POWER_PRIORITY_BASE - i,
            merchant_pattern=company,
            match_mode=MatchMode.ANY,
        )
        for i, company in enumerate(POWER_COMPANIES)
    ]
    rules.extend(
        ExpenseMatchingRule(
            category_id=groceries.id,
            name=f"{store} Groceries",
            priority=GROCERY_PRIORITY_BASE - i,
            merchant_pattern=store,
            match_mode=MatchMode.ANY,
        )
        for i, store in enumerate(SUPERMARKETS)
    )
    rules.append(
        ExpenseMatchingRule(
            category_id=groceries.id,
            name="Aggregator Groceries Category",
            priority=GROCERY_FALLBACK_PRIORITY,
            source_category="groceries",
            match_mode=MatchMode.ANY,
        )
    )
    return rules


async def seed_default_expense_data(store: DirectoryStorageInterface) -> bool:
    """
    Create the default categories and rules if none exist yet.

    Returns:
        True if data was seeded, False if categories already existed
    """
    if await store.list_categories():
        return False

    power, groceries = default_categories()
    await store.save_category(power)
    await store.save_category(groceries)

    for rule in default_rules(power, groceries):
        await store.save_rule(rule)
    return True
