"""
Expense Categorizer

Files outgoing transactions into expense categories using
priority-ordered rules.

DESIGN DECISION: Each rule is compiled once into a tuple of enabled
field predicates. The evaluator then walks a uniform list instead of
branching on four independently optional fields, and the same list
drives both the ANY/ALL decision and the confidence score.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence
from uuid import UUID

from flatledger.matching.patterns import matches
from flatledger.models.expense import (
    CategoryMatch,
    ExpenseMatchingRule,
    ExpenseTransactionMatch,
    MatchMode,
)
from flatledger.models.transaction import Transaction


MAX_RULE_CONFIDENCE = 0.95
RULE_CONFIDENCE_BOOST = 0.3


class RuleField(str, Enum):
    """Transaction fields a rule can test."""
    MERCHANT = "merchant"
    DESCRIPTION = "description"
    ACCOUNT = "account"
    SOURCE_CATEGORY = "source_category"


@dataclass(frozen=True)
class FieldPredicate:
    """One configured criterion of a rule."""
    field: RuleField
    pattern: str
    is_regex: bool

    def evaluate(self, tx: Transaction) -> bool:
        if self.field == RuleField.SOURCE_CATEGORY:
            # Aggregator category is an exact, case-insensitive match
            return (
                tx.source_category is not None
                and tx.source_category.lower() == self.pattern.lower()
            )
        return matches(self.pattern, _field_value(tx, self.field), self.is_regex)


def _field_value(tx: Transaction, field: RuleField) -> Optional[str]:
    if field == RuleField.MERCHANT:
        return tx.merchant
    if field == RuleField.DESCRIPTION:
        return tx.description
    if field == RuleField.ACCOUNT:
        return tx.effective_other_account
    return tx.source_category


@dataclass(frozen=True)
class CompiledRule:
    """A rule plus its enabled predicates."""
    rule: ExpenseMatchingRule
    predicates: tuple[FieldPredicate, ...]

    def evaluate(self, tx: Transaction) -> Optional[CategoryMatch]:
        """
        Test the rule against a transaction.

        Returns a CategoryMatch with confidence
        min(0.95, matched / configured + 0.3), or None.
        """
        if not self.predicates:
            return None

        outcomes = [predicate.evaluate(tx) for predicate in self.predicates]
        if self.rule.match_mode == MatchMode.ALL:
            hit = all(outcomes)
        else:
            hit = any(outcomes)
        if not hit:
            return None

        ratio = sum(outcomes) / len(outcomes)
        return CategoryMatch(
            category_id=self.rule.category_id,
            rule_id=self.rule.id,
            confidence=round(min(MAX_RULE_CONFIDENCE, ratio + RULE_CONFIDENCE_BOOST), 4),
        )


def compile_rule(rule: ExpenseMatchingRule) -> CompiledRule:
    """Build the predicate list from whichever fields the rule configures."""
    configured = (
        (RuleField.MERCHANT, rule.merchant_pattern),
        (RuleField.DESCRIPTION, rule.description_pattern),
        (RuleField.ACCOUNT, rule.account_pattern),
        (RuleField.SOURCE_CATEGORY, rule.source_category),
    )
    predicates = tuple(
        FieldPredicate(field=field, pattern=pattern, is_regex=rule.is_regex)
        for field, pattern in configured
        if pattern
    )
    return CompiledRule(rule=rule, predicates=predicates)


def order_rules(rules: Iterable[ExpenseMatchingRule]) -> list[CompiledRule]:
    """Active rules, highest priority first. Ties keep input order."""
    active = [rule for rule in rules if rule.is_active]
    active.sort(key=lambda rule: rule.priority, reverse=True)
    return [compile_rule(rule) for rule in active]


def categorize_expense(
    tx: Transaction,
    rules: Iterable[ExpenseMatchingRule],
) -> Optional[CategoryMatch]:
    """
    File an outgoing transaction into the first matching category.

    Credits are never categorized.

    Args:
        tx: Transaction to categorize
        rules: Rule set; inactive rules are ignored

    Returns:
        CategoryMatch from the highest-priority matching rule, or None
    """
    if tx.amount >= 0:
        return None
    return categorize_with(tx, order_rules(rules))


def categorize_with(tx: Transaction, compiled: Sequence[CompiledRule]) -> Optional[CategoryMatch]:
    """Same as `categorize_expense` with rules already ordered and compiled."""
    if tx.amount >= 0:
        return None
    for rule in compiled:
        result = rule.evaluate(tx)
        if result is not None:
            return result
    return None


class ExpenseAction(str, Enum):
    KEEP = "keep"
    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class ExpenseUpdate:
    """What to do with a transaction's stored expense match."""
    action: ExpenseAction
    record: Optional[ExpenseTransactionMatch] = None


def resolve_expense_update(
    transaction_id: UUID,
    existing: Optional[ExpenseTransactionMatch],
    result: Optional[CategoryMatch],
) -> ExpenseUpdate:
    """
    Decide how a fresh categorization changes the stored match.

    Manual matches are never touched. An automatic match that no longer
    applies is deleted.
    """
    if existing is not None and existing.manual_match:
        return ExpenseUpdate(ExpenseAction.KEEP)

    if result is not None:
        return ExpenseUpdate(ExpenseAction.UPSERT, result.to_record(transaction_id))

    if existing is not None:
        return ExpenseUpdate(ExpenseAction.DELETE)

    return ExpenseUpdate(ExpenseAction.KEEP)
