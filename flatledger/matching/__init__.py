"""
Matching Package

Pure matching logic: pattern primitives, the flatmate/landlord matcher
and the expense categorizer. Nothing in here touches storage; the
reconciliation driver feeds it and persists what it returns.
"""

from flatledger.matching.patterns import (
    build_search_corpus,
    matches,
    normalize_payload,
)
from flatledger.matching.flatmate import (
    MatchContext,
    PaymentClassification,
    RematchPlan,
    classify_payment,
    match_landlord_transaction,
    match_transaction,
    rematch_all,
)
from flatledger.matching.expense import (
    CompiledRule,
    ExpenseAction,
    ExpenseUpdate,
    categorize_expense,
    compile_rule,
    order_rules,
    resolve_expense_update,
)

__all__ = [
    # Patterns
    "build_search_corpus",
    "matches",
    "normalize_payload",
    # Flatmate/landlord matcher
    "MatchContext",
    "PaymentClassification",
    "RematchPlan",
    "classify_payment",
    "match_landlord_transaction",
    "match_transaction",
    "rematch_all",
    # Expense categorizer
    "CompiledRule",
    "ExpenseAction",
    "ExpenseUpdate",
    "categorize_expense",
    "compile_rule",
    "order_rules",
    "resolve_expense_update",
]
