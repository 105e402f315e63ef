"""
Data Models Package

This package contains all Pydantic models used by flatledger.
All data flowing through the engine must conform to these schemas.
"""

from flatledger.models.transaction import (
    AutoMatched,
    ManualMatched,
    MatchResult,
    MatchState,
    MatchTarget,
    MatchType,
    PersonKind,
    SupplementaryFields,
    Transaction,
    Unmatched,
)
from flatledger.models.people import (
    Flatmate,
    Landlord,
    PaymentSchedule,
    resolve_schedule,
)
from flatledger.models.expense import (
    CategoryMatch,
    ExpenseCategory,
    ExpenseMatchingRule,
    ExpenseTransactionMatch,
    MatchMode,
)
from flatledger.models.obligation import (
    CurrentWeekStatus,
    FlatmateBalance,
    ObligationSummary,
    PaymentStatus,
    PaymentSummary,
    TransactionView,
    WeeklyObligation,
)
from flatledger.models.report import (
    CategoryBurnRate,
    ExpenseCategorySummary,
    PeriodRange,
    ReportPeriod,
    WeeklyExpensePoint,
)
from flatledger.models.validation import ValidationIssue, ValidationResult
from flatledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "AutoMatched",
    "ManualMatched",
    "MatchResult",
    "MatchState",
    "MatchTarget",
    "MatchType",
    "PersonKind",
    "SupplementaryFields",
    "Transaction",
    "Unmatched",
    # People
    "Flatmate",
    "Landlord",
    "PaymentSchedule",
    "resolve_schedule",
    # Expense models
    "CategoryMatch",
    "ExpenseCategory",
    "ExpenseMatchingRule",
    "ExpenseTransactionMatch",
    "MatchMode",
    # Obligation models
    "CurrentWeekStatus",
    "FlatmateBalance",
    "ObligationSummary",
    "PaymentStatus",
    "PaymentSummary",
    "TransactionView",
    "WeeklyObligation",
    # Expense reports
    "CategoryBurnRate",
    "ExpenseCategorySummary",
    "PeriodRange",
    "ReportPeriod",
    "WeeklyExpensePoint",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
