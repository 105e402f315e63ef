"""
Expense Report Models

Read models returned by the expense report executor. Amounts are
reported as positive spend even though the underlying transactions
are debits.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from flatledger.models.expense import ExpenseCategory


class ReportPeriod(str, Enum):
    """Preset reporting windows."""
    WEEK = "week"    # Current Saturday-Friday week
    MONTH = "month"  # Current calendar month
    YEAR = "year"    # Current month plus the 11 before it
    ALL = "all"      # No bounds


class PeriodRange(BaseModel):
    """Resolved bounds of a reporting period. None means unbounded."""

    period: ReportPeriod
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class ExpenseCategorySummary(BaseModel):
    """Spend in one category over a period."""

    category: ExpenseCategory
    total_amount: Decimal = Decimal("0")
    transaction_count: int = 0
    average_amount: Decimal = Decimal("0")
    trend: Optional[float] = Field(
        default=None,
        description="Percent change against the previous period of equal length"
    )


class CategoryBurnRate(BaseModel):
    """How quickly money goes out in one category, over its whole history."""

    category: ExpenseCategory
    daily_rate: Decimal = Decimal("0")
    weekly_rate: Decimal = Decimal("0")
    monthly_rate: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")
    days_covered: int = 0
    last_payment_at: Optional[datetime] = None
    last_payment_amount: Optional[Decimal] = None


class WeeklyExpensePoint(BaseModel):
    """Spend per category in one Saturday-start week."""

    week_start: date
    amounts: dict[UUID, Decimal] = Field(default_factory=dict)
    total: Decimal = Decimal("0")
