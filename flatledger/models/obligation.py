"""
Obligation Models

Derived, never persisted. These are the read models the balance views
consume: one WeeklyObligation per Saturday-Friday week, rolled up into
an ObligationSummary per flatmate and a PaymentSummary per household.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from flatledger.models.people import PaymentSchedule
from flatledger.models.transaction import MatchType


class PaymentStatus(str, Enum):
    """Where a flatmate stands for the current week."""
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"
    OVERPAID = "overpaid"


class TransactionView(BaseModel):
    """A transaction as shown inside a week bucket."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    timestamp: datetime
    amount: Decimal
    description: str
    merchant: Optional[str] = None
    card_suffix: Optional[str] = None
    matched_person_id: Optional[UUID] = None
    match_type: Optional[MatchType] = None
    confidence: Optional[float] = None
    is_this_person: bool = False
    is_rent_payment: bool = False


class WeeklyObligation(BaseModel):
    """
    One week bucket for one flatmate.

    balance > 0 means overpaid (credit), balance < 0 means owing.
    """
    model_config = ConfigDict(frozen=True)

    week_start: datetime = Field(..., description="Saturday 00:00 in the household timezone")
    week_end: datetime = Field(..., description="Friday 23:59:59.999 in the household timezone")
    due_date: date = Field(..., description="Thursday of the week")
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal
    in_progress: bool = Field(
        default=False,
        description="The due date has not passed yet"
    )
    payment_transactions: tuple[TransactionView, ...] = ()
    account_transactions: tuple[TransactionView, ...] = ()


class ObligationSummary(BaseModel):
    """Totals and week-by-week breakdown for one flatmate."""
    model_config = ConfigDict(frozen=True)

    person_id: UUID
    window_start: datetime
    window_end: datetime
    weeks: tuple[WeeklyObligation, ...]
    total_due: Decimal
    total_paid: Decimal
    balance: Decimal
    current_weekly_rate: Optional[Decimal] = None
    active_schedule_end: Optional[date] = None
    future_schedules: tuple[PaymentSchedule, ...] = ()


class FlatmateBalance(BaseModel):
    """An ObligationSummary labelled for display."""

    person_id: UUID
    name: Optional[str]
    email: str
    summary: ObligationSummary

    @property
    def balance(self) -> Decimal:
        return self.summary.balance


class PaymentSummary(BaseModel):
    """Household-wide rollup across all flatmates."""

    flatmates: list[FlatmateBalance] = Field(default_factory=list)
    total_due: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_balance: Decimal = Decimal("0")


class CurrentWeekStatus(BaseModel):
    """Who owes what for the week containing "now"."""

    person_id: UUID
    name: Optional[str] = None
    amount_due: Decimal
    amount_paid: Decimal
    status: PaymentStatus
