"""
Obligation Calculator

Turns a flatmate's schedule history and matched transactions into a
week-by-week ledger of amount due, amount paid and running balance.

DESIGN DECISION: The calculator is a pure function of its inputs. It
never reads storage or the clock; "now" and the timezone are passed in.
Recomputing with the same inputs always gives an equal summary, which is
what lets the driver rebuild balances on every request instead of
caching them.

RULES:
1. Amount due is the rate of the schedule covering the week's Saturday
   (latest start wins where schedules overlap)
2. Only rent_payment transactions count as paid; everything else is
   attached to the week for display
3. Paid amounts are clipped to the analysis window, so the total paid
   always equals the sum of the weekly amounts paid
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from flatledger.models.obligation import (
    CurrentWeekStatus,
    ObligationSummary,
    PaymentStatus,
    TransactionView,
    WeeklyObligation,
)
from flatledger.models.people import PaymentSchedule, resolve_schedule
from flatledger.models.transaction import Transaction
from flatledger.obligations.weeks import RentWeek, civil_date, iter_weeks


ZERO = Decimal("0")

# Current-week status thresholds, as a share of the amount due
PAID_THRESHOLD = Decimal("0.95")
OVERPAID_THRESHOLD = Decimal("1.1")


def resolve_weekly_rate(schedules: Iterable[PaymentSchedule], day: date) -> Decimal:
    """Weekly amount owed on `day`, or 0 when no schedule covers it."""
    schedule = resolve_schedule(schedules, day)
    return schedule.weekly_amount if schedule else ZERO


def default_window_start(
    now: datetime,
    configured_start: Optional[date] = None,
    lookback_days: int = 180,
    tz: tzinfo = timezone.utc,
) -> datetime:
    """
    Where balance analysis starts when the caller gives no start.

    A configured start date is taken as midnight in the household
    timezone; otherwise the window reaches `lookback_days` back.
    """
    if configured_start is not None:
        return datetime.combine(configured_start, datetime.min.time(), tzinfo=tz)
    return now - timedelta(days=lookback_days)


def _is_persons_payment(tx: Transaction, person_id: UUID) -> bool:
    return tx.is_incoming and tx.matched_flatmate_id == person_id


def _view(tx: Transaction, person_id: UUID) -> TransactionView:
    is_this_person = tx.matched_flatmate_id == person_id
    return TransactionView(
        id=tx.id,
        timestamp=tx.timestamp,
        amount=tx.amount,
        description=tx.description,
        merchant=tx.merchant,
        card_suffix=tx.effective_card_suffix,
        matched_person_id=tx.match_target.person_id if tx.match_target else None,
        match_type=tx.match_type,
        confidence=tx.match_confidence,
        is_this_person=is_this_person,
        is_rent_payment=is_this_person and tx.is_rent_payment,
    )


def _in_window(tx: Transaction, window_start: datetime, window_end: datetime) -> bool:
    return window_start <= tx.timestamp <= window_end


def compute_obligations(
    person_id: UUID,
    schedules: Sequence[PaymentSchedule],
    transactions: Iterable[Transaction],
    window_start: datetime,
    window_end: datetime,
    now: datetime,
    tz: tzinfo = timezone.utc,
    account_transactions: Iterable[Transaction] = (),
) -> ObligationSummary:
    """
    Build the weekly obligation ledger for one flatmate.

    Args:
        person_id: The flatmate
        schedules: Their full schedule history
        transactions: Transactions to consider; only this flatmate's
            incoming ones are used
        window_start: Start of the analysis window
        window_end: End of the analysis window (usually now)
        now: Current instant; weeks starting later are skipped
        tz: Household timezone that defines week boundaries
        account_transactions: Every transaction on the account, shown per
            week for transparency; only incoming ones are kept

    Returns:
        ObligationSummary with one WeeklyObligation per week
    """
    schedules = tuple(schedules)
    payments = sorted(
        (
            tx for tx in transactions
            if _is_persons_payment(tx, person_id)
            and _in_window(tx, window_start, window_end)
        ),
        key=lambda tx: tx.timestamp,
    )
    incoming = sorted(
        (
            tx for tx in account_transactions
            if tx.is_incoming and _in_window(tx, window_start, window_end)
        ),
        key=lambda tx: tx.timestamp,
    )

    today = civil_date(now, tz)
    weeks = []
    for week in iter_weeks(window_start, window_end, tz):
        if week.start > now:
            continue

        amount_due = resolve_weekly_rate(schedules, week.start_day)
        week_payments = [tx for tx in payments if week.contains(tx.timestamp)]
        amount_paid = sum(
            (tx.amount for tx in week_payments if tx.is_rent_payment),
            ZERO,
        )

        weeks.append(WeeklyObligation(
            week_start=week.start,
            week_end=week.end,
            due_date=week.due_date,
            amount_due=amount_due,
            amount_paid=amount_paid,
            balance=amount_paid - amount_due,
            in_progress=today <= week.due_date,
            payment_transactions=tuple(_view(tx, person_id) for tx in week_payments),
            account_transactions=tuple(
                _view(tx, person_id) for tx in incoming if week.contains(tx.timestamp)
            ),
        ))

    total_due = sum((week.amount_due for week in weeks), ZERO)
    total_paid = sum((week.amount_paid for week in weeks), ZERO)

    active = resolve_schedule(schedules, today)
    future = sorted(
        (schedule for schedule in schedules if schedule.start_date > today),
        key=lambda schedule: schedule.start_date,
    )

    return ObligationSummary(
        person_id=person_id,
        window_start=window_start,
        window_end=window_end,
        weeks=tuple(weeks),
        total_due=total_due,
        total_paid=total_paid,
        balance=total_paid - total_due,
        current_weekly_rate=active.weekly_amount if active else None,
        active_schedule_end=active.end_date if active else None,
        future_schedules=tuple(future),
    )


def payment_status(amount_due: Decimal, amount_paid: Decimal) -> PaymentStatus:
    """
    Classify how far a week's obligation has been met.

    Within 5% short counts as paid; 10% over counts as overpaid.
    Nothing due and nothing paid is paid.
    """
    if amount_due <= 0:
        return PaymentStatus.OVERPAID if amount_paid > 0 else PaymentStatus.PAID
    if amount_paid == 0:
        return PaymentStatus.UNPAID
    if amount_paid >= amount_due * OVERPAID_THRESHOLD:
        return PaymentStatus.OVERPAID
    if amount_paid >= amount_due * PAID_THRESHOLD:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def current_week_status(
    person_id: UUID,
    schedules: Sequence[PaymentSchedule],
    transactions: Iterable[Transaction],
    now: datetime,
    tz: tzinfo = timezone.utc,
    name: Optional[str] = None,
) -> CurrentWeekStatus:
    """Amount due, amount paid and status for the week containing `now`."""
    week = RentWeek.containing(now, tz)
    amount_due = resolve_weekly_rate(schedules, week.start_day)
    amount_paid = sum(
        (
            tx.amount for tx in transactions
            if _is_persons_payment(tx, person_id)
            and tx.is_rent_payment
            and week.contains(tx.timestamp)
        ),
        ZERO,
    )
    return CurrentWeekStatus(
        person_id=person_id,
        name=name,
        amount_due=amount_due,
        amount_paid=amount_paid,
        status=payment_status(amount_due, amount_paid),
    )
