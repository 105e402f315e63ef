"""
Obligations Package

Week calendar and the pure obligation calculator.
"""

from flatledger.obligations.weeks import (
    RentWeek,
    due_date_for,
    iter_weeks,
    week_start_for,
)
from flatledger.obligations.calculator import (
    compute_obligations,
    current_week_status,
    default_window_start,
    payment_status,
    resolve_weekly_rate,
)

__all__ = [
    # Calendar
    "RentWeek",
    "due_date_for",
    "iter_weeks",
    "week_start_for",
    # Calculator
    "compute_obligations",
    "current_week_status",
    "default_window_start",
    "payment_status",
    "resolve_weekly_rate",
]
