"""Expense reporting package."""

from flatledger.queries.executor import (
    ExpenseReportExecutor,
    ReportError,
    period_dates,
)

__all__ = ["ExpenseReportExecutor", "ReportError", "period_dates"]
