"""
Expense Report Engine

DESIGN DECISION: Reporting is DETERMINISTIC and read-only.
Every figure is computed from the stored expense matches joined to
their transactions; nothing is estimated or cached. Amounts are
reported as positive spend.

GUARANTEES:
- Only returns real data from storage
- Empty categories report zeros, never a missing row
- Weekly series contain every week in range, even weeks without spend
"""

import calendar
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from flatledger.models.expense import ExpenseCategory, ExpenseTransactionMatch
from flatledger.models.report import (
    CategoryBurnRate,
    ExpenseCategorySummary,
    PeriodRange,
    ReportPeriod,
    WeeklyExpensePoint,
)
from flatledger.models.transaction import Transaction
from flatledger.obligations.weeks import WEEK_END_TIME, RentWeek, week_start_for
from flatledger.services.storage import (
    DirectoryStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


ZERO = Decimal("0")
CENT = Decimal("0.01")
DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30
DEFAULT_SERIES_DAYS = 365


class ReportError(Exception):
    """Error while building an expense report."""
    pass


ExpenseRow = tuple[ExpenseTransactionMatch, Transaction]


def _spend(tx: Transaction) -> Decimal:
    return abs(tx.amount)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT)


def _month_bounds(year: int, month: int, tz: tzinfo) -> tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    start = datetime.combine(date(year, month, 1), time.min, tzinfo=tz)
    end = datetime.combine(date(year, month, last_day), WEEK_END_TIME, tzinfo=tz)
    return start, end


def period_dates(
    period: Union[ReportPeriod, str],
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> PeriodRange:
    """
    Resolve a preset period to concrete bounds in the household timezone.

    Example:
        >>> period_dates("all", now).start is None
        True
    """
    period = ReportPeriod(period)

    if period == ReportPeriod.WEEK:
        week = RentWeek.containing(now, tz)
        return PeriodRange(period=period, start=week.start, end=week.end)

    today = now.astimezone(tz).date()
    if period == ReportPeriod.MONTH:
        start, end = _month_bounds(today.year, today.month, tz)
        return PeriodRange(period=period, start=start, end=end)

    if period == ReportPeriod.YEAR:
        year, month = today.year, today.month - 11
        if month <= 0:
            month += 12
            year -= 1
        start, _ = _month_bounds(year, month, tz)
        _, end = _month_bounds(today.year, today.month, tz)
        return PeriodRange(period=period, start=start, end=end)

    return PeriodRange(period=period)


class ExpenseReportExecutor:
    """
    Builds expense reports from stored categorizations.

    Reads categories from the directory store and expense matches plus
    transactions from the transaction store.
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        directory: DirectoryStorageInterface,
        tz: tzinfo = timezone.utc,
    ):
        self._transactions = transactions
        self._directory = directory
        self._tz = tz

    async def _load_rows(self, category_id: Optional[UUID] = None) -> list[ExpenseRow]:
        """Expense matches joined to their transactions, newest first."""
        try:
            matches = await self._transactions.list_expense_matches(category_id=category_id)
            rows = []
            for match in matches:
                tx = await self._transactions.get_transaction(match.transaction_id)
                if tx is None:
                    continue  # Orphaned match
                rows.append((match, tx))
        except StorageError as e:
            raise ReportError(f"Failed to load expense data: {e}") from e

        rows.sort(key=lambda row: row[1].timestamp, reverse=True)
        return rows

    async def _active_categories(self) -> list[ExpenseCategory]:
        try:
            return await self._directory.list_categories(active_only=True)
        except StorageError as e:
            raise ReportError(f"Failed to load categories: {e}") from e

    async def category_summaries(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[ExpenseCategorySummary]:
        """
        Total, count and average spend per active category.

        When both bounds are given, `trend` compares against the
        immediately preceding period of the same length.
        """
        categories = await self._active_categories()
        rows = await self._load_rows()

        by_category: dict[UUID, list[Transaction]] = defaultdict(list)
        for match, tx in rows:
            by_category[match.category_id].append(tx)

        summaries = []
        for category in categories:
            txs = by_category.get(category.id, [])
            in_period = [tx for tx in txs if _within(tx.timestamp, start, end)]

            total = sum((_spend(tx) for tx in in_period), ZERO)
            count = len(in_period)
            average = _money(total / count) if count else ZERO

            trend = None
            if start and end:
                length = end - start
                previous = sum(
                    (_spend(tx) for tx in txs if _within(tx.timestamp, start - length, end - length)),
                    ZERO,
                )
                if previous > 0:
                    trend = round(float((total - previous) / previous * 100), 2)

            summaries.append(ExpenseCategorySummary(
                category=category,
                total_amount=total,
                transaction_count=count,
                average_amount=average,
                trend=trend,
            ))

        return summaries

    async def burn_rates(self) -> list[CategoryBurnRate]:
        """
        Average spend per day, week and month for every active category.

        Rates span the category's oldest to newest payment, at least one day.
        """
        categories = await self._active_categories()
        rows = await self._load_rows()

        by_category: dict[UUID, list[Transaction]] = defaultdict(list)
        for match, tx in rows:
            by_category[match.category_id].append(tx)

        results = []
        for category in categories:
            txs = by_category.get(category.id)
            if not txs:
                results.append(CategoryBurnRate(category=category))
                continue

            # Rows are newest first
            newest, oldest = txs[0], txs[-1]
            total = sum((_spend(tx) for tx in txs), ZERO)
            days_covered = max(1, (newest.timestamp - oldest.timestamp).days)
            daily = total / days_covered

            results.append(CategoryBurnRate(
                category=category,
                daily_rate=_money(daily),
                weekly_rate=_money(daily * DAYS_PER_WEEK),
                monthly_rate=_money(daily * DAYS_PER_MONTH),
                total_spent=total,
                days_covered=days_covered,
                last_payment_at=newest.timestamp,
                last_payment_amount=_spend(newest),
            ))

        return results

    async def burn_rate_for(self, category_id: UUID) -> Optional[CategoryBurnRate]:
        """Burn rate of a single category, or None if it is unknown or inactive."""
        for rate in await self.burn_rates():
            if rate.category.id == category_id:
                return rate
        return None

    async def weekly_series(
        self,
        now: datetime,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
    ) -> list[WeeklyExpensePoint]:
        """
        Spend per Saturday-start week, oldest first.

        Defaults to the year up to `now`. Weeks without spend are
        included with zero amounts for every active category.
        """
        end = end or now
        start = start or end - timedelta(days=DEFAULT_SERIES_DAYS)

        categories = await self._active_categories()
        if category_id is not None:
            categories = [c for c in categories if c.id == category_id]
        rows = await self._load_rows(category_id=category_id)

        buckets: dict[date, dict[UUID, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        for match, tx in rows:
            if not _within(tx.timestamp, start, end):
                continue
            week = week_start_for(tx.timestamp.astimezone(self._tz).date())
            buckets[week][match.category_id] += _spend(tx)

        points = []
        current = week_start_for(start.astimezone(self._tz).date())
        last = end.astimezone(self._tz).date()
        while current <= last:
            spent = buckets.get(current, {})
            amounts = {category.id: spent.get(category.id, ZERO) for category in categories}
            points.append(WeeklyExpensePoint(
                week_start=current,
                amounts=amounts,
                total=sum(amounts.values(), ZERO),
            ))
            current += timedelta(days=DAYS_PER_WEEK)

        return points

    async def transactions_for_category(
        self,
        category_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ExpenseRow]:
        """Categorized transactions of one category, newest first."""
        rows = [
            row for row in await self._load_rows(category_id=category_id)
            if _within(row[1].timestamp, start, end)
        ]
        return rows[:limit] if limit else rows

    def describe_range(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> str:
        """Format a report range for display."""
        date_from = start.astimezone(self._tz).date() if start else None
        date_to = end.astimezone(self._tz).date() if end else None

        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.strftime('%d %b %Y')}"
            elif date_from.month == date_to.month and date_from.year == date_to.year:
                return f"in {date_from.strftime('%B %Y')}"
            elif date_from.year == date_to.year:
                return f"from {date_from.strftime('%b')} to {date_to.strftime('%b %Y')}"
            else:
                return f"from {date_from.strftime('%b %Y')} to {date_to.strftime('%b %Y')}"
        elif date_from:
            return f"from {date_from.strftime('%d %b %Y')}"
        elif date_to:
            return f"until {date_to.strftime('%d %b %Y')}"
        return "all time"


def _within(moment: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start and moment < start:
        return False
    if end and moment > end:
        return False
    return True
