"""
Rent Week Calendar

Rent weeks run from Saturday 00:00 up to the next Saturday 00:00 in the
household's civil timezone, with payment due on the Thursday. The displayed
end is Friday 23:59:59.999; membership is tested against the next start
so no instant falls between two weeks.

All boundaries are computed on civil dates first and only then turned
into aware datetimes, so a week never drifts by an hour across a
daylight-saving change.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterator


SATURDAY = 5  # date.weekday()
DUE_OFFSET_DAYS = 5
WEEK_END_TIME = time(23, 59, 59, 999000)


def week_start_for(day: date) -> date:
    """The Saturday on or before `day`."""
    return day - timedelta(days=(day.weekday() - SATURDAY) % 7)


def due_date_for(week_start: date) -> date:
    """Thursday of the week, before the Friday rent payout."""
    return week_start + timedelta(days=DUE_OFFSET_DAYS)


def civil_date(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()


@dataclass(frozen=True)
class RentWeek:
    """One Saturday-Friday week in a given timezone."""
    start_day: date
    tz: tzinfo

    @property
    def start(self) -> datetime:
        return datetime.combine(self.start_day, time.min, tzinfo=self.tz)

    @property
    def end(self) -> datetime:
        return datetime.combine(self.start_day + timedelta(days=6), WEEK_END_TIME, tzinfo=self.tz)

    @property
    def next_start(self) -> datetime:
        return datetime.combine(self.start_day + timedelta(days=7), time.min, tzinfo=self.tz)

    @property
    def due_date(self) -> date:
        return due_date_for(self.start_day)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.next_start

    @classmethod
    def containing(cls, moment: datetime, tz: tzinfo) -> 'RentWeek':
        return cls(week_start_for(civil_date(moment, tz)), tz)


def iter_weeks(window_start: datetime, window_end: datetime, tz: tzinfo) -> Iterator[RentWeek]:
    """
    Every rent week touching the window, oldest first.

    Starts from the Saturday on or before the window start's civil date
    and stops after the week containing the window end's civil date.
    """
    current = week_start_for(civil_date(window_start, tz))
    last = civil_date(window_end, tz)
    while current <= last:
        yield RentWeek(current, tz)
        current += timedelta(days=7)
