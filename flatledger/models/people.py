"""
People and Schedule Models

Flatmates pay rent into the household account; landlords receive it.
Each carries optional matching hints used to recognise their
transactions. Flatmates own payment schedules that say how much is
owed per week over a date range.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from flatledger.models.transaction import utc_now


class Flatmate(BaseModel):
    """
    A contributor whose share of rent is tracked.

    Matching hints are independent: any subset may be configured.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: Optional[str] = Field(default=None, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)

    bank_account_pattern: Optional[str] = Field(
        default=None,
        description="Substring of the flatmate's account number as it appears on transfers"
    )
    card_suffix: Optional[str] = Field(
        default=None,
        description="Last four digits of the household card the flatmate uses"
    )
    matching_name: Optional[str] = Field(
        default=None,
        description="Name as it appears in transfer descriptions"
    )

    @property
    def has_matching_hint(self) -> bool:
        return bool(self.bank_account_pattern or self.card_suffix or self.matching_name)

    @property
    def display_name(self) -> str:
        return self.name or self.email


class Landlord(BaseModel):
    """
    A recipient of outgoing rent transfers.

    No card suffix: landlords never show up on card purchases.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    bank_account_pattern: Optional[str] = None
    matching_name: Optional[str] = None

    @property
    def has_matching_hint(self) -> bool:
        return bool(self.bank_account_pattern or self.matching_name)


class PaymentSchedule(BaseModel):
    """
    A weekly rate owed by one flatmate over a date range.

    Schedules for the same flatmate may overlap; where they do, the one
    that starts latest wins.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    person_id: UUID
    start_date: date = Field(..., description="First day covered (inclusive)")
    end_date: Optional[date] = Field(
        default=None,
        description="Last day covered (inclusive); None means ongoing"
    )
    weekly_amount: Decimal = Field(..., ge=0, decimal_places=2)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_range(self) -> 'PaymentSchedule':
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self

    def covers(self, day: date) -> bool:
        """True when `day` falls inside [start_date, end_date-or-open]."""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


def resolve_schedule(
    schedules: Iterable[PaymentSchedule],
    day: date,
) -> Optional[PaymentSchedule]:
    """
    Pick the schedule that applies on `day`.

    Among schedules covering the day, the one with the latest start date
    wins. Equal start dates keep the first one in input order.
    """
    active = [schedule for schedule in schedules if schedule.covers(day)]
    if not active:
        return None
    return max(active, key=lambda schedule: schedule.start_date)
