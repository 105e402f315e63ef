"""
Transaction Models for flatledger

A transaction is an immutable bank event plus a mutable reconciliation
annotation. These models are designed to:
1. Keep the facts reported by the bank separate from our annotations
2. Make illegal annotation combinations unrepresentable
3. Be serializable for storage and logging

DESIGN DECISION: The match annotation is a tagged union
(Unmatched | AutoMatched | ManualMatched) rather than a bag of nullable
columns. A transaction can never point at a flatmate and a landlord at
the same time, and "manual" can never carry a stale automatic confidence.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MatchType(str, Enum):
    """
    How a matched transaction is classified.

    Only RENT_PAYMENT counts toward a flatmate's weekly obligation.
    """
    RENT_PAYMENT = "rent_payment"
    GROCERY_REIMBURSEMENT = "grocery_reimbursement"
    EXPENSE = "expense"                    # Card purchase by a flatmate
    OTHER = "other"
    LANDLORD_PAYMENT = "landlord_payment"  # Outgoing transfer to a landlord


class PersonKind(str, Enum):
    """Which kind of person a match points at."""
    FLATMATE = "flatmate"
    LANDLORD = "landlord"


# =============================================================================
# MATCH STATE - tagged union
# =============================================================================

class MatchTarget(BaseModel):
    """The person a transaction was matched to."""
    model_config = ConfigDict(frozen=True)

    kind: PersonKind
    person_id: UUID


def _check_target_type(target: MatchTarget, match_type: MatchType) -> None:
    if target.kind == PersonKind.LANDLORD and match_type != MatchType.LANDLORD_PAYMENT:
        raise ValueError("Landlord matches must be classified as landlord_payment")
    if target.kind == PersonKind.FLATMATE and match_type == MatchType.LANDLORD_PAYMENT:
        raise ValueError("Flatmate matches cannot be classified as landlord_payment")


class Unmatched(BaseModel):
    """No person is associated with the transaction."""
    model_config = ConfigDict(frozen=True)

    state: Literal["unmatched"] = "unmatched"


class AutoMatched(BaseModel):
    """Match produced by the matcher. Replaced freely on rematch."""
    model_config = ConfigDict(frozen=True)

    state: Literal["auto"] = "auto"
    target: MatchTarget
    match_type: MatchType
    confidence: float = Field(..., ge=0.0, le=1.0)

    @model_validator(mode='after')
    def validate_target_type(self) -> 'AutoMatched':
        _check_target_type(self.target, self.match_type)
        return self


class ManualMatched(BaseModel):
    """
    Match assigned by an admin.

    CRITICAL: Automated rematching never overwrites this state.
    """
    model_config = ConfigDict(frozen=True)

    state: Literal["manual"] = "manual"
    target: MatchTarget
    match_type: MatchType

    @model_validator(mode='after')
    def validate_target_type(self) -> 'ManualMatched':
        _check_target_type(self.target, self.match_type)
        return self


MatchState = Annotated[
    Union[Unmatched, AutoMatched, ManualMatched],
    Field(discriminator="state"),
]


class MatchResult(BaseModel):
    """Output of the flatmate/landlord matcher for one transaction."""
    model_config = ConfigDict(frozen=True)

    target: MatchTarget
    match_type: MatchType
    confidence: float = Field(..., ge=0.0, le=1.0)

    @property
    def person_id(self) -> UUID:
        return self.target.person_id

    @property
    def is_landlord(self) -> bool:
        return self.target.kind == PersonKind.LANDLORD

    def to_state(self) -> AutoMatched:
        """Convert to the annotation stored on the transaction."""
        return AutoMatched(
            target=self.target,
            match_type=self.match_type,
            confidence=self.confidence,
        )


# =============================================================================
# TRANSACTION
# =============================================================================

class SupplementaryFields(BaseModel):
    """
    Flat, typed view of the extra fields buried in the source payload.

    Built once at ingestion so the matcher never inspects payload shape.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    particulars: Optional[str] = None
    code: Optional[str] = None
    reference: Optional[str] = None
    other_account: Optional[str] = None
    card_suffix: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class Transaction(BaseModel):
    """
    A bank transaction as stored by the engine.

    Facts (timestamp, amount, text fields, payload) are refreshed on every
    sync. The `match` annotation is ours and survives re-syncs.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(default_factory=uuid4)
    external_id: str = Field(
        ...,
        min_length=1,
        description="Source identifier used for idempotent upsert"
    )

    # Facts
    timestamp: datetime = Field(..., description="When the transaction happened")
    amount: Decimal = Field(
        ...,
        description="Signed amount: positive = money in, negative = money out"
    )
    description: str = ""
    merchant: Optional[str] = None
    merchant_logo: Optional[str] = None
    source_category: Optional[str] = Field(
        default=None,
        description="Category label assigned by the bank aggregator"
    )
    card_suffix: Optional[str] = None
    other_account: Optional[str] = Field(
        default=None,
        description="Counterparty account number"
    )
    raw_payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Full source record, kept for audit and display only"
    )
    supplementary: SupplementaryFields = Field(default_factory=SupplementaryFields)

    # Annotation
    match: MatchState = Field(default_factory=Unmatched)

    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('timestamp')
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_incoming(self) -> bool:
        return self.amount > 0

    @property
    def is_manual(self) -> bool:
        return isinstance(self.match, ManualMatched)

    @property
    def match_target(self) -> Optional[MatchTarget]:
        if isinstance(self.match, Unmatched):
            return None
        return self.match.target

    @property
    def matched_flatmate_id(self) -> Optional[UUID]:
        target = self.match_target
        if target and target.kind == PersonKind.FLATMATE:
            return target.person_id
        return None

    @property
    def matched_landlord_id(self) -> Optional[UUID]:
        target = self.match_target
        if target and target.kind == PersonKind.LANDLORD:
            return target.person_id
        return None

    @property
    def match_type(self) -> Optional[MatchType]:
        if isinstance(self.match, Unmatched):
            return None
        return self.match.match_type

    @property
    def match_confidence(self) -> Optional[float]:
        if isinstance(self.match, AutoMatched):
            return self.match.confidence
        if isinstance(self.match, ManualMatched):
            return 1.0
        return None

    @property
    def is_rent_payment(self) -> bool:
        return self.match_type == MatchType.RENT_PAYMENT

    @property
    def effective_card_suffix(self) -> Optional[str]:
        """Card suffix from the transaction, else from the payload."""
        return self.card_suffix or self.supplementary.card_suffix

    @property
    def effective_other_account(self) -> Optional[str]:
        return self.other_account or self.supplementary.other_account

    def with_refreshed_facts(self, fresh: 'Transaction') -> 'Transaction':
        """
        Copy the source facts of `fresh` onto this record.

        Identity, creation time and the match annotation are preserved.
        """
        return self.model_copy(update={
            "timestamp": fresh.timestamp,
            "amount": fresh.amount,
            "description": fresh.description,
            "merchant": fresh.merchant,
            "merchant_logo": fresh.merchant_logo,
            "source_category": fresh.source_category,
            "card_suffix": fresh.card_suffix,
            "other_account": fresh.other_account,
            "raw_payload": fresh.raw_payload,
            "supplementary": fresh.supplementary,
        })

    def with_match(self, state: Union[Unmatched, AutoMatched, ManualMatched]) -> 'Transaction':
        return self.model_copy(update={"match": state})
