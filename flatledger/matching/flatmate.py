"""
Flatmate and Landlord Matcher

Assigns a transaction to at most one person with a classification and
a confidence score.

DESIGN DECISION: Precedence is an explicit, ordered tuple of stages.
Every stage is a pure function with the same signature
`(PreparedTransaction, MatchContext) -> Optional[MatchResult]`, and the
driver returns the first non-empty result. Each tier can be tested on
its own and reordering precedence is a one-line change.

Stage order (first hit wins):
1. Card suffix on an outgoing card purchase      -> expense
2. Incoming transfer, bank-account pattern       -> classified payment
3. Incoming transfer, name pattern               -> classified payment x 0.9
4. Outgoing non-card transfer to a flatmate      -> other
5. Outgoing non-card transfer to a landlord      -> landlord_payment
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timezone, tzinfo
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union
from uuid import UUID

from flatledger.matching.patterns import build_search_corpus
from flatledger.models.people import (
    Flatmate,
    Landlord,
    PaymentSchedule,
    resolve_schedule,
)
from flatledger.models.transaction import (
    AutoMatched,
    ManualMatched,
    MatchResult,
    MatchTarget,
    MatchType,
    PersonKind,
    Transaction,
    Unmatched,
)


# Rent amounts within ±20% of the expected multiple are accepted
PAYMENT_TOLERANCE = Decimal("0.2")

# (weeks paid at once, confidence), checked in order
RENT_MULTIPLES = (
    (1, 0.95),
    (2, 0.9),
    (3, 0.85),
)

GROCERY_THRESHOLD = Decimal("0.5")
NAME_MATCH_FACTOR = 0.9

CARD_MATCH_CONFIDENCE = 0.95
OUTGOING_ACCOUNT_CONFIDENCE = 0.9
OUTGOING_NAME_CONFIDENCE = 0.8
LANDLORD_ACCOUNT_CONFIDENCE = 0.95
LANDLORD_NAME_CONFIDENCE = 0.85

NO_SCHEDULE_CONFIDENCE = 0.7
GROCERY_CONFIDENCE = 0.7
UNCLASSIFIED_CONFIDENCE = 0.6


@dataclass(frozen=True)
class PaymentClassification:
    """What an incoming payment from a flatmate most likely is."""
    match_type: MatchType
    confidence: float


@dataclass(frozen=True)
class MatchContext:
    """
    Read-only data the stages match against.

    Build it with `MatchContext.build`, which drops people without any
    matching hint and groups schedules by person.
    """
    flatmates: tuple[Flatmate, ...] = ()
    landlords: tuple[Landlord, ...] = ()
    schedules: Mapping[UUID, tuple[PaymentSchedule, ...]] = field(default_factory=dict)
    tz: tzinfo = timezone.utc

    @classmethod
    def build(
        cls,
        flatmates: Iterable[Flatmate] = (),
        landlords: Iterable[Landlord] = (),
        schedules: Iterable[PaymentSchedule] = (),
        tz: tzinfo = timezone.utc,
    ) -> 'MatchContext':
        by_person: dict[UUID, list[PaymentSchedule]] = defaultdict(list)
        for schedule in schedules:
            by_person[schedule.person_id].append(schedule)

        return cls(
            flatmates=tuple(flatmate for flatmate in flatmates if flatmate.has_matching_hint),
            landlords=tuple(landlord for landlord in landlords if landlord.has_matching_hint),
            schedules={pid: tuple(items) for pid, items in by_person.items()},
            tz=tz,
        )

    def schedules_for(self, person_id: UUID) -> tuple[PaymentSchedule, ...]:
        return self.schedules.get(person_id, ())


@dataclass(frozen=True)
class PreparedTransaction:
    """
    The parts of a transaction the stages look at, computed once.

    `day` is the civil date in the household timezone, used for
    schedule lookups.
    """
    amount: Decimal
    day: date
    card_suffix: Optional[str]
    corpus: str
    other_account: str

    @classmethod
    def from_transaction(cls, tx: Transaction, tz: tzinfo = timezone.utc) -> 'PreparedTransaction':
        return cls(
            amount=tx.amount,
            day=tx.timestamp.astimezone(tz).date(),
            card_suffix=tx.effective_card_suffix,
            corpus=build_search_corpus(tx.description, tx.supplementary),
            other_account=(tx.effective_other_account or "").lower(),
        )


MatchStage = Callable[[PreparedTransaction, MatchContext], Optional[MatchResult]]


# =============================================================================
# PAYMENT CLASSIFICATION
# =============================================================================

def is_within_tolerance(actual: Decimal, expected: Decimal, tolerance: Decimal) -> bool:
    """Inclusive check of `actual` against expected ± tolerance."""
    lower = expected * (1 - tolerance)
    upper = expected * (1 + tolerance)
    return lower <= actual <= upper


def classify_payment(
    amount: Decimal,
    on_day: date,
    schedules: Sequence[PaymentSchedule],
) -> PaymentClassification:
    """
    Classify an incoming payment from a flatmate.

    The schedule active on `on_day` (latest start wins) gives the weekly
    rate. One, two or three weeks' rent within tolerance is a rent
    payment; less than half a week is a grocery reimbursement.

    Args:
        amount: Positive payment amount
        on_day: Civil date of the payment
        schedules: The flatmate's full schedule history

    Returns:
        PaymentClassification. Never fails: no schedule means "other".
    """
    schedule = resolve_schedule(schedules, on_day)
    if schedule is None:
        return PaymentClassification(MatchType.OTHER, NO_SCHEDULE_CONFIDENCE)

    weekly = schedule.weekly_amount
    for multiple, confidence in RENT_MULTIPLES:
        if is_within_tolerance(amount, weekly * multiple, PAYMENT_TOLERANCE):
            return PaymentClassification(MatchType.RENT_PAYMENT, confidence)

    if amount < weekly * GROCERY_THRESHOLD:
        return PaymentClassification(MatchType.GROCERY_REIMBURSEMENT, GROCERY_CONFIDENCE)

    return PaymentClassification(MatchType.OTHER, UNCLASSIFIED_CONFIDENCE)


def _flatmate_result(
    flatmate: Flatmate,
    match_type: MatchType,
    confidence: float,
) -> MatchResult:
    return MatchResult(
        target=MatchTarget(kind=PersonKind.FLATMATE, person_id=flatmate.id),
        match_type=match_type,
        confidence=round(confidence, 4),
    )


def _landlord_result(landlord: Landlord, confidence: float) -> MatchResult:
    return MatchResult(
        target=MatchTarget(kind=PersonKind.LANDLORD, person_id=landlord.id),
        match_type=MatchType.LANDLORD_PAYMENT,
        confidence=confidence,
    )


def _contains(pattern: Optional[str], text: str) -> bool:
    return bool(pattern) and bool(text) and pattern.lower() in text


# =============================================================================
# STAGES
# =============================================================================

def card_suffix_stage(tx: PreparedTransaction, ctx: MatchContext) -> Optional[MatchResult]:
    """Outgoing card purchase made with a flatmate's card."""
    if tx.amount >= 0 or not tx.card_suffix:
        return None

    for flatmate in ctx.flatmates:
        if flatmate.card_suffix and flatmate.card_suffix == tx.card_suffix:
            return _flatmate_result(flatmate, MatchType.EXPENSE, CARD_MATCH_CONFIDENCE)
    return None


def incoming_account_stage(tx: PreparedTransaction, ctx: MatchContext) -> Optional[MatchResult]:
    """Incoming transfer from a flatmate's bank account."""
    if tx.amount <= 0:
        return None

    for flatmate in ctx.flatmates:
        if _contains(flatmate.bank_account_pattern, tx.corpus):
            kind = classify_payment(tx.amount, tx.day, ctx.schedules_for(flatmate.id))
            return _flatmate_result(flatmate, kind.match_type, kind.confidence)
    return None


def incoming_name_stage(tx: PreparedTransaction, ctx: MatchContext) -> Optional[MatchResult]:
    """Incoming transfer naming a flatmate. Slightly less certain."""
    if tx.amount <= 0:
        return None

    for flatmate in ctx.flatmates:
        if _contains(flatmate.matching_name, tx.corpus):
            kind = classify_payment(tx.amount, tx.day, ctx.schedules_for(flatmate.id))
            return _flatmate_result(
                flatmate,
                kind.match_type,
                kind.confidence * NAME_MATCH_FACTOR,
            )
    return None


def outgoing_flatmate_stage(tx: PreparedTransaction, ctx: MatchContext) -> Optional[MatchResult]:
    """
    Outgoing transfer to a flatmate (e.g. paying someone back).

    Classified "other" so it never counts toward rent.
    """
    if tx.amount >= 0 or tx.card_suffix:
        return None

    for flatmate in ctx.flatmates:
        if _contains(flatmate.bank_account_pattern, tx.corpus):
            return _flatmate_result(flatmate, MatchType.OTHER, OUTGOING_ACCOUNT_CONFIDENCE)

    for flatmate in ctx.flatmates:
        if _contains(flatmate.matching_name, tx.corpus):
            return _flatmate_result(flatmate, MatchType.OTHER, OUTGOING_NAME_CONFIDENCE)
    return None


def landlord_stage(tx: PreparedTransaction, ctx: MatchContext) -> Optional[MatchResult]:
    """
    Outgoing transfer to a landlord.

    The counterparty account field is checked before the general corpus.
    """
    if tx.amount >= 0 or tx.card_suffix:
        return None

    for landlord in ctx.landlords:
        if _contains(landlord.bank_account_pattern, tx.other_account):
            return _landlord_result(landlord, LANDLORD_ACCOUNT_CONFIDENCE)

    for landlord in ctx.landlords:
        if _contains(landlord.bank_account_pattern, tx.corpus):
            return _landlord_result(landlord, LANDLORD_ACCOUNT_CONFIDENCE)

    for landlord in ctx.landlords:
        if _contains(landlord.matching_name, tx.corpus):
            return _landlord_result(landlord, LANDLORD_NAME_CONFIDENCE)
    return None


MATCH_STAGES: tuple[MatchStage, ...] = (
    card_suffix_stage,
    incoming_account_stage,
    incoming_name_stage,
    outgoing_flatmate_stage,
    landlord_stage,
)


def run_stages(
    tx: PreparedTransaction,
    ctx: MatchContext,
    stages: Sequence[MatchStage] = MATCH_STAGES,
) -> Optional[MatchResult]:
    """Return the first non-empty stage result."""
    for stage in stages:
        result = stage(tx, ctx)
        if result is not None:
            return result
    return None


# =============================================================================
# PUBLIC API
# =============================================================================

def match_transaction(tx: Transaction, context: MatchContext) -> Optional[MatchResult]:
    """
    Match a transaction against all flatmates, then all landlords.

    Args:
        tx: The transaction to match
        context: Flatmates, landlords and schedules to match against

    Returns:
        MatchResult, or None when nobody matches
    """
    prepared = PreparedTransaction.from_transaction(tx, context.tz)
    return run_stages(prepared, context)


def match_landlord_transaction(
    tx: Transaction,
    landlords: Iterable[Landlord],
    tz: tzinfo = timezone.utc,
) -> Optional[MatchResult]:
    """Match a transaction against landlords only."""
    context = MatchContext.build(landlords=landlords, tz=tz)
    prepared = PreparedTransaction.from_transaction(tx, tz)
    return run_stages(prepared, context, (landlord_stage,))


AnnotationState = Union[Unmatched, AutoMatched, ManualMatched]


@dataclass
class RematchPlan:
    """
    Result of re-running the matcher over a transaction set.

    `states` holds the new annotation for every transaction that is not
    manually overridden.
    """
    total: int = 0
    matched_count: int = 0
    landlord_matched_count: int = 0
    skipped_manual: int = 0
    states: dict[UUID, AnnotationState] = field(default_factory=dict)


def rematch_all(transactions: Iterable[Transaction], context: MatchContext) -> RematchPlan:
    """
    Recompute the annotation of every non-manual transaction.

    A transaction that no longer matches anyone goes back to Unmatched.
    Manual overrides are skipped and left out of `states`.
    """
    plan = RematchPlan()
    for tx in transactions:
        plan.total += 1
        if tx.is_manual:
            plan.skipped_manual += 1
            continue

        result = match_transaction(tx, context)
        if result is None:
            plan.states[tx.id] = Unmatched()
            continue

        plan.states[tx.id] = result.to_state()
        if result.is_landlord:
            plan.landlord_matched_count += 1
        else:
            plan.matched_count += 1

    return plan
