"""
Expense Models

Outgoing transactions are filed into user-defined expense categories
by priority-ordered matching rules. A transaction belongs to at most
one category at a time.
"""

from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class MatchMode(str, Enum):
    """How the configured fields of a rule are combined."""
    ANY = "any"  # At least one configured field matches (default)
    ALL = "all"  # Every configured field matches


class ExpenseCategory(BaseModel):
    """A named spending bucket such as Power or Groceries."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    icon: str = Field(default="Receipt")
    color: str = Field(default="slate")
    sort_order: int = 0
    is_active: bool = True
    track_allotments: bool = Field(
        default=False,
        description="Track burn rate for this category (e.g. utilities)"
    )


class ExpenseMatchingRule(BaseModel):
    """
    A rule that files matching outgoing transactions into a category.

    Up to four fields may be configured. A rule with none configured
    never matches.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    category_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    priority: int = Field(default=0, description="Higher priority rules are tried first")

    merchant_pattern: Optional[str] = None
    description_pattern: Optional[str] = None
    account_pattern: Optional[str] = None
    source_category: Optional[str] = Field(
        default=None,
        description="Exact (case-insensitive) aggregator category label"
    )

    match_mode: MatchMode = MatchMode.ANY
    is_regex: bool = False
    is_active: bool = True


class ExpenseTransactionMatch(BaseModel):
    """Links one transaction to one expense category."""

    transaction_id: UUID
    category_id: UUID
    rule_id: Optional[UUID] = Field(
        default=None,
        description="Rule that produced the match; None for manual matches"
    )
    confidence: float = Field(..., ge=0.0, le=1.0)
    manual_match: bool = False

    @classmethod
    def manual(cls, transaction_id: UUID, category_id: UUID) -> 'ExpenseTransactionMatch':
        return cls(
            transaction_id=transaction_id,
            category_id=category_id,
            rule_id=None,
            confidence=1.0,
            manual_match=True,
        )


class CategoryMatch(BaseModel):
    """Output of the expense categorizer for one transaction."""
    model_config = ConfigDict(frozen=True)

    category_id: UUID
    rule_id: Optional[UUID]
    confidence: float = Field(..., ge=0.0, le=1.0)

    def to_record(self, transaction_id: UUID) -> ExpenseTransactionMatch:
        return ExpenseTransactionMatch(
            transaction_id=transaction_id,
            category_id=self.category_id,
            rule_id=self.rule_id,
            confidence=self.confidence,
            manual_match=False,
        )
