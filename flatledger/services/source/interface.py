"""
Transaction Source Interface

The bank aggregator is reached through an opaque "give me everything new
or updated since cursor X" abstraction. The engine never sees the wire
protocol; an adapter in the host application implements this interface.

DESIGN DECISION: The source hands back SourceTransaction records, not
engine Transactions. Conversion (including payload normalization) happens
exactly once, in `SourceTransaction.to_transaction`, so the matcher never
has to care how the aggregator shapes its payload.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from flatledger.matching.patterns import normalize_payload
from flatledger.models.transaction import Transaction


class SourceError(Exception):
    """Base exception for transaction source failures."""
    pass


class SourceUnavailableError(SourceError):
    """The source could not be reached or refused the request."""
    pass


class SourceTransaction(BaseModel):
    """A transaction exactly as the source reports it."""
    model_config = ConfigDict(str_strip_whitespace=True)

    external_id: str = Field(..., min_length=1)
    timestamp: datetime
    amount: Decimal
    description: str = ""
    merchant: Optional[str] = None
    merchant_logo: Optional[str] = None
    source_category: Optional[str] = None
    card_suffix: Optional[str] = None
    other_account: Optional[str] = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    def to_transaction(self) -> Transaction:
        """Build an engine Transaction, normalizing the payload once."""
        return Transaction(
            external_id=self.external_id,
            timestamp=self.timestamp,
            amount=self.amount,
            description=self.description,
            merchant=self.merchant,
            merchant_logo=self.merchant_logo,
            source_category=self.source_category,
            card_suffix=self.card_suffix,
            other_account=self.other_account,
            raw_payload=self.raw_payload,
            supplementary=normalize_payload(self.raw_payload),
        )


class SourceBatch(BaseModel):
    """One page of results plus the cursor to resume from."""

    items: list[SourceTransaction] = Field(default_factory=list)
    cursor: Optional[str] = Field(
        default=None,
        description="Opaque cursor for the next call; None when nothing changed"
    )
    has_more: bool = Field(
        default=False,
        description="Another page is available from `cursor` right away"
    )


class TransactionSource(ABC):
    """
    Abstract bank-aggregator client.

    Implementations may raise SourceError (or any exception); the driver
    retries and then reports the failure.
    """

    @abstractmethod
    async def list_new(self, since_cursor: Optional[str]) -> SourceBatch:
        """
        Fetch transactions created or updated since the cursor.

        Args:
            since_cursor: Cursor from the previous batch, None for a full fetch

        Returns:
            SourceBatch with the items and the next cursor
        """
        pass

    @abstractmethod
    async def request_refresh(self) -> None:
        """Ask the aggregator to pull fresh data from the bank."""
        pass
