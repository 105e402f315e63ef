"""Transaction source package."""

from flatledger.services.source.interface import (
    SourceBatch,
    SourceError,
    SourceTransaction,
    SourceUnavailableError,
    TransactionSource,
)

__all__ = [
    "SourceBatch",
    "SourceError",
    "SourceTransaction",
    "SourceUnavailableError",
    "TransactionSource",
]
