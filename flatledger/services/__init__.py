"""Services package."""

from flatledger.services.source import (
    SourceBatch,
    SourceError,
    SourceTransaction,
    SourceUnavailableError,
    TransactionSource,
)
from flatledger.services.storage import (
    AuditStorageInterface,
    DirectoryStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryStore,
    NotFoundError,
    StorageError,
    SystemStateInterface,
    TransactionStorageInterface,
)

__all__ = [
    # Transaction source
    "SourceBatch",
    "SourceError",
    "SourceTransaction",
    "SourceUnavailableError",
    "TransactionSource",
    # Storage services
    "AuditStorageInterface",
    "DirectoryStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryStore",
    "NotFoundError",
    "StorageError",
    "SystemStateInterface",
    "TransactionStorageInterface",
]
