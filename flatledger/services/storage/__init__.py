"""
Storage Services Package

Provides abstract interfaces and an in-memory implementation for data
storage. The host application supplies its own database-backed
implementation of the same interfaces.
"""

from flatledger.services.storage.interface import (
    AuditStorageInterface,
    DirectoryStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
    SystemStateInterface,
    TransactionStorageInterface,
)
from flatledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DirectoryStorageInterface",
    "SystemStateInterface",
    "TransactionStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryStore",
]
