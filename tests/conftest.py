"""
Shared fixtures for flatledger tests.

Everything runs against the in-memory store and a scripted transaction
source. No network, no real bank.
"""

from typing import Optional

import pytest

from flatledger.audit import AuditLogger
from flatledger.config import ReconciliationSettings, SourceSettings
from flatledger.orchestrator import ReconciliationDriver
from flatledger.services.source import SourceBatch, SourceUnavailableError, TransactionSource
from flatledger.services.storage import InMemoryAuditStorage, InMemoryStore


class FakeSource(TransactionSource):
    """
    Scripted transaction source.

    Each call to `list_new` pops the next batch. `failures` makes the
    next N calls raise before any batch is returned.
    """

    def __init__(self, batches: Optional[list[SourceBatch]] = None, failures: int = 0):
        self.batches = list(batches or [])
        self.failures = failures
        self.calls: list[Optional[str]] = []
        self.refresh_requests = 0

    async def list_new(self, since_cursor: Optional[str]) -> SourceBatch:
        self.calls.append(since_cursor)
        if self.failures:
            self.failures -= 1
            raise SourceUnavailableError("aggregator unavailable")
        if not self.batches:
            return SourceBatch(cursor=since_cursor)
        return self.batches.pop(0)

    async def request_refresh(self) -> None:
        self.refresh_requests += 1


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def reconciliation_settings():
    return ReconciliationSettings(timezone="UTC", analysis_start_date=None)


@pytest.fixture
def source_settings():
    """Retries without waiting."""
    return SourceSettings(
        retry_attempts=3,
        retry_min_wait_seconds=0,
        retry_max_wait_seconds=0,
    )


@pytest.fixture
def driver(store, source, audit_storage, reconciliation_settings, source_settings):
    return ReconciliationDriver(
        transactions=store,
        directory=store,
        state=store,
        source=source,
        audit_logger=AuditLogger(audit_storage),
        reconciliation_settings=reconciliation_settings,
        source_settings=source_settings,
    )
