"""
Shared fixtures.

All tests run against the in-memory store; nothing touches the network.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from finance_ledger.audit import AuditLogger
from finance_ledger.config import LedgerSettings
from finance_ledger.models.ledger import CallerContext
from finance_ledger.orchestrator import (
    BankFlow,
    CreditFlow,
    ReportFlow,
    TransactionFlow,
    TransferFlow,
)
from finance_ledger.reconciliation import BalanceReconciler
from finance_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage
from finance_ledger.validation import LedgerValidator


class Flows:
    """All flows wired to one store, as create_app_components() does."""

    def __init__(self, storage, settings: LedgerSettings):
        self.storage = storage
        self.audit_storage = InMemoryAuditStorage()
        self.audit_logger = AuditLogger(self.audit_storage)
        self.reconciler = BalanceReconciler(storage, self.audit_logger, settings)
        validator = LedgerValidator(settings)
        kwargs = dict(
            audit_logger=self.audit_logger,
            reconciler=self.reconciler,
            validator=validator,
            settings=settings,
        )
        self.banks = BankFlow(storage, **kwargs)
        self.transactions = TransactionFlow(storage, **kwargs)
        self.transfers = TransferFlow(storage, **kwargs)
        self.credits = CreditFlow(storage, **kwargs)
        self.reports = ReportFlow(storage, self.audit_logger)

    def event_types(self) -> list[str]:
        return [e.event_type.value for e in self.audit_storage.events]

    async def balance(self, ctx, bank) -> Decimal:
        return (await self.storage.get_bank(ctx, bank.id)).balance


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        storage_backend="memory",
        balance_max_retries=5,
        balance_retry_wait_seconds=0,
    )


@pytest.fixture
def ctx():
    return CallerContext(user_id=uuid4())


@pytest.fixture
def other_ctx():
    return CallerContext(user_id=uuid4())


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def flows(storage, ledger_settings):
    return Flows(storage, ledger_settings)


@pytest.fixture
def make_flows(ledger_settings):
    """Build flows over a custom store (e.g. one that injects failures)."""
    def _make(custom_storage):
        return Flows(custom_storage, ledger_settings)
    return _make
