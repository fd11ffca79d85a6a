"""
In-Memory Storage Implementation

Used by default for local runs and by the test-suite. It honours the
full interface contract: per-owner row isolation, compare-and-swap
balance writes and cascade on bank deletion.

Rows are copied on the way in and on the way out so callers can never
mutate stored state by holding on to a returned model.
"""

import asyncio
from decimal import Decimal
from typing import Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from finance_ledger.models.audit import AuditEvent
from finance_ledger.models.ledger import (
    Bank,
    CallerContext,
    Credit,
    LedgerFilter,
    Transaction,
    Transfer,
    quantize_money,
    utc_now,
)
from finance_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConstraintViolationError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    PermissionDeniedError,
)


RowT = TypeVar("RowT", bound=BaseModel)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed ledger store.

    Writes are serialised with an asyncio.Lock; reads are lock-free.
    """

    def __init__(self):
        self._banks: dict[UUID, Bank] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._transfers: dict[UUID, Transfer] = {}
        self._credits: dict[UUID, Credit] = {}
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _copy(row: RowT) -> RowT:
        return row.model_copy(deep=True)

    @staticmethod
    def _owned(ctx: CallerContext, table: dict[UUID, RowT], row_id: UUID, kind: str) -> RowT:
        row = table.get(row_id)
        if row is None:
            raise NotFoundError(f"{kind} not found: {row_id}")
        if row.owner_id != ctx.user_id:
            raise PermissionDeniedError(f"{kind} {row_id} does not belong to the caller")
        return row

    def _check_bank_reference(self, ctx: CallerContext, bank_id: UUID) -> None:
        bank = self._banks.get(bank_id)
        if bank is None:
            raise ConstraintViolationError(f"Referenced bank does not exist: {bank_id}")
        if bank.owner_id != ctx.user_id:
            raise PermissionDeniedError(f"Bank {bank_id} does not belong to the caller")

    @staticmethod
    def _check_owner(ctx: CallerContext, row: BaseModel) -> None:
        if row.owner_id != ctx.user_id:
            raise PermissionDeniedError("Cannot write a row owned by another user")

    # -------------------------------------------------------------------------
    # Banks
    # -------------------------------------------------------------------------

    async def get_bank(self, ctx: CallerContext, bank_id: UUID) -> Bank:
        return self._copy(self._owned(ctx, self._banks, bank_id, "Bank"))

    async def list_banks(self, ctx: CallerContext) -> list[Bank]:
        banks = [b for b in self._banks.values() if b.owner_id == ctx.user_id]
        banks.sort(key=lambda b: b.created_at)
        return [self._copy(b) for b in banks]

    async def insert_bank(self, ctx: CallerContext, bank: Bank) -> Bank:
        self._check_owner(ctx, bank)
        async with self._lock:
            if bank.id in self._banks:
                raise DuplicateError(f"Bank already exists: {bank.id}")
            self._banks[bank.id] = self._copy(bank)
        return self._copy(bank)

    async def update_bank(self, ctx: CallerContext, bank: Bank) -> Bank:
        async with self._lock:
            stored = self._owned(ctx, self._banks, bank.id, "Bank")
            updated = stored.model_copy(update={
                "name": bank.name,
                "color": bank.color,
                "opening_balance": bank.opening_balance,
                "updated_at": utc_now(),
            })
            self._banks[bank.id] = updated
        return self._copy(updated)

    async def update_bank_balance(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        balance: Decimal,
        expected_version: int,
    ) -> Bank:
        async with self._lock:
            stored = self._banks.get(bank_id)
            if stored is None:
                raise ConstraintViolationError(f"Cannot update balance, bank missing: {bank_id}")
            if stored.owner_id != ctx.user_id:
                raise PermissionDeniedError(f"Bank {bank_id} does not belong to the caller")
            if stored.version != expected_version:
                raise ConflictError(bank_id, expected_version, stored.version)
            updated = stored.model_copy(update={
                "balance": quantize_money(balance),
                "version": stored.version + 1,
                "updated_at": utc_now(),
            })
            self._banks[bank_id] = updated
        return self._copy(updated)

    async def delete_bank(self, ctx: CallerContext, bank_id: UUID) -> bool:
        async with self._lock:
            if bank_id not in self._banks:
                return False
            self._owned(ctx, self._banks, bank_id, "Bank")
            del self._banks[bank_id]
            # Cascade
            self._transactions = {
                k: tx for k, tx in self._transactions.items() if tx.bank_id != bank_id
            }
            self._transfers = {
                k: t for k, t in self._transfers.items() if not t.touches(bank_id)
            }
        return True

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def insert_transaction(self, ctx: CallerContext, tx: Transaction) -> Transaction:
        self._check_owner(ctx, tx)
        async with self._lock:
            self._check_bank_reference(ctx, tx.bank_id)
            if tx.id in self._transactions:
                raise DuplicateError(f"Transaction already exists: {tx.id}")
            self._transactions[tx.id] = self._copy(tx)
        return self._copy(tx)

    async def get_transaction(self, ctx: CallerContext, transaction_id: UUID) -> Transaction:
        return self._copy(self._owned(ctx, self._transactions, transaction_id, "Transaction"))

    async def update_transaction(
        self,
        ctx: CallerContext,
        tx: Transaction,
        expected_version: int,
    ) -> Transaction:
        self._check_owner(ctx, tx)
        async with self._lock:
            stored = self._owned(ctx, self._transactions, tx.id, "Transaction")
            if stored.version != expected_version:
                raise ConflictError(tx.id, expected_version, stored.version, kind="Transaction")
            self._check_bank_reference(ctx, tx.bank_id)
            updated = tx.model_copy(update={"version": stored.version + 1})
            self._transactions[tx.id] = updated
        return self._copy(updated)

    async def delete_transaction(
        self,
        ctx: CallerContext,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            if transaction_id not in self._transactions:
                return False
            stored = self._owned(ctx, self._transactions, transaction_id, "Transaction")
            if expected_version is not None and stored.version != expected_version:
                raise ConflictError(
                    transaction_id, expected_version, stored.version, kind="Transaction"
                )
            del self._transactions[transaction_id]
        return True

    async def list_transactions(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transaction]:
        rows = [
            tx for tx in self._transactions.values()
            if tx.owner_id == ctx.user_id
            and (ledger_filter is None or ledger_filter.matches_transaction(tx))
        ]
        rows.sort(key=lambda tx: (tx.date, tx.created_at), reverse=True)
        return [self._copy(tx) for tx in rows]

    # -------------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------------

    async def insert_transfer(self, ctx: CallerContext, transfer: Transfer) -> Transfer:
        self._check_owner(ctx, transfer)
        async with self._lock:
            self._check_bank_reference(ctx, transfer.from_bank_id)
            self._check_bank_reference(ctx, transfer.to_bank_id)
            if transfer.id in self._transfers:
                raise DuplicateError(f"Transfer already exists: {transfer.id}")
            self._transfers[transfer.id] = self._copy(transfer)
        return self._copy(transfer)

    async def get_transfer(self, ctx: CallerContext, transfer_id: UUID) -> Transfer:
        return self._copy(self._owned(ctx, self._transfers, transfer_id, "Transfer"))

    async def delete_transfer(self, ctx: CallerContext, transfer_id: UUID) -> bool:
        async with self._lock:
            if transfer_id not in self._transfers:
                return False
            self._owned(ctx, self._transfers, transfer_id, "Transfer")
            del self._transfers[transfer_id]
        return True

    async def list_transfers(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transfer]:
        rows = [
            t for t in self._transfers.values()
            if t.owner_id == ctx.user_id
            and (ledger_filter is None or ledger_filter.matches_transfer(t))
        ]
        rows.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return [self._copy(t) for t in rows]

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    async def insert_credit(self, ctx: CallerContext, credit: Credit) -> Credit:
        self._check_owner(ctx, credit)
        async with self._lock:
            if credit.id in self._credits:
                raise DuplicateError(f"Credit already exists: {credit.id}")
            self._credits[credit.id] = self._copy(credit)
        return self._copy(credit)

    async def get_credit(self, ctx: CallerContext, credit_id: UUID) -> Credit:
        return self._copy(self._owned(ctx, self._credits, credit_id, "Credit"))

    async def update_credit(self, ctx: CallerContext, credit: Credit) -> Credit:
        self._check_owner(ctx, credit)
        async with self._lock:
            self._owned(ctx, self._credits, credit.id, "Credit")
            self._credits[credit.id] = self._copy(credit)
        return self._copy(credit)

    async def delete_credit(self, ctx: CallerContext, credit_id: UUID) -> bool:
        async with self._lock:
            if credit_id not in self._credits:
                return False
            self._owned(ctx, self._credits, credit_id, "Credit")
            del self._credits[credit_id]
        return True

    async def list_credits(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Credit]:
        rows = [
            c for c in self._credits.values()
            if c.owner_id == ctx.user_id
            and (ledger_filter is None or ledger_filter.matches_credit(c))
        ]
        rows.sort(key=lambda c: (c.date, c.created_at), reverse=True)
        return [self._copy(c) for c in rows]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events
