"""
Tests for the in-memory ledger store contract.

The Google Sheets store implements the same interface; these tests pin
down the behaviour both must share.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_ledger.models.ledger import Bank, Transaction, Transfer
from finance_ledger.services.storage import (
    ConflictError,
    ConstraintViolationError,
    DuplicateError,
    NotFoundError,
    PermissionDeniedError,
)


async def add_bank(storage, ctx, name="Checking", balance="100.00") -> Bank:
    return await storage.insert_bank(ctx, Bank(owner_id=ctx.user_id, name=name, balance=balance))


class TestBankRows:
    """Tests for bank storage."""

    @pytest.mark.asyncio
    async def test_balance_write_is_compare_and_swap(self, storage, ctx):
        bank = await add_bank(storage, ctx)

        updated = await storage.update_bank_balance(ctx, bank.id, Decimal("150.00"), expected_version=1)
        assert updated.version == 2

        with pytest.raises(ConflictError) as exc_info:
            await storage.update_bank_balance(ctx, bank.id, Decimal("999.00"), expected_version=1)
        assert exc_info.value.actual_version == 2
        assert (await storage.get_bank(ctx, bank.id)).balance == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_balance_write_on_missing_bank(self, storage, ctx):
        with pytest.raises(ConstraintViolationError):
            await storage.update_bank_balance(ctx, uuid4(), Decimal("1.00"), expected_version=1)

    @pytest.mark.asyncio
    async def test_update_bank_ignores_balance_field(self, storage, ctx):
        """Descriptive updates never write the balance or version."""
        bank = await add_bank(storage, ctx)

        changed = bank.model_copy(update={"name": "Renamed", "balance": Decimal("5.00"), "version": 9})
        stored = await storage.update_bank(ctx, changed)

        assert stored.name == "Renamed"
        assert stored.balance == Decimal("100.00")
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_duplicate_insert(self, storage, ctx):
        bank = await add_bank(storage, ctx)
        with pytest.raises(DuplicateError):
            await storage.insert_bank(ctx, bank)

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, storage, ctx):
        bank = await add_bank(storage, ctx)
        bank.name = "Mutated"
        assert (await storage.get_bank(ctx, bank.id)).name == "Checking"

    @pytest.mark.asyncio
    async def test_delete_cascades(self, storage, ctx):
        checking = await add_bank(storage, ctx)
        savings = await add_bank(storage, ctx, "Savings")
        await storage.insert_transaction(ctx, Transaction(
            owner_id=ctx.user_id, bank_id=checking.id, type="income", amount="1", date=date(2025, 1, 1)
        ))
        await storage.insert_transfer(ctx, Transfer(
            owner_id=ctx.user_id, from_bank_id=savings.id, to_bank_id=checking.id,
            amount="1", date=date(2025, 1, 1),
        ))

        assert await storage.delete_bank(ctx, checking.id) is True
        assert await storage.delete_bank(ctx, checking.id) is False
        assert await storage.list_transactions(ctx) == []
        assert await storage.list_transfers(ctx) == []
        assert [b.name for b in await storage.list_banks(ctx)] == ["Savings"]


class TestTransactionRows:
    """Edits and deletes are checked against the row version."""

    @pytest.mark.asyncio
    async def test_edit_is_compare_and_swap(self, storage, ctx):
        bank = await add_bank(storage, ctx)
        tx = await storage.insert_transaction(ctx, Transaction(
            owner_id=ctx.user_id, bank_id=bank.id, type="income", amount="500", date=date(2025, 1, 1)
        ))

        edited = await storage.update_transaction(
            ctx, tx.model_copy(update={"amount": Decimal("100.00")}), expected_version=1
        )
        assert edited.version == 2

        with pytest.raises(ConflictError) as exc_info:
            await storage.update_transaction(
                ctx, tx.model_copy(update={"amount": Decimal("200.00")}), expected_version=1
            )
        assert exc_info.value.kind == "Transaction"
        assert exc_info.value.actual_version == 2
        assert (await storage.get_transaction(ctx, tx.id)).amount == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_stale_delete_is_rejected(self, storage, ctx):
        bank = await add_bank(storage, ctx)
        tx = await storage.insert_transaction(ctx, Transaction(
            owner_id=ctx.user_id, bank_id=bank.id, type="income", amount="500", date=date(2025, 1, 1)
        ))
        await storage.update_transaction(ctx, tx, expected_version=1)

        with pytest.raises(ConflictError):
            await storage.delete_transaction(ctx, tx.id, expected_version=1)
        assert await storage.delete_transaction(ctx, tx.id, expected_version=2) is True
        assert await storage.delete_transaction(ctx, tx.id, expected_version=2) is False


class TestOwnership:
    """Row-level access control."""

    @pytest.mark.asyncio
    async def test_foreign_bank_is_denied(self, storage, ctx, other_ctx):
        bank = await add_bank(storage, ctx)

        with pytest.raises(PermissionDeniedError):
            await storage.get_bank(other_ctx, bank.id)
        with pytest.raises(PermissionDeniedError):
            await storage.update_bank_balance(other_ctx, bank.id, Decimal("0"), expected_version=1)
        with pytest.raises(PermissionDeniedError):
            await storage.delete_bank(other_ctx, bank.id)
        assert await storage.list_banks(other_ctx) == []

    @pytest.mark.asyncio
    async def test_cannot_insert_row_for_someone_else(self, storage, ctx, other_ctx):
        with pytest.raises(PermissionDeniedError):
            await storage.insert_bank(ctx, Bank(owner_id=other_ctx.user_id, name="Sneaky"))

    @pytest.mark.asyncio
    async def test_transaction_needs_own_existing_bank(self, storage, ctx, other_ctx):
        foreign = await add_bank(storage, other_ctx)

        with pytest.raises(ConstraintViolationError):
            await storage.insert_transaction(ctx, Transaction(
                owner_id=ctx.user_id, bank_id=uuid4(), type="income", amount="1", date=date(2025, 1, 1)
            ))
        with pytest.raises(PermissionDeniedError):
            await storage.insert_transaction(ctx, Transaction(
                owner_id=ctx.user_id, bank_id=foreign.id, type="income", amount="1", date=date(2025, 1, 1)
            ))

    @pytest.mark.asyncio
    async def test_missing_row(self, storage, ctx):
        with pytest.raises(NotFoundError):
            await storage.get_transaction(ctx, uuid4())
        assert await storage.delete_transaction(ctx, uuid4()) is False


class TestListing:
    """List operations return the full set, newest date first."""

    @pytest.mark.asyncio
    async def test_transactions_newest_first(self, storage, ctx):
        bank = await add_bank(storage, ctx)
        for day in (3, 1, 2):
            await storage.insert_transaction(ctx, Transaction(
                owner_id=ctx.user_id, bank_id=bank.id, type="expense", amount="1",
                date=date(2025, 1, day),
            ))

        rows = await storage.list_transactions(ctx)
        assert [tx.date.day for tx in rows] == [3, 2, 1]
