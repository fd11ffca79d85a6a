"""
Integration tests for the orchestrator flows.

Each test drives the flows against the in-memory store and checks the
stored balances, the stored ledger rows and the audit trail.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_ledger.models.ledger import LedgerFilter
from finance_ledger.reconciliation import BalanceDivergenceError, ReconciliationError
from finance_ledger.services.storage import (
    InMemoryLedgerStorage,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)
from finance_ledger.validation import LedgerValidationError


class FailingBalanceStorage(InMemoryLedgerStorage):
    """Balance writes to the listed banks fail like an unreachable backend."""

    def __init__(self):
        super().__init__()
        self.fail_banks = set()
        self.fail_transaction_delete = False
        self.fail_bank_delete = False
        self.error = StorageError("backend unavailable")

    async def update_bank_balance(self, ctx, bank_id, balance, expected_version):
        if bank_id in self.fail_banks:
            raise self.error
        return await super().update_bank_balance(ctx, bank_id, balance, expected_version)

    async def delete_transaction(self, ctx, transaction_id, expected_version=None):
        if self.fail_transaction_delete:
            raise StorageError("backend unavailable")
        return await super().delete_transaction(ctx, transaction_id, expected_version)

    async def delete_bank(self, ctx, bank_id):
        if self.fail_bank_delete:
            raise StorageError("backend unavailable")
        return await super().delete_bank(ctx, bank_id)


class RacingStorage(InMemoryLedgerStorage):
    """Another writer changes the balance between our read and our write, once."""

    def __init__(self, concurrent_delta: Decimal):
        super().__init__()
        self.concurrent_delta = concurrent_delta
        self.raced = False

    async def update_bank_balance(self, ctx, bank_id, balance, expected_version):
        if not self.raced:
            self.raced = True
            stored = self._banks[bank_id]
            await super().update_bank_balance(
                ctx, bank_id, stored.balance + self.concurrent_delta, stored.version
            )
        return await super().update_bank_balance(ctx, bank_id, balance, expected_version)


class YieldingStorage(InMemoryLedgerStorage):
    """Every read hands control back to the event loop, like a hosted store round trip."""

    async def get_bank(self, ctx, bank_id):
        bank = await super().get_bank(ctx, bank_id)
        await asyncio.sleep(0)
        return bank

    async def get_transaction(self, ctx, transaction_id):
        tx = await super().get_transaction(ctx, transaction_id)
        await asyncio.sleep(0)
        return tx

    async def get_transfer(self, ctx, transfer_id):
        transfer = await super().get_transfer(ctx, transfer_id)
        await asyncio.sleep(0)
        return transfer


class TestBookkeeping:
    """Everyday bookings, end to end."""

    @pytest.mark.asyncio
    async def test_income_raises_balance(self, flows, ctx):
        """Checking 1000.00 + income 500.00 -> 1500.00"""
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        await flows.transactions.create_transaction(
            ctx, checking.id, "income", "500.00", "Salary", date(2025, 1, 15)
        )

        assert await flows.balance(ctx, checking) == Decimal("1500.00")

    @pytest.mark.asyncio
    async def test_edit_income_to_expense(self, flows, ctx):
        """1500.00 - 500.00 - 200.00 = 800.00"""
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        tx = await flows.transactions.create_transaction(
            ctx, checking.id, "income", "500.00", "Salary", date(2025, 1, 15)
        )

        await flows.transactions.update_transaction(
            ctx, tx.id, transaction_type="expense", amount="200.00", category="Rent"
        )

        assert await flows.balance(ctx, checking) == Decimal("800.00")

    @pytest.mark.asyncio
    async def test_transfer_and_delete(self, flows, ctx):
        """Transfer 300 moves money; deleting it moves it back."""
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")

        transfer = await flows.transfers.create_transfer(ctx, checking.id, savings.id, "300.00")
        assert await flows.balance(ctx, checking) == Decimal("700.00")
        assert await flows.balance(ctx, savings) == Decimal("500.00")

        await flows.transfers.delete_transfer(ctx, transfer.id)
        assert await flows.balance(ctx, checking) == Decimal("1000.00")
        assert await flows.balance(ctx, savings) == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_same_bank_transfer_rejected(self, flows, ctx):
        """from == to is a validation error and nothing changes."""
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        with pytest.raises(LedgerValidationError) as exc_info:
            await flows.transfers.create_transfer(ctx, checking.id, checking.id, "100.00")

        assert exc_info.value.issues[0].issue_type == "same_account"
        assert await flows.balance(ctx, checking) == Decimal("1000.00")
        assert await flows.transfers.list_transfers(ctx) == []
        assert "validation_failed" in flows.event_types()

    @pytest.mark.asyncio
    async def test_negative_balance_permitted(self, flows, ctx):
        """Expense 50.00 on 30.00 leaves -20.00."""
        wallet = await flows.banks.create_bank(ctx, "Wallet", "30.00")

        await flows.transactions.create_transaction(ctx, wallet.id, "expense", "50.00", "Dining")

        assert await flows.balance(ctx, wallet) == Decimal("-20.00")


class TestLedgerProperties:
    """Balance consistency, round trips and edit equivalence through the flows."""

    @pytest.mark.asyncio
    async def test_balance_matches_ledger_after_mixed_sequence(self, flows, ctx):
        """Every bank matches opening balance + its ledger after any sequence."""
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")

        salary = await flows.transactions.create_transaction(ctx, checking.id, "income", "2500.00", "Salary")
        rent = await flows.transactions.create_transaction(ctx, checking.id, "expense", "900.00", "Rent")
        await flows.transactions.create_transaction(ctx, savings.id, "income", "12.34", "Other Source")
        move = await flows.transfers.create_transfer(ctx, checking.id, savings.id, "400.00")
        await flows.transfers.create_transfer(ctx, savings.id, checking.id, "50.50")
        await flows.transactions.update_transaction(ctx, rent.id, amount="950.00")
        await flows.transactions.update_transaction(ctx, salary.id, bank_id=savings.id)
        await flows.transfers.delete_transfer(ctx, move.id)
        await flows.transactions.delete_transaction(ctx, rent.id)

        for bank in (checking, savings):
            check = await flows.banks.verify_bank(ctx, bank.id)
            assert check.is_consistent, check

        assert "balance_divergence_detected" not in flows.event_types()

    @pytest.mark.asyncio
    async def test_create_then_delete_restores_balance(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        tx = await flows.transactions.create_transaction(ctx, bank.id, "expense", "0.10", "Fuel")
        await flows.transactions.delete_transaction(ctx, tx.id)

        assert await flows.balance(ctx, bank) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_edit_equals_delete_plus_create(self, flows, storage, ctx):
        """Editing gives the same balance as deleting the old entry and creating the new one."""
        edited = await flows.banks.create_bank(ctx, "Edited", "100.00")
        replayed = await flows.banks.create_bank(ctx, "Replayed", "100.00")

        tx1 = await flows.transactions.create_transaction(ctx, edited.id, "income", "40.00", "Salary")
        await flows.transactions.update_transaction(
            ctx, tx1.id, transaction_type="expense", amount="15.55", category="Dining"
        )

        tx2 = await flows.transactions.create_transaction(ctx, replayed.id, "income", "40.00", "Salary")
        await flows.transactions.delete_transaction(ctx, tx2.id)
        await flows.transactions.create_transaction(ctx, replayed.id, "expense", "15.55", "Dining")

        assert await flows.balance(ctx, edited) == await flows.balance(ctx, replayed)

    @pytest.mark.asyncio
    async def test_update_moving_bank_reverses_on_original(self, flows, ctx):
        """Changing the bank takes the effect off the old bank and puts it on the new one."""
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")
        tx = await flows.transactions.create_transaction(ctx, checking.id, "income", "500.00", "Salary")

        updated = await flows.transactions.update_transaction(ctx, tx.id, bank_id=savings.id)

        assert updated.bank_id == savings.id
        assert await flows.balance(ctx, checking) == Decimal("1000.00")
        assert await flows.balance(ctx, savings) == Decimal("700.00")


class TestFailureCompensation:
    """A mutation that fails half-way leaves nothing behind."""

    @pytest.mark.asyncio
    async def test_failed_balance_write_leaves_no_row(self, make_flows, ctx):
        storage = FailingBalanceStorage()
        flows = make_flows(storage)
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        storage.fail_banks.add(bank.id)

        with pytest.raises(ReconciliationError) as exc_info:
            await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        assert isinstance(exc_info.value.cause, StorageError)
        assert await flows.transactions.list_transactions(ctx) == []
        assert await flows.balance(ctx, bank) == Decimal("1000.00")
        assert "mutation_compensated" in flows.event_types()
        assert "storage_error" in flows.event_types()

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_audited_as_system_error(self, make_flows, ctx):
        storage = FailingBalanceStorage()
        storage.error = RuntimeError("disk full")
        flows = make_flows(storage)
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        storage.fail_banks.add(bank.id)

        with pytest.raises(ReconciliationError) as exc_info:
            await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert "system_error" in flows.event_types()
        assert "storage_error" not in flows.event_types()
        assert await flows.transactions.list_transactions(ctx) == []

    @pytest.mark.asyncio
    async def test_failed_bank_delete_restores_survivors(self, make_flows, ctx):
        storage = FailingBalanceStorage()
        flows = make_flows(storage)
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")
        await flows.transfers.create_transfer(ctx, checking.id, savings.id, "300.00")
        storage.fail_bank_delete = True

        with pytest.raises(ReconciliationError):
            await flows.banks.delete_bank(ctx, checking.id)

        assert await flows.balance(ctx, savings) == Decimal("500.00")
        assert len(await flows.banks.list_banks(ctx)) == 2
        assert "storage_error" in flows.event_types()
        assert "mutation_compensated" in flows.event_types()

    @pytest.mark.asyncio
    async def test_failed_second_leg_reverts_first_leg(self, make_flows, ctx):
        """A transfer whose second balance write fails restores the first bank."""
        storage = FailingBalanceStorage()
        flows = make_flows(storage)
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")
        # Deltas are applied in bank-id order; fail the one applied last
        last = sorted([checking.id, savings.id], key=str)[-1]
        storage.fail_banks.add(last)

        with pytest.raises(ReconciliationError):
            await flows.transfers.create_transfer(ctx, checking.id, savings.id, "300.00")

        assert await flows.balance(ctx, checking) == Decimal("1000.00")
        assert await flows.balance(ctx, savings) == Decimal("200.00")
        assert await flows.transfers.list_transfers(ctx) == []

    @pytest.mark.asyncio
    async def test_failed_compensation_is_reported_as_divergence(self, make_flows, ctx):
        storage = FailingBalanceStorage()
        flows = make_flows(storage)
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        storage.fail_banks.add(bank.id)
        storage.fail_transaction_delete = True

        with pytest.raises(BalanceDivergenceError):
            await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        critical = [e for e in flows.audit_storage.events if e.severity.value == "critical"]
        assert [e.event_type.value for e in critical] == ["balance_divergence_detected"]

    @pytest.mark.asyncio
    async def test_missing_bank_aborts_before_any_write(self, flows, ctx):
        with pytest.raises(NotFoundError):
            await flows.transactions.create_transaction(ctx, uuid4(), "income", "10.00", "Salary")

        assert await flows.transactions.list_transactions(ctx) == []
        assert "storage_error" in flows.event_types()


class TestConcurrency:
    """Optimistic balance writes."""

    @pytest.mark.asyncio
    async def test_conflicting_write_is_retried_and_nothing_lost(self, make_flows, ctx):
        storage = RacingStorage(concurrent_delta=Decimal("100.00"))
        flows = make_flows(storage)
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        # Both the concurrent +100 and our +500 survive
        stored = await storage.get_bank(ctx, bank.id)
        assert stored.balance == Decimal("1600.00")
        assert stored.version == 3
        assert "balance_conflict_retried" in flows.event_types()

    @pytest.mark.asyncio
    async def test_every_balance_write_bumps_version(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "0.00")
        assert bank.version == 1

        await flows.transactions.create_transaction(ctx, bank.id, "income", "1.00", "Salary")
        await flows.transactions.create_transaction(ctx, bank.id, "income", "1.00", "Salary")

        assert (await flows.banks.get_bank(ctx, bank.id)).version == 3

    @pytest.mark.asyncio
    async def test_overlapping_deletes_reverse_the_entry_once(self, make_flows, ctx):
        """Two deletes of the same row (two tabs, a resent request) reverse it once."""
        flows = make_flows(YieldingStorage())
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        tx = await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        results = await asyncio.gather(
            flows.transactions.delete_transaction(ctx, tx.id),
            flows.transactions.delete_transaction(ctx, tx.id),
            return_exceptions=True,
        )

        assert results.count(True) == 1
        assert [type(r) for r in results if r is not True] == [NotFoundError]
        assert await flows.balance(ctx, bank) == Decimal("1000.00")
        assert await flows.transactions.list_transactions(ctx) == []

    @pytest.mark.asyncio
    async def test_overlapping_transfer_deletes_reverse_it_once(self, make_flows, ctx):
        flows = make_flows(YieldingStorage())
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")
        transfer = await flows.transfers.create_transfer(ctx, checking.id, savings.id, "300.00")

        results = await asyncio.gather(
            flows.transfers.delete_transfer(ctx, transfer.id),
            flows.transfers.delete_transfer(ctx, transfer.id),
            return_exceptions=True,
        )

        assert results.count(True) == 1
        assert await flows.balance(ctx, checking) == Decimal("1000.00")
        assert await flows.balance(ctx, savings) == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_overlapping_edits_are_applied_one_after_the_other(self, make_flows, ctx):
        """The edit that loses the version check is re-read and re-applied."""
        flows = make_flows(YieldingStorage())
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        tx = await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        await asyncio.gather(
            flows.transactions.update_transaction(ctx, tx.id, amount="100.00"),
            flows.transactions.update_transaction(ctx, tx.id, amount="200.00"),
        )

        stored = await flows.transactions.get_transaction(ctx, tx.id)
        assert stored.amount in {Decimal("100.00"), Decimal("200.00")}
        assert stored.version == 3
        assert await flows.balance(ctx, bank) == Decimal("1000.00") + stored.amount
        assert (await flows.banks.verify_bank(ctx, bank.id)).is_consistent
        assert "ledger_conflict_retried" in flows.event_types()

    @pytest.mark.asyncio
    async def test_delete_racing_an_edit_reverses_what_is_stored(self, make_flows, ctx):
        flows = make_flows(YieldingStorage())
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        tx = await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        results = await asyncio.gather(
            flows.transactions.update_transaction(ctx, tx.id, amount="100.00"),
            flows.transactions.delete_transaction(ctx, tx.id),
            return_exceptions=True,
        )

        unexpected = [r for r in results if isinstance(r, Exception) and not isinstance(r, NotFoundError)]
        assert unexpected == []
        assert await flows.transactions.list_transactions(ctx) == []
        assert await flows.balance(ctx, bank) == Decimal("1000.00")


class TestAccessControl:
    """Every record is visible to its owner only."""

    @pytest.mark.asyncio
    async def test_cannot_book_against_foreign_bank(self, flows, ctx, other_ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        with pytest.raises(PermissionDeniedError):
            await flows.transactions.create_transaction(other_ctx, bank.id, "income", "5.00", "Salary")

        assert await flows.balance(ctx, bank) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_cannot_read_or_delete_foreign_transaction(self, flows, ctx, other_ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        tx = await flows.transactions.create_transaction(ctx, bank.id, "income", "5.00", "Salary")

        with pytest.raises(PermissionDeniedError):
            await flows.transactions.get_transaction(other_ctx, tx.id)
        with pytest.raises(PermissionDeniedError):
            await flows.transactions.delete_transaction(other_ctx, tx.id)

        assert await flows.transactions.list_transactions(other_ctx) == []
        assert await flows.balance(ctx, bank) == Decimal("1005.00")


class TestBankFlow:
    """Bank creation, manual edits and deletion."""

    @pytest.mark.asyncio
    async def test_new_bank_defaults(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Cash")

        assert bank.balance == Decimal("0.00")
        assert bank.opening_balance == Decimal("0.00")
        assert bank.color == "#3b82f6"
        assert bank.owner_id == ctx.user_id

    @pytest.mark.asyncio
    async def test_manual_balance_edit_keeps_balance_consistent(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        await flows.transactions.create_transaction(ctx, bank.id, "income", "500.00", "Salary")

        updated = await flows.banks.update_bank(ctx, bank.id, name="Main", balance="2000.00")

        assert updated.name == "Main"
        assert updated.balance == Decimal("2000.00")
        assert updated.opening_balance == Decimal("1500.00")
        assert (await flows.banks.verify_bank(ctx, bank.id)).is_consistent

    @pytest.mark.asyncio
    async def test_rename_does_not_touch_balance(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "10.00")

        updated = await flows.banks.update_bank(ctx, bank.id, name="Everyday", color="#ff0000")

        assert updated.balance == Decimal("10.00")
        assert updated.version == 1
        assert updated.color == "#ff0000"

    @pytest.mark.asyncio
    async def test_delete_bank_compensates_surviving_transfer_side(self, flows, ctx):
        checking = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        savings = await flows.banks.create_bank(ctx, "Savings", "200.00")
        await flows.transactions.create_transaction(ctx, checking.id, "income", "50.00", "Salary")
        await flows.transfers.create_transfer(ctx, checking.id, savings.id, "300.00")

        assert await flows.banks.delete_bank(ctx, checking.id) is True

        assert await flows.balance(ctx, savings) == Decimal("200.00")
        assert await flows.transactions.list_transactions(ctx) == []
        assert await flows.transfers.list_transfers(ctx) == []
        assert (await flows.banks.verify_bank(ctx, savings.id)).is_consistent
        with pytest.raises(NotFoundError):
            await flows.banks.get_bank(ctx, checking.id)


class TestCreditFlow:
    """Credits never move a bank balance."""

    @pytest.mark.asyncio
    async def test_credit_crud_leaves_balances_alone(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        credit = await flows.credits.create_credit(ctx, "Asha", "owe_me", "250.00", "Lunch money")
        credit = await flows.credits.update_credit(ctx, credit.id, amount="0")
        assert credit.amount == Decimal("0.00")
        assert await flows.credits.delete_credit(ctx, credit.id) is True

        assert await flows.balance(ctx, bank) == Decimal("1000.00")
        assert await flows.credits.list_credits(ctx) == []
        assert flows.event_types().count("balance_adjusted") == 0

    @pytest.mark.asyncio
    async def test_credit_requires_person_name(self, flows, ctx):
        with pytest.raises(LedgerValidationError):
            await flows.credits.create_credit(ctx, "  ", "i_owe", "10.00")


class TestValidationGate:
    """Invalid input is rejected before anything is read or written."""

    @pytest.mark.asyncio
    async def test_missing_category_rejected(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        with pytest.raises(LedgerValidationError) as exc_info:
            await flows.transactions.create_transaction(ctx, bank.id, "income", "10.00", "")

        assert exc_info.value.issues[0].field == "category"
        assert await flows.balance(ctx, bank) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_non_numeric_amount_rejected(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")

        with pytest.raises(LedgerValidationError):
            await flows.transactions.create_transaction(ctx, bank.id, "income", "ten", "Salary")

    @pytest.mark.asyncio
    async def test_events_share_correlation_id(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "1000.00")
        correlation_id = uuid4()

        await flows.transactions.create_transaction(
            ctx, bank.id, "income", "10.00", "Salary", correlation_id=correlation_id
        )

        events = await flows.audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type.value for e in events] == ["balance_adjusted", "transaction_created"]

    @pytest.mark.asyncio
    async def test_filters_apply_to_listing(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "0.00")
        await flows.transactions.create_transaction(ctx, bank.id, "income", "10.00", "Salary", date(2025, 1, 1))
        await flows.transactions.create_transaction(ctx, bank.id, "expense", "4.00", "Fuel", date(2025, 2, 1))

        expenses = await flows.transactions.list_transactions(
            ctx, LedgerFilter(transaction_type="expense")
        )

        assert [tx.category for tx in expenses] == ["Fuel"]
