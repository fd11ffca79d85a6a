"""
Balance Reconciliation Engine (pure functions)

DESIGN DECISION: The engine never touches storage.
Every function takes ledger records and returns a mapping of
{bank_id: delta} describing how the stored balances must move.
The reconciler applies those deltas; the orchestrator decides when.

Because deltas are plain data they can be:
1. Inverted exactly (compensation after a half-failed write)
2. Merged (an edit on the same bank becomes one write)
3. Tested without any store at all

Every amount is a two-place Decimal. Floats never appear here.
"""

from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from finance_ledger.models.ledger import (
    Bank,
    Transaction,
    TransactionType,
    Transfer,
    quantize_money,
)


Deltas = dict[UUID, Decimal]

ZERO = Decimal("0.00")


def signed_effect(transaction_type: TransactionType, amount: Decimal) -> Decimal:
    """Contribution of an entry to its bank: +amount for income, -amount for expense."""
    amount = quantize_money(amount)
    if TransactionType(transaction_type) == TransactionType.INCOME:
        return amount
    return -amount


def merge_deltas(*parts: Mapping[UUID, Decimal]) -> Deltas:
    """
    Sum several delta mappings bank by bank.

    Banks whose deltas cancel out are dropped so no needless write happens.
    """
    merged: Deltas = {}
    for part in parts:
        for bank_id, delta in part.items():
            merged[bank_id] = merged.get(bank_id, ZERO) + delta
    return {
        bank_id: quantize_money(delta)
        for bank_id, delta in merged.items()
        if delta != 0
    }


def invert(deltas: Mapping[UUID, Decimal]) -> Deltas:
    """The deltas that exactly undo the given ones."""
    return {bank_id: -delta for bank_id, delta in deltas.items()}


# =============================================================================
# TRANSACTIONS
# =============================================================================

def create_transaction_deltas(tx: Transaction) -> Deltas:
    return {tx.bank_id: signed_effect(tx.type, tx.amount)}


def delete_transaction_deltas(tx: Transaction) -> Deltas:
    return invert(create_transaction_deltas(tx))


def update_transaction_deltas(old: Transaction, new: Transaction) -> Deltas:
    """
    Deltas for editing a transaction from `old` to `new`.

    The stored row (`old`) is reversed against its own bank and the edited
    row is applied against its bank. When both are the same bank the two
    collapse into one delta:

        new_balance = current - signed(old) + signed(new)
    """
    return merge_deltas(
        delete_transaction_deltas(old),
        create_transaction_deltas(new),
    )


# =============================================================================
# TRANSFERS
# =============================================================================

def create_transfer_deltas(transfer: Transfer) -> Deltas:
    amount = quantize_money(transfer.amount)
    return {
        transfer.from_bank_id: -amount,
        transfer.to_bank_id: amount,
    }


def delete_transfer_deltas(transfer: Transfer) -> Deltas:
    return invert(create_transfer_deltas(transfer))


# =============================================================================
# BALANCES
# =============================================================================

def apply_delta(balance: Decimal, delta: Decimal) -> Decimal:
    """New balance after applying a delta. Negative results are allowed."""
    return quantize_money(quantize_money(balance) + quantize_money(delta))


def expected_balance(
    bank: Bank,
    transactions: Iterable[Transaction],
    transfers: Iterable[Transfer],
) -> Decimal:
    """
    Recompute what the bank's balance should be from the ledger.

        opening_balance
        + sum(signed transaction amounts on this bank)
        + sum(signed transfer amounts touching this bank)

    Entries for other banks are ignored, so whole ledgers can be passed in.
    """
    total = quantize_money(bank.opening_balance)
    for tx in transactions:
        if tx.bank_id == bank.id:
            total += signed_effect(tx.type, tx.amount)
    for transfer in transfers:
        total += create_transfer_deltas(transfer).get(bank.id, ZERO)
    return quantize_money(total)
