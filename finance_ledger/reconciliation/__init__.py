"""Balance reconciliation package."""

from finance_ledger.reconciliation.engine import (
    apply_delta,
    create_transaction_deltas,
    create_transfer_deltas,
    delete_transaction_deltas,
    delete_transfer_deltas,
    expected_balance,
    invert,
    merge_deltas,
    signed_effect,
    update_transaction_deltas,
)
from finance_ledger.reconciliation.reconciler import (
    BalanceAdjustment,
    BalanceCheck,
    BalanceDivergenceError,
    BalanceReconciler,
    ReconciliationError,
    conflict_retrying,
)

__all__ = [
    "BalanceAdjustment",
    "BalanceCheck",
    "BalanceDivergenceError",
    "BalanceReconciler",
    "ReconciliationError",
    "apply_delta",
    "conflict_retrying",
    "create_transaction_deltas",
    "create_transfer_deltas",
    "delete_transaction_deltas",
    "delete_transfer_deltas",
    "expected_balance",
    "invert",
    "merge_deltas",
    "signed_effect",
    "update_transaction_deltas",
]
