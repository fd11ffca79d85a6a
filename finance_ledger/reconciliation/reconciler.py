"""
Balance Reconciler

Applies the deltas computed by the engine to stored bank balances.

DESIGN DECISION: Balance writes are optimistic.
Each write is read-compute-write against the bank's version:

    bank = get_bank()
    update_bank_balance(bank.balance + delta, expected_version=bank.version)

If another writer got there first the store raises ConflictError and
the whole cycle is retried (tenacity) with a fresh read, so neither
write is lost.

Deltas for several banks are applied in bank-id order. If one of them
fails, the ones already applied are reverted before the error is
raised. A revert that also fails is a divergence: it is logged at
critical severity and raised as BalanceDivergenceError.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field, computed_field
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_ledger.audit import AuditLogger, create_correlation_id
from finance_ledger.config import LedgerSettings, get_settings
from finance_ledger.models.ledger import Bank, CallerContext, LedgerFilter
from finance_ledger.reconciliation.engine import apply_delta, expected_balance
from finance_ledger.services.storage import ConflictError, LedgerStorageInterface


logger = structlog.get_logger(__name__)


def conflict_retrying(settings: LedgerSettings) -> AsyncRetrying:
    """Retry policy for read-compute-write cycles that lost a version check."""
    wait_seconds = settings.balance_retry_wait_seconds
    return AsyncRetrying(
        retry=retry_if_exception_type(ConflictError),
        stop=stop_after_attempt(settings.balance_max_retries),
        wait=wait_exponential(multiplier=wait_seconds, min=wait_seconds, max=wait_seconds * 20),
        reraise=True,
    )


class ReconciliationError(Exception):
    """
    A ledger mutation was aborted.

    Every write it made has been compensated; the ledger and the
    balances are as they were before the mutation started.
    """

    def __init__(self, message: str, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(message)


class BalanceDivergenceError(ReconciliationError):
    """
    Compensation failed; a stored balance may not match its ledger.

    Run BalanceReconciler.verify_bank() on the listed banks.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        bank_ids: Iterable[UUID] = (),
        cause: Optional[BaseException] = None,
    ):
        self.bank_ids = list(bank_ids)
        super().__init__(message, operation, cause)


class BalanceAdjustment(BaseModel):
    """One successful balance write."""

    bank_id: UUID
    delta: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    version: int = Field(
        ...,
        description="Bank version after the write"
    )
    attempts: int = Field(
        default=1,
        ge=1,
        description="Read-compute-write cycles needed (more than 1 after conflicts)"
    )


class BalanceCheck(BaseModel):
    """Stored balance compared with the balance recomputed from the ledger."""

    bank_id: UUID
    stored_balance: Decimal
    expected_balance: Decimal
    transaction_count: int
    transfer_count: int

    @computed_field
    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance

    @computed_field
    @property
    def is_consistent(self) -> bool:
        return self.stored_balance == self.expected_balance


class BalanceReconciler:
    """Writes balance deltas with optimistic concurrency and compensation."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    async def ensure_banks(
        self,
        ctx: CallerContext,
        bank_ids: Iterable[UUID],
    ) -> dict[UUID, Bank]:
        """
        Read every bank a mutation will touch.

        Called before anything is written so a missing or foreign bank
        aborts the mutation with no partial effect.

        Raises:
            NotFoundError: If a bank does not exist
            PermissionDeniedError: If a bank belongs to another user
        """
        banks = {}
        for bank_id in sorted(set(bank_ids), key=str):
            banks[bank_id] = await self._storage.get_bank(ctx, bank_id)
        return banks

    async def apply(
        self,
        ctx: CallerContext,
        deltas: Mapping[UUID, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> list[BalanceAdjustment]:
        """
        Apply deltas bank by bank, sorted by bank id.

        On failure the deltas already applied are reverted and the
        original error is raised.

        Raises:
            BalanceDivergenceError: If the revert itself failed
        """
        correlation_id = correlation_id or create_correlation_id()
        applied: list[BalanceAdjustment] = []

        for bank_id in sorted(deltas, key=str):
            delta = deltas[bank_id]
            if delta == 0:
                continue
            try:
                adjustment = await self._adjust(ctx, bank_id, delta, correlation_id)
            except Exception as e:
                logger.warning(
                    "balance_write_failed",
                    bank_id=str(bank_id),
                    delta=str(delta),
                    error=str(e),
                    correlation_id=str(correlation_id),
                )
                if applied:
                    await self.revert(ctx, applied, correlation_id, cause=e)
                raise
            applied.append(adjustment)

        return applied

    async def revert(
        self,
        ctx: CallerContext,
        adjustments: list[BalanceAdjustment],
        correlation_id: Optional[UUID] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """
        Undo applied adjustments, newest first.

        Raises:
            BalanceDivergenceError: If any adjustment could not be undone
        """
        correlation_id = correlation_id or create_correlation_id()
        failed: list[UUID] = []

        for adjustment in reversed(adjustments):
            try:
                await self._adjust(ctx, adjustment.bank_id, -adjustment.delta, correlation_id)
            except Exception as e:
                failed.append(adjustment.bank_id)
                await self._audit_logger.log_balance_divergence(
                    bank_id=adjustment.bank_id,
                    owner_id=ctx.user_id,
                    details={
                        "unreverted_delta": str(adjustment.delta),
                        "revert_error": str(e),
                    },
                    error_message=str(cause) if cause else str(e),
                    correlation_id=correlation_id,
                )

        if failed:
            raise BalanceDivergenceError(
                f"Could not revert balance writes on {len(failed)} bank(s)",
                operation="revert_balances",
                bank_ids=failed,
                cause=cause,
            )

    async def _adjust(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        delta: Decimal,
        correlation_id: UUID,
    ) -> BalanceAdjustment:
        """Read-compute-write one bank, retrying on version conflicts."""
        bank = None
        updated = None
        attempts = 0

        async for attempt in conflict_retrying(self._settings):
            with attempt:
                attempts = attempt.retry_state.attempt_number
                if attempts > 1:
                    await self._audit_logger.log_conflict_retried(
                        bank_id=bank_id,
                        owner_id=ctx.user_id,
                        attempt=attempts,
                        correlation_id=correlation_id,
                    )
                bank = await self._storage.get_bank(ctx, bank_id)
                updated = await self._storage.update_bank_balance(
                    ctx,
                    bank_id,
                    apply_delta(bank.balance, delta),
                    expected_version=bank.version,
                )

        await self._audit_logger.log_balance_adjusted(
            bank_id=bank_id,
            owner_id=ctx.user_id,
            previous_balance=bank.balance,
            new_balance=updated.balance,
            delta=delta,
            version=updated.version,
            correlation_id=correlation_id,
        )

        return BalanceAdjustment(
            bank_id=bank_id,
            delta=delta,
            previous_balance=bank.balance,
            new_balance=updated.balance,
            version=updated.version,
            attempts=attempts,
        )

    async def verify_bank(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> BalanceCheck:
        """
        Recompute a bank's balance from its ledger and compare.

        A mismatch is logged as a balance divergence; nothing is rewritten.
        """
        bank = await self._storage.get_bank(ctx, bank_id)
        bank_filter = LedgerFilter(bank_id=bank_id)
        transactions = await self._storage.list_transactions(ctx, bank_filter)
        transfers = await self._storage.list_transfers(ctx, bank_filter)

        check = BalanceCheck(
            bank_id=bank_id,
            stored_balance=bank.balance,
            expected_balance=expected_balance(bank, transactions, transfers),
            transaction_count=len(transactions),
            transfer_count=len(transfers),
        )

        if not check.is_consistent:
            await self._audit_logger.log_balance_divergence(
                bank_id=bank_id,
                owner_id=ctx.user_id,
                details={
                    "stored_balance": str(check.stored_balance),
                    "expected_balance": str(check.expected_balance),
                    "difference": str(check.difference),
                },
                error_message="Stored balance does not match ledger",
                correlation_id=correlation_id,
            )

        return check
