"""
Main Orchestrator for Finance Ledger

This module ties together all the components and defines the
end-to-end flows for every user action:
1. Banks (create, rename/recolour, manual balance edit, delete)
2. Transactions (create, edit, delete)
3. Transfers (create, delete)
4. Credits (create, edit, delete; no balance effect)
5. Reports and export/import

DESIGN DECISION: Every balance-affecting mutation follows the same steps:

    validate -> read affected banks -> write ledger row -> apply deltas

If applying the deltas fails, the deltas already applied are reverted
and the ledger row write is undone. The caller gets a
ReconciliationError and the store is as it was. If an undo step fails
too, the divergence is logged at critical severity and a
BalanceDivergenceError is raised.

This is the "glue" that keeps every bank balance equal to its opening
balance plus the signed sum of its ledger entries.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, TypeVar
from uuid import UUID

import structlog

from finance_ledger.audit import AuditLogger, create_correlation_id
from finance_ledger.config import LedgerSettings, get_settings
from finance_ledger.exports import ExportResult, ImportCheck, LedgerExporter
from finance_ledger.models.audit import AuditEventType
from finance_ledger.models.ledger import (
    Bank,
    CallerContext,
    Credit,
    LedgerFilter,
    Transaction,
    Transfer,
    ValidationResult,
    utc_now,
)
from finance_ledger.models.reports import ReportQuery, ReportResult
from finance_ledger.queries import ReportExecutor
from finance_ledger.reconciliation import (
    BalanceCheck,
    BalanceDivergenceError,
    BalanceReconciler,
    ReconciliationError,
    conflict_retrying,
    create_transaction_deltas,
    create_transfer_deltas,
    delete_transaction_deltas,
    delete_transfer_deltas,
    update_transaction_deltas,
)
from finance_ledger.services.storage import (
    AuditStorageInterface,
    ConflictError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from finance_ledger.validation import LedgerValidationError, LedgerValidator, parse_amount


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class _LedgerFlow:
    """Shared plumbing: validation gate, audit shortcuts and the compensated write."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        reconciler: Optional[BalanceReconciler] = None,
        validator: Optional[LedgerValidator] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._reconciler = reconciler or BalanceReconciler(
            storage, self._audit_logger, self._settings
        )
        self._validator = validator or LedgerValidator(self._settings)

    async def _ensure_valid(
        self,
        ctx: CallerContext,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> None:
        """Raise LedgerValidationError (after auditing it) if validation found errors."""
        if result.is_valid:
            return
        issues = [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in result.issues
        ]
        await self._audit_logger.log_validation_failed(
            entity_type=result.entity_type,
            issues=issues,
            correlation_id=correlation_id,
            owner_id=ctx.user_id,
        )
        raise LedgerValidationError(result)

    async def _audit_failure(
        self,
        ctx: CallerContext,
        operation: str,
        error: BaseException,
        correlation_id: UUID,
    ) -> None:
        """Record a failed step: storage_error for the store, system_error otherwise."""
        if isinstance(error, StorageError):
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
                owner_id=ctx.user_id,
            )
        else:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"operation": operation, "owner_id": str(ctx.user_id)},
                correlation_id=correlation_id,
            )

    async def _store_call(
        self,
        ctx: CallerContext,
        operation: str,
        call: Callable[[], Awaitable[T]],
        correlation_id: UUID,
    ) -> T:
        """Run a store call, auditing a failure before it propagates."""
        try:
            return await call()
        except ConflictError:
            # Retried by the caller
            raise
        except Exception as e:
            await self._audit_failure(ctx, operation, e, correlation_id)
            raise

    async def _retry_on_conflict(
        self,
        ctx: CallerContext,
        entity_type: str,
        entity_id: UUID,
        cycle: Callable[[], Awaitable[T]],
        correlation_id: UUID,
    ) -> T:
        """
        Run a read-compute-write cycle on one ledger row.

        The row is written at the version it was read at. If another
        writer changed it in between, the whole cycle runs again from a
        fresh read so the deltas are computed from what is stored.
        """
        async for attempt in conflict_retrying(self._settings):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    await self._audit_logger.log_ledger_conflict_retried(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        owner_id=ctx.user_id,
                        attempt=attempt_number,
                        correlation_id=correlation_id,
                    )
                result = await cycle()
        return result

    @staticmethod
    async def _require_deleted(delete: Awaitable[bool], kind: str, row_id: UUID) -> bool:
        """Turn a delete that found nothing into NotFoundError; its deltas must not run."""
        if not await delete:
            raise NotFoundError(f"{kind} not found: {row_id}")
        return True

    async def _run_mutation(
        self,
        ctx: CallerContext,
        *,
        operation: str,
        entity_type: str,
        entity_id: UUID,
        bank_ids: Iterable[UUID],
        deltas: Mapping[UUID, Decimal],
        write: Callable[[], Awaitable[T]],
        undo: Callable[[], Awaitable[Any]],
        correlation_id: UUID,
    ) -> T:
        """
        Write a ledger row and apply its balance deltas as one unit.

        Raises:
            NotFoundError / PermissionDeniedError: An affected bank could not be read
            ReconciliationError: Balances could not be updated; everything was undone
            BalanceDivergenceError: Undo failed; balances may not match the ledger
        """
        await self._store_call(
            ctx, operation, lambda: self._reconciler.ensure_banks(ctx, bank_ids), correlation_id
        )
        result = await self._store_call(ctx, operation, write, correlation_id)

        try:
            await self._reconciler.apply(ctx, deltas, correlation_id)
        except BalanceDivergenceError:
            raise
        except Exception as e:
            await self._audit_failure(ctx, operation, e, correlation_id)
            try:
                await undo()
            except Exception as undo_error:
                await self._audit_logger.log_balance_divergence(
                    bank_id=None,
                    owner_id=ctx.user_id,
                    details={
                        "operation": operation,
                        "entity_type": entity_type,
                        "entity_id": str(entity_id),
                        "undo_error": str(undo_error),
                    },
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise BalanceDivergenceError(
                    f"{operation} failed and its ledger row could not be restored",
                    operation=operation,
                    bank_ids=deltas.keys(),
                    cause=e,
                ) from e

            await self._audit_logger.log_mutation_compensated(
                entity_type=entity_type,
                entity_id=entity_id,
                owner_id=ctx.user_id,
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise ReconciliationError(
                f"{operation} aborted: {e}",
                operation=operation,
                cause=e,
            ) from e

        return result


class BankFlow(_LedgerFlow):
    """
    Bank account management.

    A new bank's opening balance is the balance it is created with.
    A manual balance edit moves the opening balance by the same amount
    so the balance still matches the ledger.
    """

    async def create_bank(
        self,
        ctx: CallerContext,
        name: str,
        balance: Any = Decimal("0.00"),
        color: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Bank:
        correlation_id = correlation_id or create_correlation_id()

        await self._ensure_valid(ctx, self._validator.validate_bank(name, balance), correlation_id)

        bank = Bank(
            owner_id=ctx.user_id,
            name=name,
            balance=parse_amount(balance, "balance"),
            color=color or self._settings.default_bank_color,
        )
        bank = await self._store_call(
            ctx, "create_bank", lambda: self._storage.insert_bank(ctx, bank), correlation_id
        )

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.BANK_CREATED,
            entity_type="bank",
            entity_id=bank.id,
            owner_id=ctx.user_id,
            description=f"Bank '{bank.name}' created",
            details={"opening_balance": str(bank.opening_balance), "color": bank.color},
            correlation_id=correlation_id,
        )
        return bank

    async def update_bank(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        name: Optional[str] = None,
        color: Optional[str] = None,
        balance: Any = None,
        correlation_id: Optional[UUID] = None,
    ) -> Bank:
        """
        Rename/recolour a bank and optionally set its balance.

        A new balance is applied as a delta through the reconciler so a
        concurrent ledger write is never overwritten.
        """
        correlation_id = correlation_id or create_correlation_id()

        current = await self._store_call(
            ctx, "update_bank", lambda: self._storage.get_bank(ctx, bank_id), correlation_id
        )
        await self._ensure_valid(
            ctx,
            self._validator.validate_bank(
                name if name is not None else current.name,
                balance if balance is not None else current.balance,
            ),
            correlation_id,
        )

        delta = Decimal("0.00")
        if balance is not None:
            delta = parse_amount(balance, "balance") - current.balance

        updated = Bank.model_validate({
            **current.model_dump(),
            "name": name if name is not None else current.name,
            "color": color or current.color,
            "opening_balance": current.opening_balance + delta,
            "updated_at": utc_now(),
        })

        await self._run_mutation(
            ctx,
            operation="update_bank",
            entity_type="bank",
            entity_id=bank_id,
            bank_ids=[bank_id],
            deltas={bank_id: delta} if delta else {},
            write=lambda: self._storage.update_bank(ctx, updated),
            undo=lambda: self._storage.update_bank(ctx, current),
            correlation_id=correlation_id,
        )

        details = {"name": updated.name, "color": updated.color}
        if delta:
            details["manual_adjustment"] = str(delta)
        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.BANK_UPDATED,
            entity_type="bank",
            entity_id=bank_id,
            owner_id=ctx.user_id,
            description=f"Bank '{updated.name}' updated",
            details=details,
            correlation_id=correlation_id,
        )
        return await self._storage.get_bank(ctx, bank_id)

    async def delete_bank(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a bank with its transactions and transfers.

        Transfers to or from a surviving bank are reversed on that bank
        before the cascade, so its balance still matches its ledger.
        """
        correlation_id = correlation_id or create_correlation_id()

        bank = await self._store_call(
            ctx, "delete_bank", lambda: self._storage.get_bank(ctx, bank_id), correlation_id
        )
        transfers = await self._store_call(
            ctx,
            "delete_bank",
            lambda: self._storage.list_transfers(ctx, LedgerFilter(bank_id=bank_id)),
            correlation_id,
        )

        survivor_deltas: dict[UUID, Decimal] = {}
        for transfer in transfers:
            for other_id, delta in delete_transfer_deltas(transfer).items():
                if other_id != bank_id:
                    survivor_deltas[other_id] = survivor_deltas.get(other_id, Decimal("0.00")) + delta

        applied = await self._reconciler.apply(ctx, survivor_deltas, correlation_id)
        try:
            deleted = await self._store_call(
                ctx, "delete_bank", lambda: self._storage.delete_bank(ctx, bank_id), correlation_id
            )
        except Exception as e:
            await self._reconciler.revert(ctx, applied, correlation_id, cause=e)
            await self._audit_logger.log_mutation_compensated(
                entity_type="bank",
                entity_id=bank_id,
                owner_id=ctx.user_id,
                operation="delete_bank",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise ReconciliationError(
                f"delete_bank aborted: {e}",
                operation="delete_bank",
                cause=e,
            ) from e

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.BANK_DELETED,
            entity_type="bank",
            entity_id=bank_id,
            owner_id=ctx.user_id,
            description=f"Bank '{bank.name}' deleted",
            details={
                "final_balance": str(bank.balance),
                "transfers_removed": len(transfers),
                "banks_compensated": [str(b) for b in sorted(survivor_deltas, key=str)],
            },
            correlation_id=correlation_id,
        )
        return deleted

    async def get_bank(self, ctx: CallerContext, bank_id: UUID) -> Bank:
        return await self._storage.get_bank(ctx, bank_id)

    async def list_banks(self, ctx: CallerContext) -> list[Bank]:
        return await self._storage.list_banks(ctx)

    async def verify_bank(self, ctx: CallerContext, bank_id: UUID) -> BalanceCheck:
        """Recompute the bank's balance from its ledger and compare."""
        return await self._reconciler.verify_bank(ctx, bank_id)


class TransactionFlow(_LedgerFlow):
    """Income and expense entries; each one moves exactly one bank balance."""

    async def create_transaction(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        transaction_type: Any,
        amount: Any,
        category: str,
        entry_date: Optional[date] = None,
        notes: Optional[str] = None,
        person_name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        correlation_id = correlation_id or create_correlation_id()
        entry_date = entry_date or date.today()

        await self._ensure_valid(
            ctx,
            self._validator.validate_transaction(bank_id, transaction_type, amount, category, entry_date),
            correlation_id,
        )

        tx = Transaction(
            owner_id=ctx.user_id,
            bank_id=bank_id,
            type=transaction_type,
            amount=parse_amount(amount),
            date=entry_date,
            category=category,
            notes=notes,
            person_name=person_name,
        )

        await self._run_mutation(
            ctx,
            operation="create_transaction",
            entity_type="transaction",
            entity_id=tx.id,
            bank_ids=[tx.bank_id],
            deltas=create_transaction_deltas(tx),
            write=lambda: self._storage.insert_transaction(ctx, tx),
            undo=lambda: self._storage.delete_transaction(ctx, tx.id),
            correlation_id=correlation_id,
        )

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=tx.id,
            owner_id=ctx.user_id,
            description=f"{tx.type.value.capitalize()} of {tx.amount} recorded",
            details={
                "bank_id": str(tx.bank_id),
                "amount": str(tx.amount),
                "category": tx.category,
            },
            correlation_id=correlation_id,
        )
        return tx

    async def update_transaction(
        self,
        ctx: CallerContext,
        transaction_id: UUID,
        bank_id: Optional[UUID] = None,
        transaction_type: Any = None,
        amount: Any = None,
        category: Optional[str] = None,
        entry_date: Optional[date] = None,
        notes: Optional[str] = None,
        person_name: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Edit a transaction. Fields left as None keep their stored value.

        The stored row is read first; its effect is reversed on its own
        bank and the edited effect is applied on the (possibly new) bank.
        The row is written only if it is still at the version read, so
        two overlapping edits are applied one after the other.
        """
        correlation_id = correlation_id or create_correlation_id()

        async def edit_once() -> Transaction:
            old = await self._store_call(
                ctx,
                "update_transaction",
                lambda: self._storage.get_transaction(ctx, transaction_id),
                correlation_id,
            )

            changes = {
                "bank_id": bank_id if bank_id is not None else old.bank_id,
                "type": transaction_type if transaction_type is not None else old.type,
                "amount": amount if amount is not None else old.amount,
                "category": category if category is not None else old.category,
                "date": entry_date or old.date,
                "notes": notes if notes is not None else old.notes,
                "person_name": person_name if person_name is not None else old.person_name,
            }

            await self._ensure_valid(
                ctx,
                self._validator.validate_transaction(
                    changes["bank_id"],
                    changes["type"],
                    changes["amount"],
                    changes["category"],
                    changes["date"],
                ),
                correlation_id,
            )

            new = Transaction.model_validate({
                **old.model_dump(),
                **changes,
                "amount": parse_amount(changes["amount"]),
                "updated_at": utc_now(),
            })

            stored = await self._run_mutation(
                ctx,
                operation="update_transaction",
                entity_type="transaction",
                entity_id=transaction_id,
                bank_ids={old.bank_id, new.bank_id},
                deltas=update_transaction_deltas(old, new),
                write=lambda: self._storage.update_transaction(
                    ctx, new, expected_version=old.version
                ),
                undo=lambda: self._storage.update_transaction(
                    ctx, old, expected_version=old.version + 1
                ),
                correlation_id=correlation_id,
            )

            await self._audit_logger.log_entity_event(
                event_type=AuditEventType.TRANSACTION_UPDATED,
                entity_type="transaction",
                entity_id=transaction_id,
                owner_id=ctx.user_id,
                description="Transaction edited",
                details={
                    "old_bank_id": str(old.bank_id),
                    "new_bank_id": str(stored.bank_id),
                    "old_signed_amount": str(old.signed_amount),
                    "new_signed_amount": str(stored.signed_amount),
                    "version": stored.version,
                },
                correlation_id=correlation_id,
            )
            return stored

        return await self._retry_on_conflict(
            ctx, "transaction", transaction_id, edit_once, correlation_id
        )

    async def delete_transaction(
        self,
        ctx: CallerContext,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a transaction and reverse its effect.

        Raises:
            NotFoundError: If the row is gone, including when a concurrent
                delete removed it after it was read
        """
        correlation_id = correlation_id or create_correlation_id()

        async def delete_once() -> bool:
            tx = await self._store_call(
                ctx,
                "delete_transaction",
                lambda: self._storage.get_transaction(ctx, transaction_id),
                correlation_id,
            )

            deleted = await self._run_mutation(
                ctx,
                operation="delete_transaction",
                entity_type="transaction",
                entity_id=transaction_id,
                bank_ids=[tx.bank_id],
                deltas=delete_transaction_deltas(tx),
                write=lambda: self._require_deleted(
                    self._storage.delete_transaction(
                        ctx, transaction_id, expected_version=tx.version
                    ),
                    "Transaction",
                    transaction_id,
                ),
                undo=lambda: self._storage.insert_transaction(ctx, tx),
                correlation_id=correlation_id,
            )

            await self._audit_logger.log_entity_event(
                event_type=AuditEventType.TRANSACTION_DELETED,
                entity_type="transaction",
                entity_id=transaction_id,
                owner_id=ctx.user_id,
                description=f"{tx.type.value.capitalize()} of {tx.amount} deleted",
                details={"bank_id": str(tx.bank_id), "amount": str(tx.amount)},
                correlation_id=correlation_id,
            )
            return deleted

        return await self._retry_on_conflict(
            ctx, "transaction", transaction_id, delete_once, correlation_id
        )

    async def get_transaction(self, ctx: CallerContext, transaction_id: UUID) -> Transaction:
        return await self._storage.get_transaction(ctx, transaction_id)

    async def list_transactions(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transaction]:
        return await self._storage.list_transactions(ctx, ledger_filter)


class TransferFlow(_LedgerFlow):
    """
    Money moved between two of the caller's banks.

    Transfers are created and deleted, never edited in place.
    """

    async def create_transfer(
        self,
        ctx: CallerContext,
        from_bank_id: UUID,
        to_bank_id: UUID,
        amount: Any,
        entry_date: Optional[date] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transfer:
        correlation_id = correlation_id or create_correlation_id()
        entry_date = entry_date or date.today()

        await self._ensure_valid(
            ctx,
            self._validator.validate_transfer(from_bank_id, to_bank_id, amount, entry_date),
            correlation_id,
        )

        transfer = Transfer(
            owner_id=ctx.user_id,
            from_bank_id=from_bank_id,
            to_bank_id=to_bank_id,
            amount=parse_amount(amount),
            date=entry_date,
            notes=notes,
        )

        await self._run_mutation(
            ctx,
            operation="create_transfer",
            entity_type="transfer",
            entity_id=transfer.id,
            bank_ids=[from_bank_id, to_bank_id],
            deltas=create_transfer_deltas(transfer),
            write=lambda: self._storage.insert_transfer(ctx, transfer),
            undo=lambda: self._storage.delete_transfer(ctx, transfer.id),
            correlation_id=correlation_id,
        )

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.TRANSFER_CREATED,
            entity_type="transfer",
            entity_id=transfer.id,
            owner_id=ctx.user_id,
            description=f"Transfer of {transfer.amount} recorded",
            details={
                "from_bank_id": str(from_bank_id),
                "to_bank_id": str(to_bank_id),
                "amount": str(transfer.amount),
            },
            correlation_id=correlation_id,
        )
        return transfer

    async def delete_transfer(
        self,
        ctx: CallerContext,
        transfer_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        correlation_id = correlation_id or create_correlation_id()

        transfer = await self._store_call(
            ctx,
            "delete_transfer",
            lambda: self._storage.get_transfer(ctx, transfer_id),
            correlation_id,
        )

        deleted = await self._run_mutation(
            ctx,
            operation="delete_transfer",
            entity_type="transfer",
            entity_id=transfer_id,
            bank_ids=[transfer.from_bank_id, transfer.to_bank_id],
            deltas=delete_transfer_deltas(transfer),
            write=lambda: self._require_deleted(
                self._storage.delete_transfer(ctx, transfer_id), "Transfer", transfer_id
            ),
            undo=lambda: self._storage.insert_transfer(ctx, transfer),
            correlation_id=correlation_id,
        )

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.TRANSFER_DELETED,
            entity_type="transfer",
            entity_id=transfer_id,
            owner_id=ctx.user_id,
            description=f"Transfer of {transfer.amount} deleted",
            details={
                "from_bank_id": str(transfer.from_bank_id),
                "to_bank_id": str(transfer.to_bank_id),
            },
            correlation_id=correlation_id,
        )
        return deleted

    async def list_transfers(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transfer]:
        return await self._storage.list_transfers(ctx, ledger_filter)


class CreditFlow(_LedgerFlow):
    """Personal IOU records. Plain CRUD; bank balances are never touched."""

    async def create_credit(
        self,
        ctx: CallerContext,
        person_name: str,
        credit_type: Any,
        amount: Any,
        description: Optional[str] = None,
        entry_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Credit:
        correlation_id = correlation_id or create_correlation_id()
        entry_date = entry_date or date.today()

        await self._ensure_valid(
            ctx,
            self._validator.validate_credit(person_name, credit_type, amount, entry_date),
            correlation_id,
        )

        credit = Credit(
            owner_id=ctx.user_id,
            person_name=person_name,
            type=credit_type,
            amount=parse_amount(amount),
            description=description,
            date=entry_date,
        )
        credit = await self._store_call(
            ctx, "create_credit", lambda: self._storage.insert_credit(ctx, credit), correlation_id
        )

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.CREDIT_CREATED,
            entity_type="credit",
            entity_id=credit.id,
            owner_id=ctx.user_id,
            description=f"Credit with {credit.person_name} recorded",
            details={"type": credit.type.value, "amount": str(credit.amount)},
            correlation_id=correlation_id,
        )
        return credit

    async def update_credit(
        self,
        ctx: CallerContext,
        credit_id: UUID,
        person_name: Optional[str] = None,
        credit_type: Any = None,
        amount: Any = None,
        description: Optional[str] = None,
        entry_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Credit:
        """Edit a credit. Fields left as None keep their stored value."""
        correlation_id = correlation_id or create_correlation_id()

        old = await self._store_call(
            ctx, "update_credit", lambda: self._storage.get_credit(ctx, credit_id), correlation_id
        )

        changes = {
            "person_name": person_name if person_name is not None else old.person_name,
            "type": credit_type if credit_type is not None else old.type,
            "amount": amount if amount is not None else old.amount,
            "description": description if description is not None else old.description,
            "date": entry_date or old.date,
        }

        await self._ensure_valid(
            ctx,
            self._validator.validate_credit(
                changes["person_name"], changes["type"], changes["amount"], changes["date"]
            ),
            correlation_id,
        )

        new = Credit.model_validate({
            **old.model_dump(),
            **changes,
            "amount": parse_amount(changes["amount"]),
            "updated_at": utc_now(),
        })
        new = await self._store_call(
            ctx, "update_credit", lambda: self._storage.update_credit(ctx, new), correlation_id
        )

        await self._audit_logger.log_entity_event(
            event_type=AuditEventType.CREDIT_UPDATED,
            entity_type="credit",
            entity_id=credit_id,
            owner_id=ctx.user_id,
            description=f"Credit with {new.person_name} edited",
            details={"type": new.type.value, "amount": str(new.amount)},
            correlation_id=correlation_id,
        )
        return new

    async def delete_credit(
        self,
        ctx: CallerContext,
        credit_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        correlation_id = correlation_id or create_correlation_id()

        deleted = await self._store_call(
            ctx, "delete_credit", lambda: self._storage.delete_credit(ctx, credit_id), correlation_id
        )

        if deleted:
            await self._audit_logger.log_entity_event(
                event_type=AuditEventType.CREDIT_DELETED,
                entity_type="credit",
                entity_id=credit_id,
                owner_id=ctx.user_id,
                description="Credit deleted",
                details={},
                correlation_id=correlation_id,
            )
        return deleted

    async def list_credits(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Credit]:
        return await self._storage.list_credits(ctx, ledger_filter)


class ReportFlow:
    """
    Read-only views over the ledger.

    Reports are computed from stored records on every call.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._executor = ReportExecutor(storage)
        self._exporter = LedgerExporter(storage, audit_logger)

    async def run_report(self, ctx: CallerContext, query: ReportQuery) -> ReportResult:
        return await self._executor.execute(ctx, query)

    async def export_transactions(
        self,
        ctx: CallerContext,
        export_format: str = "json",
        ledger_filter: Optional[LedgerFilter] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExportResult:
        return await self._exporter.export_transactions(
            ctx,
            export_format=export_format,
            ledger_filter=ledger_filter,
            correlation_id=correlation_id,
        )

    async def validate_import(
        self,
        ctx: CallerContext,
        payload: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ImportCheck:
        return await self._exporter.validate_import(ctx, payload, correlation_id)


@dataclass
class AppComponents:
    """Everything a presentation layer needs, wired to one store."""

    banks: BankFlow
    transactions: TransactionFlow
    transfers: TransferFlow
    credits: CreditFlow
    reports: ReportFlow
    storage: LedgerStorageInterface
    audit_storage: AuditStorageInterface
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient] = None


def create_app_components(
    storage_backend: Optional[str] = None,
    settings: Optional[LedgerSettings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "memory" or "google_sheets".
                    Defaults to LEDGER_STORAGE_BACKEND.
        settings: Ledger settings (defaults to the cached settings)

    If Google Sheets is requested but cannot be set up, the in-memory
    store is used instead and a warning is logged.
    """
    settings = settings or get_settings().ledger
    storage_backend = storage_backend or settings.storage_backend

    sheets_client = None
    storage: LedgerStorageInterface
    audit_storage: AuditStorageInterface

    if storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", backend=storage_backend, error=str(e))
            sheets_client = None
            storage = InMemoryLedgerStorage()
            audit_storage = InMemoryAuditStorage()
    else:
        storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)
    reconciler = BalanceReconciler(storage, audit_logger, settings)
    validator = LedgerValidator(settings)

    def flow(cls):
        return cls(
            storage,
            audit_logger=audit_logger,
            reconciler=reconciler,
            validator=validator,
            settings=settings,
        )

    return AppComponents(
        banks=flow(BankFlow),
        transactions=flow(TransactionFlow),
        transfers=flow(TransferFlow),
        credits=flow(CreditFlow),
        reports=ReportFlow(storage, audit_logger),
        storage=storage,
        audit_storage=audit_storage,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
