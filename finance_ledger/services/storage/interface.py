"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the ledger store.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the reconciliation logic decoupled from storage implementation

Every operation takes an explicit CallerContext. Implementations MUST
scope reads and writes to ctx.user_id and raise PermissionDeniedError
when a row belongs to someone else.

Balance writes and transaction edits are compare-and-swap: they only
succeed when the stored version still equals expected_version.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional
from uuid import UUID

from finance_ledger.models.audit import AuditEvent
from finance_ledger.models.ledger import (
    Bank,
    CallerContext,
    Credit,
    LedgerFilter,
    Transaction,
    Transfer,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Banks
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_bank(self, ctx: CallerContext, bank_id: UUID) -> Bank:
        """
        Retrieve a bank by its ID.

        Raises:
            NotFoundError: If the bank does not exist
            PermissionDeniedError: If the bank belongs to another user
        """
        pass

    @abstractmethod
    async def list_banks(self, ctx: CallerContext) -> list[Bank]:
        """List the caller's banks, oldest first."""
        pass

    @abstractmethod
    async def insert_bank(self, ctx: CallerContext, bank: Bank) -> Bank:
        """
        Insert a new bank.

        Raises:
            DuplicateError: If a bank with this ID already exists
        """
        pass

    @abstractmethod
    async def update_bank(self, ctx: CallerContext, bank: Bank) -> Bank:
        """
        Update a bank's descriptive fields (name, color, opening balance).

        The balance and version are NOT written here; use
        update_bank_balance() for those.

        Raises:
            NotFoundError: If the bank does not exist
        """
        pass

    @abstractmethod
    async def update_bank_balance(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        balance: Decimal,
        expected_version: int,
    ) -> Bank:
        """
        Conditionally write a new balance.

        Args:
            ctx: Caller identity
            bank_id: Bank to update
            balance: The new balance
            expected_version: Version the caller read the balance at

        Returns:
            The updated bank (version incremented by one)

        Raises:
            ConstraintViolationError: If no bank with this ID exists
            PermissionDeniedError: If the bank belongs to another user
            ConflictError: If the stored version differs from expected_version
        """
        pass

    @abstractmethod
    async def delete_bank(self, ctx: CallerContext, bank_id: UUID) -> bool:
        """
        Delete a bank and cascade to its transactions and transfers.

        Returns:
            True if deleted, False if it did not exist
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_transaction(self, ctx: CallerContext, tx: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def get_transaction(self, ctx: CallerContext, transaction_id: UUID) -> Transaction:
        """
        Raises:
            NotFoundError: If the transaction does not exist
            PermissionDeniedError: If it belongs to another user
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        ctx: CallerContext,
        tx: Transaction,
        expected_version: int,
    ) -> Transaction:
        """
        Conditionally replace a stored transaction.

        Returns:
            The stored transaction (version incremented by one)

        Raises:
            NotFoundError: If the transaction does not exist
            ConflictError: If the stored version differs from expected_version
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        ctx: CallerContext,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Delete a transaction, optionally only at the version the caller read.

        Returns:
            True if deleted, False if it did not exist

        Raises:
            ConflictError: If expected_version is given and the stored version differs
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transaction]:
        """
        List the caller's transactions, newest date first.

        The full set is returned on every call (no cursor).
        """
        pass

    # -------------------------------------------------------------------------
    # Transfers (create and delete only)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_transfer(self, ctx: CallerContext, transfer: Transfer) -> Transfer:
        pass

    @abstractmethod
    async def get_transfer(self, ctx: CallerContext, transfer_id: UUID) -> Transfer:
        pass

    @abstractmethod
    async def delete_transfer(self, ctx: CallerContext, transfer_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_transfers(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transfer]:
        pass

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_credit(self, ctx: CallerContext, credit: Credit) -> Credit:
        pass

    @abstractmethod
    async def get_credit(self, ctx: CallerContext, credit_id: UUID) -> Credit:
        pass

    @abstractmethod
    async def update_credit(self, ctx: CallerContext, credit: Credit) -> Credit:
        pass

    @abstractmethod
    async def delete_credit(self, ctx: CallerContext, credit_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_credits(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Credit]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one ledger mutation).

        Returns:
            List of related events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations (backend or network failure)."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class PermissionDeniedError(StorageError):
    """Entity exists but belongs to another user."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConstraintViolationError(StorageError):
    """A write would break a storage constraint (e.g. dangling bank reference)."""
    pass


class ConflictError(StorageError):
    """A conditional write lost against a concurrent writer."""

    def __init__(
        self,
        row_id: UUID,
        expected_version: int,
        actual_version: int,
        kind: str = "Bank",
    ):
        self.row_id = row_id
        self.kind = kind
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{kind} {row_id} changed concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
