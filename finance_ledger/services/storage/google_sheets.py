"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a hosted backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering and compensation)
- The balance compare-and-swap is read-then-write: it closes the window
  between two mutations of this process, not between two processes
  writing the same spreadsheet at the same instant
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing the reconciliation logic.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, TypeVar
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_ledger.config import get_settings
from finance_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_ledger.models.ledger import (
    Bank,
    CallerContext,
    Credit,
    CreditType,
    LedgerFilter,
    Transaction,
    TransactionType,
    Transfer,
    quantize_money,
    utc_now,
)
from finance_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)


BANK_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "balance",
    "opening_balance",
    "color",
    "version",
    "created_at",
    "updated_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "owner_id",
    "bank_id",
    "type",
    "amount",
    "date",
    "category",
    "notes",
    "person_name",
    "created_at",
    "updated_at",
    "version",
]

TRANSFER_COLUMNS = [
    "id",
    "owner_id",
    "from_bank_id",
    "to_bank_id",
    "amount",
    "date",
    "notes",
    "created_at",
]

CREDIT_COLUMNS = [
    "id",
    "owner_id",
    "person_name",
    "amount",
    "type",
    "description",
    "date",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Column index of owner_id in every ledger sheet
OWNER_COL = 1

# Errors that describe the data, not the connection; retrying cannot help.
_NON_RETRYABLE = (
    NotFoundError,
    PermissionDeniedError,
    ConflictError,
    ConstraintViolationError,
    DuplicateError,
)

sheets_retry = retry(
    retry=retry_if_not_exception_type(_NON_RETRYABLE),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)

T = TypeVar("T")


def _safe_getter(row: list) -> Callable[[int], str]:
    """Handle short rows gracefully (Sheets drops trailing empty cells)."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_banks_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.banks_sheet_name, BANK_COLUMNS, rows=100)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def get_transfers_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.transfers_sheet_name, TRANSFER_COLUMNS)

    def get_credits_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.credits_sheet_name, CREDIT_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of the ledger store.

    One worksheet per entity, one row per record, id in column A and
    owner_id in column B. Money is written as a plain decimal string.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _bank_to_row(bank: Bank) -> list:
        return [
            str(bank.id),
            str(bank.owner_id),
            bank.name,
            str(bank.balance),
            str(bank.opening_balance),
            bank.color,
            str(bank.version),
            bank.created_at.isoformat(),
            bank.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_bank(row: list) -> Bank:
        safe_get = _safe_getter(row)
        return Bank(
            id=UUID(safe_get(0)),
            owner_id=UUID(safe_get(1)),
            name=safe_get(2),
            balance=Decimal(safe_get(3, "0")),
            opening_balance=Decimal(safe_get(4)) if safe_get(4) else None,
            color=safe_get(5) or "#3b82f6",
            version=int(safe_get(6, "1")),
            created_at=datetime.fromisoformat(safe_get(7)),
            updated_at=datetime.fromisoformat(safe_get(8)),
        )

    @staticmethod
    def _transaction_to_row(tx: Transaction) -> list:
        return [
            str(tx.id),
            str(tx.owner_id),
            str(tx.bank_id),
            tx.type.value,
            str(tx.amount),
            tx.date.isoformat(),
            tx.category,
            tx.notes or "",
            tx.person_name or "",
            tx.created_at.isoformat(),
            tx.updated_at.isoformat(),
            str(tx.version),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        safe_get = _safe_getter(row)
        return Transaction(
            id=UUID(safe_get(0)),
            owner_id=UUID(safe_get(1)),
            bank_id=UUID(safe_get(2)),
            type=TransactionType(safe_get(3)),
            amount=Decimal(safe_get(4)),
            date=date.fromisoformat(safe_get(5)),
            category=safe_get(6),
            notes=safe_get(7) or None,
            person_name=safe_get(8) or None,
            created_at=datetime.fromisoformat(safe_get(9)),
            updated_at=datetime.fromisoformat(safe_get(10)),
            version=int(safe_get(11, "1")),
        )

    @staticmethod
    def _transfer_to_row(transfer: Transfer) -> list:
        return [
            str(transfer.id),
            str(transfer.owner_id),
            str(transfer.from_bank_id),
            str(transfer.to_bank_id),
            str(transfer.amount),
            transfer.date.isoformat(),
            transfer.notes or "",
            transfer.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_transfer(row: list) -> Transfer:
        safe_get = _safe_getter(row)
        return Transfer(
            id=UUID(safe_get(0)),
            owner_id=UUID(safe_get(1)),
            from_bank_id=UUID(safe_get(2)),
            to_bank_id=UUID(safe_get(3)),
            amount=Decimal(safe_get(4)),
            date=date.fromisoformat(safe_get(5)),
            notes=safe_get(6) or None,
            created_at=datetime.fromisoformat(safe_get(7)),
        )

    @staticmethod
    def _credit_to_row(credit: Credit) -> list:
        return [
            str(credit.id),
            str(credit.owner_id),
            credit.person_name,
            str(credit.amount),
            credit.type.value,
            credit.description or "",
            credit.date.isoformat(),
            credit.created_at.isoformat(),
            credit.updated_at.isoformat(),
        ]

    @staticmethod
    def _row_to_credit(row: list) -> Credit:
        safe_get = _safe_getter(row)
        return Credit(
            id=UUID(safe_get(0)),
            owner_id=UUID(safe_get(1)),
            person_name=safe_get(2),
            amount=Decimal(safe_get(3, "0")),
            type=CreditType(safe_get(4)),
            description=safe_get(5) or None,
            date=date.fromisoformat(safe_get(6)),
            created_at=datetime.fromisoformat(safe_get(7)),
            updated_at=datetime.fromisoformat(safe_get(8)),
        )

    # -------------------------------------------------------------------------
    # Generic row access
    # -------------------------------------------------------------------------

    @staticmethod
    def _find_row(
        ctx: CallerContext,
        sheet: gspread.Worksheet,
        row_id: UUID,
        kind: str,
    ) -> tuple[int, list]:
        """
        Locate a row by id and check ownership.

        Returns (sheet_row_number, row). Row 1 is the header.
        """
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == str(row_id):
                if len(row) <= OWNER_COL or row[OWNER_COL] != str(ctx.user_id):
                    raise PermissionDeniedError(f"{kind} {row_id} does not belong to the caller")
                return idx, row
        raise NotFoundError(f"{kind} not found: {row_id}")

    @staticmethod
    def _owned_rows(
        ctx: CallerContext,
        sheet: gspread.Worksheet,
        convert: Callable[[list], T],
    ) -> list[T]:
        records = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:  # Skip empty rows
                continue
            if len(row) <= OWNER_COL or row[OWNER_COL] != str(ctx.user_id):
                continue
            try:
                records.append(convert(row))
            except Exception:
                continue  # Skip malformed rows
        return records

    @staticmethod
    def _write_row(sheet: gspread.Worksheet, idx: int, values: list) -> None:
        sheet.update(
            range_name=f"A{idx}",
            values=[values],
            value_input_option="RAW",
        )

    def _check_bank_reference(self, ctx: CallerContext, bank_id: UUID) -> None:
        try:
            self._find_row(ctx, self._client.get_banks_sheet(), bank_id, "Bank")
        except NotFoundError:
            raise ConstraintViolationError(f"Referenced bank does not exist: {bank_id}")

    @staticmethod
    def _check_owner(ctx: CallerContext, owner_id: UUID) -> None:
        if owner_id != ctx.user_id:
            raise PermissionDeniedError("Cannot write a row owned by another user")

    def _delete_by_id(self, ctx: CallerContext, sheet: gspread.Worksheet, row_id: UUID, kind: str) -> bool:
        try:
            idx, _ = self._find_row(ctx, sheet, row_id, kind)
        except NotFoundError:
            return False
        sheet.delete_rows(idx)
        return True

    # -------------------------------------------------------------------------
    # Banks
    # -------------------------------------------------------------------------

    @sheets_retry
    async def get_bank(self, ctx: CallerContext, bank_id: UUID) -> Bank:
        try:
            _, row = self._find_row(ctx, self._client.get_banks_sheet(), bank_id, "Bank")
            return self._row_to_bank(row)
        except (NotFoundError, PermissionDeniedError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to get bank: {e}")

    @sheets_retry
    async def list_banks(self, ctx: CallerContext) -> list[Bank]:
        try:
            banks = self._owned_rows(ctx, self._client.get_banks_sheet(), self._row_to_bank)
        except Exception as e:
            raise StorageError(f"Failed to list banks: {e}")
        banks.sort(key=lambda b: b.created_at)
        return banks

    @sheets_retry
    async def insert_bank(self, ctx: CallerContext, bank: Bank) -> Bank:
        self._check_owner(ctx, bank.owner_id)
        try:
            sheet = self._client.get_banks_sheet()
            if sheet.find(str(bank.id), in_column=1) is not None:
                raise DuplicateError(f"Bank already exists: {bank.id}")
            sheet.append_row(self._bank_to_row(bank), value_input_option="RAW")
            return bank
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save bank: {e}")

    @sheets_retry
    async def update_bank(self, ctx: CallerContext, bank: Bank) -> Bank:
        try:
            sheet = self._client.get_banks_sheet()
            idx, row = self._find_row(ctx, sheet, bank.id, "Bank")
            stored = self._row_to_bank(row)
            updated = stored.model_copy(update={
                "name": bank.name,
                "color": bank.color,
                "opening_balance": bank.opening_balance,
                "updated_at": utc_now(),
            })
            self._write_row(sheet, idx, self._bank_to_row(updated))
            return updated
        except (NotFoundError, PermissionDeniedError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update bank: {e}")

    @sheets_retry
    async def update_bank_balance(
        self,
        ctx: CallerContext,
        bank_id: UUID,
        balance: Decimal,
        expected_version: int,
    ) -> Bank:
        try:
            sheet = self._client.get_banks_sheet()
            try:
                idx, row = self._find_row(ctx, sheet, bank_id, "Bank")
            except NotFoundError:
                raise ConstraintViolationError(f"Cannot update balance, bank missing: {bank_id}")
            stored = self._row_to_bank(row)
            if stored.version != expected_version:
                raise ConflictError(bank_id, expected_version, stored.version)
            updated = stored.model_copy(update={
                "balance": quantize_money(balance),
                "version": stored.version + 1,
                "updated_at": utc_now(),
            })
            self._write_row(sheet, idx, self._bank_to_row(updated))
            return updated
        except _NON_RETRYABLE:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update bank balance: {e}")

    @sheets_retry
    async def delete_bank(self, ctx: CallerContext, bank_id: UUID) -> bool:
        try:
            deleted = self._delete_by_id(ctx, self._client.get_banks_sheet(), bank_id, "Bank")
            if not deleted:
                return False

            # Cascade, bottom-up so row numbers stay valid
            tx_sheet = self._client.get_transactions_sheet()
            tx_rows = tx_sheet.get_all_values()
            for idx in range(len(tx_rows), 1, -1):
                row = tx_rows[idx - 1]
                if len(row) > 2 and row[2] == str(bank_id):
                    tx_sheet.delete_rows(idx)

            transfer_sheet = self._client.get_transfers_sheet()
            transfer_rows = transfer_sheet.get_all_values()
            for idx in range(len(transfer_rows), 1, -1):
                row = transfer_rows[idx - 1]
                if len(row) > 3 and str(bank_id) in (row[2], row[3]):
                    transfer_sheet.delete_rows(idx)

            return True
        except PermissionDeniedError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete bank: {e}")

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @sheets_retry
    async def insert_transaction(self, ctx: CallerContext, tx: Transaction) -> Transaction:
        self._check_owner(ctx, tx.owner_id)
        try:
            self._check_bank_reference(ctx, tx.bank_id)
            sheet = self._client.get_transactions_sheet()
            sheet.append_row(self._transaction_to_row(tx), value_input_option="RAW")
            return tx
        except _NON_RETRYABLE:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    @sheets_retry
    async def get_transaction(self, ctx: CallerContext, transaction_id: UUID) -> Transaction:
        try:
            _, row = self._find_row(
                ctx, self._client.get_transactions_sheet(), transaction_id, "Transaction"
            )
            return self._row_to_transaction(row)
        except (NotFoundError, PermissionDeniedError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    @sheets_retry
    async def update_transaction(
        self,
        ctx: CallerContext,
        tx: Transaction,
        expected_version: int,
    ) -> Transaction:
        self._check_owner(ctx, tx.owner_id)
        try:
            sheet = self._client.get_transactions_sheet()
            idx, row = self._find_row(ctx, sheet, tx.id, "Transaction")
            stored = self._row_to_transaction(row)
            if stored.version != expected_version:
                raise ConflictError(tx.id, expected_version, stored.version, kind="Transaction")
            self._check_bank_reference(ctx, tx.bank_id)
            updated = tx.model_copy(update={"version": stored.version + 1})
            self._write_row(sheet, idx, self._transaction_to_row(updated))
            return updated
        except _NON_RETRYABLE:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    @sheets_retry
    async def delete_transaction(
        self,
        ctx: CallerContext,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            try:
                idx, row = self._find_row(ctx, sheet, transaction_id, "Transaction")
            except NotFoundError:
                return False
            stored = self._row_to_transaction(row)
            if expected_version is not None and stored.version != expected_version:
                raise ConflictError(
                    transaction_id, expected_version, stored.version, kind="Transaction"
                )
            sheet.delete_rows(idx)
            return True
        except (PermissionDeniedError, ConflictError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    @sheets_retry
    async def list_transactions(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transaction]:
        try:
            rows = self._owned_rows(
                ctx, self._client.get_transactions_sheet(), self._row_to_transaction
            )
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")
        if ledger_filter is not None:
            rows = [tx for tx in rows if ledger_filter.matches_transaction(tx)]
        # Sort by date descending (newest first)
        rows.sort(key=lambda tx: (tx.date, tx.created_at), reverse=True)
        return rows

    # -------------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------------

    @sheets_retry
    async def insert_transfer(self, ctx: CallerContext, transfer: Transfer) -> Transfer:
        self._check_owner(ctx, transfer.owner_id)
        try:
            self._check_bank_reference(ctx, transfer.from_bank_id)
            self._check_bank_reference(ctx, transfer.to_bank_id)
            sheet = self._client.get_transfers_sheet()
            sheet.append_row(self._transfer_to_row(transfer), value_input_option="RAW")
            return transfer
        except _NON_RETRYABLE:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transfer: {e}")

    @sheets_retry
    async def get_transfer(self, ctx: CallerContext, transfer_id: UUID) -> Transfer:
        try:
            _, row = self._find_row(
                ctx, self._client.get_transfers_sheet(), transfer_id, "Transfer"
            )
            return self._row_to_transfer(row)
        except (NotFoundError, PermissionDeniedError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to get transfer: {e}")

    @sheets_retry
    async def delete_transfer(self, ctx: CallerContext, transfer_id: UUID) -> bool:
        try:
            return self._delete_by_id(
                ctx, self._client.get_transfers_sheet(), transfer_id, "Transfer"
            )
        except PermissionDeniedError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transfer: {e}")

    @sheets_retry
    async def list_transfers(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Transfer]:
        try:
            rows = self._owned_rows(
                ctx, self._client.get_transfers_sheet(), self._row_to_transfer
            )
        except Exception as e:
            raise StorageError(f"Failed to list transfers: {e}")
        if ledger_filter is not None:
            rows = [t for t in rows if ledger_filter.matches_transfer(t)]
        rows.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return rows

    # -------------------------------------------------------------------------
    # Credits
    # -------------------------------------------------------------------------

    @sheets_retry
    async def insert_credit(self, ctx: CallerContext, credit: Credit) -> Credit:
        self._check_owner(ctx, credit.owner_id)
        try:
            sheet = self._client.get_credits_sheet()
            sheet.append_row(self._credit_to_row(credit), value_input_option="RAW")
            return credit
        except Exception as e:
            raise StorageError(f"Failed to save credit: {e}")

    @sheets_retry
    async def get_credit(self, ctx: CallerContext, credit_id: UUID) -> Credit:
        try:
            _, row = self._find_row(ctx, self._client.get_credits_sheet(), credit_id, "Credit")
            return self._row_to_credit(row)
        except (NotFoundError, PermissionDeniedError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to get credit: {e}")

    @sheets_retry
    async def update_credit(self, ctx: CallerContext, credit: Credit) -> Credit:
        self._check_owner(ctx, credit.owner_id)
        try:
            sheet = self._client.get_credits_sheet()
            idx, _ = self._find_row(ctx, sheet, credit.id, "Credit")
            self._write_row(sheet, idx, self._credit_to_row(credit))
            return credit
        except (NotFoundError, PermissionDeniedError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update credit: {e}")

    @sheets_retry
    async def delete_credit(self, ctx: CallerContext, credit_id: UUID) -> bool:
        try:
            return self._delete_by_id(ctx, self._client.get_credits_sheet(), credit_id, "Credit")
        except PermissionDeniedError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete credit: {e}")

    @sheets_retry
    async def list_credits(
        self,
        ctx: CallerContext,
        ledger_filter: Optional[LedgerFilter] = None,
    ) -> list[Credit]:
        try:
            rows = self._owned_rows(ctx, self._client.get_credits_sheet(), self._row_to_credit)
        except Exception as e:
            raise StorageError(f"Failed to list credits: {e}")
        if ledger_filter is not None:
            rows = [c for c in rows if ledger_filter.matches_credit(c)]
        rows.sort(key=lambda c: (c.date, c.created_at), reverse=True)
        return rows


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=UUID(safe_get(4)) if safe_get(4) else None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _read_events(self, keep: Callable[[list], bool]) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if row and row[0] and keep(row):
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @sheets_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = self._read_events(
                lambda row: len(row) > 7 and row[7] == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events
