"""
Ledger Export / Import

Export writes the caller's (optionally filtered) transactions as JSON
or CSV. Amounts are written as strings so no precision is lost.

Import ONLY checks the shape of a previously exported JSON file: it
must decode to an array. The records are counted and reported, never
stored. Restoring a ledger from an export is not supported.
"""

import csv
import io
import json
from datetime import date
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from finance_ledger.audit import AuditLogger, create_correlation_id
from finance_ledger.models.ledger import (
    CallerContext,
    LedgerFilter,
    Transaction,
    ValidationIssue,
    ValidationResult,
)
from finance_ledger.services.storage import LedgerStorageInterface
from finance_ledger.validation import LedgerValidationError


EXPORT_COLUMNS = [
    "id",
    "bank_id",
    "type",
    "amount",
    "date",
    "category",
    "notes",
    "person_name",
    "created_at",
    "updated_at",
]

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
}


class ExportResult(BaseModel):
    """A rendered export, ready to be offered as a download."""

    filename: str
    export_format: str = Field(..., pattern="^(json|csv)$")
    media_type: str
    content: str
    record_count: int = Field(ge=0)


class ImportCheck(BaseModel):
    """Outcome of checking an import file. Nothing is ever stored."""

    record_count: int = Field(ge=0)
    stored: bool = False


def export_filename(export_format: str, on: Optional[date] = None) -> str:
    """finance-export-YYYY-MM-DD.<format>"""
    on = on or date.today()
    return f"finance-export-{on.isoformat()}.{export_format}"


def _transaction_row(tx: Transaction) -> dict:
    data = tx.model_dump(mode="json")
    row = {column: data.get(column) for column in EXPORT_COLUMNS}
    row["amount"] = str(tx.amount)
    return row


def transactions_to_json(transactions: list[Transaction]) -> str:
    return json.dumps([_transaction_row(tx) for tx in transactions], indent=2)


def transactions_to_csv(transactions: list[Transaction]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for tx in transactions:
        row = _transaction_row(tx)
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return buffer.getvalue()


def _import_error(message: str) -> LedgerValidationError:
    return LedgerValidationError(ValidationResult(
        entity_type="import",
        schema_valid=False,
        semantic_valid=False,
        is_valid=False,
        issues=[ValidationIssue(
            field="file",
            issue_type="invalid_format",
            message=message,
            severity="error",
            suggested_fix="Choose a JSON file produced by Export",
        )],
    ))


class LedgerExporter:
    """Exports transactions and checks import files for one caller at a time."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()

    async def export_transactions(
        self,
        ctx: CallerContext,
        export_format: str = "json",
        ledger_filter: Optional[LedgerFilter] = None,
        on: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExportResult:
        """
        Export the caller's transactions (newest first).

        Raises:
            ValueError: If the format is not json or csv
        """
        export_format = export_format.lower()
        if export_format not in MEDIA_TYPES:
            raise ValueError(f"Unsupported export format: {export_format}")

        correlation_id = correlation_id or create_correlation_id()
        transactions = await self._storage.list_transactions(ctx, ledger_filter)

        if export_format == "json":
            content = transactions_to_json(transactions)
        else:
            content = transactions_to_csv(transactions)

        await self._audit_logger.log_exported(
            owner_id=ctx.user_id,
            export_format=export_format,
            record_count=len(transactions),
            correlation_id=correlation_id,
        )

        return ExportResult(
            filename=export_filename(export_format, on),
            export_format=export_format,
            media_type=MEDIA_TYPES[export_format],
            content=content,
            record_count=len(transactions),
        )

    async def validate_import(
        self,
        ctx: CallerContext,
        payload: Union[str, bytes],
        correlation_id: Optional[UUID] = None,
    ) -> ImportCheck:
        """
        Check that an import file decodes to a JSON array.

        Raises:
            LedgerValidationError: If the file is not JSON or not an array
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise _import_error(f"File is not valid JSON: {e}")

        if not isinstance(data, list):
            raise _import_error("Invalid file format")

        await self._audit_logger.log_import_validated(
            owner_id=ctx.user_id,
            record_count=len(data),
            correlation_id=correlation_id,
        )

        return ImportCheck(record_count=len(data))
