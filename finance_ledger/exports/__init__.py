"""Export / import package."""

from finance_ledger.exports.exporter import (
    EXPORT_COLUMNS,
    ExportResult,
    ImportCheck,
    LedgerExporter,
    export_filename,
    transactions_to_csv,
    transactions_to_json,
)

__all__ = [
    "EXPORT_COLUMNS",
    "ExportResult",
    "ImportCheck",
    "LedgerExporter",
    "export_filename",
    "transactions_to_csv",
    "transactions_to_json",
]
