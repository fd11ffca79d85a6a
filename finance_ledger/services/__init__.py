"""Services package."""

from finance_ledger.services.storage import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConflictError",
    "ConnectionError",
    "ConstraintViolationError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
]
