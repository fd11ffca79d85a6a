"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the ledger store.
The in-memory store is the default; Google Sheets is the hosted backend.
"""

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
from finance_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from finance_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "ConstraintViolationError",
    "DuplicateError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
