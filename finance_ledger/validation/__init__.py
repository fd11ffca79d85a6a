"""Validation package."""

from finance_ledger.validation.validator import (
    LedgerValidationError,
    LedgerValidator,
    parse_amount,
)

__all__ = ["LedgerValidationError", "LedgerValidator", "parse_amount"]
