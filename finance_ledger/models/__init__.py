"""
Data Models Package

This package contains all Pydantic models used in the Finance Ledger system.
All data flowing through the system must conform to these schemas.
"""

from finance_ledger.models.ledger import (
    Bank,
    CallerContext,
    Credit,
    CreditType,
    LedgerFilter,
    Transaction,
    TransactionType,
    Transfer,
    ValidationIssue,
    ValidationResult,
    quantize_money,
)
from finance_ledger.models.categories import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    CategoryInfo,
    categories_for,
    get_category_info,
)
from finance_ledger.models.reports import (
    CategoryTotals,
    CreditSummary,
    DashboardSummary,
    PeriodTotals,
    PersonTotals,
    ReportQuery,
    ReportResult,
)
from finance_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Bank",
    "CallerContext",
    "Credit",
    "CreditType",
    "LedgerFilter",
    "Transaction",
    "TransactionType",
    "Transfer",
    "ValidationIssue",
    "ValidationResult",
    "quantize_money",
    # Categories
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "CategoryInfo",
    "categories_for",
    "get_category_info",
    # Report models
    "CategoryTotals",
    "CreditSummary",
    "DashboardSummary",
    "PeriodTotals",
    "PersonTotals",
    "ReportQuery",
    "ReportResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
