"""Reporting package."""

from finance_ledger.queries.aggregations import (
    category_summary,
    credit_summary,
    daily_breakdown,
    dashboard_summary,
    filter_transactions,
    monthly_breakdown,
    person_summary,
)
from finance_ledger.queries.executor import ReportExecutor

__all__ = [
    "ReportExecutor",
    "category_summary",
    "credit_summary",
    "daily_breakdown",
    "dashboard_summary",
    "filter_transactions",
    "monthly_breakdown",
    "person_summary",
]
