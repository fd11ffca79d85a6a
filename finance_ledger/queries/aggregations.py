"""
Aggregation Helpers

Pure functions that turn ledger records into grouped sums. They never
read storage; the ReportExecutor fetches the records and hands them in.

Grouping keys:
- day    -> YYYY-MM-DD
- month  -> YYYY-MM
- category -> the transaction's category, "Uncategorized" when empty
- person -> credit person_name, netted as owe_me - i_owe

Ordering:
- category and person summaries: largest absolute magnitude first
- day and month breakdowns: most recent period first
"""

from typing import Callable, Iterable, Optional

from finance_ledger.models.categories import get_category_info
from finance_ledger.models.ledger import (
    UNCATEGORIZED,
    Bank,
    Credit,
    CreditType,
    LedgerFilter,
    Transaction,
    TransactionType,
)
from finance_ledger.models.reports import (
    CategoryTotals,
    CreditSummary,
    DashboardSummary,
    PeriodTotals,
    PersonTotals,
)


def filter_transactions(
    transactions: Iterable[Transaction],
    ledger_filter: Optional[LedgerFilter] = None,
) -> list[Transaction]:
    """Keep the transactions matching the filter (all of them when None)."""
    if ledger_filter is None:
        return list(transactions)
    return [tx for tx in transactions if ledger_filter.matches_transaction(tx)]


def _period_breakdown(
    transactions: Iterable[Transaction],
    key: Callable[[Transaction], str],
) -> list[PeriodTotals]:
    periods: dict[str, PeriodTotals] = {}
    for tx in transactions:
        period = key(tx)
        totals = periods.setdefault(period, PeriodTotals(period=period))
        if tx.type == TransactionType.INCOME:
            totals.income += tx.amount
        else:
            totals.expense += tx.amount
        totals.transaction_count += 1
    return sorted(periods.values(), key=lambda p: p.period, reverse=True)


def daily_breakdown(transactions: Iterable[Transaction]) -> list[PeriodTotals]:
    """Income/expense per day, most recent day first."""
    return _period_breakdown(transactions, lambda tx: tx.date.strftime("%Y-%m-%d"))


def monthly_breakdown(transactions: Iterable[Transaction]) -> list[PeriodTotals]:
    """Income/expense per month, most recent month first."""
    return _period_breakdown(transactions, lambda tx: tx.date.strftime("%Y-%m"))


def category_summary(transactions: Iterable[Transaction]) -> list[CategoryTotals]:
    """
    Income/expense per category, largest total first.

    Ties are broken by category name so the order is stable.
    """
    categories: dict[str, CategoryTotals] = {}
    for tx in transactions:
        name = tx.category or UNCATEGORIZED
        totals = categories.get(name)
        if totals is None:
            info = get_category_info(name)
            totals = CategoryTotals(
                category=name,
                display_label=info.display_label if info.name == name else name,
                icon_key=info.icon_key,
            )
            categories[name] = totals
        if tx.type == TransactionType.INCOME:
            totals.income += tx.amount
        else:
            totals.expense += tx.amount
        totals.transaction_count += 1
    return sorted(categories.values(), key=lambda c: (-c.total, c.category))


def person_summary(credits: Iterable[Credit]) -> list[PersonTotals]:
    """
    Net credit position per person, largest absolute net first.

    Names are grouped case-insensitively; the first spelling seen is kept.
    """
    people: dict[str, PersonTotals] = {}
    for credit in credits:
        key = credit.person_name.strip().lower()
        totals = people.setdefault(key, PersonTotals(person_name=credit.person_name.strip()))
        if credit.type == CreditType.OWE_ME:
            totals.owed_to_me += credit.amount
        else:
            totals.i_owe += credit.amount
        totals.record_count += 1
    return sorted(people.values(), key=lambda p: (-abs(p.net), p.person_name.lower()))


def credit_summary(credits: Iterable[Credit]) -> CreditSummary:
    """Total owed to me, total I owe, and the net position."""
    summary = CreditSummary()
    for credit in credits:
        if credit.type == CreditType.OWE_ME:
            summary.total_owed_to_me += credit.amount
        else:
            summary.total_i_owe += credit.amount
        summary.record_count += 1
    return summary


def dashboard_summary(
    banks: Iterable[Bank],
    transactions: Iterable[Transaction],
) -> DashboardSummary:
    """Headline totals shown on the dashboard."""
    summary = DashboardSummary()
    for bank in banks:
        summary.total_balance += bank.balance
        summary.bank_count += 1
    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            summary.total_income += tx.amount
        else:
            summary.total_expenses += tx.amount
        summary.transaction_count += 1
    return summary

