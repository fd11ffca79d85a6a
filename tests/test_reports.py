"""
Tests for aggregation helpers and the report executor.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_ledger.models.ledger import Bank, Credit, Transaction
from finance_ledger.models.reports import ReportQuery
from finance_ledger.queries import (
    ReportExecutor,
    category_summary,
    credit_summary,
    daily_breakdown,
    dashboard_summary,
    monthly_breakdown,
    person_summary,
)


OWNER = uuid4()
BANK = uuid4()


def tx(tx_type, amount, on, category="") -> Transaction:
    return Transaction(
        owner_id=OWNER,
        bank_id=BANK,
        type=tx_type,
        amount=amount,
        date=on,
        category=category,
    )


def credit(name, credit_type, amount) -> Credit:
    return Credit(owner_id=OWNER, person_name=name, type=credit_type, amount=amount)


@pytest.fixture
def transactions():
    return [
        tx("income", "1000", date(2025, 1, 5), "Salary"),
        tx("expense", "200", date(2025, 1, 5), "Fuel"),
        tx("expense", "50", date(2025, 1, 20), ""),
        tx("expense", "900", date(2025, 2, 1), "Rent"),
    ]


class TestPeriodBreakdowns:
    """Tests for day and month grouping."""

    def test_monthly_most_recent_first(self, transactions):
        months = monthly_breakdown(transactions)
        assert [m.period for m in months] == ["2025-02", "2025-01"]
        assert months[1].income == Decimal("1000.00")
        assert months[1].expense == Decimal("250.00")
        assert months[1].net == Decimal("750.00")

    def test_daily_keys(self, transactions):
        days = daily_breakdown(transactions)
        assert [d.period for d in days] == ["2025-02-01", "2025-01-20", "2025-01-05"]
        assert days[2].transaction_count == 2


class TestCategorySummary:
    """Tests for category grouping."""

    def test_sorted_by_magnitude_with_uncategorized(self, transactions):
        categories = category_summary(transactions)
        assert [c.category for c in categories] == ["Salary", "Rent", "Fuel", "Uncategorized"]
        uncategorized = categories[-1]
        assert uncategorized.expense == Decimal("50.00")
        assert uncategorized.display_label == "Uncategorized"

    def test_known_category_carries_icon(self, transactions):
        fuel = next(c for c in category_summary(transactions) if c.category == "Fuel")
        assert fuel.icon_key == "fuel"


class TestCreditAggregations:
    """Tests for person and credit summaries."""

    def test_person_nets_owe_me_minus_i_owe(self):
        credits = [
            credit("Asha", "owe_me", "500"),
            credit("asha", "i_owe", "200"),
            credit("Ravi", "i_owe", "1000"),
        ]
        people = person_summary(credits)
        assert [p.person_name for p in people] == ["Ravi", "Asha"]
        assert people[0].net == Decimal("-1000.00")
        assert people[1].net == Decimal("300.00")
        assert people[1].record_count == 2

    def test_credit_summary_net_position(self):
        summary = credit_summary([
            credit("Asha", "owe_me", "500"),
            credit("Ravi", "i_owe", "120.50"),
        ])
        assert summary.total_owed_to_me == Decimal("500.00")
        assert summary.total_i_owe == Decimal("120.50")
        assert summary.net_position == Decimal("379.50")


class TestDashboardSummary:
    """Tests for the dashboard headline figures."""

    def test_totals(self, transactions):
        banks = [
            Bank(owner_id=OWNER, name="Checking", balance="1000"),
            Bank(owner_id=OWNER, name="Card", balance="-250.25"),
        ]
        summary = dashboard_summary(banks, transactions)
        assert summary.total_balance == Decimal("749.75")
        assert summary.total_income == Decimal("1000.00")
        assert summary.total_expenses == Decimal("1150.00")
        assert summary.net == Decimal("-150.00")
        assert summary.bank_count == 2


class TestReportExecutor:
    """Tests for report execution against the store."""

    @pytest.mark.asyncio
    async def test_monthly_report(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "0")
        await flows.transactions.create_transaction(ctx, bank.id, "income", "100", "Salary", date(2025, 1, 3))
        await flows.transactions.create_transaction(ctx, bank.id, "expense", "40", "Fuel", date(2025, 2, 3))

        result = await flows.reports.run_report(ctx, ReportQuery(report_type="monthly"))

        assert result.success
        assert result.data_found
        assert [row["period"] for row in result.rows] == ["2025-02", "2025-01"]

    @pytest.mark.asyncio
    async def test_category_report_respects_filters_and_limit(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "0")
        await flows.transactions.create_transaction(ctx, bank.id, "expense", "10", "Fuel", date(2025, 1, 3))
        await flows.transactions.create_transaction(ctx, bank.id, "expense", "30", "Rent", date(2025, 1, 4))
        await flows.transactions.create_transaction(ctx, bank.id, "expense", "99", "Rent", date(2024, 12, 31))

        result = await flows.reports.run_report(ctx, ReportQuery(
            report_type="category",
            date_from=date(2025, 1, 1),
            date_to=date(2025, 1, 31),
            limit=1,
        ))

        assert result.result_count == 1
        assert result.rows[0]["category"] == "Rent"
        assert result.rows[0]["expense"] == "30.00"
        assert "in January 2025" in result.query_description

    @pytest.mark.asyncio
    async def test_dashboard_and_credits(self, flows, ctx):
        bank = await flows.banks.create_bank(ctx, "Checking", "500")
        await flows.transactions.create_transaction(ctx, bank.id, "expense", "20", "Dining")
        await flows.credits.create_credit(ctx, "Asha", "owe_me", "75")

        dashboard = await flows.reports.run_report(ctx, ReportQuery(report_type="dashboard"))
        credits = await flows.reports.run_report(ctx, ReportQuery(report_type="credits"))

        assert dashboard.summary["total_balance"] == "480.00"
        assert dashboard.summary["bank_count"] == 1
        assert credits.summary["net_position"] == "75.00"

    @pytest.mark.asyncio
    async def test_empty_ledger_reports_no_data(self, flows, ctx):
        result = await flows.reports.run_report(ctx, ReportQuery(report_type="person"))
        assert result.success
        assert not result.data_found
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_store_failure_is_returned_not_raised(self, ctx):
        class BrokenStorage:
            async def list_transactions(self, ctx, ledger_filter=None):
                raise RuntimeError("sheet unavailable")

        executor = ReportExecutor(BrokenStorage())
        result = await executor.execute(ctx, ReportQuery(report_type="daily"))

        assert result.success is False
        assert result.error_message == "sheet unavailable"
