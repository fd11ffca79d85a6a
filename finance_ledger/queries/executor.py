"""
Report Execution Engine

DESIGN DECISION: Report execution is DETERMINISTIC.
A ReportQuery names the report and its filters; this engine fetches
the caller's ledger records from storage and runs the aggregation
helpers over them. Nothing is estimated or cached.

GUARANTEES:
- Only returns real data from storage
- Clear "no data found" if nothing matches
- A failure is returned as a result with success=False, never raised
"""

from datetime import date
from typing import Optional

import structlog

from finance_ledger.models.ledger import CallerContext, LedgerFilter
from finance_ledger.models.reports import ReportQuery, ReportResult
from finance_ledger.queries.aggregations import (
    category_summary,
    credit_summary,
    daily_breakdown,
    dashboard_summary,
    monthly_breakdown,
    person_summary,
)
from finance_ledger.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class ReportExecutor:
    """
    Executes report queries against the ledger store.

    Every query is scoped to the caller passed in.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def execute(self, ctx: CallerContext, query: ReportQuery) -> ReportResult:
        """Execute a report query and return its result."""
        try:
            if query.report_type == "dashboard":
                return await self._execute_dashboard(ctx, query)
            elif query.report_type == "monthly":
                return await self._execute_period(ctx, query, monthly=True)
            elif query.report_type == "daily":
                return await self._execute_period(ctx, query, monthly=False)
            elif query.report_type == "category":
                return await self._execute_category(ctx, query)
            elif query.report_type == "person":
                return await self._execute_person(ctx, query)
            else:
                return await self._execute_credits(ctx, query)

        except Exception as e:
            logger.error(
                "report_failed",
                query_id=str(query.query_id),
                report_type=query.report_type,
                error=str(e),
            )
            return ReportResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                data_found=False,
                result_count=0,
                query_description=f"Report failed: {str(e)}",
            )

    def _transaction_filter(self, query: ReportQuery) -> LedgerFilter:
        return LedgerFilter(
            bank_id=query.bank_id,
            categories=query.categories,
            date_from=query.date_from,
            date_to=query.date_to,
        )

    def _credit_filter(self, query: ReportQuery) -> LedgerFilter:
        return LedgerFilter(
            person_name=query.person_name,
            date_from=query.date_from,
            date_to=query.date_to,
        )

    def _limit(self, rows: list, query: ReportQuery) -> list:
        if query.limit:
            return rows[:query.limit]
        return rows

    async def _execute_dashboard(self, ctx: CallerContext, query: ReportQuery) -> ReportResult:
        banks = await self._storage.list_banks(ctx)
        if query.bank_id:
            banks = [b for b in banks if b.id == query.bank_id]
        transactions = await self._storage.list_transactions(ctx, self._transaction_filter(query))

        summary = dashboard_summary(banks, transactions)

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=bool(banks or transactions),
            result_count=summary.transaction_count,
            rows=[self._bank_to_dict(b) for b in banks],
            summary=summary.model_dump(mode="json"),
            query_description=self._describe("Dashboard", query),
        )

    async def _execute_period(
        self,
        ctx: CallerContext,
        query: ReportQuery,
        monthly: bool,
    ) -> ReportResult:
        transactions = await self._storage.list_transactions(ctx, self._transaction_filter(query))
        periods = monthly_breakdown(transactions) if monthly else daily_breakdown(transactions)
        rows = self._limit([p.model_dump(mode="json") for p in periods], query)

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=len(rows) > 0,
            result_count=len(rows),
            rows=rows,
            query_description=self._describe(
                "Monthly breakdown" if monthly else "Daily breakdown",
                query,
            ),
        )

    async def _execute_category(self, ctx: CallerContext, query: ReportQuery) -> ReportResult:
        transactions = await self._storage.list_transactions(ctx, self._transaction_filter(query))
        rows = self._limit(
            [c.model_dump(mode="json") for c in category_summary(transactions)],
            query,
        )

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=len(rows) > 0,
            result_count=len(rows),
            rows=rows,
            query_description=self._describe("Spending by category", query),
        )

    async def _execute_person(self, ctx: CallerContext, query: ReportQuery) -> ReportResult:
        credits = await self._storage.list_credits(ctx, self._credit_filter(query))
        rows = self._limit(
            [p.model_dump(mode="json") for p in person_summary(credits)],
            query,
        )

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=len(rows) > 0,
            result_count=len(rows),
            rows=rows,
            query_description=self._describe("Credits by person", query),
        )

    async def _execute_credits(self, ctx: CallerContext, query: ReportQuery) -> ReportResult:
        credits = await self._storage.list_credits(ctx, self._credit_filter(query))
        summary = credit_summary(credits)

        return ReportResult(
            query_id=query.query_id,
            success=True,
            data_found=summary.record_count > 0,
            result_count=summary.record_count,
            summary=summary.model_dump(mode="json"),
            query_description=self._describe("Credit summary", query),
        )

    def _bank_to_dict(self, bank) -> dict:
        """Convert a bank to a dictionary for results."""
        return {
            "id": str(bank.id),
            "name": bank.name,
            "balance": str(bank.balance),
            "color": bank.color,
        }

    def _describe(self, title: str, query: ReportQuery) -> str:
        desc_parts = [title]
        if query.categories:
            desc_parts.append(f"categories: {', '.join(query.categories)}")
        if query.person_name:
            desc_parts.append(f"person: {query.person_name}")
        if query.date_from or query.date_to:
            desc_parts.append(self._date_range_str(query.date_from, query.date_to))
        return " | ".join(desc_parts)

    def _date_range_str(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> str:
        """Format date range for description."""
        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.strftime('%d %b %Y')}"
            elif date_from.month == date_to.month and date_from.year == date_to.year:
                return f"in {date_from.strftime('%B %Y')}"
            elif date_from.year == date_to.year:
                return f"from {date_from.strftime('%b')} to {date_to.strftime('%b %Y')}"
            else:
                return f"from {date_from.strftime('%b %Y')} to {date_to.strftime('%b %Y')}"
        elif date_from:
            return f"from {date_from.strftime('%d %b %Y')}"
        elif date_to:
            return f"until {date_to.strftime('%d %b %Y')}"
        return ""
