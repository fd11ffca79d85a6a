"""
Report Models

Results of the aggregation helpers. Amounts stay Decimal all the way
to the caller; only the export layer turns them into strings.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field

from finance_ledger.models.ledger import utc_now


class PeriodTotals(BaseModel):
    """Income and expense totals for one day or one month."""

    period: str = Field(
        ...,
        description="YYYY-MM-DD for days, YYYY-MM for months"
    )
    income: Decimal = Decimal("0.00")
    expense: Decimal = Decimal("0.00")
    transaction_count: int = 0

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class CategoryTotals(BaseModel):
    """Income and expense totals for one category."""

    category: str
    display_label: str
    icon_key: str
    income: Decimal = Decimal("0.00")
    expense: Decimal = Decimal("0.00")
    transaction_count: int = 0

    @computed_field
    @property
    def total(self) -> Decimal:
        """Total absolute magnitude, used for ordering."""
        return self.income + self.expense


class PersonTotals(BaseModel):
    """Net credit position with one person (owe_me minus i_owe)."""

    person_name: str
    owed_to_me: Decimal = Decimal("0.00")
    i_owe: Decimal = Decimal("0.00")
    record_count: int = 0

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.owed_to_me - self.i_owe


class CreditSummary(BaseModel):
    total_owed_to_me: Decimal = Decimal("0.00")
    total_i_owe: Decimal = Decimal("0.00")
    record_count: int = 0

    @computed_field
    @property
    def net_position(self) -> Decimal:
        return self.total_owed_to_me - self.total_i_owe


class DashboardSummary(BaseModel):
    """Headline figures across all of a user's banks and transactions."""

    total_balance: Decimal = Decimal("0.00")
    total_income: Decimal = Decimal("0.00")
    total_expenses: Decimal = Decimal("0.00")
    bank_count: int = 0
    transaction_count: int = 0

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expenses


class ReportQuery(BaseModel):
    """
    A structured report request.

    Executed deterministically against stored ledger data.
    """

    query_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=utc_now)

    report_type: str = Field(
        ...,
        pattern="^(dashboard|monthly|daily|category|person|credits)$",
        description="Which report to build"
    )

    # Filters
    bank_id: Optional[UUID] = None
    categories: Optional[list[str]] = None
    person_name: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Keep only the first N rows of a breakdown"
    )


class ReportResult(BaseModel):
    """Result of executing a ReportQuery."""

    query_id: UUID
    executed_at: datetime = Field(default_factory=utc_now)

    success: bool
    error_message: Optional[str] = None

    data_found: bool = Field(
        ...,
        description="Was any ledger data found?"
    )
    result_count: int = Field(
        ge=0,
        description="Number of rows (or source records for summaries)"
    )

    rows: list[dict] = Field(default_factory=list)
    summary: Optional[dict] = None

    query_description: str = Field(
        ...,
        description="Human-readable description of what was aggregated"
    )
