"""
Core Ledger Models for Finance Ledger

These models define the strict schemas for every record the ledger keeps.
They are designed to:
1. Enforce type safety at runtime
2. Keep money exact (Decimal, two decimal places, never float)
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: A Bank's balance is a derived-but-stored quantity.
It is maintained incrementally by the reconciliation engine, never
recomputed on read. The opening balance and a version counter are
stored alongside it so the invariant can be checked and balance writes
can be made conditional.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


MONEY_QUANTUM = Decimal("0.01")
DEFAULT_BANK_COLOR = "#3b82f6"
UNCATEGORIZED = "Uncategorized"

# Entities have a field named "date"; annotate it through an alias.
EntryDate = date


def quantize_money(value: Any) -> Decimal:
    """
    Convert a numeric value to a Decimal with exactly two places.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Amount is not a valid number: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction relative to its bank."""
    INCOME = "income"
    EXPENSE = "expense"


class CreditType(str, Enum):
    """
    Direction of a credit (IOU) record.

    Credits never touch a bank balance.
    """
    OWE_ME = "owe_me"   # Someone owes the user
    I_OWE = "i_owe"     # The user owes someone


# =============================================================================
# CALLER IDENTITY
# =============================================================================

class CallerContext(BaseModel):
    """
    Identity of the user performing an operation.

    Passed explicitly into every storage call. There is no ambient
    session: the store scopes every read and write to this user.
    """
    model_config = ConfigDict(frozen=True)

    user_id: UUID = Field(
        ...,
        description="Authenticated owner performing the operation"
    )


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Bank(BaseModel):
    """
    A money-holding account with a maintained balance.

    INVARIANT (between mutations):
        balance == opening_balance
                   + sum(signed transaction amounts on this bank)
                   + sum(signed transfer amounts touching this bank)
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique bank ID"
    )
    owner_id: UUID = Field(
        ...,
        description="User who owns this bank account"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name of the account"
    )
    balance: Decimal = Field(
        default=Decimal("0.00"),
        description="Current balance (may be negative)"
    )
    opening_balance: Optional[Decimal] = Field(
        default=None,
        description="Balance before any ledger entry; defaults to balance"
    )
    color: str = Field(
        default=DEFAULT_BANK_COLOR,
        pattern="^#[0-9a-fA-F]{6}$",
        description="Display color"
    )
    version: int = Field(
        default=1,
        ge=1,
        description="Incremented by every balance write"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('balance', 'opening_balance', mode='before')
    @classmethod
    def quantize_amounts(cls, v: Any) -> Any:
        if v is None:
            return v
        return quantize_money(v)

    @model_validator(mode='after')
    def default_opening_balance(self) -> 'Bank':
        if self.opening_balance is None:
            self.opening_balance = self.balance
        return self


class Transaction(BaseModel):
    """A single income or expense entry affecting exactly one bank."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    owner_id: UUID
    bank_id: UUID = Field(
        ...,
        description="Bank this transaction is booked against"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount; the type gives the sign"
    )
    date: EntryDate
    category: str = Field(
        default="",
        max_length=100,
        description="Category name (see models.categories)"
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    person_name: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Who the money came from or went to"
    )
    version: int = Field(
        default=1,
        ge=1,
        description="Incremented by every edit"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('amount', mode='before')
    @classmethod
    def quantize_amount(cls, v: Any) -> Decimal:
        return quantize_money(v)

    @property
    def signed_amount(self) -> Decimal:
        """Contribution of this entry to its bank's balance."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount


class Transfer(BaseModel):
    """A paired debit/credit moving funds between two distinct banks."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transfer ID"
    )
    owner_id: UUID
    from_bank_id: UUID
    to_bank_id: UUID
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount moved from from_bank to to_bank"
    )
    date: EntryDate
    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('amount', mode='before')
    @classmethod
    def quantize_amount(cls, v: Any) -> Decimal:
        return quantize_money(v)

    @model_validator(mode='after')
    def validate_distinct_banks(self) -> 'Transfer':
        if self.from_bank_id == self.to_bank_id:
            raise ValueError("Cannot transfer to the same account")
        return self

    def touches(self, bank_id: UUID) -> bool:
        return bank_id in (self.from_bank_id, self.to_bank_id)


class Credit(BaseModel):
    """
    A personal IOU record.

    Independent of bank balances; tracked only for net-position reporting.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique credit ID"
    )
    owner_id: UUID
    person_name: str = Field(
        ...,
        min_length=1,
        max_length=200
    )
    amount: Decimal = Field(
        default=Decimal("0.00"),
        ge=0
    )
    type: CreditType
    description: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    date: EntryDate = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('amount', mode='before')
    @classmethod
    def quantize_amount(cls, v: Any) -> Decimal:
        return quantize_money(v)

    @property
    def signed_amount(self) -> Decimal:
        """Positive when owed to the user, negative when the user owes."""
        if self.type == CreditType.OWE_ME:
            return self.amount
        return -self.amount


# =============================================================================
# FILTERS
# =============================================================================

class LedgerFilter(BaseModel):
    """
    Filter for list operations.

    Every field is optional; an empty filter matches everything.
    """

    bank_id: Optional[UUID] = None
    transaction_type: Optional[TransactionType] = None
    categories: Optional[list[str]] = Field(
        default=None,
        description="Match any of these categories (empty category counts as Uncategorized)"
    )
    person_name: Optional[str] = Field(
        default=None,
        description="Case-insensitive exact match"
    )
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @model_validator(mode='after')
    def validate_range(self) -> 'LedgerFilter':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self

    def _matches_date(self, entry_date: date) -> bool:
        if self.date_from and entry_date < self.date_from:
            return False
        if self.date_to and entry_date > self.date_to:
            return False
        return True

    def matches_transaction(self, tx: Transaction) -> bool:
        if self.bank_id and tx.bank_id != self.bank_id:
            return False
        if self.transaction_type and tx.type != self.transaction_type:
            return False
        if self.categories is not None:
            category = tx.category or UNCATEGORIZED
            if category not in self.categories:
                return False
        if self.person_name:
            if (tx.person_name or "").lower() != self.person_name.lower():
                return False
        return self._matches_date(tx.date)

    def matches_transfer(self, transfer: Transfer) -> bool:
        if self.bank_id and not transfer.touches(self.bank_id):
            return False
        return self._matches_date(transfer.date)

    def matches_credit(self, credit: Credit) -> bool:
        if self.person_name and credit.person_name.lower() != self.person_name.lower():
            return False
        return self._matches_date(credit.date)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'same_account')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (presence, numbers, positivity)
    Stage 2: Semantic validation (distinct banks, sanity limits)
    """

    entity_type: str = Field(
        ...,
        description="What was validated ('transaction', 'transfer', 'credit', 'bank')"
    )
    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]
