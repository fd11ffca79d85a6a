"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (bank, category, person name)
- Amount is numeric and greater than zero
- Enumerated values are known (income/expense, owe_me/i_owe)

STAGE 2 - SEMANTIC VALIDATION:
- Transfer source and destination differ
- Absurd amount detection
- Future date detection
- Category belongs to the catalogue for its type

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Stage 2 is skipped if stage 1 fails

IMPORTANT: Validation NEVER silently fixes issues.
Errors block the mutation before any balance is touched;
warnings are reported and never block.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from finance_ledger.config import LedgerSettings, get_settings
from finance_ledger.models.categories import is_known_category
from finance_ledger.models.ledger import (
    CreditType,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    quantize_money,
)


class LedgerValidationError(Exception):
    """
    A mutation was rejected by validation.

    Carries the full ValidationResult so callers can show every issue.
    """

    def __init__(self, result: ValidationResult):
        self.result = result
        self.issues = [i for i in result.issues if i.severity == "error"]
        message = "; ".join(i.message for i in self.issues) or "Validation failed"
        super().__init__(message)


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Convert user input into a two-place Decimal.

    Raises:
        LedgerValidationError: If the value is missing or not a number
    """
    amount, issues = _parse_amount(value, field)
    if amount is None:
        raise LedgerValidationError(ValidationResult(
            entity_type=field,
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=issues,
        ))
    return amount


def _parse_amount(value: Any, field: str) -> tuple[Optional[Decimal], list[ValidationIssue]]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, [ValidationIssue(
            field=field,
            issue_type="missing",
            message="Amount is required",
            severity="error",
        )]
    try:
        raw = value.strip().replace(",", "") if isinstance(value, str) else value
        return quantize_money(raw), []
    except ValueError:
        return None, [ValidationIssue(
            field=field,
            issue_type="invalid_format",
            message=f"Amount is not a number: {value!r}",
            severity="error",
            suggested_fix="Enter digits only, e.g. 1250.50",
        )]


def _positive_amount_issues(value: Any, field: str = "amount") -> tuple[Optional[Decimal], list[ValidationIssue]]:
    amount, issues = _parse_amount(value, field)
    if amount is not None and amount <= 0:
        issues.append(ValidationIssue(
            field=field,
            issue_type="invalid_value",
            message="Amount must be greater than zero",
            severity="error",
        ))
    return amount, issues


class LedgerValidator:
    """
    Validates ledger mutations through a two-stage pipeline.

    Stage 1: Schema validation
    Stage 2: Semantic validation (only if stage 1 passed)
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Shared semantic checks
    # -------------------------------------------------------------------------

    def _amount_sanity(self, amount: Optional[Decimal]) -> list[ValidationIssue]:
        issues = []
        if amount is not None and amount > self._settings.max_transaction_amount:
            symbol = self._settings.currency_symbol
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({symbol}{amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))
        return issues

    def _date_sanity(self, entry_date: Optional[date]) -> list[ValidationIssue]:
        issues = []
        max_future_date = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if entry_date and entry_date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({entry_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))
        return issues

    @staticmethod
    def _result(
        entity_type: str,
        schema_issues: list[ValidationIssue],
        semantic_issues: Optional[list[ValidationIssue]],
    ) -> ValidationResult:
        schema_valid = not any(i.severity == "error" for i in schema_issues)
        semantic_valid = semantic_issues is not None and not any(
            i.severity == "error" for i in semantic_issues
        )
        return ValidationResult(
            entity_type=entity_type,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=schema_issues + (semantic_issues or []),
        )

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def validate_transaction(
        self,
        bank_id: Optional[UUID],
        transaction_type: Any,
        amount: Any,
        category: Optional[str],
        entry_date: Optional[date] = None,
    ) -> ValidationResult:
        """Validate the fields of a transaction create or edit form."""
        schema_issues = []

        if bank_id is None:
            schema_issues.append(ValidationIssue(
                field="bank_id",
                issue_type="missing",
                message="Select the bank account for this transaction",
                severity="error",
            ))

        tx_type = None
        try:
            tx_type = TransactionType(transaction_type)
        except ValueError:
            schema_issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Type must be income or expense, got {transaction_type!r}",
                severity="error",
            ))

        parsed_amount, amount_issues = _positive_amount_issues(amount)
        schema_issues.extend(amount_issues)

        if not category or not category.strip():
            schema_issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
                suggested_fix="Pick one of the listed categories",
            ))

        if any(i.severity == "error" for i in schema_issues):
            return self._result("transaction", schema_issues, None)

        semantic_issues = []
        semantic_issues.extend(self._amount_sanity(parsed_amount))
        semantic_issues.extend(self._date_sanity(entry_date))

        if tx_type is not None and not is_known_category(category.strip(), tx_type):
            semantic_issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"'{category}' is not a standard {tx_type.value} category",
                severity="warning",
            ))

        return self._result("transaction", schema_issues, semantic_issues)

    def validate_transfer(
        self,
        from_bank_id: Optional[UUID],
        to_bank_id: Optional[UUID],
        amount: Any,
        entry_date: Optional[date] = None,
    ) -> ValidationResult:
        """Validate the fields of a transfer form."""
        schema_issues = []

        if from_bank_id is None:
            schema_issues.append(ValidationIssue(
                field="from_bank_id",
                issue_type="missing",
                message="Select the account to transfer from",
                severity="error",
            ))
        if to_bank_id is None:
            schema_issues.append(ValidationIssue(
                field="to_bank_id",
                issue_type="missing",
                message="Select the account to transfer to",
                severity="error",
            ))

        parsed_amount, amount_issues = _positive_amount_issues(amount)
        schema_issues.extend(amount_issues)

        if any(i.severity == "error" for i in schema_issues):
            return self._result("transfer", schema_issues, None)

        semantic_issues = []
        if from_bank_id == to_bank_id:
            semantic_issues.append(ValidationIssue(
                field="to_bank_id",
                issue_type="same_account",
                message="Cannot transfer to the same account",
                severity="error",
                suggested_fix="Choose two different accounts",
            ))
        semantic_issues.extend(self._amount_sanity(parsed_amount))
        semantic_issues.extend(self._date_sanity(entry_date))

        return self._result("transfer", schema_issues, semantic_issues)

    def validate_credit(
        self,
        person_name: Optional[str],
        credit_type: Any,
        amount: Any,
        entry_date: Optional[date] = None,
    ) -> ValidationResult:
        """Validate the fields of a credit (IOU) form."""
        schema_issues = []

        if not person_name or not person_name.strip():
            schema_issues.append(ValidationIssue(
                field="person_name",
                issue_type="missing",
                message="Person name is required",
                severity="error",
            ))

        try:
            CreditType(credit_type)
        except ValueError:
            schema_issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Type must be owe_me or i_owe, got {credit_type!r}",
                severity="error",
            ))

        # Zero is allowed for credits (settled records)
        parsed_amount, amount_issues = _parse_amount(amount, "amount")
        schema_issues.extend(amount_issues)
        if parsed_amount is not None and parsed_amount < 0:
            schema_issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount cannot be negative",
                severity="error",
            ))

        if any(i.severity == "error" for i in schema_issues):
            return self._result("credit", schema_issues, None)

        semantic_issues = self._amount_sanity(parsed_amount) + self._date_sanity(entry_date)
        return self._result("credit", schema_issues, semantic_issues)

    def validate_bank(
        self,
        name: Optional[str],
        balance: Any,
    ) -> ValidationResult:
        """Validate a bank account form. Negative balances are allowed."""
        schema_issues = []

        if not name or not name.strip():
            schema_issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Account name is required",
                severity="error",
            ))

        _, balance_issues = _parse_amount(balance, "balance")
        schema_issues.extend(balance_issues)

        if any(i.severity == "error" for i in schema_issues):
            return self._result("bank", schema_issues, None)
        return self._result("bank", schema_issues, [])

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the presentation layer shows as a notification.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
