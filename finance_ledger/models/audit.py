"""
Audit Models for Finance Ledger

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Complete traceability of all balance changes
2. Debugging information when a mutation fails half-way
3. A record of any divergence between a balance and its ledger
4. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_ledger.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger mutation and every balance write has its own event type.
    """
    # Banks
    BANK_CREATED = "bank_created"
    BANK_UPDATED = "bank_updated"
    BANK_DELETED = "bank_deleted"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Transfers
    TRANSFER_CREATED = "transfer_created"
    TRANSFER_DELETED = "transfer_deleted"

    # Credits
    CREDIT_CREATED = "credit_created"
    CREDIT_UPDATED = "credit_updated"
    CREDIT_DELETED = "credit_deleted"

    # Reconciliation
    BALANCE_ADJUSTED = "balance_adjusted"
    BALANCE_CONFLICT_RETRIED = "balance_conflict_retried"
    LEDGER_CONFLICT_RETRIED = "ledger_conflict_retried"
    MUTATION_COMPENSATED = "mutation_compensated"
    BALANCE_DIVERGENCE_DETECTED = "balance_divergence_detected"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Export / import
    LEDGER_EXPORTED = "ledger_exported"
    IMPORT_VALIDATED = "import_validated"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who triggered it
    owner_id: Optional[UUID] = Field(
        default=None,
        description="User whose ledger was touched"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'bank', 'transaction', 'transfer')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all writes of one mutation)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.owner_id) if self.owner_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx, correlation_id)
        event = AuditEventBuilder.balance_adjusted(bank_id, ...)
    """

    @staticmethod
    def entity_created(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        description: str,
        details: dict,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details,
            is_user_action=True,
        )

    @staticmethod
    def balance_adjusted(
        bank_id: UUID,
        owner_id: UUID,
        previous_balance: Decimal,
        new_balance: Decimal,
        delta: Decimal,
        version: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            owner_id=owner_id,
            entity_type="bank",
            entity_id=bank_id,
            correlation_id=correlation_id,
            description=f"Balance adjusted by {_money(delta)}",
            details={
                "previous_balance": _money(previous_balance),
                "new_balance": _money(new_balance),
                "delta": _money(delta),
                "version": version,
            },
        )

    @staticmethod
    def balance_conflict_retried(
        bank_id: UUID,
        owner_id: UUID,
        attempt: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_CONFLICT_RETRIED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="bank",
            entity_id=bank_id,
            correlation_id=correlation_id,
            description=f"Concurrent balance write detected, retrying (attempt {attempt})",
            details={
                "attempt": attempt,
            },
        )

    @staticmethod
    def ledger_conflict_retried(
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        attempt: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_CONFLICT_RETRIED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} changed concurrently, retrying (attempt {attempt})",
            details={
                "attempt": attempt,
            },
        )

    @staticmethod
    def mutation_compensated(
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_COMPENSATED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation} aborted and rolled back",
            details={
                "operation": operation,
            },
            error_message=error_message,
        )

    @staticmethod
    def balance_divergence_detected(
        bank_id: Optional[UUID],
        owner_id: UUID,
        details: dict,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_DIVERGENCE_DETECTED,
            severity=AuditSeverity.CRITICAL,
            owner_id=owner_id,
            entity_type="bank",
            entity_id=bank_id,
            correlation_id=correlation_id,
            description="Bank balance no longer matches its ledger",
            details=details,
            error_message=error_message,
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
        owner_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} validation failed with {len(issues)} issues",
            details={
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def ledger_exported(
        owner_id: UUID,
        export_format: str,
        record_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_EXPORTED,
            owner_id=owner_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Exported {record_count} transactions as {export_format}",
            details={
                "format": export_format,
                "record_count": record_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_validated(
        owner_id: UUID,
        record_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_VALIDATED,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Import file validated ({record_count} records, nothing stored)",
            details={
                "record_count": record_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        owner_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            description=f"Ledger store error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
