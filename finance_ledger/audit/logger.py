"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when a mutation fails half-way
3. A loud record of any balance/ledger divergence

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the writes of one mutation
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from finance_ledger.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog (JSON lines) on top of stdlib logging."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "critical":
            self._logger.critical("audit_event", **log_dict)
        elif event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entity_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        description: str,
        details: dict,
        correlation_id: UUID,
    ) -> None:
        """Log creation, update or deletion of a ledger record."""
        event = AuditEventBuilder.entity_created(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_adjusted(
        self,
        bank_id: UUID,
        owner_id: UUID,
        previous_balance: Decimal,
        new_balance: Decimal,
        delta: Decimal,
        version: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.balance_adjusted(
            bank_id=bank_id,
            owner_id=owner_id,
            previous_balance=previous_balance,
            new_balance=new_balance,
            delta=delta,
            version=version,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_conflict_retried(
        self,
        bank_id: UUID,
        owner_id: UUID,
        attempt: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.balance_conflict_retried(
            bank_id=bank_id,
            owner_id=owner_id,
            attempt=attempt,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ledger_conflict_retried(
        self,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        attempt: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.ledger_conflict_retried(
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            attempt=attempt,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_mutation_compensated(
        self,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a mutation that failed half-way and was rolled back."""
        event = AuditEventBuilder.mutation_compensated(
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_divergence(
        self,
        bank_id: Optional[UUID],
        owner_id: UUID,
        details: dict,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log that a balance may no longer match its ledger."""
        event = AuditEventBuilder.balance_divergence_detected(
            bank_id=bank_id,
            owner_id=owner_id,
            details=details,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        correlation_id: UUID,
        owner_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
            owner_id=owner_id,
        )
        await self.log(event)

    async def log_exported(
        self,
        owner_id: UUID,
        export_format: str,
        record_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.ledger_exported(
            owner_id=owner_id,
            export_format=export_format,
            record_count=record_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_import_validated(
        self,
        owner_id: UUID,
        record_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.import_validated(
            owner_id=owner_id,
            record_count=record_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
        owner_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger store failure."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
            owner_id=owner_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., creating a transfer).
    Pass it through all subsequent operations.
    """
    return uuid4()
