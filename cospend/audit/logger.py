"""
Audit Logger

structlog is configured once, here, to render one JSON object per line.
A receipt scan shares a correlation id across its started / completed /
failed events so the whole attempt can be followed in the log.
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from cospend.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from cospend.services.storage import AuditStorageInterface


# Configure structlog for local logging
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


def configure_logging(level: str = "INFO") -> None:
    """
    Route the stdlib root logger to stderr at the given level.

    structlog renders the JSON line; stdlib only has to print it.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Writes AuditEvents to the JSON log, and to a sink when one is given.

    The sink backs the activity list on the settings page; a failing sink
    never breaks the action being audited.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Sink for audit events.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("cospend.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Appends to the sink if available.

        Returns True if the sink write succeeded (or no sink configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage is not None:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def recent_events(self, limit: int = 20) -> list[AuditEvent]:
        """Newest events first; empty when no sink is configured."""
        if self._storage is None:
            return []
        return self._storage.get_recent_events(limit=limit)

    def log_draft_started(
        self,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.draft_started(source, correlation_id))

    def log_draft_replaced(self, previous_source: str, new_source: str) -> None:
        self.log(AuditEventBuilder.draft_replaced(previous_source, new_source))

    def log_draft_cancelled(self, source: str) -> None:
        self.log(AuditEventBuilder.draft_cancelled(source))

    def log_save_rejected(self, issues: list[dict]) -> None:
        self.log(AuditEventBuilder.save_rejected(issues))

    def log_expense_saved(
        self,
        expense_id: str,
        item: str,
        amount: str,
        payer: str,
    ) -> None:
        """Log expense save."""
        event = AuditEventBuilder.expense_saved(
            expense_id=expense_id,
            item=item,
            amount=amount,
            payer=payer,
        )
        self.log(event)

    def log_import_completed(self, admitted: int, skipped: int) -> None:
        self.log(AuditEventBuilder.import_completed(admitted, skipped))

    def log_import_failed(self, reason: str) -> None:
        self.log(AuditEventBuilder.import_failed(reason))

    def log_storage_load_failed(
        self,
        key: str,
        error_message: str,
        backup_key: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.storage_load_failed(key, error_message, backup_key))

    def log_analysis_started(
        self,
        mime_type: str,
        size_bytes: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.analysis_started(mime_type, size_bytes, correlation_id))

    def log_analysis_completed(
        self,
        fields_found: list[str],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.analysis_completed(fields_found, correlation_id))

    def log_analysis_failed(
        self,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log receipt analysis failure."""
        event = AuditEventBuilder.analysis_failed(
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_analysis_discarded(self, correlation_id: UUID) -> None:
        self.log(AuditEventBuilder.analysis_discarded(correlation_id))

    def log_settings_updated(self, changed_fields: list[str]) -> None:
        self.log(AuditEventBuilder.settings_updated(changed_fields))

    def log_error(
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
        self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
