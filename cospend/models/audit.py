"""
Audit Models for CoSpend

Drafts, saves, imports, scans and settings changes each produce an
AuditEvent. The events feed the JSON log and the "recent activity" list.

Events are append-only: nothing edits or removes one once written.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Every step of the draft → save flow has its own event type."""
    # Draft flow
    DRAFT_STARTED = "draft_started"
    DRAFT_REPLACED = "draft_replaced"
    DRAFT_CANCELLED = "draft_cancelled"
    SAVE_REJECTED = "save_rejected"

    # Persistence
    EXPENSE_SAVED = "expense_saved"
    IMPORT_COMPLETED = "import_completed"
    IMPORT_FAILED = "import_failed"
    STORAGE_LOAD_FAILED = "storage_load_failed"

    # Receipt analysis
    ANALYSIS_STARTED = "analysis_started"
    ANALYSIS_COMPLETED = "analysis_completed"
    ANALYSIS_FAILED = "analysis_failed"
    ANALYSIS_DISCARDED = "analysis_discarded"

    # Preferences
    SETTINGS_UPDATED = "settings_updated"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    One audited action, with enough context to trace it (entity, correlation id).
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
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

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'draft', 'import')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one receipt scan)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

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
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    One constructor per event type, so call sites stay one line long.

    Usage:
        event = AuditEventBuilder.draft_started("manual")
        event = AuditEventBuilder.expense_saved(expense_id, item, amount)
    """

    @staticmethod
    def draft_started(
        source: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_STARTED,
            entity_type="draft",
            correlation_id=correlation_id,
            description=f"Draft started from {source}",
            details={"source": source},
            is_user_action=True,
        )

    @staticmethod
    def draft_replaced(
        previous_source: str,
        new_source: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_REPLACED,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            description=f"Open {previous_source} draft replaced by a {new_source} draft",
            details={
                "previous_source": previous_source,
                "new_source": new_source,
            },
        )

    @staticmethod
    def draft_cancelled(source: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_CANCELLED,
            entity_type="draft",
            description="User discarded the draft",
            details={"source": source},
            is_user_action=True,
        )

    @staticmethod
    def save_rejected(issues: list[dict]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            description=f"Save rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def expense_saved(
        expense_id: str,
        item: str,
        amount: str,
        payer: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense saved: {item} - {amount}",
            details={
                "item": item,
                "amount": amount,
                "payer": payer,
            },
        )

    @staticmethod
    def import_completed(admitted: int, skipped: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            entity_type="import",
            description=f"Imported {admitted} new expenses ({skipped} already present)",
            details={
                "admitted_count": admitted,
                "skipped_count": skipped,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_failed(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="import",
            description="Import rejected, store left unchanged",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def storage_load_failed(
        key: str,
        error_message: str,
        backup_key: Optional[str] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="storage",
            entity_id=key,
            description=f"Stored data under '{key}' is unreadable, starting from defaults",
            error_message=error_message,
            details={"backup_key": backup_key},
        )

    @staticmethod
    def analysis_started(
        mime_type: str,
        size_bytes: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_STARTED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt sent for analysis",
            details={
                "mime_type": mime_type,
                "size_bytes": size_bytes,
            },
            is_user_action=True,
        )

    @staticmethod
    def analysis_completed(
        fields_found: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_COMPLETED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt analysed, {len(fields_found)} fields extracted",
            details={"fields_found": fields_found},
        )

    @staticmethod
    def analysis_failed(
        error_type: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt analysis failed: {error_type}",
            error_message=error_message,
            details={"error_type": error_type},
        )

    @staticmethod
    def analysis_discarded(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_DISCARDED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Analysis result arrived after the user moved on, discarded",
        )

    @staticmethod
    def settings_updated(changed_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            entity_type="settings",
            description=f"Settings updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
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
