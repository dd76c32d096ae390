"""
Audit Models for Culture Crunch Ledger

Every mutation, sync attempt and session change is described as an audit
event before it is logged. This gives:
1. Traceability of what reached the remote store and what did not
2. Debugging information when the ledger drifts from the sheet
3. A single place to see which failures were swallowed

DESIGN DECISION: Audit events are log records only. They are never written
back into the ledger store, so a logging failure cannot touch user data.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger mutations
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_DELETED = "transaction_deleted"
    SUBSCRIPTION_ADDED = "subscription_added"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"

    # Synchronization
    REMOTE_SYNC_FAILED = "remote_sync_failed"
    TOKEN_REFRESHED = "token_refreshed"
    CACHE_FALLBACK = "cache_fallback"
    CACHE_CORRUPT = "cache_corrupt"
    RECORD_SKIPPED = "record_skipped"

    # Session
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    LOGIN_FAILED = "login_failed"

    # Advisory service
    ADVISOR_FAILED = "advisor_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - which record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="'transaction', 'subscription' or 'session'"
    )
    entity_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

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
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_added("transaction", tx.id, tx.description)
        event = AuditEventBuilder.remote_sync_failed("append", "transaction", tx.id, err)
    """

    @staticmethod
    def record_added(entity_type: str, entity_id: str, label: str) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTION_ADDED
            if entity_type == "transaction"
            else AuditEventType.SUBSCRIPTION_ADDED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} added: {label}",
        )

    @staticmethod
    def record_deleted(entity_type: str, entity_id: str) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTION_DELETED
            if entity_type == "transaction"
            else AuditEventType.SUBSCRIPTION_DELETED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} deleted",
        )

    @staticmethod
    def subscription_updated(entity_id: str, fields: dict) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_UPDATED,
            entity_type="subscription",
            entity_id=entity_id,
            description=f"Subscription updated: {', '.join(sorted(fields))}",
            details={"fields": fields},
        )

    @staticmethod
    def remote_sync_failed(
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMOTE_SYNC_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Remote {operation} failed for {entity_type}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def token_refreshed(operation: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOKEN_REFRESHED,
            entity_type="session",
            description=f"Access token replaced during {operation}; retrying once",
            details={"operation": operation},
        )

    @staticmethod
    def cache_fallback(collection: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_FALLBACK,
            severity=AuditSeverity.WARNING,
            description=f"Loaded {collection} from local cache",
            details={"collection": collection},
            error_message=error_message,
        )

    @staticmethod
    def cache_corrupt(key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_CORRUPT,
            severity=AuditSeverity.WARNING,
            description=f"Cache entry {key} unreadable, treated as empty",
            details={"key": key},
            error_message=error_message,
        )

    @staticmethod
    def record_skipped(collection: str, record_id: Optional[str], error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_id=record_id,
            description=f"Unreadable {collection} record left out of the fetch",
            details={"collection": collection},
            error_message=error_message,
        )

    @staticmethod
    def session_started(email: Optional[str], source: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            entity_type="session",
            description=f"Session restored from {source}",
            details={"email": email, "source": source},
        )

    @staticmethod
    def session_ended(email: Optional[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            entity_type="session",
            description="Logged out; session and cached ledger cleared",
            details={"email": email},
        )

    @staticmethod
    def login_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            description="Auth provider returned an error",
            error_message=error_message,
        )

    @staticmethod
    def advisor_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVISOR_FAILED,
            severity=AuditSeverity.ERROR,
            description="Advisory service call failed",
            details={"service": "gemini"},
            error_message=error_message,
        )
