"""
Audit Logger

DESIGN DECISION: Every mutation, sync failure and session change is logged.
Remote failures are swallowed at the controller boundary, so the log is
the only place they remain visible.

The audit logger:
- Never raises (a logging failure must not break a ledger operation)
- Maps event severity onto the structlog level
"""

from collections import deque
from typing import Optional

import structlog

from ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


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


class AuditLogger:
    """Central audit logging service for the ledger."""

    def __init__(self, logger_name: str = "ledger", max_events: int = 500):
        self._logger = structlog.get_logger(logger_name)
        self._events: deque[AuditEvent] = deque(maxlen=max_events)

    @property
    def events(self) -> list[AuditEvent]:
        """Events logged by this instance, oldest first."""
        return list(self._events)

    def log(self, event: AuditEvent) -> None:
        """Log an audit event locally."""
        self._events.append(event)
        log_dict = event.to_log_dict()
        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            # Logging must never take a ledger operation down with it
            pass

    def log_record_added(self, entity_type: str, entity_id: str, label: str) -> None:
        self.log(AuditEventBuilder.record_added(entity_type, entity_id, label))

    def log_record_deleted(self, entity_type: str, entity_id: str) -> None:
        self.log(AuditEventBuilder.record_deleted(entity_type, entity_id))

    def log_subscription_updated(self, entity_id: str, fields: dict) -> None:
        self.log(AuditEventBuilder.subscription_updated(entity_id, fields))

    def log_remote_sync_failed(
        self,
        operation: str,
        entity_type: str,
        entity_id: Optional[str],
        error: Exception,
    ) -> None:
        """Log a swallowed remote failure."""
        self.log(
            AuditEventBuilder.remote_sync_failed(
                operation=operation,
                entity_type=entity_type,
                entity_id=entity_id,
                error_message=str(error),
            )
        )

    def log_token_refreshed(self, operation: str) -> None:
        self.log(AuditEventBuilder.token_refreshed(operation))

    def log_cache_fallback(self, collection: str, error: Exception) -> None:
        self.log(AuditEventBuilder.cache_fallback(collection, str(error)))

    def log_cache_corrupt(self, key: str, error: Exception) -> None:
        self.log(AuditEventBuilder.cache_corrupt(key, str(error)))

    def log_record_skipped(
        self,
        collection: str,
        record_id: Optional[str],
        error: Exception,
    ) -> None:
        """Log a remote record dropped because it failed validation."""
        self.log(AuditEventBuilder.record_skipped(collection, record_id, str(error)))

    def log_session_started(self, email: Optional[str], source: str) -> None:
        self.log(AuditEventBuilder.session_started(email, source))

    def log_session_ended(self, email: Optional[str]) -> None:
        self.log(AuditEventBuilder.session_ended(email))

    def log_login_failed(self, error_message: str) -> None:
        self.log(AuditEventBuilder.login_failed(error_message))

    def log_advisor_failed(self, error: Exception) -> None:
        self.log(AuditEventBuilder.advisor_failed(str(error)))
