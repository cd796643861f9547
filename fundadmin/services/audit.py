"""Audit sinks for approval workflow events.

The engine emits one event per create, vote, terminal decision and
escalation. Recording is best-effort: a failing sink is logged by the
engine and never undoes the approval transaction that produced the event.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from fundadmin.common.clock import utcnow
from fundadmin.db.models.audit import AuditLog, AuditSeverity

logger = logging.getLogger(__name__)


# Action names
APPROVAL_CREATED = "approval.created"
APPROVAL_AUTO_APPROVED = "approval.auto_approved"
APPROVAL_VOTED = "approval.voted"
APPROVAL_APPROVED = "approval.approved"
APPROVAL_REJECTED = "approval.rejected"
APPROVAL_ESCALATED = "approval.escalated"

RESOURCE_TYPE = "approval_request"


@dataclass(frozen=True)
class AuditEvent:
    """A single auditable action on an approval request."""
    action: str
    tenant_id: str
    resource_id: str
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    ip_address: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    severity: AuditSeverity = AuditSeverity.INFO
    resource_type: str = RESOURCE_TYPE
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "tenant_id": self.tenant_id,
            "company_id": self.company_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditSink(ABC):
    """Destination for audit events."""

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        """Record an event. May raise; callers treat failures as non-fatal."""
        pass


class LoggingAuditSink(AuditSink):
    """Writes audit events to a dedicated logger."""

    def __init__(self, logger_name: str = "fundadmin.audit"):
        self.logger = logging.getLogger(logger_name)

    def record(self, event: AuditEvent) -> None:
        level = logging.WARNING if event.severity == AuditSeverity.WARNING else logging.INFO
        self.logger.log(
            level,
            f"{event.action} {event.resource_type}={event.resource_id} "
            f"tenant={event.tenant_id} user={event.user_id} ip={event.ip_address or '-'}"
            + (f": {event.message}" if event.message else ""),
        )


class DatabaseAuditSink(AuditSink):
    """Persists audit events to the append-only ``audit_logs`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(self, event: AuditEvent) -> None:
        db = self.session_factory()
        try:
            entry = AuditLog.create_entry(
                tenant_id=event.tenant_id,
                action=event.action,
                resource_type=event.resource_type,
                company_id=event.company_id,
                user_id=event.user_id,
                resource_id=event.resource_id,
                details=event.details,
                message=event.message,
                ip_address=event.ip_address,
                severity=event.severity,
            )
            entry.created_at = event.timestamp
            db.add(entry)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class InMemoryAuditSink(AuditSink):
    """Keeps events in a list. Useful for tests and local inspection."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[str]:
        return [e.action for e in self.events]


class CompositeAuditSink(AuditSink):
    """Fans an event out to several sinks; one failing sink does not block the others."""

    def __init__(self, sinks: Iterable[AuditSink]):
        self.sinks = list(sinks)

    def record(self, event: AuditEvent) -> None:
        for sink in self.sinks:
            try:
                sink.record(event)
            except Exception:
                logger.exception(
                    f"Audit sink {type(sink).__name__} failed for {event.action} "
                    f"on {event.resource_id}"
                )
