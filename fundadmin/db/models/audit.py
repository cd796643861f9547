"""Audit log model for fundadmin.

Entries are append-only; nothing in the application updates or deletes them.
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional
from sqlalchemy import Column, DateTime, JSON, String, Text

from fundadmin.common.clock import utcnow
from fundadmin.db.base import Base


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    INFO = "info"         # Standard operations
    WARNING = "warning"   # Escalations and other conditions needing attention
    CRITICAL = "critical" # Financial decisions (approvals, rejections)


class AuditLog(Base):
    """Immutable audit log entry."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Tenant scope
    tenant_id = Column(String(64), nullable=False, index=True)
    company_id = Column(String(64), nullable=True, index=True)

    # Actor information
    user_id = Column(String(128), nullable=True, index=True)
    ip_address = Column(String(64), nullable=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(String(64), nullable=True, index=True)

    details = Column(JSON, nullable=True)
    message = Column(Text, nullable=True)

    severity = Column(String(20), nullable=False, default="info", index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.resource_type} by user {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        tenant_id: str,
        action: str,
        resource_type: str,
        *,
        company_id: Optional[str] = None,
        user_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
        ip_address: Optional[str] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            tenant_id: Tenant the action belongs to
            action: Action performed (e.g. 'approval.created', 'approval.voted')
            resource_type: Type of resource (e.g. 'approval_request')
            company_id: Company the resource belongs to
            user_id: ID of user performing the action ('system' for automatic actions)
            resource_id: ID of affected resource
            details: Additional context
            message: Human-readable summary
            ip_address: Client IP address
            severity: Log severity level
        """
        return cls(
            tenant_id=tenant_id,
            company_id=company_id,
            action=action,
            resource_type=resource_type,
            user_id=user_id,
            resource_id=resource_id,
            details=details,
            message=message,
            ip_address=ip_address,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )
