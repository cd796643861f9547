"""Database models for fundadmin."""

from fundadmin.db.models.approval import ApprovalRequestRecord
from fundadmin.db.models.audit import AuditLog, AuditSeverity

__all__ = [
    "ApprovalRequestRecord",
    "AuditLog",
    "AuditSeverity",
]
