"""Approval request database model.

Votes are stored inline as a JSON array; they are append-only and always
read together with their request.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, Index

from fundadmin.common.clock import utcnow
from fundadmin.db.base import Base


class ApprovalRequestRecord(Base):
    """
    Persisted approval request.

    ``version`` is the optimistic concurrency token: every update is a
    conditional write on the version the caller loaded.
    """
    __tablename__ = "approval_requests"

    id = Column(String(64), primary_key=True)
    tenant_id = Column(String(64), primary_key=True)
    company_id = Column(String(64), nullable=False, index=True)

    # Classification
    domain = Column(String(50), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)

    # Details
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    data = Column(JSON, nullable=False, default=dict)
    change_preview = Column(JSON, nullable=True)

    # Requester
    requested_by = Column(String(128), nullable=False, index=True)
    requested_by_name = Column(String(255), nullable=False, default="")
    requested_by_role = Column(String(50), nullable=False, default="")
    request_comment = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    required_approvals = Column(Integer, nullable=False)
    votes = Column(JSON, nullable=False, default=list)

    # Impact and SLA
    risk_level = Column(String(20), nullable=False, default="LOW")
    reversible = Column(Boolean, nullable=False, default=True)
    deadline = Column(DateTime, nullable=False)
    decided_at = Column(DateTime, nullable=True)
    escalated_at = Column(DateTime, nullable=True)
    escalated_to = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        Index("ix_approval_requests_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<ApprovalRequestRecord {self.id} {self.type} [{self.status}] v{self.version}>"
