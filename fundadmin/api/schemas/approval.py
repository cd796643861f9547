"""Request and response schemas for the approvals API."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from fundadmin.core.approval.states import ApprovalType, VoteDecision


class ChangePreviewSchema(BaseModel):
    before: Dict[str, Any] = {}
    after: Dict[str, Any] = {}
    affected_records: int = Field(0, ge=0)


class CreateApprovalAction(BaseModel):
    """Raise a new approval request."""
    action: Literal["create"]
    company_id: str = ""
    type: Optional[ApprovalType] = None
    title: str = ""
    description: str = ""
    data: Dict[str, Any] = {}
    change_preview: Optional[ChangePreviewSchema] = None
    request_comment: Optional[str] = None


class VoteApprovalAction(BaseModel):
    """Approve or reject a pending request."""
    action: Literal["vote"]
    request_id: str
    decision: VoteDecision
    comment: Optional[str] = None


# The literal ``action`` field selects the payload type
ApprovalAction = Union[CreateApprovalAction, VoteApprovalAction]


class ApprovalVoteResponse(BaseModel):
    user_id: str
    user_name: str
    user_role: str
    decision: str
    comment: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: datetime


class ChangePreviewResponse(BaseModel):
    before: Dict[str, Any]
    after: Dict[str, Any]
    affected_records: int


class ApprovalRequestResponse(BaseModel):
    id: str
    tenant_id: str
    company_id: str
    domain: str
    type: str
    title: str
    description: str
    data: Dict[str, Any]
    change_preview: Optional[ChangePreviewResponse] = None
    requested_by: str
    requested_by_name: str
    requested_by_role: str
    request_comment: Optional[str] = None
    status: str
    required_approvals: int
    approval_count: int
    remaining_approvals: int
    votes: List[ApprovalVoteResponse]
    risk_level: str
    reversible: bool
    deadline: datetime
    decided_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    escalated_to: List[str] = []
    created_at: datetime
    updated_at: datetime
    version: int


class ApprovalListResponse(BaseModel):
    items: List[ApprovalRequestResponse]
    total: int


class PolicyResponse(BaseModel):
    domain: str
    type: str
    name: str
    description: str
    required_approvals: int
    eligible_roles: List[str]
    allow_self_approval: bool
    auto_approve_threshold: Optional[str] = None
    threshold_comparison: str
    trusted_requester_roles: List[str] = []
    deadline_hours: int
    escalation_hours: int
    escalate_to: List[str]
    reversible: bool


class PolicyListResponse(BaseModel):
    items: List[PolicyResponse]
    total: int


class ApprovalSummaryResponse(BaseModel):
    total_pending: int
    total_approved: int
    total_rejected: int
    pending_by_domain: Dict[str, int]
    overdue: int
    escalated: int
    recent_decisions: List[ApprovalRequestResponse]
