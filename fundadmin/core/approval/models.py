"""Approval request and vote value objects.

Requests are immutable snapshots: the engine loads one, derives a new
snapshot with ``dataclasses.replace`` and hands it to the store. Votes are
only ever appended.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .states import (
    ApprovalDomain,
    ApprovalStatus,
    ApprovalType,
    RiskLevel,
    VoteDecision,
    TERMINAL_STATES,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class AuthContext:
    """
    Identity of the caller, resolved by the boundary layer.

    The engine never reads headers or sessions itself; whoever calls it
    passes the already-authenticated identity explicitly.
    """
    user_id: str
    user_name: str
    role: str


@dataclass(frozen=True)
class ChangePreview:
    """Before/after view of the records a request would change."""
    before: Dict[str, Any] = field(default_factory=dict)
    after: Dict[str, Any] = field(default_factory=dict)
    affected_records: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "before": self.before,
            "after": self.after,
            "affected_records": self.affected_records,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ChangePreview"]:
        if data is None:
            return None
        return cls(
            before=dict(data.get("before") or {}),
            after=dict(data.get("after") or {}),
            affected_records=int(data.get("affected_records") or 0),
        )


@dataclass(frozen=True)
class ApprovalVote:
    """A single approver's decision."""
    user_id: str
    user_name: str
    user_role: str
    decision: VoteDecision
    timestamp: datetime
    comment: Optional[str] = None
    ip_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_role": self.user_role,
            "decision": self.decision.value,
            "comment": self.comment,
            "ip_address": self.ip_address,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalVote":
        return cls(
            user_id=data["user_id"],
            user_name=data.get("user_name") or "",
            user_role=data.get("user_role") or "",
            decision=VoteDecision(data["decision"]),
            timestamp=_parse_dt(data["timestamp"]),
            comment=data.get("comment"),
            ip_address=data.get("ip_address"),
        )


@dataclass(frozen=True)
class CreateRequestInput:
    """Caller-supplied fields for a new approval request."""
    tenant_id: str
    company_id: str
    type: str
    title: str
    description: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    change_preview: Optional[ChangePreview] = None
    requested_by: str = ""
    requested_by_name: str = ""
    requested_by_role: str = ""
    request_comment: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class ApprovalRequest:
    """Snapshot of an approval request and its votes."""
    id: str
    tenant_id: str
    company_id: str
    domain: ApprovalDomain
    type: ApprovalType
    title: str
    description: str
    data: Dict[str, Any]
    requested_by: str
    requested_by_name: str
    requested_by_role: str
    status: ApprovalStatus
    required_approvals: int
    risk_level: RiskLevel
    reversible: bool
    deadline: datetime
    created_at: datetime
    updated_at: datetime
    votes: Tuple[ApprovalVote, ...] = ()
    change_preview: Optional[ChangePreview] = None
    request_comment: Optional[str] = None
    ip_address: Optional[str] = None
    decided_at: Optional[datetime] = None
    escalated_at: Optional[datetime] = None
    escalated_to: Tuple[str, ...] = ()
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def approval_count(self) -> int:
        return sum(1 for v in self.votes if v.decision == VoteDecision.APPROVE)

    @property
    def rejection_count(self) -> int:
        return sum(1 for v in self.votes if v.decision == VoteDecision.REJECT)

    @property
    def remaining_approvals(self) -> int:
        if self.status != ApprovalStatus.PENDING:
            return 0
        return max(0, self.required_approvals - self.approval_count)

    def has_voted(self, user_id: str) -> bool:
        return any(v.user_id == user_id for v in self.votes)

    def with_vote(self, vote: ApprovalVote) -> "ApprovalRequest":
        """Return a copy with the vote appended."""
        return replace(self, votes=self.votes + (vote,))

    def to_dict(self) -> Dict[str, Any]:
        """Convert the request to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "company_id": self.company_id,
            "domain": self.domain.value,
            "type": self.type.value,
            "title": self.title,
            "description": self.description,
            "data": self.data,
            "change_preview": self.change_preview.to_dict() if self.change_preview else None,
            "requested_by": self.requested_by,
            "requested_by_name": self.requested_by_name,
            "requested_by_role": self.requested_by_role,
            "request_comment": self.request_comment,
            "ip_address": self.ip_address,
            "status": self.status.value,
            "required_approvals": self.required_approvals,
            "approval_count": self.approval_count,
            "remaining_approvals": self.remaining_approvals,
            "votes": [v.to_dict() for v in self.votes],
            "risk_level": self.risk_level.value,
            "reversible": self.reversible,
            "deadline": _iso(self.deadline),
            "decided_at": _iso(self.decided_at),
            "escalated_at": _iso(self.escalated_at),
            "escalated_to": list(self.escalated_to),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRequest":
        """Rebuild a request from ``to_dict`` output."""
        return cls(
            id=data["id"],
            tenant_id=data["tenant_id"],
            company_id=data["company_id"],
            domain=ApprovalDomain(data["domain"]),
            type=ApprovalType(data["type"]),
            title=data["title"],
            description=data.get("description") or "",
            data=dict(data.get("data") or {}),
            change_preview=ChangePreview.from_dict(data.get("change_preview")),
            requested_by=data["requested_by"],
            requested_by_name=data.get("requested_by_name") or "",
            requested_by_role=data.get("requested_by_role") or "",
            request_comment=data.get("request_comment"),
            ip_address=data.get("ip_address"),
            status=ApprovalStatus(data["status"]),
            required_approvals=int(data["required_approvals"]),
            votes=tuple(ApprovalVote.from_dict(v) for v in data.get("votes") or []),
            risk_level=RiskLevel(data.get("risk_level") or RiskLevel.LOW.value),
            reversible=bool(data.get("reversible", True)),
            deadline=_parse_dt(data["deadline"]),
            decided_at=_parse_dt(data.get("decided_at")),
            escalated_at=_parse_dt(data.get("escalated_at")),
            escalated_to=tuple(data.get("escalated_to") or ()),
            created_at=_parse_dt(data["created_at"]),
            updated_at=_parse_dt(data["updated_at"]),
            version=int(data.get("version") or 0),
        )
