"""Approval workflow module for fundadmin.

Implements the four-eyes approval state machine and its policy registry.
``ApprovalService`` lives in ``fundadmin.core.approval.service`` because it
depends on the request store, which in turn depends on these models.
"""

from .errors import (
    ApprovalError,
    ValidationError,
    PolicyNotFoundError,
    NotFoundError,
    AlreadyTerminalError,
    DuplicateVoteError,
    NotEligibleError,
    ConcurrentModificationError,
)
from .machine import ApprovalStateMachine, compute_status
from .models import ApprovalRequest, ApprovalVote, AuthContext, ChangePreview, CreateRequestInput
from .policies import ApprovalPolicy, PolicyRegistry, ThresholdComparison, get_policy_registry
from .states import ApprovalDomain, ApprovalStatus, ApprovalType, RiskLevel, VoteDecision

__all__ = [
    "ApprovalError",
    "ValidationError",
    "PolicyNotFoundError",
    "NotFoundError",
    "AlreadyTerminalError",
    "DuplicateVoteError",
    "NotEligibleError",
    "ConcurrentModificationError",
    "ApprovalStateMachine",
    "compute_status",
    "ApprovalRequest",
    "ApprovalVote",
    "AuthContext",
    "ChangePreview",
    "CreateRequestInput",
    "ApprovalPolicy",
    "PolicyRegistry",
    "ThresholdComparison",
    "get_policy_registry",
    "ApprovalDomain",
    "ApprovalStatus",
    "ApprovalType",
    "RiskLevel",
    "VoteDecision",
]
