"""Approval state machine implementation.

Decides whether a vote may be cast and what status a request ends up in
after it. Works purely on snapshots; persistence and audit belong to
``ApprovalService``.
"""

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from fundadmin.core.rbac import Role, SYSTEM_USER_ID

from .errors import AlreadyTerminalError, DuplicateVoteError, NotEligibleError
from .models import ApprovalRequest, ApprovalVote, AuthContext
from .policies import ApprovalPolicy
from .states import ApprovalStatus, VoteDecision


def compute_status(votes: Iterable[ApprovalVote], required_approvals: int) -> ApprovalStatus:
    """
    Derive a request's status from its votes.

    A single REJECT vetoes the request regardless of how many approvals
    came before it.
    """
    approvals = 0
    for vote in votes:
        if vote.decision == VoteDecision.REJECT:
            return ApprovalStatus.REJECTED
        if vote.decision == VoteDecision.APPROVE:
            approvals += 1

    if approvals >= required_approvals:
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


class ApprovalStateMachine:
    """
    Voting rules for one approval request.

    Checks run in a fixed order so the caller always gets the most
    fundamental reason first: a decided request reports that before a
    duplicate vote, and a duplicate vote before an eligibility problem.
    """

    def __init__(self, request: ApprovalRequest, policy: ApprovalPolicy):
        self.request = request
        self.policy = policy

    @property
    def status(self) -> ApprovalStatus:
        return self.request.status

    @property
    def is_terminal(self) -> bool:
        return self.request.is_terminal

    def ineligibility_reason(self, user_id: Optional[str], role: str) -> Optional[str]:
        """Return why a user may not vote on this request, or None if they may."""
        if user_id == SYSTEM_USER_ID:
            return "The system user cannot cast manual votes"
        if role == Role.SYSTEM.value or not self.policy.is_eligible_role(role):
            return f"Role '{role}' is not authorized to approve {self.request.type.value}"
        if (
            user_id is not None
            and user_id == self.request.requested_by
            and not self.policy.allow_self_approval
        ):
            return "Cannot approve your own request"
        return None

    def check_vote(self, auth: AuthContext) -> None:
        """
        Validate that ``auth`` may vote now.

        Raises:
            AlreadyTerminalError: If the request is already decided
            DuplicateVoteError: If the user has already voted
            NotEligibleError: If the role or identity may not vote
        """
        if self.request.status != ApprovalStatus.PENDING:
            raise AlreadyTerminalError(self.request.id, self.request.status.value)

        if self.request.has_voted(auth.user_id):
            raise DuplicateVoteError(self.request.id, auth.user_id)

        reason = self.ineligibility_reason(auth.user_id, auth.role)
        if reason:
            raise NotEligibleError(reason)

    def cast_vote(
        self,
        auth: AuthContext,
        decision: VoteDecision,
        *,
        now: datetime,
        comment: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> ApprovalRequest:
        """
        Append a vote and return the resulting snapshot.

        The original request is left untouched.
        """
        self.check_vote(auth)

        vote = ApprovalVote(
            user_id=auth.user_id,
            user_name=auth.user_name,
            user_role=auth.role,
            decision=VoteDecision(decision),
            timestamp=now,
            comment=comment,
            ip_address=ip_address,
        )
        updated = self.request.with_vote(vote)
        new_status = compute_status(updated.votes, self.policy.required_approvals)

        return replace(
            updated,
            status=new_status,
            decided_at=now if new_status != ApprovalStatus.PENDING else None,
            updated_at=now,
        )
