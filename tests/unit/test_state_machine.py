"""Tests for the approval state machine."""

import pytest

from fundadmin.core.approval.errors import (
    AlreadyTerminalError,
    DuplicateVoteError,
    NotEligibleError,
)
from fundadmin.core.approval.machine import ApprovalStateMachine, compute_status
from fundadmin.core.approval.models import ApprovalVote
from fundadmin.core.approval.policies import get_policy_registry
from fundadmin.core.approval.states import (
    ApprovalStatus,
    ApprovalType,
    TERMINAL_STATES,
    VoteDecision,
    is_terminal,
)

from tests.factories import FIXED_NOW, REQUESTER_ID, make_auth, make_request


def _vote(user_id: str, decision: VoteDecision) -> ApprovalVote:
    return ApprovalVote(
        user_id=user_id,
        user_name=user_id,
        user_role="manager",
        decision=decision,
        timestamp=FIXED_NOW,
    )


@pytest.fixture
def payment_policy():
    return get_policy_registry().get_policy_for_type(ApprovalType.PAYMENT)


class TestApprovalStates:
    """Test approval state definitions."""

    def test_terminal_states(self):
        assert TERMINAL_STATES == {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}
        assert is_terminal(ApprovalStatus.APPROVED)
        assert is_terminal("REJECTED")
        assert not is_terminal(ApprovalStatus.PENDING)


class TestComputeStatus:
    """Test status derivation from votes."""

    def test_no_votes_is_pending(self):
        assert compute_status([], 2) == ApprovalStatus.PENDING

    def test_partial_approval_is_pending(self):
        votes = [_vote("a", VoteDecision.APPROVE)]
        assert compute_status(votes, 2) == ApprovalStatus.PENDING

    def test_enough_approvals(self):
        votes = [_vote("a", VoteDecision.APPROVE), _vote("b", VoteDecision.APPROVE)]
        assert compute_status(votes, 2) == ApprovalStatus.APPROVED

    def test_reject_wins_over_approvals(self):
        """Test that a reject vetoes the request regardless of approvals."""
        votes = [
            _vote("a", VoteDecision.APPROVE),
            _vote("b", VoteDecision.APPROVE),
            _vote("c", VoteDecision.REJECT),
        ]
        assert compute_status(votes, 2) == ApprovalStatus.REJECTED


class TestApprovalStateMachine:
    """Test vote validation and application."""

    def test_first_approval_keeps_request_pending(self, payment_policy):
        machine = ApprovalStateMachine(make_request(), payment_policy)
        updated = machine.cast_vote(make_auth("mgr-a", "manager"), VoteDecision.APPROVE, now=FIXED_NOW)

        assert updated.status == ApprovalStatus.PENDING
        assert updated.approval_count == 1
        assert updated.remaining_approvals == 1
        assert updated.decided_at is None

    def test_second_approval_approves(self, payment_policy):
        request = make_request(votes=(_vote("mgr-a", VoteDecision.APPROVE),))
        machine = ApprovalStateMachine(request, payment_policy)
        updated = machine.cast_vote(make_auth("comp-b", "compliance"), "APPROVE", now=FIXED_NOW)

        assert updated.status == ApprovalStatus.APPROVED
        assert updated.decided_at == FIXED_NOW
        assert [v.user_id for v in updated.votes] == ["mgr-a", "comp-b"]

    def test_original_snapshot_untouched(self, payment_policy):
        request = make_request()
        ApprovalStateMachine(request, payment_policy).cast_vote(
            make_auth("mgr-a"), VoteDecision.REJECT, now=FIXED_NOW
        )
        assert request.votes == ()
        assert request.status == ApprovalStatus.PENDING

    def test_terminal_request_rejects_votes(self, payment_policy):
        request = make_request(status=ApprovalStatus.APPROVED)
        with pytest.raises(AlreadyTerminalError):
            ApprovalStateMachine(request, payment_policy).check_vote(make_auth("mgr-a"))

    def test_duplicate_vote(self, payment_policy):
        request = make_request(votes=(_vote("mgr-a", VoteDecision.APPROVE),))
        with pytest.raises(DuplicateVoteError):
            ApprovalStateMachine(request, payment_policy).check_vote(make_auth("mgr-a"))

    def test_ineligible_role(self, payment_policy):
        with pytest.raises(NotEligibleError, match="not authorized"):
            ApprovalStateMachine(make_request(), payment_policy).check_vote(
                make_auth("acc-a", "accountant")
            )

    def test_system_role_cannot_vote(self, payment_policy):
        with pytest.raises(NotEligibleError):
            ApprovalStateMachine(make_request(), payment_policy).check_vote(
                make_auth("system", "system")
            )

    def test_system_user_id_cannot_vote_with_human_role(self, payment_policy):
        """Test that the reserved system id is refused even with an eligible role."""
        request = make_request()
        machine = ApprovalStateMachine(request, payment_policy)

        assert machine.ineligibility_reason("system", "manager") is not None
        with pytest.raises(NotEligibleError, match="system user"):
            machine.check_vote(make_auth("system", "manager"))

    def test_self_approval_forbidden(self, payment_policy):
        with pytest.raises(NotEligibleError, match="own request"):
            ApprovalStateMachine(make_request(), payment_policy).check_vote(
                make_auth(REQUESTER_ID, "manager")
            )

    def test_self_approval_allowed_by_policy(self):
        policy = get_policy_registry().get_policy_for_type(ApprovalType.EXPORT_SIE)
        request = make_request(type=ApprovalType.EXPORT_SIE, required_approvals=1)
        updated = ApprovalStateMachine(request, policy).cast_vote(
            make_auth(REQUESTER_ID, "accountant"), VoteDecision.APPROVE, now=FIXED_NOW
        )
        assert updated.status == ApprovalStatus.APPROVED

    def test_terminal_checked_before_duplicate(self, payment_policy):
        """Test that a decided request reports terminality before anything else."""
        request = make_request(
            status=ApprovalStatus.REJECTED,
            votes=(_vote("mgr-a", VoteDecision.REJECT),),
        )
        with pytest.raises(AlreadyTerminalError):
            ApprovalStateMachine(request, payment_policy).check_vote(make_auth("mgr-a"))

    def test_duplicate_checked_before_eligibility(self, payment_policy):
        request = make_request(votes=(_vote("acc-a", VoteDecision.APPROVE),))
        with pytest.raises(DuplicateVoteError):
            ApprovalStateMachine(request, payment_policy).check_vote(make_auth("acc-a", "accountant"))
