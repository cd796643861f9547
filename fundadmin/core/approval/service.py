"""Approval service for managing dual-approval workflows.

Provides the high-level API around the approval state machine: creating
requests, recording votes, building approver worklists and escalating
stale requests. The service holds no request state of its own; every call
loads a snapshot from the store, derives a new one and saves it with a
version check.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from fundadmin.common.clock import utcnow
from fundadmin.core.rbac import Role, SYSTEM_USER_ID, SYSTEM_USER_NAME
from fundadmin.db.models.audit import AuditSeverity
from fundadmin.services.audit import (
    APPROVAL_APPROVED,
    APPROVAL_AUTO_APPROVED,
    APPROVAL_CREATED,
    APPROVAL_ESCALATED,
    APPROVAL_REJECTED,
    APPROVAL_VOTED,
    AuditEvent,
    AuditSink,
)
from fundadmin.store.base import RequestFilter, RequestStore

from .errors import (
    ConcurrentModificationError,
    NotFoundError,
    PolicyNotFoundError,
    ValidationError,
)
from .machine import ApprovalStateMachine
from .models import ApprovalRequest, ApprovalVote, AuthContext, ChangePreview, CreateRequestInput
from .policies import (
    ApprovalPolicy,
    PolicyRegistry,
    ThresholdComparison,
    amount_of,
    get_policy_registry,
)
from .states import (
    ApprovalStatus,
    ApprovalType,
    RiskLevel,
    VoteDecision,
    CRITICAL_RISK_TYPES,
    HIGH_RISK_TYPES,
    max_risk,
)

logger = logging.getLogger(__name__)

RECENT_DECISION_DAYS = 7
RECENT_DECISION_LIMIT = 5


def generate_request_id() -> str:
    return f"apr-{uuid.uuid4().hex}"


def calculate_risk_level(
    request_type: ApprovalType,
    data: Dict[str, Any],
    change_preview: Optional[ChangePreview] = None,
    base_risk: RiskLevel = RiskLevel.LOW,
) -> RiskLevel:
    """
    Classify the impact of a request.

    Some request types are high or critical by nature; everything else
    starts at the policy's base risk and is raised by the number of
    affected records or the amount involved.
    """
    if request_type in CRITICAL_RISK_TYPES:
        return RiskLevel.CRITICAL
    if request_type in HIGH_RISK_TYPES:
        return RiskLevel.HIGH

    risk = base_risk
    affected = change_preview.affected_records if change_preview else 0
    if affected > 100:
        risk = max_risk(risk, RiskLevel.HIGH)
    elif affected > 10:
        risk = max_risk(risk, RiskLevel.MEDIUM)

    amount = amount_of(data)
    if amount is not None:
        if amount > Decimal("1000000"):
            risk = max_risk(risk, RiskLevel.HIGH)
        elif amount > Decimal("100000"):
            risk = max_risk(risk, RiskLevel.MEDIUM)

    return risk


class ApprovalService:
    """
    High-level service for approval requests.

    Handles:
    - Creating requests, with auto-approval under policy thresholds
    - Recording votes and recomputing status
    - Per-approver worklists, summaries and search
    - Escalation of requests left pending too long

    The service never executes the approved action; callers do that once
    they observe ``status == APPROVED``.
    """

    def __init__(
        self,
        store: RequestStore,
        audit_sink: AuditSink,
        *,
        registry: Optional[PolicyRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_request_id,
    ):
        """
        Initialize the approval service.

        Args:
            store: Persistence for approval requests
            audit_sink: Destination for audit events (best-effort)
            registry: Policy registry (defaults to the built-in policies)
            clock: Returns the current UTC time
            id_factory: Generates new request IDs
        """
        self.store = store
        self.audit_sink = audit_sink
        self.registry = registry or get_policy_registry()
        self.clock = clock
        self.id_factory = id_factory

    # ------------------------------------------------------------------
    # Request management
    # ------------------------------------------------------------------

    def create_request(self, params: CreateRequestInput) -> ApprovalRequest:
        """
        Create a new approval request.

        If the policy declares an auto-approve threshold and the request's
        value satisfies it, the request is stored as APPROVED with a single
        vote attributed to the system user.

        Raises:
            ValidationError: If a required field is missing
            PolicyNotFoundError: If no policy covers the request type
            ConcurrentModificationError: If the generated ID already exists
        """
        self._require(params.tenant_id, "tenant_id")
        self._require(params.company_id, "company_id")
        self._require(params.type, "type")
        self._require(params.title, "title")
        self._require(params.requested_by, "requested_by")
        if params.data is not None and not isinstance(params.data, dict):
            raise ValidationError("data must be an object", field="data")

        policy = self.registry.get_policy_for_type(params.type)
        data = dict(params.data or {})
        now = self.clock()

        request = ApprovalRequest(
            id=self.id_factory(),
            tenant_id=params.tenant_id,
            company_id=params.company_id,
            domain=policy.domain,
            type=policy.request_type,
            title=params.title.strip(),
            description=params.description or "",
            data=data,
            change_preview=params.change_preview,
            requested_by=params.requested_by,
            requested_by_name=params.requested_by_name or "",
            requested_by_role=params.requested_by_role or "",
            request_comment=params.request_comment,
            ip_address=params.ip_address,
            status=ApprovalStatus.PENDING,
            required_approvals=policy.required_approvals,
            risk_level=calculate_risk_level(
                policy.request_type, data, params.change_preview, policy.base_risk
            ),
            reversible=policy.reversible,
            deadline=now + timedelta(hours=policy.deadline_hours),
            created_at=now,
            updated_at=now,
        )

        auto_value = policy.auto_approval_value(
            data, params.change_preview, params.requested_by_role
        )
        if auto_value is not None:
            request = self._auto_approve(request, policy, auto_value, now)

        saved = self.store.save(request, expected_version=None)

        if saved.status == ApprovalStatus.APPROVED:
            logger.info(
                f"Auto-approved request {saved.id} for type {saved.type.value} "
                f"(value {auto_value} under threshold {policy.auto_approve_threshold})"
            )
        else:
            logger.info(f"Created approval request {saved.id} for type {saved.type.value}")

        self._emit(AuditEvent(
            action=APPROVAL_AUTO_APPROVED if saved.is_terminal else APPROVAL_CREATED,
            tenant_id=saved.tenant_id,
            company_id=saved.company_id,
            resource_id=saved.id,
            user_id=saved.requested_by,
            ip_address=saved.ip_address,
            message=saved.title,
            details={
                "type": saved.type.value,
                "domain": saved.domain.value,
                "status": saved.status.value,
                "risk_level": saved.risk_level.value,
                "required_approvals": saved.required_approvals,
            },
            timestamp=now,
        ))

        return saved

    def vote(
        self,
        tenant_id: str,
        request_id: str,
        auth: AuthContext,
        decision: Any,
        *,
        comment: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> ApprovalRequest:
        """
        Record an approver's vote and recompute the request status.

        Args:
            tenant_id: Tenant the request belongs to
            request_id: ID of the approval request
            auth: Identity of the voter
            decision: APPROVE or REJECT
            comment: Optional comment
            ip_address: Voter's IP address for the audit trail

        Returns:
            The updated request

        Raises:
            ValidationError: If the decision or identity is malformed
            NotFoundError: If the request does not exist for the tenant
            AlreadyTerminalError: If the request is already decided
            DuplicateVoteError: If the user already voted
            NotEligibleError: If the user may not vote on the request
            ConcurrentModificationError: If the request changed since it was loaded
        """
        try:
            decision = VoteDecision(decision)
        except ValueError:
            raise ValidationError(f"Invalid decision: {decision}", field="decision")
        self._require(auth.user_id, "user_id")

        current = self._load(tenant_id, request_id)
        policy = self.registry.get_policy(current.domain, current.type)

        machine = ApprovalStateMachine(current, policy)
        now = self.clock()
        updated = machine.cast_vote(
            auth,
            decision,
            now=now,
            comment=comment,
            ip_address=ip_address,
        )

        saved = self.store.save(updated, expected_version=current.version)

        logger.info(
            f"{auth.user_id} voted {decision.value} on {saved.id} "
            f"({saved.approval_count}/{saved.required_approvals}) -> {saved.status.value}"
        )

        self._emit(AuditEvent(
            action=APPROVAL_VOTED,
            tenant_id=saved.tenant_id,
            company_id=saved.company_id,
            resource_id=saved.id,
            user_id=auth.user_id,
            ip_address=ip_address,
            message=comment,
            details={
                "decision": decision.value,
                "user_role": auth.role,
                "approval_count": saved.approval_count,
                "required_approvals": saved.required_approvals,
                "status": saved.status.value,
            },
            timestamp=now,
        ))

        if saved.status != current.status:
            self._emit(AuditEvent(
                action=APPROVAL_APPROVED if saved.status == ApprovalStatus.APPROVED else APPROVAL_REJECTED,
                tenant_id=saved.tenant_id,
                company_id=saved.company_id,
                resource_id=saved.id,
                user_id=auth.user_id,
                ip_address=ip_address,
                message=saved.title,
                details={
                    "type": saved.type.value,
                    "voters": [v.user_id for v in saved.votes],
                },
                severity=AuditSeverity.CRITICAL,
                timestamp=now,
            ))

        return saved

    def get_request(self, tenant_id: str, request_id: str) -> ApprovalRequest:
        """
        Get an approval request by ID.

        Raises:
            NotFoundError: If the request does not exist for the tenant
        """
        return self._load(tenant_id, request_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_pending_requests(
        self,
        tenant_id: str,
        approver_role: str,
        *,
        company_id: Optional[str] = None,
        domain: Optional[str] = None,
        type: Optional[str] = None,
        approver_id: Optional[str] = None,
    ) -> List[ApprovalRequest]:
        """
        Get the pending requests an approver may act on.

        Only requests whose policy lists ``approver_role`` are returned.
        With ``approver_id``, requests the approver already voted on and
        requests they raised themselves (unless the policy allows
        self-approval) are left out as well.
        """
        pending = self.store.query(RequestFilter(
            tenant_id=tenant_id,
            company_id=company_id,
            domain=domain,
            type=type,
            status=ApprovalStatus.PENDING.value,
        ))

        worklist = []
        for request in pending:
            try:
                policy = self.registry.get_policy(request.domain, request.type)
            except PolicyNotFoundError:
                logger.error(f"No policy for pending request {request.id} ({request.type.value})")
                continue

            machine = ApprovalStateMachine(request, policy)
            if machine.ineligibility_reason(approver_id, approver_role):
                continue
            if approver_id is not None and request.has_voted(approver_id):
                continue
            worklist.append(request)

        return worklist

    def get_all_pending_approvals(self, tenant_id: str) -> List[ApprovalRequest]:
        """Get every pending request of a tenant, oldest first."""
        return self.store.query(RequestFilter(
            tenant_id=tenant_id,
            status=ApprovalStatus.PENDING.value,
        ))

    def get_approval_summary(
        self,
        tenant_id: str,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Build dashboard counters for a tenant.

        Returns:
            Dictionary with totals per status, pending per domain, overdue
            and escalated counts, and the most recent decisions
        """
        now = now or self.clock()
        requests = self.store.query(RequestFilter(tenant_id=tenant_id))

        pending = [r for r in requests if r.status == ApprovalStatus.PENDING]
        decided = [r for r in requests if r.is_terminal]

        pending_by_domain: Dict[str, int] = {}
        for request in pending:
            pending_by_domain[request.domain.value] = pending_by_domain.get(request.domain.value, 0) + 1

        recent_cutoff = now - timedelta(days=RECENT_DECISION_DAYS)
        recent = sorted(
            (r for r in decided if (r.decided_at or r.updated_at) >= recent_cutoff),
            key=lambda r: r.decided_at or r.updated_at,
            reverse=True,
        )[:RECENT_DECISION_LIMIT]

        return {
            "total_pending": len(pending),
            "total_approved": sum(1 for r in decided if r.status == ApprovalStatus.APPROVED),
            "total_rejected": sum(1 for r in decided if r.status == ApprovalStatus.REJECTED),
            "pending_by_domain": pending_by_domain,
            "overdue": sum(1 for r in pending if r.deadline < now),
            "escalated": sum(1 for r in pending if r.escalated_at is not None),
            "recent_decisions": [r.to_dict() for r in recent],
        }

    def search_approvals(self, tenant_id: str, term: str) -> List[ApprovalRequest]:
        """
        Case-insensitive substring search over a tenant's requests.

        Matches ID, title, description, requester name, company and type.
        Results are ordered by last update, newest first.
        """
        needle = (term or "").strip().lower()
        if not needle:
            return []

        matches = []
        for request in self.store.query(RequestFilter(tenant_id=tenant_id)):
            haystack = (
                request.id,
                request.title,
                request.description,
                request.requested_by_name,
                request.company_id,
                request.type.value,
            )
            if any(needle in (value or "").lower() for value in haystack):
                matches.append(request)

        return sorted(matches, key=lambda r: r.updated_at, reverse=True)

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    def check_and_escalate(self, tenant_id: str, now: Optional[datetime] = None) -> int:
        """
        Escalate requests that have been pending longer than their policy allows.

        A request is escalated at most once. Its status never changes; it
        only gains ``escalated_at`` and ``escalated_to``. Requests changed
        concurrently are skipped and picked up by the next sweep.

        Returns:
            Number of requests escalated
        """
        now = now or self.clock()
        count = 0

        for request in self.get_all_pending_approvals(tenant_id):
            if request.escalated_at is not None:
                continue
            try:
                policy = self.registry.get_policy(request.domain, request.type)
            except PolicyNotFoundError:
                logger.error(f"No policy for pending request {request.id} ({request.type.value})")
                continue

            if now < request.created_at + timedelta(hours=policy.escalation_hours):
                continue

            escalated = replace(
                request,
                escalated_at=now,
                escalated_to=tuple(sorted(r.value for r in policy.escalate_to)),
                updated_at=now,
            )
            try:
                self.store.save(escalated, expected_version=request.version)
            except ConcurrentModificationError:
                logger.warning(f"Skipped escalation of {request.id}: modified concurrently")
                continue

            count += 1
            logger.info(f"Escalated approval request {request.id} to {', '.join(escalated.escalated_to)}")
            self._emit(AuditEvent(
                action=APPROVAL_ESCALATED,
                tenant_id=request.tenant_id,
                company_id=request.company_id,
                resource_id=request.id,
                user_id=SYSTEM_USER_ID,
                message=request.title,
                details={"escalated_to": list(escalated.escalated_to)},
                severity=AuditSeverity.WARNING,
                timestamp=now,
            ))

        return count

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, tenant_id: str, request_id: str) -> ApprovalRequest:
        request = self.store.load(tenant_id, request_id) if tenant_id and request_id else None
        if request is None or request.tenant_id != tenant_id:
            raise NotFoundError(request_id)
        return request

    def _auto_approve(
        self,
        request: ApprovalRequest,
        policy: ApprovalPolicy,
        value: Decimal,
        now: datetime,
    ) -> ApprovalRequest:
        """Mark a new request approved by the system user."""
        comparison = "<=" if policy.threshold_comparison == ThresholdComparison.AT_OR_BELOW else "<"
        vote = ApprovalVote(
            user_id=SYSTEM_USER_ID,
            user_name=SYSTEM_USER_NAME,
            user_role=Role.SYSTEM.value,
            decision=VoteDecision.APPROVE,
            timestamp=now,
            comment=f"Auto-approved: {value} {comparison} threshold {policy.auto_approve_threshold}",
        )
        return replace(
            request,
            status=ApprovalStatus.APPROVED,
            votes=(vote,),
            decided_at=now,
        )

    def _emit(self, event: AuditEvent) -> None:
        """Record an audit event without letting sink failures escape."""
        try:
            self.audit_sink.record(event)
        except Exception:
            logger.exception(f"Failed to record audit event {event.action} for {event.resource_id}")

    @staticmethod
    def _require(value: Optional[str], field: str) -> None:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required", field=field)
