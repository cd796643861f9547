"""Factory functions for approval test data.

All fields have sensible defaults but can be overridden via keyword
arguments.

Usage::

    from tests.factories import make_create_input, make_auth

    def test_something(service):
        request = service.create_request(make_create_input(data={"amount": 50000}))
        service.vote(request.tenant_id, request.id, make_auth("mgr-1", "manager"), "APPROVE")
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from fundadmin.core.approval.models import (
    ApprovalRequest,
    AuthContext,
    ChangePreview,
    CreateRequestInput,
)
from fundadmin.core.approval.states import (
    ApprovalDomain,
    ApprovalStatus,
    ApprovalType,
    RiskLevel,
)
from fundadmin.store import InMemoryRequestStore, RequestFilter


TENANT_ID = "tenant-1"
COMPANY_ID = "company-1"
REQUESTER_ID = "user-requester"

FIXED_NOW = datetime(2025, 3, 3, 9, 0, 0)

_counter = 0


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_auth(user_id: str, role: str = "manager", user_name: Optional[str] = None) -> AuthContext:
    return AuthContext(user_id=user_id, user_name=user_name or user_id.title(), role=role)


def make_create_input(
    *,
    tenant_id: str = TENANT_ID,
    company_id: str = COMPANY_ID,
    type: str = "PAYMENT",
    title: Optional[str] = None,
    description: str = "",
    data: Optional[Dict[str, Any]] = None,
    change_preview: Optional[ChangePreview] = None,
    requested_by: str = REQUESTER_ID,
    requested_by_name: str = "Rita Requester",
    requested_by_role: str = "accountant",
    request_comment: Optional[str] = None,
    ip_address: Optional[str] = "10.0.0.1",
) -> CreateRequestInput:
    return CreateRequestInput(
        tenant_id=tenant_id,
        company_id=company_id,
        type=type,
        title=title if title is not None else f"Test request {_next_id()}",
        description=description,
        data={"amount": 50000} if data is None else data,
        change_preview=change_preview,
        requested_by=requested_by,
        requested_by_name=requested_by_name,
        requested_by_role=requested_by_role,
        request_comment=request_comment,
        ip_address=ip_address,
    )


def make_request(
    *,
    id: Optional[str] = None,
    tenant_id: str = TENANT_ID,
    company_id: str = COMPANY_ID,
    domain: ApprovalDomain = ApprovalDomain.PAYMENTS,
    type: ApprovalType = ApprovalType.PAYMENT,
    status: ApprovalStatus = ApprovalStatus.PENDING,
    required_approvals: int = 2,
    created_at: datetime = FIXED_NOW,
    **overrides: Any,
) -> ApprovalRequest:
    """Build a request snapshot directly, bypassing the service."""
    fields = dict(
        id=id or f"apr-test-{_next_id()}",
        tenant_id=tenant_id,
        company_id=company_id,
        domain=domain,
        type=type,
        title="Supplier payment",
        description="",
        data={"amount": 50000},
        requested_by=REQUESTER_ID,
        requested_by_name="Rita Requester",
        requested_by_role="accountant",
        status=status,
        required_approvals=required_approvals,
        risk_level=RiskLevel.MEDIUM,
        reversible=False,
        deadline=created_at + timedelta(hours=24),
        created_at=created_at,
        updated_at=created_at,
    )
    fields.update(overrides)
    return ApprovalRequest(**fields)


class StaleReadStore(InMemoryRequestStore):
    """
    In-memory store that keeps serving old snapshots for selected requests.

    Simulates a reader that loaded a request just before another writer
    saved a newer version. Saves still check against the real stored
    version.
    """

    def __init__(self):
        super().__init__()
        self._stale: Dict[Tuple[str, str], ApprovalRequest] = {}

    def serve_stale(self, request: ApprovalRequest) -> None:
        self._stale[(request.tenant_id, request.id)] = request

    def load_current(self, tenant_id: str, request_id: str) -> Optional[ApprovalRequest]:
        return super().load(tenant_id, request_id)

    def load(self, tenant_id: str, request_id: str) -> Optional[ApprovalRequest]:
        stale = self._stale.get((tenant_id, request_id))
        if stale is not None:
            return stale
        return super().load(tenant_id, request_id)

    def query(self, request_filter: RequestFilter) -> List[ApprovalRequest]:
        return [
            self._stale.get((r.tenant_id, r.id), r)
            for r in super().query(request_filter)
        ]
