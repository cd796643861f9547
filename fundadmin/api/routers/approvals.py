"""Approval workflow API endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response, status

from fundadmin.api.deps import (
    OVERSIGHT_ROLES,
    get_approval_service,
    get_auth_context,
    get_client_ip,
    get_tenant_id,
    require_oversight_role,
)
from fundadmin.api.schemas.approval import (
    ApprovalAction,
    ApprovalListResponse,
    ApprovalRequestResponse,
    ApprovalSummaryResponse,
    CreateApprovalAction,
    PolicyListResponse,
    PolicyResponse,
)
from fundadmin.core.approval.errors import NotFoundError, PolicyNotFoundError
from fundadmin.core.approval.models import (
    ApprovalRequest,
    AuthContext,
    ChangePreview,
    CreateRequestInput,
)
from fundadmin.core.approval.service import ApprovalService
from fundadmin.core.approval.states import ApprovalDomain, ApprovalType
from fundadmin.core.rbac import Role

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _to_response(request: ApprovalRequest) -> ApprovalRequestResponse:
    return ApprovalRequestResponse.model_validate(request.to_dict())


def _to_list(requests) -> ApprovalListResponse:
    items = [_to_response(r) for r in requests]
    return ApprovalListResponse(items=items, total=len(items))


def _can_view(service: ApprovalService, request: ApprovalRequest, auth: AuthContext) -> bool:
    """Requesters, voters, eligible approvers and oversight roles may read a request."""
    if Role(auth.role) in OVERSIGHT_ROLES:
        return True
    if auth.user_id == request.requested_by or request.has_voted(auth.user_id):
        return True
    try:
        policy = service.registry.get_policy(request.domain, request.type)
    except PolicyNotFoundError:
        return False
    return policy.is_eligible_role(auth.role)


# Endpoints
@router.get("", response_model=ApprovalListResponse)
async def list_my_pending_approvals(
    company_id: Optional[str] = None,
    domain: Optional[ApprovalDomain] = None,
    type: Optional[ApprovalType] = None,
    auth: AuthContext = Depends(get_auth_context),
    tenant_id: str = Depends(get_tenant_id),
    service: ApprovalService = Depends(get_approval_service),
):
    """List pending requests the caller can vote on."""
    requests = service.get_pending_requests(
        tenant_id,
        auth.role,
        company_id=company_id,
        domain=domain.value if domain else None,
        type=type.value if type else None,
        approver_id=auth.user_id,
    )
    return _to_list(requests)


@router.get("/policies", response_model=PolicyListResponse)
async def list_policies(
    domain: Optional[ApprovalDomain] = None,
    auth: AuthContext = Depends(get_auth_context),
    service: ApprovalService = Depends(get_approval_service),
):
    """List approval policies, optionally for one domain."""
    if domain:
        policies = service.registry.get_policies_by_domain(domain)
    else:
        policies = service.registry.get_all_policies()

    items = [PolicyResponse.model_validate(p.to_dict()) for p in policies]
    return PolicyListResponse(items=items, total=len(items))


@router.get("/summary", response_model=ApprovalSummaryResponse)
async def get_summary(
    auth: AuthContext = Depends(require_oversight_role),
    tenant_id: str = Depends(get_tenant_id),
    service: ApprovalService = Depends(get_approval_service),
):
    """Dashboard counters for the tenant."""
    return ApprovalSummaryResponse.model_validate(service.get_approval_summary(tenant_id))


@router.get("/search", response_model=ApprovalListResponse)
async def search_approvals(
    q: str = Query("", max_length=200),
    auth: AuthContext = Depends(require_oversight_role),
    tenant_id: str = Depends(get_tenant_id),
    service: ApprovalService = Depends(get_approval_service),
):
    """Search the tenant's requests by ID, title, requester, company or type."""
    return _to_list(service.search_approvals(tenant_id, q))


@router.get("/all-pending", response_model=ApprovalListResponse)
async def list_all_pending(
    auth: AuthContext = Depends(require_oversight_role),
    tenant_id: str = Depends(get_tenant_id),
    service: ApprovalService = Depends(get_approval_service),
):
    """List every pending request of the tenant, oldest first."""
    return _to_list(service.get_all_pending_approvals(tenant_id))


@router.get("/{request_id}", response_model=ApprovalRequestResponse)
async def get_approval(
    request_id: str,
    auth: AuthContext = Depends(get_auth_context),
    tenant_id: str = Depends(get_tenant_id),
    service: ApprovalService = Depends(get_approval_service),
):
    """Get a single approval request with its votes."""
    approval = service.get_request(tenant_id, request_id)
    if not _can_view(service, approval, auth):
        raise NotFoundError(request_id)
    return _to_response(approval)


@router.post("", response_model=ApprovalRequestResponse)
async def submit_approval_action(
    request: Request,
    response: Response,
    action: ApprovalAction = Body(...),
    auth: AuthContext = Depends(get_auth_context),
    tenant_id: str = Depends(get_tenant_id),
    service: ApprovalService = Depends(get_approval_service),
):
    """Create a request (``action: create``) or vote on one (``action: vote``)."""
    ip_address = get_client_ip(request)

    if isinstance(action, CreateApprovalAction):
        approval = service.create_request(CreateRequestInput(
            tenant_id=tenant_id,
            company_id=action.company_id,
            type=action.type.value if action.type else "",
            title=action.title,
            description=action.description,
            data=action.data,
            change_preview=(
                ChangePreview.from_dict(action.change_preview.model_dump())
                if action.change_preview else None
            ),
            requested_by=auth.user_id,
            requested_by_name=auth.user_name,
            requested_by_role=auth.role,
            request_comment=action.request_comment,
            ip_address=ip_address,
        ))
        response.status_code = status.HTTP_201_CREATED
        return _to_response(approval)

    approval = service.vote(
        tenant_id,
        action.request_id,
        auth,
        action.decision,
        comment=action.comment,
        ip_address=ip_address,
    )
    return _to_response(approval)
