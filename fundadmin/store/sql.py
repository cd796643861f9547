"""SQLAlchemy-backed approval request store.

Updates are conditional writes (``UPDATE ... WHERE version = :expected``),
so two approvers voting on the same stale snapshot cannot overwrite each
other: the second write matches no row and is rejected.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fundadmin.core.approval.errors import ConcurrentModificationError
from fundadmin.core.approval.models import ApprovalRequest, ApprovalVote, ChangePreview
from fundadmin.core.approval.states import (
    ApprovalDomain,
    ApprovalStatus,
    ApprovalType,
    RiskLevel,
)
from fundadmin.db.models.approval import ApprovalRequestRecord

from .base import RequestFilter, RequestStore

logger = logging.getLogger(__name__)


class SqlRequestStore(RequestStore):
    """Store approval requests in the ``approval_requests`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        """
        Initialize the store.

        Args:
            session_factory: Callable returning a new Session (e.g. SessionLocal)
        """
        self.session_factory = session_factory

    def load(self, tenant_id: str, request_id: str) -> Optional[ApprovalRequest]:
        db = self.session_factory()
        try:
            record = db.query(ApprovalRequestRecord).filter(
                and_(
                    ApprovalRequestRecord.id == request_id,
                    ApprovalRequestRecord.tenant_id == tenant_id,
                )
            ).first()
            return self._record_to_request(record) if record else None
        finally:
            db.close()

    def save(
        self,
        request: ApprovalRequest,
        expected_version: Optional[int] = None,
    ) -> ApprovalRequest:
        new_version = (expected_version or 0) + 1
        values = self._request_to_values(request)
        values["version"] = new_version

        db = self.session_factory()
        try:
            if expected_version is None:
                db.add(ApprovalRequestRecord(**values))
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    raise ConcurrentModificationError(request.id, None)
            else:
                values.pop("id")
                values.pop("tenant_id")
                result = db.execute(
                    update(ApprovalRequestRecord)
                    .where(
                        and_(
                            ApprovalRequestRecord.id == request.id,
                            ApprovalRequestRecord.tenant_id == request.tenant_id,
                            ApprovalRequestRecord.version == expected_version,
                        )
                    )
                    .values(**values)
                )
                if result.rowcount != 1:
                    db.rollback()
                    logger.warning(
                        f"Stale write rejected for approval request {request.id} "
                        f"(expected version {expected_version})"
                    )
                    raise ConcurrentModificationError(request.id, expected_version)
                db.commit()
        finally:
            db.close()

        return replace(request, version=new_version)

    def query(self, request_filter: RequestFilter) -> List[ApprovalRequest]:
        db = self.session_factory()
        try:
            query = db.query(ApprovalRequestRecord).filter(
                ApprovalRequestRecord.tenant_id == request_filter.tenant_id
            )

            if request_filter.company_id is not None:
                query = query.filter(ApprovalRequestRecord.company_id == request_filter.company_id)
            if request_filter.domain is not None:
                query = query.filter(ApprovalRequestRecord.domain == _value(request_filter.domain))
            if request_filter.type is not None:
                query = query.filter(ApprovalRequestRecord.type == _value(request_filter.type))
            if request_filter.status is not None:
                query = query.filter(ApprovalRequestRecord.status == _value(request_filter.status))

            query = query.order_by(
                ApprovalRequestRecord.created_at.asc(),
                ApprovalRequestRecord.id.asc(),
            )
            return [self._record_to_request(r) for r in query.all()]
        finally:
            db.close()

    def _request_to_values(self, request: ApprovalRequest) -> Dict[str, Any]:
        """Convert a request snapshot to column values."""
        return {
            "id": request.id,
            "tenant_id": request.tenant_id,
            "company_id": request.company_id,
            "domain": request.domain.value,
            "type": request.type.value,
            "title": request.title,
            "description": request.description,
            "data": request.data,
            "change_preview": request.change_preview.to_dict() if request.change_preview else None,
            "requested_by": request.requested_by,
            "requested_by_name": request.requested_by_name,
            "requested_by_role": request.requested_by_role,
            "request_comment": request.request_comment,
            "ip_address": request.ip_address,
            "status": request.status.value,
            "required_approvals": request.required_approvals,
            "votes": [v.to_dict() for v in request.votes],
            "risk_level": request.risk_level.value,
            "reversible": request.reversible,
            "deadline": request.deadline,
            "decided_at": request.decided_at,
            "escalated_at": request.escalated_at,
            "escalated_to": list(request.escalated_to),
            "created_at": request.created_at,
            "updated_at": request.updated_at,
        }

    def _record_to_request(self, record: ApprovalRequestRecord) -> ApprovalRequest:
        """Convert a database row to a request snapshot."""
        return ApprovalRequest(
            id=record.id,
            tenant_id=record.tenant_id,
            company_id=record.company_id,
            domain=ApprovalDomain(record.domain),
            type=ApprovalType(record.type),
            title=record.title,
            description=record.description or "",
            data=dict(record.data or {}),
            change_preview=ChangePreview.from_dict(record.change_preview),
            requested_by=record.requested_by,
            requested_by_name=record.requested_by_name or "",
            requested_by_role=record.requested_by_role or "",
            request_comment=record.request_comment,
            ip_address=record.ip_address,
            status=ApprovalStatus(record.status),
            required_approvals=record.required_approvals,
            votes=tuple(ApprovalVote.from_dict(v) for v in record.votes or []),
            risk_level=RiskLevel(record.risk_level),
            reversible=bool(record.reversible),
            deadline=record.deadline,
            decided_at=record.decided_at,
            escalated_at=record.escalated_at,
            escalated_to=tuple(record.escalated_to or ()),
            created_at=record.created_at,
            updated_at=record.updated_at,
            version=record.version,
        )


def _value(value: Any) -> Any:
    """Unwrap enum members so they compare as plain column values."""
    return getattr(value, "value", value)
