"""Base classes for approval request stores.

A store owns the persisted state of approval requests and is the only
place where optimistic concurrency is enforced: ``save`` must compare the
stored version with the caller's expected version atomically.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from fundadmin.core.approval.models import ApprovalRequest


@dataclass(frozen=True)
class RequestFilter:
    """Query filter for approval requests. Unset fields match everything."""

    tenant_id: str
    company_id: Optional[str] = None
    domain: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None

    def matches(self, request: ApprovalRequest) -> bool:
        """Check if a request satisfies every set field."""
        if request.tenant_id != self.tenant_id:
            return False
        if self.company_id is not None and request.company_id != self.company_id:
            return False
        if self.domain is not None and request.domain != self.domain:
            return False
        if self.type is not None and request.type != self.type:
            return False
        if self.status is not None and request.status != self.status:
            return False
        return True


class RequestStore(ABC):
    """Abstract persistence for approval requests."""

    @abstractmethod
    def load(self, tenant_id: str, request_id: str) -> Optional[ApprovalRequest]:
        """Load a request, or None if it does not exist for the tenant."""
        pass

    @abstractmethod
    def save(
        self,
        request: ApprovalRequest,
        expected_version: Optional[int] = None,
    ) -> ApprovalRequest:
        """Persist a request with a version check.

        With ``expected_version=None`` the request must not exist yet.
        Otherwise the stored version must equal ``expected_version``.
        The saved request carries ``version = (expected_version or 0) + 1``.

        Args:
            request: Snapshot to persist
            expected_version: Version the snapshot was derived from

        Returns:
            The request as stored, with its new version

        Raises:
            ConcurrentModificationError: If the version check fails
        """
        pass

    @abstractmethod
    def query(self, request_filter: RequestFilter) -> List[ApprovalRequest]:
        """Return matching requests ordered by creation time, oldest first."""
        pass
