"""In-process approval request store.

Used by tests and single-process deployments. Snapshots are frozen but their
``data`` and ``change_preview`` payloads are plain dicts, so the store keeps
its own deep copy and hands out copies on every read.
"""

import copy
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from fundadmin.core.approval.errors import ConcurrentModificationError
from fundadmin.core.approval.models import ApprovalRequest

from .base import RequestFilter, RequestStore


class InMemoryRequestStore(RequestStore):
    """Dictionary-backed store with compare-and-set saves."""

    def __init__(self):
        self._items: Dict[Tuple[str, str], ApprovalRequest] = {}
        self._lock = threading.Lock()

    def load(self, tenant_id: str, request_id: str) -> Optional[ApprovalRequest]:
        with self._lock:
            request = self._items.get((tenant_id, request_id))
            return copy.deepcopy(request) if request is not None else None

    def save(
        self,
        request: ApprovalRequest,
        expected_version: Optional[int] = None,
    ) -> ApprovalRequest:
        key = (request.tenant_id, request.id)
        with self._lock:
            current = self._items.get(key)
            if expected_version is None:
                if current is not None:
                    raise ConcurrentModificationError(request.id, None)
            elif current is None or current.version != expected_version:
                raise ConcurrentModificationError(request.id, expected_version)

            stored = copy.deepcopy(
                replace(request, version=(expected_version or 0) + 1)
            )
            self._items[key] = stored
            return copy.deepcopy(stored)

    def query(self, request_filter: RequestFilter) -> List[ApprovalRequest]:
        with self._lock:
            items = [
                copy.deepcopy(r)
                for r in self._items.values()
                if request_filter.matches(r)
            ]
        return sorted(items, key=lambda r: (r.created_at, r.id))

    def __len__(self) -> int:
        return len(self._items)
