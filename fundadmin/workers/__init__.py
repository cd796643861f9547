"""Celery workers for fundadmin."""

from fundadmin.workers.escalation_tasks import (
    celery_app,
    escalate_pending_requests,
    escalate_all_tenants,
)

__all__ = [
    "celery_app",
    "escalate_pending_requests",
    "escalate_all_tenants",
]
