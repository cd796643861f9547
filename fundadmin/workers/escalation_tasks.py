"""Celery tasks for approval escalation.

Requests left pending longer than their policy's ``escalation_hours`` are
flagged for the policy's escalation roles. A beat schedule sweeps the
tenants listed in ``ESCALATION_TENANTS``.
"""

from typing import Any, Dict, List
import logging

from celery import Celery, shared_task
from sqlalchemy.exc import OperationalError

from fundadmin.common.logger import configure_logging
from fundadmin.core.config import get_settings
from fundadmin.services.factory import get_approval_service

logger = logging.getLogger(__name__)
settings = get_settings()

# The Celery worker owns console output; only add the rotating file handler
configure_logging(settings, console=False)

# Initialize Celery
celery_app = Celery(
    'fundadmin',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'fundadmin.workers.escalation_tasks.escalate_pending_requests': {'queue': 'escalations'},
    },
    task_default_queue='default',
)

if settings.escalation_tenants_list:
    celery_app.conf.beat_schedule = {
        'escalate-pending-approvals': {
            'task': 'fundadmin.workers.escalation_tasks.escalate_all_tenants',
            'schedule': settings.escalation_interval_minutes * 60.0,
        },
    }


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def escalate_pending_requests(self, tenant_id: str) -> Dict[str, Any]:
    """
    Escalate overdue pending requests of one tenant.

    Args:
        tenant_id: Tenant to sweep

    Returns:
        Dictionary with the tenant ID and number of requests escalated
    """
    try:
        escalated = get_approval_service().check_and_escalate(tenant_id)
    except OperationalError as e:
        logger.exception(f"Escalation sweep failed for tenant {tenant_id}")
        raise self.retry(exc=e)

    if escalated:
        logger.info(f"Escalated {escalated} approval request(s) for tenant {tenant_id}")
    return {"tenant_id": tenant_id, "escalated": escalated}


@shared_task
def escalate_all_tenants() -> List[str]:
    """Queue an escalation sweep for every configured tenant."""
    tenants = get_settings().escalation_tenants_list
    for tenant_id in tenants:
        escalate_pending_requests.delay(tenant_id)
    logger.info(f"Queued escalation sweeps for {len(tenants)} tenant(s)")
    return tenants
