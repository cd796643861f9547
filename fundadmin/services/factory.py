"""Builds the approval service and its collaborators from settings.

Shared by the HTTP layer and the Celery worker so both talk to the same
store and audit backends.
"""

import logging
from functools import lru_cache

from fundadmin.core.approval.service import ApprovalService
from fundadmin.core.config import Settings, get_settings
from fundadmin.services.audit import AuditSink, CompositeAuditSink, DatabaseAuditSink, LoggingAuditSink
from fundadmin.store import InMemoryRequestStore, RequestStore, SqlRequestStore

logger = logging.getLogger(__name__)


def build_request_store(settings: Settings) -> RequestStore:
    """Create the request store selected by ``store_backend``."""
    backend = settings.store_backend.lower()
    if backend == "memory":
        return InMemoryRequestStore()
    if backend == "sql":
        from fundadmin.db.session import SessionLocal, init_db

        init_db()
        return SqlRequestStore(SessionLocal)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def build_audit_sink(settings: Settings) -> AuditSink:
    """Create the audit sink selected by ``audit_backend``."""
    backend = settings.audit_backend.lower()
    if backend == "log":
        return LoggingAuditSink()
    if backend == "database":
        from fundadmin.db.session import SessionLocal, init_db

        init_db()
        return CompositeAuditSink([LoggingAuditSink(), DatabaseAuditSink(SessionLocal)])
    raise ValueError(f"Unknown audit backend: {settings.audit_backend}")


@lru_cache
def get_request_store() -> RequestStore:
    settings = get_settings()
    logger.info(f"Using {settings.store_backend} approval request store")
    return build_request_store(settings)


@lru_cache
def get_audit_sink() -> AuditSink:
    return build_audit_sink(get_settings())


def get_approval_service() -> ApprovalService:
    """Service bound to the process-wide store and audit sink."""
    return ApprovalService(get_request_store(), get_audit_sink())
