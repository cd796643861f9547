import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fundadmin import __version__
from fundadmin.api.routers import approvals
from fundadmin.api.schemas.common import ErrorResponse
from fundadmin.common.clock import utcnow
from fundadmin.common.logger import configure_logging
from fundadmin.core.approval.errors import (
    AlreadyTerminalError,
    ApprovalError,
    ConcurrentModificationError,
    DuplicateVoteError,
    NotEligibleError,
    NotFoundError,
    PolicyNotFoundError,
    ValidationError,
)
from fundadmin.core.config import get_settings

settings = get_settings()
configure_logging(settings)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotEligibleError: 403,
    NotFoundError: 404,
    AlreadyTerminalError: 409,
    DuplicateVoteError: 409,
    ConcurrentModificationError: 409,
    PolicyNotFoundError: 500,
}

app = FastAPI(
    title=settings.app_name,
    description="Dual-approval workflow engine for fund administration",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(approvals.router, prefix="/api")


@app.exception_handler(ApprovalError)
async def approval_error_handler(request: Request, exc: ApprovalError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    if isinstance(exc, PolicyNotFoundError):
        # Configuration defect: every ApprovalType should have a policy
        logger.error(f"Policy lookup failed for {request.method} {request.url.path}: {exc.message}")

    body = ErrorResponse(error=type(exc).__name__, detail=exc.message, code=exc.code)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": utcnow().isoformat(),
    }


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
