"""Errors raised by the approval engine.

Every error carries a stable ``code`` so the HTTP layer can map it to a
status without string matching.
"""

from typing import Optional


class ApprovalError(Exception):
    """Base class for approval workflow errors."""

    code = "approval_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ApprovalError):
    """Raised when request input is missing a required field or is malformed."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class PolicyNotFoundError(ApprovalError):
    """Raised when no policy is registered for a domain/type pair."""

    code = "policy_not_found"

    def __init__(self, request_type: str, domain: Optional[str] = None):
        where = f"{domain}/{request_type}" if domain else request_type
        super().__init__(f"No approval policy registered for {where}")
        self.request_type = request_type
        self.domain = domain


class NotFoundError(ApprovalError):
    """Raised when a request does not exist or belongs to another tenant."""

    code = "not_found"

    def __init__(self, request_id: str):
        super().__init__(f"Approval request {request_id} not found")
        self.request_id = request_id


class AlreadyTerminalError(ApprovalError):
    """Raised when voting on a request that is already decided."""

    code = "already_terminal"

    def __init__(self, request_id: str, status: str):
        super().__init__(f"Cannot vote on request {request_id} with status {status}")
        self.request_id = request_id
        self.status = status


class DuplicateVoteError(ApprovalError):
    """Raised when a user votes a second time on the same request."""

    code = "duplicate_vote"

    def __init__(self, request_id: str, user_id: str):
        super().__init__(f"User {user_id} has already voted on request {request_id}")
        self.request_id = request_id
        self.user_id = user_id


class NotEligibleError(ApprovalError):
    """Raised when the voter's role or identity may not act on the request."""

    code = "not_eligible"


class ConcurrentModificationError(ApprovalError):
    """Raised when a save is based on a stale version of the request.

    The caller may reload the request and retry.
    """

    code = "concurrent_modification"
    retryable = True

    def __init__(self, request_id: str, expected_version: Optional[int]):
        if expected_version is None:
            message = f"Approval request {request_id} already exists"
        else:
            message = (
                f"Approval request {request_id} was modified concurrently "
                f"(expected version {expected_version})"
            )
        super().__init__(message)
        self.request_id = request_id
        self.expected_version = expected_version
