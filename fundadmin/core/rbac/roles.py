"""Role definitions for fund administration.

Roles arrive from the upstream identity provider as plain strings (the
``x-aifm-role`` header) and are matched against each approval policy's
eligible roles.
"""

from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Roles a user can hold within a tenant."""

    ACCOUNTANT = "accountant"             # Day-to-day bookkeeping and exports
    FUND_ACCOUNTANT = "fund_accountant"   # NAV calculation
    MANAGER = "manager"
    EXECUTIVE = "executive"
    BOARD = "board"
    COMPLIANCE = "compliance"
    COMPLIANCE_MANAGER = "compliance_manager"
    FUND_OPERATIONS = "fund_operations"   # Subscriptions and redemptions
    TENANT_ADMIN = "tenant_admin"
    TENANT_MANAGER = "tenant_manager"
    ADMIN = "admin"

    # Reserved for engine-generated votes, never held by a person
    SYSTEM = "system"


SYSTEM_USER_ID = "system"
SYSTEM_USER_NAME = "System"


def parse_role(value: Optional[str]) -> Optional[Role]:
    """Parse a role string, returning None when it is not a known role."""
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None
