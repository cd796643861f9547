"""Role definitions for fund administration approvers."""

from .roles import Role, SYSTEM_USER_ID, SYSTEM_USER_NAME, parse_role

__all__ = [
    "Role",
    "SYSTEM_USER_ID",
    "SYSTEM_USER_NAME",
    "parse_role",
]
