"""Approval workflow states, decisions and request classification.

State Machine Diagram:

    ┌──────────┐
    │ PENDING  │ ← Initial state (awaiting votes)
    └────┬─────┘
         │
         ├──────────────────────┐
         │ enough APPROVE votes │ any REJECT vote
    ┌────▼─────┐          ┌─────▼────┐
    │ APPROVED │          │ REJECTED │
    └──────────┘          └──────────┘

Partial progress ("1 of 2 approvals") is derived from the vote list and is
never stored as a separate state.
"""

from enum import Enum
from typing import Dict, Set


class ApprovalStatus(str, Enum):
    """Lifecycle status of an approval request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class VoteDecision(str, Enum):
    """Decision recorded by a single vote."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ApprovalDomain(str, Enum):
    """Business area a request belongs to."""

    ACCOUNTING = "ACCOUNTING"
    PAYMENTS = "PAYMENTS"
    EXPORT = "EXPORT"                    # SIE export, Fortnox sync
    REPORT_PUBLISH = "REPORT_PUBLISH"    # Investor, FI and board reports
    MASTERDATA = "MASTERDATA"            # Chart of accounts, suppliers, customers
    USER_MANAGEMENT = "USER_MANAGEMENT"
    SYSTEM_CONFIG = "SYSTEM_CONFIG"
    FUND_OPERATION = "FUND_OPERATION"    # Subscriptions, redemptions, NAV


class ApprovalType(str, Enum):
    """Concrete kind of action awaiting approval."""

    # Payments
    PAYMENT = "PAYMENT"
    DISTRIBUTION = "DISTRIBUTION"
    TRANSFER = "TRANSFER"

    # Accounting
    POST_VOUCHER = "POST_VOUCHER"

    # Export
    EXPORT_SIE = "EXPORT_SIE"
    EXPORT_FORTNOX_BATCH = "EXPORT_FORTNOX_BATCH"
    EXPORT_ANNUAL_REPORT = "EXPORT_ANNUAL_REPORT"
    EXPORT_TAX_DECLARATION = "EXPORT_TAX_DECLARATION"

    # Report publishing
    PUBLISH_NAV = "PUBLISH_NAV"
    PUBLISH_INVESTOR_REPORT = "PUBLISH_INVESTOR_REPORT"
    PUBLISH_FI_REPORT = "PUBLISH_FI_REPORT"
    PUBLISH_BOARD_REPORT = "PUBLISH_BOARD_REPORT"

    # Masterdata
    CHANGE_CHART_OF_ACCOUNTS = "CHANGE_CHART_OF_ACCOUNTS"
    ADD_SUPPLIER = "ADD_SUPPLIER"
    CHANGE_SUPPLIER = "CHANGE_SUPPLIER"
    DELETE_SUPPLIER = "DELETE_SUPPLIER"
    ADD_CUSTOMER = "ADD_CUSTOMER"
    CHANGE_CUSTOMER = "CHANGE_CUSTOMER"
    DELETE_CUSTOMER = "DELETE_CUSTOMER"
    CHANGE_COST_CENTER = "CHANGE_COST_CENTER"

    # User management
    ADD_USER = "ADD_USER"
    CHANGE_USER_ROLE = "CHANGE_USER_ROLE"
    REMOVE_USER = "REMOVE_USER"
    GRANT_ACCESS = "GRANT_ACCESS"
    REVOKE_ACCESS = "REVOKE_ACCESS"

    # System config
    CHANGE_INTEGRATION = "CHANGE_INTEGRATION"
    CHANGE_POLICY = "CHANGE_POLICY"
    CHANGE_APPROVAL_RULES = "CHANGE_APPROVAL_RULES"

    # Fund operations
    PROCESS_SUBSCRIPTION = "PROCESS_SUBSCRIPTION"
    PROCESS_REDEMPTION = "PROCESS_REDEMPTION"
    CHANGE_NAV = "CHANGE_NAV"


class RiskLevel(str, Enum):
    """Impact classification shown to approvers."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# Terminal states (no further votes accepted)
TERMINAL_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
}

RISK_ORDER: Dict[RiskLevel, int] = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}

CRITICAL_RISK_TYPES: Set[ApprovalType] = {
    ApprovalType.PUBLISH_FI_REPORT,
    ApprovalType.PROCESS_REDEMPTION,
    ApprovalType.CHANGE_CHART_OF_ACCOUNTS,
}

HIGH_RISK_TYPES: Set[ApprovalType] = {
    ApprovalType.CHANGE_NAV,
    ApprovalType.DELETE_SUPPLIER,
    ApprovalType.DELETE_CUSTOMER,
    ApprovalType.REMOVE_USER,
    ApprovalType.CHANGE_APPROVAL_RULES,
    ApprovalType.EXPORT_ANNUAL_REPORT,
}

# Actions that cannot be undone once executed
IRREVERSIBLE_TYPES: Set[ApprovalType] = {
    ApprovalType.PUBLISH_NAV,
    ApprovalType.PUBLISH_FI_REPORT,
    ApprovalType.EXPORT_ANNUAL_REPORT,
    ApprovalType.EXPORT_TAX_DECLARATION,
    ApprovalType.PROCESS_SUBSCRIPTION,
    ApprovalType.PROCESS_REDEMPTION,
    ApprovalType.PAYMENT,
    ApprovalType.DISTRIBUTION,
    ApprovalType.TRANSFER,
}


def is_terminal(status: ApprovalStatus) -> bool:
    """Check if a status accepts no further votes."""
    return ApprovalStatus(status) in TERMINAL_STATES


def max_risk(a: RiskLevel, b: RiskLevel) -> RiskLevel:
    """Return the higher of two risk levels."""
    return a if RISK_ORDER[a] >= RISK_ORDER[b] else b
