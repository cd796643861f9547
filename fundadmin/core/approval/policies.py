"""Approval policy registry.

A policy states, for one (domain, request type) pair, how many approvals a
request needs, which roles may vote, and when the workflow can be skipped
entirely. The table is built once at import time and cannot be changed at
runtime; a request type without a policy is a configuration defect, never a
reason to fall back to a default.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from fundadmin.core.rbac import Role

from .errors import PolicyNotFoundError
from .states import ApprovalDomain, ApprovalType, IRREVERSIBLE_TYPES, RiskLevel


# Called with the request payload and its change preview (which may be None)
ValueAccessor = Callable[[Dict[str, Any], Any], Optional[Decimal]]


class ThresholdComparison(str, Enum):
    """How a request's value is compared against the auto-approve threshold."""

    BELOW = "lt"            # value < threshold
    AT_OR_BELOW = "lte"     # value <= threshold


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a payload value to Decimal, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
        return result if result.is_finite() else None
    return None


def field_value(name: str) -> ValueAccessor:
    """Build an accessor that reads a numeric field from the request payload."""

    def accessor(data: Dict[str, Any], change_preview: Any = None) -> Optional[Decimal]:
        return to_decimal((data or {}).get(name))

    accessor.__name__ = f"field_value_{name}"
    return accessor


def preview_value(name: str) -> ValueAccessor:
    """Build an accessor that reads a numeric attribute of the change preview."""

    def accessor(data: Dict[str, Any], change_preview: Any = None) -> Optional[Decimal]:
        if change_preview is None:
            return None
        return to_decimal(getattr(change_preview, name, None))

    accessor.__name__ = f"preview_value_{name}"
    return accessor


amount_of = field_value("amount")
affected_records_of = preview_value("affected_records")


@dataclass(frozen=True)
class ApprovalPolicy:
    """Static approval rules for one request type."""

    domain: ApprovalDomain
    request_type: ApprovalType
    name: str
    description: str
    required_approvals: int
    eligible_roles: FrozenSet[Role]
    allow_self_approval: bool = False

    # Auto-approval
    auto_approve_threshold: Optional[Decimal] = None
    threshold_value: Optional[ValueAccessor] = field(default=None, compare=False)
    threshold_comparison: ThresholdComparison = ThresholdComparison.BELOW
    # Only these requester roles may skip the workflow; empty means any role
    trusted_requester_roles: FrozenSet[Role] = frozenset()

    # SLA
    deadline_hours: int = 24
    escalation_hours: int = 8
    escalate_to: FrozenSet[Role] = frozenset()

    # Impact
    reversible: bool = True
    base_risk: RiskLevel = RiskLevel.LOW

    def __post_init__(self):
        if self.required_approvals < 1:
            raise ValueError(
                f"Policy {self.request_type.value} must require at least one approval"
            )
        if not self.eligible_roles:
            raise ValueError(f"Policy {self.request_type.value} has no eligible roles")
        if Role.SYSTEM in self.eligible_roles:
            raise ValueError("The system identity cannot be an eligible approver")
        if self.auto_approve_threshold is not None and self.threshold_value is None:
            raise ValueError(
                f"Policy {self.request_type.value} declares a threshold without a value accessor"
            )

    @property
    def key(self) -> Tuple[ApprovalDomain, ApprovalType]:
        return (self.domain, self.request_type)

    def is_eligible_role(self, role: Any) -> bool:
        """Check if a role may vote under this policy."""
        try:
            role = Role(role)
        except ValueError:
            return False
        return role in self.eligible_roles

    def auto_approval_value(
        self,
        data: Dict[str, Any],
        change_preview: Any = None,
        requester_role: Optional[str] = None,
    ) -> Optional[Decimal]:
        """
        Return the compared value when a new request qualifies for auto-approval.

        Args:
            data: Request payload
            change_preview: The request's ``ChangePreview``, if any
            requester_role: Role of the user creating the request

        Returns:
            The value that passed the threshold, or None when the policy has
            no threshold, the requester's role is not trusted, the value is
            missing or non-numeric, or it does not satisfy the comparison.
        """
        if self.auto_approve_threshold is None or self.threshold_value is None:
            return None

        if self.trusted_requester_roles:
            try:
                role = Role(requester_role)
            except ValueError:
                return None
            if role not in self.trusted_requester_roles:
                return None

        value = self.threshold_value(data or {}, change_preview)
        if value is None:
            return None

        if self.threshold_comparison == ThresholdComparison.AT_OR_BELOW:
            passed = value <= self.auto_approve_threshold
        else:
            passed = value < self.auto_approve_threshold
        return value if passed else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert policy to a JSON-friendly dictionary."""
        return {
            "domain": self.domain.value,
            "type": self.request_type.value,
            "name": self.name,
            "description": self.description,
            "required_approvals": self.required_approvals,
            "eligible_roles": sorted(r.value for r in self.eligible_roles),
            "allow_self_approval": self.allow_self_approval,
            "auto_approve_threshold": (
                str(self.auto_approve_threshold)
                if self.auto_approve_threshold is not None else None
            ),
            "threshold_comparison": self.threshold_comparison.value,
            "trusted_requester_roles": sorted(r.value for r in self.trusted_requester_roles),
            "deadline_hours": self.deadline_hours,
            "escalation_hours": self.escalation_hours,
            "escalate_to": sorted(r.value for r in self.escalate_to),
            "reversible": self.reversible,
        }


def _policy(
    request_type: ApprovalType,
    domain: ApprovalDomain,
    name: str,
    description: str,
    required_approvals: int,
    roles: Iterable[Role],
    **kwargs: Any,
) -> ApprovalPolicy:
    """Build a policy, deriving reversibility from the request type."""
    kwargs.setdefault("reversible", request_type not in IRREVERSIBLE_TYPES)
    if "escalate_to" in kwargs:
        kwargs["escalate_to"] = frozenset(kwargs["escalate_to"])
    if "trusted_requester_roles" in kwargs:
        kwargs["trusted_requester_roles"] = frozenset(kwargs["trusted_requester_roles"])
    return ApprovalPolicy(
        domain=domain,
        request_type=request_type,
        name=name,
        description=description,
        required_approvals=required_approvals,
        eligible_roles=frozenset(roles),
        **kwargs,
    )


DEFAULT_POLICIES: Tuple[ApprovalPolicy, ...] = (
    # Payments
    _policy(
        ApprovalType.PAYMENT, ApprovalDomain.PAYMENTS,
        "Payment", "Outgoing supplier or fund payment",
        2, [Role.MANAGER, Role.COMPLIANCE],
        auto_approve_threshold=Decimal("1000"), threshold_value=amount_of,
        deadline_hours=24, escalation_hours=8, escalate_to=[Role.EXECUTIVE],
        base_risk=RiskLevel.MEDIUM,
    ),
    _policy(
        ApprovalType.DISTRIBUTION, ApprovalDomain.PAYMENTS,
        "Distribution", "Dividend or capital distribution to investors",
        2, [Role.MANAGER, Role.EXECUTIVE, Role.COMPLIANCE],
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
        base_risk=RiskLevel.MEDIUM,
    ),
    _policy(
        ApprovalType.TRANSFER, ApprovalDomain.PAYMENTS,
        "Internal transfer", "Transfer between the fund's own accounts",
        2, [Role.MANAGER, Role.COMPLIANCE, Role.FUND_OPERATIONS],
        auto_approve_threshold=Decimal("5000"), threshold_value=amount_of,
        threshold_comparison=ThresholdComparison.AT_OR_BELOW,
        deadline_hours=24, escalation_hours=8, escalate_to=[Role.EXECUTIVE],
    ),

    # Accounting
    _policy(
        ApprovalType.POST_VOUCHER, ApprovalDomain.ACCOUNTING,
        "Post voucher", "Post a manual voucher to the ledger",
        1, [Role.ACCOUNTANT, Role.MANAGER],
        auto_approve_threshold=Decimal("5000"), threshold_value=amount_of,
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.MANAGER],
    ),

    # Export
    _policy(
        ApprovalType.EXPORT_SIE, ApprovalDomain.EXPORT,
        "SIE export", "Export bookkeeping data in SIE format",
        1, [Role.ACCOUNTANT, Role.MANAGER, Role.EXECUTIVE, Role.ADMIN],
        allow_self_approval=True,
        deadline_hours=24, escalation_hours=48, escalate_to=[Role.MANAGER],
    ),
    _policy(
        ApprovalType.EXPORT_FORTNOX_BATCH, ApprovalDomain.EXPORT,
        "Fortnox batch sync", "Bulk synchronisation to Fortnox",
        2, [Role.ACCOUNTANT, Role.MANAGER, Role.EXECUTIVE],
        auto_approve_threshold=Decimal("10"), threshold_value=affected_records_of,
        threshold_comparison=ThresholdComparison.AT_OR_BELOW,
        trusted_requester_roles=[Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=4, escalation_hours=8, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.EXPORT_ANNUAL_REPORT, ApprovalDomain.EXPORT,
        "Annual report export", "Export or publish the annual report",
        2, [Role.EXECUTIVE, Role.BOARD],
        deadline_hours=72, escalation_hours=24, escalate_to=[Role.BOARD],
    ),
    _policy(
        ApprovalType.EXPORT_TAX_DECLARATION, ApprovalDomain.EXPORT,
        "Tax declaration export", "Submit the income tax declaration",
        2, [Role.ACCOUNTANT, Role.EXECUTIVE],
        deadline_hours=72, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
    ),

    # Report publishing
    _policy(
        ApprovalType.PUBLISH_NAV, ApprovalDomain.REPORT_PUBLISH,
        "NAV publication", "Publish NAV to investors and price databases",
        2, [Role.FUND_ACCOUNTANT, Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=4, escalation_hours=2, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.PUBLISH_INVESTOR_REPORT, ApprovalDomain.REPORT_PUBLISH,
        "Investor report", "Publish a periodic investor report",
        1, [Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.PUBLISH_FI_REPORT, ApprovalDomain.REPORT_PUBLISH,
        "FI reporting", "Submit a report to the financial supervisory authority",
        2, [Role.COMPLIANCE_MANAGER, Role.EXECUTIVE],
        deadline_hours=24, escalation_hours=4, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.PUBLISH_BOARD_REPORT, ApprovalDomain.REPORT_PUBLISH,
        "Board report", "Distribute the board pack",
        1, [Role.EXECUTIVE],
        deadline_hours=72, escalation_hours=24, escalate_to=[Role.BOARD],
    ),

    # Masterdata
    _policy(
        ApprovalType.CHANGE_CHART_OF_ACCOUNTS, ApprovalDomain.MASTERDATA,
        "Chart of accounts change", "Add, change or remove ledger accounts",
        2, [Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.ADD_SUPPLIER, ApprovalDomain.MASTERDATA,
        "New supplier", "Register a new supplier",
        1, [Role.ACCOUNTANT, Role.MANAGER],
        allow_self_approval=True,
        deadline_hours=24, escalation_hours=48, escalate_to=[Role.MANAGER],
    ),
    _policy(
        ApprovalType.CHANGE_SUPPLIER, ApprovalDomain.MASTERDATA,
        "Supplier change", "Change supplier details such as bank account",
        1, [Role.ACCOUNTANT, Role.MANAGER],
        deadline_hours=24, escalation_hours=48, escalate_to=[Role.MANAGER],
        base_risk=RiskLevel.MEDIUM,
    ),
    _policy(
        ApprovalType.DELETE_SUPPLIER, ApprovalDomain.MASTERDATA,
        "Supplier removal", "Remove a supplier",
        2, [Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=72, escalation_hours=48, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.ADD_CUSTOMER, ApprovalDomain.MASTERDATA,
        "New customer", "Register a new customer",
        1, [Role.ACCOUNTANT, Role.MANAGER],
        allow_self_approval=True,
        deadline_hours=24, escalation_hours=48, escalate_to=[Role.MANAGER],
    ),
    _policy(
        ApprovalType.CHANGE_CUSTOMER, ApprovalDomain.MASTERDATA,
        "Customer change", "Change customer details",
        1, [Role.ACCOUNTANT, Role.MANAGER],
        deadline_hours=24, escalation_hours=48, escalate_to=[Role.MANAGER],
    ),
    _policy(
        ApprovalType.DELETE_CUSTOMER, ApprovalDomain.MASTERDATA,
        "Customer removal", "Remove a customer",
        2, [Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=72, escalation_hours=48, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.CHANGE_COST_CENTER, ApprovalDomain.MASTERDATA,
        "Cost center change", "Add or change cost centers",
        1, [Role.ACCOUNTANT, Role.MANAGER],
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.MANAGER],
    ),

    # User management
    _policy(
        ApprovalType.ADD_USER, ApprovalDomain.USER_MANAGEMENT,
        "Add user", "Create a new user",
        1, [Role.TENANT_ADMIN, Role.TENANT_MANAGER],
        allow_self_approval=True,
        deadline_hours=24, escalation_hours=48, escalate_to=[Role.TENANT_ADMIN],
    ),
    _policy(
        ApprovalType.CHANGE_USER_ROLE, ApprovalDomain.USER_MANAGEMENT,
        "Change user role", "Change the permission role of a user",
        2, [Role.TENANT_ADMIN],
        deadline_hours=24, escalation_hours=24, escalate_to=[Role.TENANT_ADMIN],
    ),
    _policy(
        ApprovalType.REMOVE_USER, ApprovalDomain.USER_MANAGEMENT,
        "Remove user", "Deactivate and remove a user",
        2, [Role.TENANT_ADMIN, Role.ADMIN],
        deadline_hours=24, escalation_hours=24, escalate_to=[Role.TENANT_ADMIN],
    ),
    _policy(
        ApprovalType.GRANT_ACCESS, ApprovalDomain.USER_MANAGEMENT,
        "Grant access", "Grant a user access to a company or fund",
        1, [Role.TENANT_ADMIN],
        deadline_hours=24, escalation_hours=24, escalate_to=[Role.TENANT_ADMIN],
    ),
    _policy(
        ApprovalType.REVOKE_ACCESS, ApprovalDomain.USER_MANAGEMENT,
        "Revoke access", "Revoke a user's access to a company or fund",
        1, [Role.TENANT_ADMIN, Role.TENANT_MANAGER],
        allow_self_approval=True,
        deadline_hours=8, escalation_hours=4, escalate_to=[Role.TENANT_ADMIN],
    ),

    # System config
    _policy(
        ApprovalType.CHANGE_INTEGRATION, ApprovalDomain.SYSTEM_CONFIG,
        "Integration change", "Change credentials or settings of an integration",
        1, [Role.ADMIN],
        deadline_hours=24, escalation_hours=24, escalate_to=[Role.ADMIN],
    ),
    _policy(
        ApprovalType.CHANGE_POLICY, ApprovalDomain.SYSTEM_CONFIG,
        "Policy change", "Change an internal policy document or rule",
        2, [Role.ADMIN, Role.COMPLIANCE_MANAGER],
        deadline_hours=72, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.CHANGE_APPROVAL_RULES, ApprovalDomain.SYSTEM_CONFIG,
        "Approval rules change", "Change who must approve what",
        2, [Role.ADMIN, Role.COMPLIANCE_MANAGER, Role.EXECUTIVE],
        deadline_hours=72, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
    ),

    # Fund operations
    _policy(
        ApprovalType.PROCESS_SUBSCRIPTION, ApprovalDomain.FUND_OPERATION,
        "Subscription order", "Approve and execute a subscription order",
        2, [Role.FUND_OPERATIONS, Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
        base_risk=RiskLevel.MEDIUM,
    ),
    _policy(
        ApprovalType.PROCESS_REDEMPTION, ApprovalDomain.FUND_OPERATION,
        "Redemption order", "Approve and execute a redemption order",
        2, [Role.FUND_OPERATIONS, Role.MANAGER, Role.EXECUTIVE],
        deadline_hours=48, escalation_hours=24, escalate_to=[Role.EXECUTIVE],
    ),
    _policy(
        ApprovalType.CHANGE_NAV, ApprovalDomain.FUND_OPERATION,
        "NAV correction", "Manually correct a published NAV",
        2, [Role.EXECUTIVE, Role.COMPLIANCE_MANAGER],
        deadline_hours=4, escalation_hours=2, escalate_to=[Role.BOARD],
    ),
)


class PolicyRegistry:
    """
    Read-only lookup over approval policies.

    Built once from a sequence of policies; there is no API to add, change
    or remove a policy afterwards.
    """

    def __init__(self, policies: Iterable[ApprovalPolicy] = DEFAULT_POLICIES):
        by_key: Dict[Tuple[ApprovalDomain, ApprovalType], ApprovalPolicy] = {}
        by_type: Dict[ApprovalType, ApprovalPolicy] = {}

        for policy in policies:
            if policy.key in by_key or policy.request_type in by_type:
                raise ValueError(
                    f"Duplicate approval policy for {policy.request_type.value}"
                )
            by_key[policy.key] = policy
            by_type[policy.request_type] = policy

        self._by_key: Mapping[Tuple[ApprovalDomain, ApprovalType], ApprovalPolicy] = (
            MappingProxyType(by_key)
        )
        self._by_type: Mapping[ApprovalType, ApprovalPolicy] = MappingProxyType(by_type)

    def __len__(self) -> int:
        return len(self._by_key)

    def get_policy(self, domain: Any, request_type: Any) -> ApprovalPolicy:
        """
        Get the policy for a domain/type pair.

        Raises:
            PolicyNotFoundError: If no policy is registered for the pair
        """
        try:
            key = (ApprovalDomain(domain), ApprovalType(request_type))
        except ValueError:
            raise PolicyNotFoundError(str(request_type), str(domain))

        policy = self._by_key.get(key)
        if policy is None:
            raise PolicyNotFoundError(key[1].value, key[0].value)
        return policy

    def get_policy_for_type(self, request_type: Any) -> ApprovalPolicy:
        """
        Get the policy for a request type regardless of domain.

        Raises:
            PolicyNotFoundError: If no policy is registered for the type
        """
        try:
            key = ApprovalType(request_type)
        except ValueError:
            raise PolicyNotFoundError(str(request_type))

        policy = self._by_type.get(key)
        if policy is None:
            raise PolicyNotFoundError(key.value)
        return policy

    def get_policies_by_domain(self, domain: Any) -> List[ApprovalPolicy]:
        """Get all policies registered for a domain."""
        try:
            domain = ApprovalDomain(domain)
        except ValueError:
            return []
        return [p for p in self._by_key.values() if p.domain == domain]

    def get_all_policies(self) -> List[ApprovalPolicy]:
        """Get every registered policy."""
        return list(self._by_key.values())


_default_registry: Optional[PolicyRegistry] = None


def get_policy_registry() -> PolicyRegistry:
    """Get the process-wide registry built from DEFAULT_POLICIES."""
    global _default_registry
    if _default_registry is None:
        _default_registry = PolicyRegistry(DEFAULT_POLICIES)
    return _default_registry
