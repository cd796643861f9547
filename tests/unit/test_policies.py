"""Tests for the approval policy registry."""

from decimal import Decimal

import pytest

from fundadmin.core.approval.errors import PolicyNotFoundError
from fundadmin.core.approval.models import ChangePreview
from fundadmin.core.approval.policies import (
    DEFAULT_POLICIES,
    ApprovalPolicy,
    PolicyRegistry,
    ThresholdComparison,
    affected_records_of,
    amount_of,
    get_policy_registry,
    to_decimal,
)
from fundadmin.core.approval.states import ApprovalDomain, ApprovalType
from fundadmin.core.rbac import Role


def _payment_policy(**overrides) -> ApprovalPolicy:
    fields = dict(
        domain=ApprovalDomain.PAYMENTS,
        request_type=ApprovalType.PAYMENT,
        name="Payment",
        description="",
        required_approvals=2,
        eligible_roles=frozenset({Role.MANAGER, Role.COMPLIANCE}),
    )
    fields.update(overrides)
    return ApprovalPolicy(**fields)


class TestDefaultPolicies:
    """Test the built-in policy table."""

    def test_every_type_has_a_policy(self):
        """Test that each request type resolves to exactly one policy."""
        registry = PolicyRegistry()
        assert len(registry) == len(ApprovalType)
        for request_type in ApprovalType:
            assert registry.get_policy_for_type(request_type).request_type == request_type

    def test_all_policies_require_at_least_one_approval(self):
        """Test requiredApprovals >= 1 across the table."""
        for policy in DEFAULT_POLICIES:
            assert policy.required_approvals >= 1
            assert policy.eligible_roles
            assert Role.SYSTEM not in policy.eligible_roles

    def test_payment_policy(self):
        """Test the four-eyes payment policy."""
        policy = get_policy_registry().get_policy(ApprovalDomain.PAYMENTS, ApprovalType.PAYMENT)

        assert policy.required_approvals == 2
        assert policy.eligible_roles == {Role.MANAGER, Role.COMPLIANCE}
        assert policy.auto_approve_threshold == Decimal("1000")
        assert policy.threshold_comparison == ThresholdComparison.BELOW
        assert policy.allow_self_approval is False
        assert policy.reversible is False

    def test_registry_singleton(self):
        """Test that the process-wide registry is built once."""
        assert get_policy_registry() is get_policy_registry()


class TestPolicyValidation:
    """Test invariants enforced when a policy is constructed."""

    def test_zero_required_approvals_rejected(self):
        with pytest.raises(ValueError):
            _payment_policy(required_approvals=0)

    def test_empty_roles_rejected(self):
        with pytest.raises(ValueError):
            _payment_policy(eligible_roles=frozenset())

    def test_system_role_cannot_be_eligible(self):
        with pytest.raises(ValueError):
            _payment_policy(eligible_roles=frozenset({Role.SYSTEM, Role.MANAGER}))

    def test_threshold_requires_accessor(self):
        with pytest.raises(ValueError):
            _payment_policy(auto_approve_threshold=Decimal("1000"))


class TestPolicyRegistry:
    """Test registry lookups."""

    def test_get_policy_by_string_values(self):
        """Test that plain strings resolve like enum members."""
        policy = PolicyRegistry().get_policy("PAYMENTS", "PAYMENT")
        assert policy.request_type == ApprovalType.PAYMENT

    def test_wrong_domain_raises(self):
        """Test that a type registered under another domain is not found."""
        with pytest.raises(PolicyNotFoundError):
            PolicyRegistry().get_policy(ApprovalDomain.EXPORT, ApprovalType.PAYMENT)

    def test_unknown_type_raises(self):
        with pytest.raises(PolicyNotFoundError):
            PolicyRegistry().get_policy_for_type("WIRE_MONEY_TO_ME")

    def test_unregistered_type_has_no_default(self):
        """Test that a registry without a type never falls back to another policy."""
        registry = PolicyRegistry([_payment_policy()])
        with pytest.raises(PolicyNotFoundError):
            registry.get_policy(ApprovalDomain.PAYMENTS, ApprovalType.TRANSFER)

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            PolicyRegistry([_payment_policy(), _payment_policy(name="Other")])

    def test_policies_by_domain(self):
        policies = PolicyRegistry().get_policies_by_domain(ApprovalDomain.PAYMENTS)
        assert {p.request_type for p in policies} == {
            ApprovalType.PAYMENT,
            ApprovalType.DISTRIBUTION,
            ApprovalType.TRANSFER,
        }

    def test_policies_by_unknown_domain(self):
        assert PolicyRegistry().get_policies_by_domain("GARDENING") == []

    def test_no_mutation_api(self):
        """Test that the underlying mapping is read-only."""
        registry = PolicyRegistry()
        with pytest.raises(TypeError):
            registry._by_key[(ApprovalDomain.PAYMENTS, ApprovalType.PAYMENT)] = None


class TestAutoApprovalThreshold:
    """Test threshold extraction and comparison."""

    def test_below_threshold(self):
        policy = _payment_policy(auto_approve_threshold=Decimal("1000"), threshold_value=amount_of)
        assert policy.auto_approval_value({"amount": 500}) == Decimal("500")

    def test_equal_to_threshold_with_strict_comparison(self):
        policy = _payment_policy(auto_approve_threshold=Decimal("1000"), threshold_value=amount_of)
        assert policy.auto_approval_value({"amount": 1000}) is None

    def test_equal_to_threshold_with_inclusive_comparison(self):
        policy = _payment_policy(
            auto_approve_threshold=Decimal("1000"),
            threshold_value=amount_of,
            threshold_comparison=ThresholdComparison.AT_OR_BELOW,
        )
        assert policy.auto_approval_value({"amount": "1000"}) == Decimal("1000")

    @pytest.mark.parametrize("data", [{}, {"amount": None}, {"amount": "lots"}, {"amount": True}])
    def test_missing_or_non_numeric_value_never_auto_approves(self, data):
        policy = _payment_policy(auto_approve_threshold=Decimal("1000"), threshold_value=amount_of)
        assert policy.auto_approval_value(data) is None

    def test_no_threshold(self):
        assert _payment_policy().auto_approval_value({"amount": 1}) is None

    def test_fortnox_batch_reads_affected_records(self):
        """Test that the batch size comes from the change preview, not the payload."""
        policy = get_policy_registry().get_policy_for_type(ApprovalType.EXPORT_FORTNOX_BATCH)
        assert policy.threshold_value is affected_records_of

        assert policy.auto_approval_value({}, ChangePreview(affected_records=10), "manager") == Decimal("10")
        assert policy.auto_approval_value({}, ChangePreview(affected_records=11), "manager") is None
        assert policy.auto_approval_value({"affected_records": 3}, None, "manager") is None

    @pytest.mark.parametrize("role", ["accountant", "compliance", None, "nobody"])
    def test_fortnox_batch_requires_trusted_requester(self, role):
        policy = get_policy_registry().get_policy_for_type(ApprovalType.EXPORT_FORTNOX_BATCH)
        assert policy.auto_approval_value({}, ChangePreview(affected_records=2), role) is None

    def test_trusted_roles_accepted(self):
        policy = get_policy_registry().get_policy_for_type(ApprovalType.EXPORT_FORTNOX_BATCH)
        assert policy.trusted_requester_roles == frozenset({Role.MANAGER, Role.EXECUTIVE})
        assert policy.auto_approval_value({}, ChangePreview(affected_records=2), "executive") == Decimal("2")
        assert policy.to_dict()["trusted_requester_roles"] == ["executive", "manager"]

    def test_untrusted_roles_do_not_gate_open_policies(self):
        policy = _payment_policy(auto_approve_threshold=Decimal("1000"), threshold_value=amount_of)
        assert policy.auto_approval_value({"amount": 5}, None, "accountant") == Decimal("5")

    def test_to_decimal(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal("nan") is None
        assert to_decimal([1]) is None


class TestEligibility:
    """Test role eligibility checks."""

    def test_eligible_role_accepts_enum_and_string(self):
        policy = _payment_policy()
        assert policy.is_eligible_role(Role.MANAGER)
        assert policy.is_eligible_role("compliance")

    def test_ineligible_and_unknown_roles(self):
        policy = _payment_policy()
        assert not policy.is_eligible_role("accountant")
        assert not policy.is_eligible_role("overlord")

    def test_to_dict(self):
        data = get_policy_registry().get_policy_for_type(ApprovalType.PAYMENT).to_dict()
        assert data["type"] == "PAYMENT"
        assert data["eligible_roles"] == ["compliance", "manager"]
        assert data["auto_approve_threshold"] == "1000"
        assert data["threshold_comparison"] == "lt"
