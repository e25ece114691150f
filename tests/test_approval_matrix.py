"""Tests for approval matrix resolution."""

from __future__ import annotations

from decimal import Decimal

from src.discounts.matrix import resolve_approver_role
from src.models.enums import DiscountTarget
from src.schemas.approvals import ApprovalMatrixRule


def _band(role: str, low: str, high: str, discount_type: str = "overall_quote", **extra) -> ApprovalMatrixRule:
    return ApprovalMatrixRule.model_validate({
        "discount_type": discount_type,
        "min_percentage": low,
        "max_percentage": high,
        "approver_role_id": role,
        **extra,
    })


RULES = [
    _band("role-manager", "0", "15"),
    _band("role-director", "15", "30"),
    _band("role-ceo", "30", "100"),
    _band("role-team-lead", "0", "20", discount_type="line_item"),
]


class TestResolveApproverRole:
    def test_band_lookup(self):
        assert resolve_approver_role(Decimal("12"), DiscountTarget.OVERALL, RULES) == "role-manager"
        assert resolve_approver_role(Decimal("25"), DiscountTarget.OVERALL, RULES) == "role-director"

    def test_upper_bound_inclusive_lower_exclusive(self):
        assert resolve_approver_role(Decimal("15"), DiscountTarget.OVERALL, RULES) == "role-manager"
        assert resolve_approver_role(Decimal("15.01"), DiscountTarget.OVERALL, RULES) == "role-director"

    def test_filters_by_discount_type(self):
        assert resolve_approver_role(Decimal("12"), DiscountTarget.LINE_ITEM, RULES) == "role-team-lead"
        assert resolve_approver_role(Decimal("25"), DiscountTarget.LINE_ITEM, RULES) is None

    def test_zero_has_no_approver(self):
        assert resolve_approver_role(Decimal("0"), DiscountTarget.OVERALL, RULES) is None

    def test_inactive_rules_ignored(self):
        rules = [_band("role-manager", "0", "50", is_active=False)]
        assert resolve_approver_role(Decimal("10"), DiscountTarget.OVERALL, rules) is None

    def test_overlapping_bands_highest_priority_wins(self):
        rules = [
            _band("role-manager", "0", "50", priority=1),
            _band("role-director", "5", "20", priority=5),
        ]
        assert resolve_approver_role(Decimal("10"), DiscountTarget.OVERALL, rules) == "role-director"
        assert resolve_approver_role(Decimal("30"), DiscountTarget.OVERALL, rules) == "role-manager"

    def test_no_rules(self):
        assert resolve_approver_role(Decimal("10"), DiscountTarget.OVERALL, []) is None
