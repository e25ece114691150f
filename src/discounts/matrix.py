"""Discount approval matrix — which role must approve a given discount."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from src.models.enums import ApprovalDiscountType, DiscountTarget
from src.schemas.approvals import ApprovalMatrixRule

logger = logging.getLogger(__name__)

_TARGET_TYPES: dict[DiscountTarget, ApprovalDiscountType] = {
    DiscountTarget.OVERALL: ApprovalDiscountType.OVERALL_QUOTE,
    DiscountTarget.LINE_ITEM: ApprovalDiscountType.LINE_ITEM,
}


def resolve_approver_role(
    discount_percentage: Decimal,
    target: DiscountTarget,
    rules: Iterable[ApprovalMatrixRule],
) -> str | None:
    """Return the approver role for a discount, or None when no band matches.

    Bands are half-open: a rule matches when ``min < percentage <= max``.
    Among matching active rules of the right type, the highest priority wins.
    """
    if discount_percentage <= 0:
        return None

    discount_type = _TARGET_TYPES[target]
    candidates = sorted(
        (r for r in rules if r.is_active and r.discount_type == discount_type),
        key=lambda r: r.priority,
        reverse=True,
    )
    for rule in candidates:
        if rule.min_percentage < discount_percentage <= rule.max_percentage:
            return rule.approver_role_id

    logger.debug("No approval matrix band for %s discount of %s%%", target.value, discount_percentage)
    return None
