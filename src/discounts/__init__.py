"""Discount approval — state machine, approval matrix, line item locking, workflow."""

from src.discounts.approval import (
    DiscountTransition,
    approve_discount,
    cancel_discount,
    derive_quote_status,
    reject_discount,
    request_line_item_discount,
    request_overall_discount,
    send_quote,
    withdraw_discount,
)
from src.discounts.errors import (
    DiscountError,
    DiscountRequestError,
    InvalidDiscountState,
    LineItemLocked,
    LineItemNotFound,
)
from src.discounts.line_items import add_line_item, is_protected, remove_line_item, update_line_item
from src.discounts.matrix import resolve_approver_role
from src.discounts.workflow import DiscountWorkflow, WorkflowOutcome

__all__ = [
    "request_overall_discount",
    "request_line_item_discount",
    "approve_discount",
    "reject_discount",
    "cancel_discount",
    "withdraw_discount",
    "send_quote",
    "derive_quote_status",
    "DiscountTransition",
    "add_line_item",
    "update_line_item",
    "remove_line_item",
    "is_protected",
    "resolve_approver_role",
    "DiscountWorkflow",
    "WorkflowOutcome",
    "DiscountError",
    "DiscountRequestError",
    "InvalidDiscountState",
    "LineItemLocked",
    "LineItemNotFound",
]
