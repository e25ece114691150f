"""Exceptions raised by discount transitions and line item edits."""

from __future__ import annotations


class DiscountError(ValueError):
    """Base class for rejected discount or line item operations."""


class InvalidDiscountState(DiscountError):
    """Raised when a transition is not valid from the current discount status."""

    def __init__(self, message: str, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class LineItemLocked(InvalidDiscountState):
    """Raised when editing or deleting a line item an approved discount applies to."""

    def __init__(self, message: str, line_item_id: str, fields: frozenset[str] = frozenset()) -> None:
        super().__init__(message)
        self.line_item_id = line_item_id
        self.fields = fields


class LineItemNotFound(DiscountError):
    """Raised when a line item id is not part of the quote."""

    def __init__(self, line_item_id: str) -> None:
        super().__init__(f"Line item not found: {line_item_id}")
        self.line_item_id = line_item_id


class DiscountRequestError(DiscountError):
    """Raised for a malformed request (bad percentage, missing approver role, duplicate id)."""
