"""Async httpx client for the discount approval / notification service."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.config import settings
from src.models.enums import DiscountTarget
from src.schemas.approvals import ApprovalMetadata, ApprovalRequest, ApprovalResult

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "discount_request"


def _notification_text(request: ApprovalRequest, metadata: ApprovalMetadata) -> tuple[str, str]:
    requestor = request.requestor_name or "A team member"
    justification = request.notes or "No justification provided."
    if metadata.discount_type == DiscountTarget.OVERALL:
        title = f"Overall Discount Approval for Quote {metadata.quote_number}"
        message = (
            f"{requestor} has requested a {metadata.discount_percentage}% overall discount. "
            f'Justification: "{justification}"'
        )
    else:
        title = f"Line Item Discount Approval for Quote {metadata.quote_number}"
        message = (
            f"{requestor} has requested a {metadata.discount_percentage}% discount for item "
            f'"{metadata.line_item_title}". Justification: "{justification}"'
        )
    return title, message


class ApprovalClient:
    """Thin async wrapper around the approval service's notification endpoint.

    Endpoint: POST {base_url}/approval-requests
    Auth: Bearer token

    Never raises: every failure comes back as ``ApprovalResult(success=False)``
    so the caller can keep the saved discount and show a warning.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url if base_url is not None else settings.approvals.approval_service_url).rstrip("/")
        self._token = token if token is not None else settings.approvals.approval_service_token
        self._timeout = httpx.Timeout(timeout or settings.approvals.approval_timeout_seconds, connect=5.0)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    def _build_payload(self, request: ApprovalRequest, metadata: ApprovalMetadata) -> dict[str, Any]:
        title, message = _notification_text(request, metadata)
        return {
            "type": NOTIFICATION_TYPE,
            "title": title,
            "message": message,
            "action_url": f"/quotes/{metadata.quote_id}",
            "recipient_role_id": request.required_role_id,
            "data": {
                "entity_type": request.entity_type,
                "entity_id": request.entity_id,
                "quote_id": metadata.quote_id,
                "requestor_id": request.requestor_id,
                "discount_percentage": str(metadata.discount_percentage),
            },
        }

    async def submit_for_approval(self, request: ApprovalRequest) -> ApprovalResult:
        """Route an approval request to the members of the required role."""
        if not request.required_role_id:
            return ApprovalResult(success=False, reason="No approver role specified for this request.")
        metadata = request.metadata
        if metadata is None or not metadata.quote_id:
            return ApprovalResult(success=False, reason="Missing metadata for approval notification.")
        if not self.is_configured:
            logger.debug("Approval service not configured — request for %s not delivered", request.entity_id)
            return ApprovalResult(success=False, reason="Approval service not configured.")

        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/approval-requests",
                    json=self._build_payload(request, metadata),
                    headers=headers,
                )
                response.raise_for_status()

        except httpx.TimeoutException:
            logger.warning("Approval service timeout for %s %s", request.entity_type, request.entity_id)
            return ApprovalResult(success=False, reason="Approval service timed out.")

        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Approval service HTTP error %s for %s %s",
                exc.response.status_code,
                request.entity_type,
                request.entity_id,
            )
            return ApprovalResult(success=False, reason=f"Approval service returned HTTP {exc.response.status_code}.")

        except httpx.HTTPError as exc:
            logger.warning("Approval service unreachable for %s %s: %s", request.entity_type, request.entity_id, exc)
            return ApprovalResult(success=False, reason="Approval service unreachable.")

        logger.info(
            "Approval requested from role %s for %s %s",
            request.required_role_id,
            request.entity_type,
            request.entity_id,
        )
        return ApprovalResult(success=True)

