"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber (receives ALL events). This is the quote
system's immutable audit trail.

Never raises: failures are logged but never propagate to the event system.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from src.db.engine import async_session_factory
from src.models.audit import AuditLog
from src.schemas.events import SystemEvent

logger = logging.getLogger(__name__)

# Bookkeeping fields never worth reporting as a change
_IGNORED_FIELDS = frozenset({"id", "created_date", "updated_date", "created_by"})


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_render(v) for v in value)
    return str(value)


def summarize_changes(entity_type: str, old_values: Mapping[str, Any], new_values: Mapping[str, Any]) -> str:
    """Human-readable list of the fields that differ between two snapshots."""
    if not old_values or not new_values:
        return "No changes summary available."

    changes = []
    for key in dict.fromkeys([*old_values, *new_values]):
        if key in _IGNORED_FIELDS:
            continue
        old, new = old_values.get(key), new_values.get(key)
        if old != new:
            changes.append(f"'{key}' from \"{_render(old)}\" to \"{_render(new)}\"")

    if not changes:
        return f"No significant changes detected for {entity_type}."
    return f"Updated {', '.join(changes)}."


async def audit_on_event(event: SystemEvent) -> None:
    """Write a SystemEvent to the audit_log table.

    Called by the event system for every emitted event.
    Failures are logged and swallowed; audit logging must never
    crash the main application flow.
    """
    data = event.data
    entity_type = data.get("entity_type")
    try:
        async with async_session_factory() as db:
            audit = AuditLog(
                event_type=event.event_type.value,
                action=data.get("action"),
                entity_type=entity_type,
                entity_id=data.get("entity_id") or event.quote_id,
                entity_name=data.get("entity_name"),
                parent_id=data.get("parent_id"),
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                changes_summary=summarize_changes(
                    entity_type or "entity",
                    data.get("old_values") or {},
                    data.get("new_values") or {},
                ),
                data=data,
            )
            db.add(audit)
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to persist audit event: %s (quote=%s)",
            event.event_type.value,
            event.quote_id,
        )
