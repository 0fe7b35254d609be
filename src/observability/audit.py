"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber. This is where non-fatal failures
(activation deferred, evaluation log not written) become visible to
operators.

Never raises — failures are logged but never propagate to the event system.
"""

from __future__ import annotations

import logging

from src.db.engine import async_session_factory
from src.models.audit import AuditLog
from src.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


async def audit_on_event(event: SystemEvent) -> None:
    """Write a SystemEvent to the audit_log table in its own session."""
    try:
        async with async_session_factory() as db:
            db.add(AuditLog(
                event_type=event.event_type.value,
                customer_id=event.customer_id,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                data={**event.data, "source_module": event.source_module},
            ))
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to persist audit event: %s (customer=%s)",
            event.event_type.value,
            event.customer_id,
        )
