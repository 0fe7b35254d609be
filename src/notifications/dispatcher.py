"""Notification dispatcher — turns eligibility transitions into feed items.

- BECAME_ELIGIBLE → one CELEBRATION. Already at-most-once per transition, so
  it skips the cooldown, but it stamps last_notified_at.
- Progress crossing a milestone upward while ineligible → one PROGRESS, only
  if the cooldown slot on the row can be claimed.
- Progress falling lowers the recorded milestone so a re-crossing is
  announced again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.eligibility.state import EligibilityStateStore, StateChange, state_store
from src.models.eligibility_status import EligibilityStatus
from src.models.enums import TargetType, Transition
from src.models.notification import Notification
from src.notifications.templates import build_celebration, build_progress
from src.observability.events import emit
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


def milestone_for(progress: Decimal, step: int) -> int:
    """Highest milestone (multiple of step) reached by a progress value."""
    return int(progress) // step * step


class NotificationDispatcher:
    """Creates CELEBRATION and PROGRESS notifications inside the evaluation transaction."""

    def __init__(
        self,
        store: EligibilityStateStore | None = None,
        cooldown: timedelta | None = None,
        milestone_step: int | None = None,
    ) -> None:
        self._store = store or state_store
        self._cooldown = cooldown or timedelta(minutes=settings.eligibility.notification_cooldown_minutes)
        self._step = milestone_step or settings.eligibility.progress_milestone_step

    async def on_transition(self, db: AsyncSession, change: StateChange, now: datetime) -> Notification | None:
        if change.transition == Transition.BECAME_ELIGIBLE:
            return await self.celebrate(db, change.status, now)
        if change.transition in (Transition.STAYED_INELIGIBLE, Transition.LOST_ELIGIBILITY):
            return await self.announce_progress(db, change.status, now)
        return None

    async def celebrate(self, db: AsyncSession, status: EligibilityStatus, now: datetime) -> Notification:
        target_type = TargetType(status.target_type)
        notification = build_celebration(status.customer_id, target_type, status.target_code)
        db.add(notification)
        status.last_notified_at = now
        await db.flush()

        logger.info("Celebration for customer %s on %s", status.customer_id, status.target_code)
        await self._emit_created(notification)
        return notification

    async def announce_progress(self, db: AsyncSession, status: EligibilityStatus, now: datetime) -> Notification | None:
        milestone = milestone_for(status.progress_percentage, self._step)

        if milestone < status.last_progress_milestone:
            status.last_progress_milestone = milestone
            return None
        if milestone == 0 or milestone == status.last_progress_milestone:
            return None

        if not await self._store.claim_notification_slot(db, status, self._cooldown, now):
            logger.debug(
                "Progress milestone %s for customer %s on %s held back by cooldown",
                milestone,
                status.customer_id,
                status.target_code,
            )
            return None

        target_type = TargetType(status.target_type)
        notification = build_progress(
            status.customer_id,
            target_type,
            status.target_code,
            status.progress_percentage,
            status.estimated_days_to_eligibility,
            milestone,
        )
        db.add(notification)
        status.last_progress_milestone = milestone
        await db.flush()

        await self._emit_created(notification)
        return notification

    async def _emit_created(self, notification: Notification) -> None:
        await emit(SystemEvent(
            event_type=EventType.NOTIFICATION_CREATED,
            customer_id=notification.customer_id,
            actor_id="system",
            actor_role="system",
            data={
                "notification_id": str(notification.id),
                "notification_type": notification.notification_type,
                "target_code": notification.target_code,
            },
            source_module="notifications.dispatcher",
        ))


# Module-level singleton
notification_dispatcher = NotificationDispatcher()
