"""Customer notification feed — list, dismiss, mark read, record action.

Every mutation is scoped to the owning customer and idempotent: repeating it
keeps the first timestamp.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import case, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import NotificationPriority
from src.models.notification import Notification
from src.observability.events import emit
from src.schemas.events import EventType, SystemEvent

_PRIORITY_RANK = case(
    {
        NotificationPriority.URGENT.value: 4,
        NotificationPriority.HIGH.value: 3,
        NotificationPriority.MEDIUM.value: 2,
        NotificationPriority.LOW.value: 1,
    },
    value=Notification.priority,
    else_=0,
)


class NotificationFeed:
    """Read side of customer_notifications plus the customer's own actions."""

    async def list_active(
        self,
        db: AsyncSession,
        customer_id: int,
        now: datetime,
        limit: int = 20,
    ) -> list[Notification]:
        """Not dismissed, not expired, already scheduled; priority then recency.

        Stamps last_shown_at and shown_count on what is returned.
        """
        stmt = (
            select(Notification)
            .where(
                Notification.customer_id == customer_id,
                Notification.is_dismissed.is_(False),
                or_(Notification.expires_at.is_(None), Notification.expires_at >= now),
                or_(Notification.scheduled_for.is_(None), Notification.scheduled_for <= now),
            )
            .order_by(_PRIORITY_RANK.desc(), Notification.created_at.desc())
            .limit(limit)
        )
        notifications = list((await db.execute(stmt)).scalars().all())

        for notification in notifications:
            notification.last_shown_at = now
            notification.shown_count = (notification.shown_count or 0) + 1
        await db.flush()
        return notifications

    async def _owned(self, db: AsyncSession, customer_id: int, notification_id: uuid.UUID) -> Notification | None:
        stmt = select(Notification).where(
            Notification.id == notification_id,
            Notification.customer_id == customer_id,
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def dismiss(
        self, db: AsyncSession, customer_id: int, notification_id: uuid.UUID, now: datetime
    ) -> Notification | None:
        notification = await self._owned(db, customer_id, notification_id)
        if notification is None:
            return None
        if not notification.is_dismissed:
            notification.is_dismissed = True
            notification.dismissed_at = now
            await db.flush()
            await emit(SystemEvent(
                event_type=EventType.NOTIFICATION_DISMISSED,
                customer_id=customer_id,
                actor_id=str(customer_id),
                actor_role="customer",
                data={"notification_id": str(notification_id)},
                source_module="notifications.feed",
            ))
        return notification

    async def mark_read(
        self, db: AsyncSession, customer_id: int, notification_id: uuid.UUID, now: datetime
    ) -> Notification | None:
        notification = await self._owned(db, customer_id, notification_id)
        if notification is None:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now
            await db.flush()
        return notification

    async def record_action(
        self, db: AsyncSession, customer_id: int, notification_id: uuid.UUID, now: datetime
    ) -> Notification | None:
        """The customer followed the call to action; also counts as read."""
        notification = await self._owned(db, customer_id, notification_id)
        if notification is None:
            return None
        if not notification.is_action_taken:
            notification.is_action_taken = True
            notification.action_taken_at = now
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now
        await db.flush()
        return notification

    # ── Maintenance ──────────────────────────────────────────────────

    async def dismiss_expired(self, db: AsyncSession, now: datetime) -> int:
        stmt = (
            update(Notification)
            .where(
                Notification.is_dismissed.is_(False),
                Notification.expires_at.is_not(None),
                Notification.expires_at < now,
            )
            .values(is_dismissed=True, dismissed_at=now)
            .execution_options(synchronize_session=False)
        )
        return (await db.execute(stmt)).rowcount

    async def purge_dismissed(self, db: AsyncSession, before: datetime) -> int:
        stmt = (
            delete(Notification)
            .where(Notification.is_dismissed.is_(True), Notification.dismissed_at < before)
            .execution_options(synchronize_session=False)
        )
        return (await db.execute(stmt)).rowcount

    async def has_recent(self, db: AsyncSession, customer_id: int, notification_type: str, since: datetime) -> bool:
        stmt = (
            select(Notification.id)
            .where(
                Notification.customer_id == customer_id,
                Notification.notification_type == notification_type,
                Notification.created_at >= since,
            )
            .limit(1)
        )
        return (await db.execute(stmt)).first() is not None


# Module-level singleton
notification_feed = NotificationFeed()
