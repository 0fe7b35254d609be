"""Notification model — smart customer notifications (celebration, progress, ...).

Owned by the notification dispatcher, read by the customer feed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin
from src.models.enums import NotificationPriority


class Notification(TimestampMixin, Base):
    """A single feed item for one customer."""

    __tablename__ = "customer_notifications"

    customer_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Classification
    notification_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=NotificationPriority.MEDIUM.value)

    # Content
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_label: Mapped[str | None] = mapped_column(Text)
    action_url: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String(50))

    # Related target (optional)
    target_type: Mapped[str | None] = mapped_column(String(20))
    target_code: Mapped[str | None] = mapped_column(String(20))

    # Display settings
    display_duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    is_repeatable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    repeat_interval_hours: Mapped[int | None] = mapped_column(Integer)

    # Status flags
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    is_dismissed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_action_taken: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dismissed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    action_taken_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Scheduling and display throttling
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_shown_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    shown_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # "metadata" is reserved on declarative classes
    extra: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB)

    def __repr__(self) -> str:
        return f"<Notification {self.notification_type} customer={self.customer_id} target={self.target_code}>"
