"""API schemas for the customer notification feed."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NotificationView(BaseModel):
    """One feed item as served to the customer dashboard."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    notification_type: str
    priority: str
    title: str
    message: str
    action_label: str | None = None
    action_url: str | None = None
    icon: str | None = None
    target_type: str | None = None
    target_code: str | None = None
    display_duration_seconds: int
    is_read: bool
    is_action_taken: bool
    shown_count: int
    created_at: datetime | None = None
    extra: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("extra", "metadata"),
        serialization_alias="metadata",
    )


class NotificationFeedResponse(BaseModel):
    """Active notifications plus per-type counts."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    notifications: list[NotificationView] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)
