"""SystemEvent schema — the event type that flows through the event bus.

Evaluations, activations, notification side effects and batch jobs emit
SystemEvents. Subscribers (the audit logger first of all) consume them
asynchronously.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Evaluation
    ELIGIBILITY_GAINED = "eligibility.gained"
    ELIGIBILITY_LOST = "eligibility.lost"

    # Activation
    TARGET_ACTIVATED = "activation.succeeded"
    ACTIVATION_FAILED = "activation.failed"

    # Notifications
    NOTIFICATION_CREATED = "notification.created"
    NOTIFICATION_DISMISSED = "notification.dismissed"

    # Collaborators
    EXTERNAL_API_CALL = "integration.api_call"
    EXTERNAL_API_RESPONSE = "integration.api_response"

    # Batch
    BATCH_STARTED = "batch.started"
    BATCH_COMPLETED = "batch.completed"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"
    SYSTEM_ERROR = "system.error"
    SYSTEM_MAINTENANCE = "system.maintenance"


class SystemEvent(BaseModel):
    """Core event that flows through the engine.

    Immutable once created. Consumed by:
    - audit_on_event → writes to audit_log table
    - any additional subscriber registered at startup
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (optional; batch events have no customer)
    customer_id: int | None = None
    actor_id: str | None = None
    actor_role: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
