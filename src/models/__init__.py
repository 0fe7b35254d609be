"""SQLAlchemy ORM models for the eligibility engine.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from src.models.audit import AuditLog
from src.models.base import Base
from src.models.condition import ConditionSpec
from src.models.eligibility_status import EligibilityStatus
from src.models.enums import (
    ActionTaken,
    ConditionOperator,
    ConditionType,
    LifecycleState,
    NotificationPriority,
    NotificationType,
    TargetType,
    Transition,
    TriggerEvent,
)
from src.models.evaluation_log import EvaluationLog
from src.models.notification import Notification

__all__ = [
    # Base
    "Base",
    # Models
    "ConditionSpec",
    "EligibilityStatus",
    "EvaluationLog",
    "Notification",
    "AuditLog",
    # Enums
    "TargetType",
    "ConditionType",
    "ConditionOperator",
    "TriggerEvent",
    "ActionTaken",
    "Transition",
    "LifecycleState",
    "NotificationType",
    "NotificationPriority",
]
