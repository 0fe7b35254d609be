"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store the `.value`.
"""

from __future__ import annotations

from enum import Enum


class TargetType(str, Enum):
    """What a customer can become eligible for."""

    ACCOUNT = "ACCOUNT"  # S01–S06
    SERVICE = "SERVICE"  # credit products


class ConditionType(str, Enum):
    """Category label of a condition spec."""

    ACTIVATION = "ACTIVATION"
    ELIGIBILITY = "ELIGIBILITY"
    REQUIREMENT = "REQUIREMENT"
    AMOUNT_RANGE = "AMOUNT_RANGE"
    DURATION = "DURATION"
    INTEREST = "INTEREST"
    FEES = "FEES"


class ConditionOperator(str, Enum):
    """Closed operator set understood by the condition evaluator."""

    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    GREATER_THAN_OR_EQUAL = "GREATER_THAN_OR_EQUAL"
    LESS_THAN = "LESS_THAN"
    LESS_THAN_OR_EQUAL = "LESS_THAN_OR_EQUAL"
    IN = "IN"
    NOT_IN = "NOT_IN"
    BETWEEN = "BETWEEN"
    CONTAINS = "CONTAINS"


class TriggerEvent(str, Enum):
    """Why an evaluation ran — recorded on every evaluation log row."""

    DEPOSIT = "DEPOSIT"
    DAILY_CHECK = "DAILY_CHECK"
    MANUAL = "MANUAL"
    REGISTRATION = "REGISTRATION"
    CUSTOMER_REQUEST = "CUSTOMER_REQUEST"


class ActionTaken(str, Enum):
    """Side effect produced by one evaluation."""

    ACTIVATED = "ACTIVATED"
    NOTIFIED = "NOTIFIED"
    NONE = "NONE"


class Transition(str, Enum):
    """Eligibility change between the stored row and the fresh score."""

    BECAME_ELIGIBLE = "became_eligible"
    STAYED_ELIGIBLE = "stayed_eligible"
    LOST_ELIGIBILITY = "lost_eligibility"
    STAYED_INELIGIBLE = "stayed_ineligible"


class LifecycleState(str, Enum):
    """Per-(customer, target) state machine. ACTIVATED is terminal here."""

    NOT_EVALUATED = "not_evaluated"
    INELIGIBLE = "ineligible"
    ELIGIBLE = "eligible"
    ACTIVATED = "activated"


class NotificationType(str, Enum):
    """Smart notification categories shown in the customer feed."""

    CELEBRATION = "CELEBRATION"
    PROGRESS = "PROGRESS"
    MOTIVATION = "MOTIVATION"
    ALERT = "ALERT"
    REMINDER = "REMINDER"
    SYSTEM = "SYSTEM"


class NotificationPriority(str, Enum):
    """Feed ordering priority, lowest first."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"
