"""Eligibility engine — data-driven conditions, scoring, activation and audit.

The orchestrator lives in src.eligibility.engine; it is not re-exported here
because the core-banking client imports the error types from this package.
"""

from src.eligibility.errors import (
    ActivationError,
    ActivationFailedError,
    ConditionConfigError,
    EligibilityError,
    FactLookupError,
    UnknownTargetError,
)
from src.eligibility.targets import all_targets, normalize_target, target_name

__all__ = [
    "EligibilityError",
    "UnknownTargetError",
    "FactLookupError",
    "ConditionConfigError",
    "ActivationError",
    "ActivationFailedError",
    "all_targets",
    "normalize_target",
    "target_name",
]
