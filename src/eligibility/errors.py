"""Exceptions raised inside the eligibility engine."""

from __future__ import annotations


class EligibilityError(Exception):
    """Base class for all engine errors."""


class UnknownTargetError(EligibilityError):
    """The target type/code pair is not one of the known accounts or services."""

    def __init__(self, target_type: str, target_code: str) -> None:
        super().__init__(f"Unknown target {target_type}:{target_code}")
        self.target_type = target_type
        self.target_code = target_code


class FactLookupError(EligibilityError):
    """A fact needed by a condition is missing from the snapshot."""


class ConditionConfigError(EligibilityError):
    """A condition payload cannot be interpreted (bad shape, currency mismatch, ...)."""


class ActivationError(EligibilityError):
    """The activation collaborator refused or could not be reached."""


class ActivationFailedError(ActivationError):
    """Raised to callers that required synchronous activation."""

    def __init__(self, customer_id: int, target_code: str, reason: str) -> None:
        super().__init__(f"Activation of {target_code} for customer {customer_id} failed: {reason}")
        self.customer_id = customer_id
        self.target_code = target_code
        self.reason = reason
