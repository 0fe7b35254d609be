"""Pydantic schemas for the eligibility engine.

Pure data classes — no DB dependencies. Inputs (fact snapshots) and outputs
(condition outcomes, scores, API views) of the evaluation pipeline.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from src.models.enums import TargetType

# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------


class Money(BaseModel):
    """An amount in an explicit currency (USD, CDF)."""

    amount: Decimal
    currency: str


class FactSnapshot(BaseModel):
    """Point-in-time customer facts supplied by the FactProvider.

    Every field is optional: a fact the provider could not compute is simply
    absent, and the condition that needs it evaluates as unmet.
    """

    customer_id: int
    captured_at: datetime | None = None

    # account code → currency → balance, e.g. {"S02": {"USD": Decimal("30")}}
    balances: dict[str, dict[str, Decimal]] = Field(default_factory=dict)
    # account code → consecutive deposit days / months of deposit history
    deposit_streak_days: dict[str, int] = Field(default_factory=dict)
    deposit_history_months: dict[str, int] = Field(default_factory=dict)

    kyc_status: str | None = None
    credit_score: int | None = None
    defaults_count: int | None = None          # payment defaults in the provider's window
    sponsor_defaults_count: int | None = None
    group_size: int | None = None
    requested_amount: Money | None = None

    # condition_key → boolean fact, e.g. {"not_in_prison": True}
    flags: dict[str, bool] = Field(default_factory=dict)
    # anything else a condition may reference by key
    attributes: dict[str, Any] = Field(default_factory=dict)

    last_activity_at: datetime | None = None


# ---------------------------------------------------------------------------
# Evaluation outputs
# ---------------------------------------------------------------------------

# Served as camelCase, constructed with snake_case field names
API_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# 0–100 with two decimals; a JSON number on the wire
Percent = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ConditionOutcome(BaseModel):
    """Result of evaluating one condition spec against one fact snapshot."""

    model_config = ConfigDict(frozen=True)

    condition_id: str | None = None
    key: str
    label: str = ""
    met: bool
    current_value: Any = None
    required_value: Any = None
    weight: int = 0
    is_mandatory: bool = True
    distance: Decimal | None = None
    days_remaining: int | None = None   # only for time-denominated conditions
    error: str | None = None

    def to_record(self) -> dict[str, Any]:
        """JSON-safe camelCase dict as stored in JSONB and served to the API."""
        return {
            "conditionId": self.condition_id,
            "key": self.key,
            "label": self.label,
            "met": self.met,
            "currentValue": _jsonable(self.current_value),
            "requiredValue": _jsonable(self.required_value),
            "weight": self.weight,
            "isMandatory": self.is_mandatory,
            "distance": _jsonable(self.distance),
            "daysRemaining": self.days_remaining,
            "error": self.error,
        }


class ScoreResult(BaseModel):
    """Aggregated eligibility decision for one target."""

    is_eligible: bool
    score: Decimal
    progress: Decimal
    estimated_days: int | None = None
    conditions_met: list[ConditionOutcome] = Field(default_factory=list)
    conditions_missing: list[ConditionOutcome] = Field(default_factory=list)


class EligibilityResult(BaseModel):
    """Outcome of evaluate() for one target, in the shape the API layer serves."""

    model_config = API_CONFIG

    target_type: TargetType
    target_code: str
    is_eligible: bool
    is_activated: bool = False
    score: Percent
    progress: Percent
    conditions_met: list[dict[str, Any]] = Field(default_factory=list)
    conditions_missing: list[dict[str, Any]] = Field(default_factory=list)
    estimated_days: int | None = None
    action_taken: str | None = None


class TargetStatus(BaseModel):
    """Read view of one stored EligibilityStatus row."""

    model_config = API_CONFIG

    target_type: TargetType
    target_code: str
    target_name: str
    is_eligible: bool
    is_activated: bool
    score: Percent
    progress: Percent
    estimated_days: int | None = None
    conditions_met: list[dict[str, Any]] = Field(default_factory=list)
    conditions_missing: list[dict[str, Any]] = Field(default_factory=list)
    last_evaluated_at: datetime | None = None
    eligible_since: datetime | None = None
    activated_at: datetime | None = None


class NextMilestone(BaseModel):
    """The not-yet-eligible target closest to eligibility."""

    model_config = API_CONFIG

    target_type: TargetType
    target_code: str
    progress: Percent
    estimated_days: int | None = None


class StatusSummary(BaseModel):
    """Dashboard counters across all of a customer's targets."""

    model_config = API_CONFIG

    total_accounts: int
    eligible_accounts: int
    activated_accounts: int
    total_services: int
    eligible_services: int
    activated_services: int
    overall_progress: int
    next_milestone: NextMilestone | None = None


class EligibilityOverview(BaseModel):
    """get_status() result: stored statuses split by target type, plus summary."""

    model_config = API_CONFIG

    accounts: list[TargetStatus] = Field(default_factory=list)
    services: list[TargetStatus] = Field(default_factory=list)
    summary: StatusSummary


def _jsonable(value: Any) -> Any:
    """Convert Decimals (and containers of them) into JSON-friendly values."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Money):
        return {"amount": _jsonable(value.amount), "currency": value.currency}
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value
