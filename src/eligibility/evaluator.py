"""Condition evaluator — checks one condition spec against one fact snapshot.

Condition payloads are data, not code: each spec is routed to a family by its
condition_key (falling back to its condition_type), the family resolves the
current value and the operand from the snapshot and the JSON payload, and a
closed set of operators compares them. No stored expression is ever executed.

A failure to resolve one condition (missing fact, malformed payload,
cross-currency comparison) makes that condition unmet with `error` set; it
never aborts the evaluation of the others.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from src.eligibility.errors import ConditionConfigError, FactLookupError
from src.models.condition import ConditionSpec
from src.models.enums import ConditionOperator, ConditionType
from src.schemas.eligibility import ConditionOutcome, FactSnapshot, Money

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30

# KYC tiers, lowest first. `min_level` payloads accept this tier and above.
KYC_LEVELS: list[str] = [
    "KYC1_PENDING",
    "KYC1_COMPLETED",
    "KYC2_PENDING",
    "KYC2_UNDER_REVIEW",
    "KYC2_VERIFIED",
]


@dataclass(frozen=True)
class Resolved:
    """Current value and operands of one condition, ready for comparison."""

    current: Any
    operand: Any = None
    low: Any = None
    high: Any = None
    values: list[Any] | None = None
    unit: str | None = None   # "days" and "months" are time-denominated
    always_met: bool = False


Resolver = Callable[[str, dict[str, Any], FactSnapshot], Resolved]


# ── Payload helpers ──────────────────────────────────────────────────


def _decimal(value: Any, what: str) -> Decimal:
    if isinstance(value, bool):
        raise ConditionConfigError(f"{what} must be numeric, got boolean")
    if isinstance(value, Money):
        number = value.amount
    else:
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ConditionConfigError(f"{what} is not numeric: {value!r}") from exc
    if not number.is_finite():
        raise ConditionConfigError(f"{what} is not a finite number: {value!r}")
    return number


def _first(payload: dict[str, Any], *keys: str) -> Any:
    """Value of the first key present in the payload, else None."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _account_of(key: str, payload: dict[str, Any]) -> str:
    """Account code a condition refers to: explicit `account`, else the key prefix."""
    account = payload.get("account")
    if account:
        return str(account).upper()
    for part in key.split("_"):
        if len(part) == 3 and part[0] == "s" and part[1:].isdigit():
            return part.upper()
    return "S02"


def _is_sponsor(key: str, payload: dict[str, Any]) -> bool:
    return payload.get("role") == "sponsor" or key.startswith("sponsor_")


# ── Families ─────────────────────────────────────────────────────────


def _resolve_balance(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    """Balance of an account in the stated currency vs. an amount or a share of the request."""
    account = _account_of(key, payload)
    if _is_sponsor(key, payload):
        account = f"SPONSOR:{account}"
    currency = str(payload.get("currency") or "USD").upper()

    by_currency = facts.balances.get(account)
    if by_currency is None:
        raise FactLookupError(f"no balance reported for account {account}")
    if currency not in by_currency:
        raise ConditionConfigError(
            f"account {account} holds {sorted(by_currency)} but condition requires {currency}"
        )
    current = by_currency[currency]

    if "percentage" in payload:
        requested = facts.requested_amount
        if requested is None:
            raise FactLookupError("no requested amount to take a percentage of")
        if requested.currency.upper() != currency:
            raise ConditionConfigError(
                f"requested amount is in {requested.currency}, balance condition in {currency}"
            )
        operand = requested.amount * _decimal(payload["percentage"], "percentage") / Decimal(100)
    else:
        raw = _first(payload, "amount", "value", "min_amount", "min")
        if raw is None:
            raise ConditionConfigError("balance condition needs amount or percentage")
        operand = _decimal(raw, "amount")

    return Resolved(current=current, operand=operand, unit="money")


def _resolve_day_count(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    account = _account_of(key, payload)
    if account not in facts.deposit_streak_days:
        raise FactLookupError(f"no deposit streak reported for account {account}")
    raw = _first(payload, "days", "min_days", "value")
    if raw is None:
        raise ConditionConfigError("day-count condition needs days")
    return Resolved(current=facts.deposit_streak_days[account], operand=_decimal(raw, "days"), unit="days")


def _resolve_month_count(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    account = _account_of(key, payload)
    if account not in facts.deposit_history_months:
        raise FactLookupError(f"no deposit history reported for account {account}")
    raw = _first(payload, "months", "min_months", "value")
    if raw is None:
        raise ConditionConfigError("month-count condition needs months")
    return Resolved(current=facts.deposit_history_months[account], operand=_decimal(raw, "months"), unit="months")


def _resolve_default_count(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    current = facts.sponsor_defaults_count if _is_sponsor(key, payload) else facts.defaults_count
    if current is None:
        raise FactLookupError("default count not reported")
    return Resolved(current=current, operand=_decimal(payload.get("count", 0), "count"), unit="count")


def _resolve_score(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    if facts.credit_score is None:
        raise FactLookupError("credit score not reported")
    raw = _first(payload, "score", "min_score", "value")
    if raw is None:
        raise ConditionConfigError("score condition needs score")
    return Resolved(current=facts.credit_score, operand=_decimal(raw, "score"), unit="points")


def _resolve_status(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    if facts.kyc_status is None:
        raise FactLookupError("KYC status not reported")
    values = payload.get("values")
    if values is None and "min_level" in payload:
        min_level = payload["min_level"]
        if min_level not in KYC_LEVELS:
            raise ConditionConfigError(f"unknown KYC level {min_level!r}")
        values = KYC_LEVELS[KYC_LEVELS.index(min_level):]
    if values is None:
        raise ConditionConfigError("status condition needs values or min_level")
    return Resolved(current=facts.kyc_status, operand=payload.get("value"), values=list(values))


def _resolve_category(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    if key not in facts.attributes:
        raise FactLookupError(f"attribute {key} not reported")
    category = _first(payload, "category", "value")
    values = payload.get("values")
    return Resolved(
        current=facts.attributes[key],
        operand=category,
        values=list(values) if values is not None else ([category] if category is not None else None),
    )


def _resolve_group(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    if facts.group_size is None:
        raise FactLookupError("group size not reported")
    low = payload.get("min_members")
    high = payload.get("max_members")
    return Resolved(
        current=facts.group_size,
        operand=_decimal(low, "min_members") if low is not None else None,
        low=_decimal(low, "min_members") if low is not None else None,
        high=_decimal(high, "max_members") if high is not None else None,
        unit="members",
    )


def _resolve_amount(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    requested = facts.requested_amount
    if requested is None:
        raise FactLookupError("no requested amount")
    currency = payload.get("currency")
    if currency and requested.currency.upper() != str(currency).upper():
        raise ConditionConfigError(f"requested amount is in {requested.currency}, range in {currency}")
    low = payload.get("min")
    high = payload.get("max")
    return Resolved(
        current=requested.amount,
        operand=_decimal(low, "min") if low is not None else None,
        low=_decimal(low, "min") if low is not None else None,
        high=_decimal(high, "max") if high is not None else None,
        unit="money",
    )


def _resolve_flag(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    """Boolean facts; keys are phrased positively (`not_in_prison`), expected true."""
    if key not in facts.flags:
        raise FactLookupError(f"flag {key} not reported")
    return Resolved(current=facts.flags[key], operand=bool(payload.get("expected", True)))


def _resolve_terms(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    """Product terms (fees, duration, interest, caution destination) are informational."""
    return Resolved(current="N/A", always_met=True)


def _resolve_attribute(key: str, payload: dict[str, Any], facts: FactSnapshot) -> Resolved:
    if key not in facts.attributes:
        raise FactLookupError(f"attribute {key} not reported")
    values = payload.get("values")
    return Resolved(
        current=facts.attributes[key],
        operand=_first(payload, "value", "min"),
        low=payload.get("min"),
        high=payload.get("max"),
        values=list(values) if values is not None else None,
    )


FAMILY_BY_KEY: dict[str, Resolver] = {
    "s02_min_balance": _resolve_balance,
    "s02_cdf_balance": _resolve_balance,
    "sponsor_s02_balance": _resolve_balance,
    "deposit_days": _resolve_day_count,
    "deposit_duration": _resolve_day_count,
    "s02_history": _resolve_month_count,
    "no_default": _resolve_default_count,
    "sponsor_no_default": _resolve_default_count,
    "credit_score": _resolve_score,
    "kyc_level": _resolve_status,
    "beneficiary_kyc": _resolve_status,
    "sponsor_category": _resolve_category,
    "group_membership": _resolve_group,
    "amount_range": _resolve_amount,
    "not_in_prison": _resolve_flag,
    "first_deposit": _resolve_flag,
    "auto_on_registration": _resolve_flag,
    "agricultural_activity": _resolve_flag,
    "harvest_guarantee": _resolve_flag,
    "s05_configured": _resolve_flag,
    "regular_contribution": _resolve_flag,
    "group_vote": _resolve_flag,
}

TERMS_TYPES = {ConditionType.FEES.value, ConditionType.DURATION.value, ConditionType.INTEREST.value}


def resolver_for(spec: ConditionSpec) -> Resolver:
    """Pick the family of a spec: explicit key, `*_balance` suffix, terms, then attribute."""
    key = spec.condition_key
    if key in FAMILY_BY_KEY:
        return FAMILY_BY_KEY[key]
    if key.endswith("_balance"):
        return _resolve_balance
    payload = spec.required_value or {}
    if spec.condition_type in TERMS_TYPES:
        return _resolve_terms
    if spec.condition_type == ConditionType.REQUIREMENT.value and "destination" in payload:
        return _resolve_terms
    if spec.condition_type == ConditionType.AMOUNT_RANGE.value:
        return _resolve_amount
    return _resolve_attribute


# ── Operators ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Comparison:
    met: bool
    distance: Decimal | None = None


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal, Money)):
        return True
    if isinstance(value, str):
        try:
            Decimal(value)
        except InvalidOperation:
            return False
        return True
    return False


def _require(value: Any, what: str) -> Any:
    if value is None:
        raise ConditionConfigError(f"operator needs {what}")
    return value


def compare(operator: ConditionOperator, resolved: Resolved) -> Comparison:
    """Apply one operator to a resolved condition."""
    current = resolved.current

    if operator == ConditionOperator.BETWEEN:
        low = _decimal(_require(resolved.low, "min"), "min")
        high = _decimal(_require(resolved.high, "max"), "max")
        value = _decimal(current, "current value")
        if value < low:
            return Comparison(False, low - value)
        if value > high:
            return Comparison(False, value - high)
        return Comparison(True, Decimal(0))

    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        values = _require(resolved.values, "values")
        member = current in values
        return Comparison(member if operator == ConditionOperator.IN else not member)

    if operator == ConditionOperator.CONTAINS:
        needle = _require(resolved.operand, "value")
        if isinstance(current, str):
            return Comparison(str(needle) in current)
        if isinstance(current, (list, tuple, set)):
            return Comparison(needle in current)
        raise ConditionConfigError(f"CONTAINS on non-container {type(current).__name__}")

    operand = _require(resolved.operand, "value")

    if operator in (ConditionOperator.EQUALS, ConditionOperator.NOT_EQUALS):
        if _is_numeric(current) and _is_numeric(operand):
            value = _decimal(current, "current value")
            target = _decimal(operand, "value")
            equal = value == target
            if operator == ConditionOperator.EQUALS:
                return Comparison(equal, Decimal(0) if equal else abs(value - target))
            return Comparison(not equal)
        equal = current == operand
        return Comparison(equal if operator == ConditionOperator.EQUALS else not equal)

    value = _decimal(current, "current value")
    target = _decimal(operand, "value")
    if operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
        met = value >= target
    elif operator == ConditionOperator.GREATER_THAN:
        met = value > target
    elif operator == ConditionOperator.LESS_THAN_OR_EQUAL:
        met = value <= target
    elif operator == ConditionOperator.LESS_THAN:
        met = value < target
    else:
        raise ConditionConfigError(f"unsupported operator {operator}")

    if met:
        return Comparison(True, Decimal(0))
    gap = target - value if operator in (
        ConditionOperator.GREATER_THAN_OR_EQUAL, ConditionOperator.GREATER_THAN
    ) else value - target
    return Comparison(False, gap)


def _days_remaining(unit: str | None, comparison: Comparison) -> int | None:
    if unit not in ("days", "months"):
        return None
    if comparison.met:
        return 0
    if comparison.distance is None:
        return None
    days = comparison.distance * DAYS_PER_MONTH if unit == "months" else comparison.distance
    return max(math.ceil(days), 0)


# ── Evaluator ────────────────────────────────────────────────────────


class ConditionEvaluator:
    """Stateless evaluator of condition specs against fact snapshots."""

    def evaluate(self, spec: ConditionSpec, facts: FactSnapshot) -> ConditionOutcome:
        payload = spec.required_value or {}
        base = {
            "condition_id": str(spec.id) if spec.id is not None else None,
            "key": spec.condition_key,
            "label": spec.condition_label,
            "required_value": payload,
            "weight": spec.weight,
            "is_mandatory": spec.is_mandatory,
        }

        try:
            if not isinstance(payload, dict):
                raise ConditionConfigError("payload must be a JSON object")
            resolved = resolver_for(spec)(spec.condition_key, payload, facts)
            if resolved.always_met:
                return ConditionOutcome(met=True, current_value=resolved.current, **base)
            operator = ConditionOperator(spec.operator)
            comparison = compare(operator, resolved)
        except (FactLookupError, ConditionConfigError, ValueError, ArithmeticError) as exc:
            logger.warning(
                "Condition %s.%s unresolved for customer %s: %s",
                spec.target_code,
                spec.condition_key,
                facts.customer_id,
                exc,
            )
            return ConditionOutcome(met=False, error=str(exc), **base)

        return ConditionOutcome(
            met=comparison.met,
            current_value=resolved.current,
            distance=comparison.distance,
            days_remaining=_days_remaining(resolved.unit, comparison),
            **base,
        )

    def evaluate_all(self, specs: list[ConditionSpec], facts: FactSnapshot) -> list[ConditionOutcome]:
        """Evaluate every spec, preserving order."""
        return [self.evaluate(spec, facts) for spec in specs]


# Module-level singleton
condition_evaluator = ConditionEvaluator()
