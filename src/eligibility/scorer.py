"""Eligibility scorer — folds condition outcomes into one decision per target.

Rules:
- eligible iff every mandatory condition is met (optional ones never block)
- score = 100 · Σ(weight · met) / Σ weight, rounded half-up to 2 decimals
- Σ weight == 0: 100 for an empty condition set, 0 otherwise
- progress = score while ineligible, pinned to 100 once eligible
- estimated days = max days_remaining over unmet mandatory conditions, or
  None as soon as one of them is not time-denominated
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from src.schemas.eligibility import ConditionOutcome, ScoreResult

HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")


def compute_score(outcomes: list[ConditionOutcome]) -> Decimal:
    """Weighted share of met conditions, 0–100, two decimals."""
    total = sum(o.weight for o in outcomes)
    if total == 0:
        return HUNDRED.quantize(TWO_PLACES) if not outcomes else Decimal("0.00")
    met = sum(o.weight for o in outcomes if o.met)
    return (HUNDRED * Decimal(met) / Decimal(total)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def estimate_days(unmet_mandatory: list[ConditionOutcome]) -> int | None:
    """Days until the slowest time-bound mandatory condition is met."""
    if not unmet_mandatory:
        return None
    days: list[int] = []
    for outcome in unmet_mandatory:
        if outcome.days_remaining is None:
            return None
        days.append(outcome.days_remaining)
    return max(days)


class EligibilityScorer:
    """Stateless; one call per (customer, target) evaluation."""

    def score(self, outcomes: list[ConditionOutcome]) -> ScoreResult:
        met = [o for o in outcomes if o.met]
        missing = [o for o in outcomes if not o.met]
        unmet_mandatory = [o for o in missing if o.is_mandatory]

        is_eligible = not unmet_mandatory
        score = compute_score(outcomes)

        return ScoreResult(
            is_eligible=is_eligible,
            score=score,
            progress=HUNDRED.quantize(TWO_PLACES) if is_eligible else score,
            estimated_days=None if is_eligible else estimate_days(unmet_mandatory),
            conditions_met=met,
            conditions_missing=missing,
        )


# Module-level singleton
eligibility_scorer = EligibilityScorer()
