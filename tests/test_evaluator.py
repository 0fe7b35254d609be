"""Tests for the condition evaluator — families, operators, failure isolation."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from src.eligibility.errors import ConditionConfigError
from src.eligibility.evaluator import (
    ConditionEvaluator,
    Resolved,
    compare,
    resolver_for,
)
from src.models.condition import ConditionSpec
from src.models.enums import ConditionOperator
from src.schemas.eligibility import FactSnapshot, Money


def make_spec(
    key: str,
    payload: dict[str, Any],
    operator: ConditionOperator = ConditionOperator.GREATER_THAN_OR_EQUAL,
    condition_type: str = "ELIGIBILITY",
    weight: int = 25,
    mandatory: bool = True,
    target_code: str = "BOMBE",
) -> ConditionSpec:
    return ConditionSpec(
        target_type="SERVICE",
        target_code=target_code,
        condition_type=condition_type,
        condition_key=key,
        condition_label=key.replace("_", " "),
        operator=operator.value,
        required_value=payload,
        weight=weight,
        is_mandatory=mandatory,
        is_active=True,
        display_order=0,
        version=1,
    )


def make_facts(**overrides: Any) -> FactSnapshot:
    data: dict[str, Any] = {
        "customer_id": 42,
        "balances": {"S02": {"USD": Decimal("40")}, "S01": {"CDF": Decimal("120000")}},
        "deposit_streak_days": {"S02": 20},
        "deposit_history_months": {"S02": 2},
        "kyc_status": "KYC2_VERIFIED",
        "credit_score": 72,
        "defaults_count": 0,
        "group_size": 8,
        "requested_amount": Money(amount=Decimal("100"), currency="USD"),
        "flags": {"not_in_prison": True, "first_deposit": False},
        "attributes": {"sponsor_category": "GOLD"},
    }
    data.update(overrides)
    return FactSnapshot(**data)


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


class TestBalanceFamily:
    def test_percentage_of_requested_amount_met(self, evaluator):
        """50% of 100 USD requested → needs 50, has 40 → unmet by 10."""
        spec = make_spec("s02_min_balance", {"percentage": 50, "of": "requested_amount", "account": "S02"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is False
        assert outcome.current_value == Decimal("40")
        assert outcome.distance == Decimal("10")
        assert outcome.days_remaining is None

    def test_percentage_met_when_balance_covers_share(self, evaluator):
        spec = make_spec("s02_min_balance", {"percentage": 30, "account": "S02"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is True
        assert outcome.distance == Decimal("0")

    def test_fixed_amount(self, evaluator):
        spec = make_spec("s01_balance", {"amount": 100000, "currency": "CDF"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is True

    def test_cross_currency_is_config_error_and_unmet(self, evaluator):
        """Balance held only in USD, condition stated in CDF → unmet with error."""
        spec = make_spec("s02_cdf_balance", {"amount": 5000, "currency": "CDF", "account": "S02"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is False
        assert outcome.error is not None
        assert "CDF" in outcome.error

    def test_requested_amount_in_other_currency_is_unmet(self, evaluator):
        spec = make_spec("s02_min_balance", {"percentage": 30, "account": "S02"})
        facts = make_facts(requested_amount=Money(amount=Decimal("100000"), currency="CDF"))
        outcome = evaluator.evaluate(spec, facts)
        assert outcome.met is False
        assert outcome.error is not None

    def test_sponsor_balance_reads_sponsor_account(self, evaluator):
        spec = make_spec("sponsor_s02_balance", {"percentage": 40, "account": "S02", "role": "sponsor"})
        facts = make_facts(balances={"SPONSOR:S02": {"USD": Decimal("45")}})
        outcome = evaluator.evaluate(spec, facts)
        assert outcome.met is True


class TestTimeFamilies:
    def test_deposit_days_reports_days_remaining(self, evaluator):
        spec = make_spec("deposit_days", {"days": 26, "account": "S02"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is False
        assert outcome.distance == Decimal("6")
        assert outcome.days_remaining == 6

    def test_deposit_days_met_has_zero_remaining(self, evaluator):
        spec = make_spec("deposit_days", {"days": 10, "account": "S02"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is True
        assert outcome.days_remaining == 0

    def test_history_months_convert_at_thirty_days(self, evaluator):
        spec = make_spec("s02_history", {"months": 3, "account": "S02"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is False
        assert outcome.days_remaining == 30


class TestOtherFamilies:
    def test_no_default(self, evaluator):
        spec = make_spec("no_default", {"count": 0}, ConditionOperator.LESS_THAN_OR_EQUAL)
        assert evaluator.evaluate(spec, make_facts()).met is True
        assert evaluator.evaluate(spec, make_facts(defaults_count=2)).met is False

    def test_credit_score(self, evaluator):
        spec = make_spec("credit_score", {"score": 70})
        outcome = evaluator.evaluate(spec, make_facts(credit_score=65))
        assert outcome.met is False
        assert outcome.distance == Decimal("5")
        assert outcome.days_remaining is None

    def test_kyc_values(self, evaluator):
        spec = make_spec("kyc_level", {"values": ["KYC2_VERIFIED", "KYC2_UNDER_REVIEW"]}, ConditionOperator.IN)
        assert evaluator.evaluate(spec, make_facts()).met is True
        outcome = evaluator.evaluate(spec, make_facts(kyc_status="KYC1_COMPLETED"))
        assert outcome.met is False
        assert outcome.distance is None

    def test_kyc_min_level_accepts_higher_tiers(self, evaluator):
        spec = make_spec("kyc_level", {"min_level": "KYC1_COMPLETED"}, ConditionOperator.IN)
        assert evaluator.evaluate(spec, make_facts()).met is True
        assert evaluator.evaluate(spec, make_facts(kyc_status="KYC1_PENDING")).met is False

    def test_sponsor_category(self, evaluator):
        spec = make_spec("sponsor_category", {"category": "GOLD", "role": "sponsor"}, ConditionOperator.EQUALS)
        assert evaluator.evaluate(spec, make_facts()).met is True
        assert evaluator.evaluate(spec, make_facts(attributes={"sponsor_category": "SILVER"})).met is False

    def test_group_membership_between(self, evaluator):
        spec = make_spec("group_membership", {"min_members": 5, "max_members": 20}, ConditionOperator.BETWEEN)
        assert evaluator.evaluate(spec, make_facts()).met is True
        outcome = evaluator.evaluate(spec, make_facts(group_size=3))
        assert outcome.met is False
        assert outcome.distance == Decimal("2")

    def test_flag(self, evaluator):
        spec = make_spec("not_in_prison", {"in_virtual_prison": False}, ConditionOperator.EQUALS)
        assert evaluator.evaluate(spec, make_facts()).met is True
        assert evaluator.evaluate(spec, make_facts(flags={"not_in_prison": False})).met is False

    def test_terms_are_informational_and_met(self, evaluator):
        spec = make_spec("fees", {"tiers": [{"min": 10, "max": 20, "fee": 2}]}, condition_type="FEES", weight=0)
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is True
        assert outcome.current_value == "N/A"

    def test_caution_requirement_with_destination_is_terms(self, evaluator):
        spec = make_spec(
            "caution_s03",
            {"percentage": 30, "destination": "S03", "status": "blocked"},
            condition_type="REQUIREMENT",
            weight=0,
        )
        assert evaluator.evaluate(spec, make_facts()).met is True

    def test_unknown_key_falls_back_to_attribute(self, evaluator):
        spec = make_spec("business_sector", {"values": ["AGRI", "COMMERCE"]}, ConditionOperator.IN)
        outcome = evaluator.evaluate(spec, make_facts(attributes={"business_sector": "AGRI"}))
        assert outcome.met is True


class TestAmountRange:
    def test_scenario_c_between_above_max(self, evaluator):
        """BETWEEN {min 10, max 100}, current 150 → unmet, distance 50."""
        spec = make_spec(
            "amount_range",
            {"min": 10, "max": 100, "currency": "USD"},
            ConditionOperator.BETWEEN,
            condition_type="AMOUNT_RANGE",
        )
        facts = make_facts(requested_amount=Money(amount=Decimal("150"), currency="USD"))
        outcome = evaluator.evaluate(spec, facts)
        assert outcome.met is False
        assert outcome.distance == Decimal("50")

    def test_between_below_min(self, evaluator):
        spec = make_spec("amount_range", {"min": 10, "max": 100}, ConditionOperator.BETWEEN)
        facts = make_facts(requested_amount=Money(amount=Decimal("4"), currency="USD"))
        assert evaluator.evaluate(spec, facts).distance == Decimal("6")

    def test_between_inside_range(self, evaluator):
        spec = make_spec("amount_range", {"min": 10, "max": 100}, ConditionOperator.BETWEEN)
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is True
        assert outcome.distance == Decimal("0")


class TestFailureIsolation:
    def test_missing_fact_is_unmet_with_error(self, evaluator, caplog):
        spec = make_spec("credit_score", {"score": 70})
        outcome = evaluator.evaluate(spec, make_facts(credit_score=None))
        assert outcome.met is False
        assert outcome.error == "credit score not reported"
        assert "credit_score" in caplog.text

    def test_malformed_payload_is_unmet(self, evaluator):
        spec = make_spec("credit_score", {"score": "seventy"})
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is False
        assert outcome.error is not None

    def test_unknown_operator_is_unmet(self, evaluator):
        spec = make_spec("credit_score", {"score": 70})
        spec.operator = "MATCHES_REGEX"
        outcome = evaluator.evaluate(spec, make_facts())
        assert outcome.met is False
        assert outcome.error is not None

    def test_one_failure_does_not_abort_others(self, evaluator):
        specs = [
            make_spec("credit_score", {"score": 70}),
            make_spec("deposit_days", {"days": 10, "account": "S02"}),
        ]
        outcomes = evaluator.evaluate_all(specs, make_facts(credit_score=None))
        assert [o.met for o in outcomes] == [False, True]
        assert outcomes[0].error is not None
        assert outcomes[1].error is None

    def test_nan_fact_is_unmet_not_raised(self, evaluator):
        specs = [
            make_spec("monthly_income", {"min": 100, "max": 500}, ConditionOperator.BETWEEN),
            make_spec("credit_score", {"score": 70}),
        ]
        facts = make_facts(attributes={"monthly_income": Decimal("NaN")})
        outcomes = evaluator.evaluate_all(specs, facts)
        assert [o.met for o in outcomes] == [False, True]
        assert "not a finite number" in outcomes[0].error

    def test_infinite_payload_operand_is_unmet(self, evaluator):
        spec = make_spec("monthly_income", {"value": "Infinity"})
        outcome = evaluator.evaluate(spec, make_facts(attributes={"monthly_income": 300}))
        assert outcome.met is False
        assert outcome.error is not None


class TestCompare:
    def test_greater_than_equal_is_unmet_with_zero_gap(self):
        result = compare(ConditionOperator.GREATER_THAN, Resolved(current=5, operand=Decimal("5")))
        assert result.met is False
        assert result.distance == Decimal("0")

    def test_less_than_distance_is_excess(self):
        result = compare(ConditionOperator.LESS_THAN, Resolved(current=12, operand=Decimal("10")))
        assert result.met is False
        assert result.distance == Decimal("2")

    def test_equals_on_strings(self):
        assert compare(ConditionOperator.EQUALS, Resolved(current="GOLD", operand="GOLD")).met is True
        assert compare(ConditionOperator.NOT_EQUALS, Resolved(current="GOLD", operand="GOLD")).met is False

    def test_not_in(self):
        result = compare(ConditionOperator.NOT_IN, Resolved(current="BLOCKED", values=["ACTIVE"]))
        assert result.met is True

    def test_contains_on_string_and_list(self):
        assert compare(ConditionOperator.CONTAINS, Resolved(current="agri-coop", operand="agri")).met is True
        assert compare(ConditionOperator.CONTAINS, Resolved(current=["DAILY", "WEEKLY"], operand="MONTHLY")).met is False

    def test_between_without_bounds_is_config_error(self):
        with pytest.raises(ConditionConfigError):
            compare(ConditionOperator.BETWEEN, Resolved(current=5))

    def test_nan_current_value_is_config_error(self):
        with pytest.raises(ConditionConfigError):
            compare(ConditionOperator.LESS_THAN, Resolved(current=Decimal("NaN"), operand=Decimal("10")))


class TestResolverRouting:
    def test_balance_suffix(self):
        spec = make_spec("s05_balance", {"amount": 1})
        assert resolver_for(spec).__name__ == "_resolve_balance"

    def test_amount_range_by_type(self):
        spec = make_spec("credit_amount", {"min": 1, "max": 2}, condition_type="AMOUNT_RANGE")
        assert resolver_for(spec).__name__ == "_resolve_amount"
