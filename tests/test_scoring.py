"""Tests for ICR/LVR scoring and outcome banding."""

import pytest

from referral_pipeline.config import StaticInterestRate
from referral_pipeline.scoring import (
    BANDING_RULES,
    OutcomeLevel,
    ScoreCalculator,
    ScoreInputs,
    calculate_icr,
    calculate_lvr,
    compute_score,
    determine_outcome,
    normalize_answer,
)

ALL_NO = {
    "existing_liabilities": "no",
    "additional_security": "no",
    "smsf_structure": "no",
    "ato_liabilities": "no",
    "credit_issues": "no",
}


def _inputs(**overrides) -> ScoreInputs:
    return ScoreInputs.from_source(overrides)


class TestNormalizeAnswer:
    """Tests for yes/no answer normalisation."""

    @pytest.mark.parametrize("value", ["yes", "YES", " Yes ", 1, True, "true", "1"])
    def test_yes_values(self, value) -> None:
        assert normalize_answer(value) == "yes"

    @pytest.mark.parametrize("value", ["no", "No", 0, False, "false", "0"])
    def test_no_values(self, value) -> None:
        assert normalize_answer(value) == "no"

    @pytest.mark.parametrize("value", [None, "", "maybe", 2, "n/a"])
    def test_unanswered_values(self, value) -> None:
        assert normalize_answer(value) is None


class TestScoreInputs:
    """Tests for building score inputs."""

    def test_missing_amounts_default_to_zero(self) -> None:
        inputs = _inputs(loan_amount=100000)
        assert inputs.property_value == 0.0
        assert inputs.net_profit == 0.0

    def test_currency_strings_are_parsed(self) -> None:
        inputs = _inputs(loan_amount="$500,000", property_value="1,000,000")
        assert inputs.loan_amount == 500000.0
        assert inputs.property_value == 1000000.0

    def test_invalid_amounts_count_as_zero(self) -> None:
        inputs = _inputs(loan_amount="abc", property_value=float("nan"))
        assert inputs.loan_amount == 0.0
        assert inputs.property_value == 0.0

    def test_answer_counts(self) -> None:
        inputs = _inputs(existing_liabilities="yes", smsf_structure="No", credit_issues="no")
        assert inputs.yes_count == 1
        assert inputs.no_count == 2


class TestRatios:
    """Tests for LVR and ICR arithmetic."""

    def test_lvr_percentage(self) -> None:
        assert calculate_lvr(500000, 1000000) == pytest.approx(50.0)

    def test_lvr_zero_without_property_value(self) -> None:
        assert calculate_lvr(500000, 0) == 0.0

    def test_icr_formula(self) -> None:
        inputs = _inputs(
            loan_amount=500000,
            net_profit=60000,
            amortisation=5000,
            depreciation=5000,
            existing_interest_costs=10000,
            rental_expense=2000,
            proposed_rental_income=3000,
        )
        # income 85000, interest 10000 + 42500
        assert calculate_icr(inputs, 8.5) == pytest.approx(85000 / 52500)

    def test_icr_zero_without_interest(self) -> None:
        inputs = _inputs(net_profit=80000)
        assert calculate_icr(inputs, 8.5) == 0.0

    def test_icr_zero_without_positive_income(self) -> None:
        inputs = _inputs(loan_amount=500000, net_profit=-100000)
        assert calculate_icr(inputs, 8.5) == 0.0

    def test_icr_clamped_when_losses_outweigh_income(self) -> None:
        inputs = _inputs(loan_amount=500000, net_profit=-100000, depreciation=5000)
        assert calculate_icr(inputs, 8.5) == 0.0

    def test_partial_loss_still_reduces_icr(self) -> None:
        inputs = _inputs(loan_amount=500000, net_profit=-5000, depreciation=47500)
        assert calculate_icr(inputs, 8.5) == pytest.approx(42500 / 42500)

    @pytest.mark.parametrize(
        "values",
        [
            {},
            {"loan_amount": 1, "property_value": 1},
            {"loan_amount": 2500000, "property_value": 100, "net_profit": 1},
            {"existing_interest_costs": 5000},
            {"loan_amount": 500000, "property_value": 1000000, "net_profit": -100000},
            {"loan_amount": 500000, "net_profit": -100000, "depreciation": 5000},
        ],
    )
    def test_ratios_are_never_negative(self, values) -> None:
        score = compute_score(_inputs(**values), 8.5)
        assert score.icr >= 0
        assert score.lvr >= 0


class TestBanding:
    """Tests for the ordered banding rule chain."""

    def test_rule_order(self) -> None:
        names = [name for name, _, _ in BANDING_RULES]
        assert names.index("any yes answer") > names.index("some no answers, no yes answers")
        assert names[-1] == "icr below floor"

    @pytest.mark.parametrize(
        "icr,lvr,expected",
        [
            (2.0, 65.0, OutcomeLevel.GREEN),
            (2.5, 65.01, OutcomeLevel.YELLOW),
            (3.0, 95.0, OutcomeLevel.YELLOW),
            (1.8, 80.0, OutcomeLevel.YELLOW),
            (1.8, 80.5, OutcomeLevel.RED),
        ],
    )
    def test_base_banding(self, icr, lvr, expected) -> None:
        assert determine_outcome(icr, lvr, yes_count=0, no_count=0) == expected

    def test_yes_answer_downgrades_green(self) -> None:
        assert determine_outcome(2.5, 50.0, yes_count=1, no_count=4) == OutcomeLevel.YELLOW

    def test_all_no_answers_force_green(self) -> None:
        assert determine_outcome(1.8, 90.0, yes_count=0, no_count=5) == OutcomeLevel.GREEN

    def test_some_no_answers_force_green(self) -> None:
        assert determine_outcome(1.8, 90.0, yes_count=0, no_count=2) == OutcomeLevel.GREEN

    def test_yes_answer_upgrades_red_to_yellow(self) -> None:
        assert determine_outcome(1.8, 90.0, yes_count=1, no_count=0) == OutcomeLevel.YELLOW

    def test_low_icr_overrides_all_no_answers(self) -> None:
        assert determine_outcome(1.2, 50.0, yes_count=0, no_count=5) == OutcomeLevel.RED

    def test_low_icr_overrides_yes_answer(self) -> None:
        assert determine_outcome(1.2, 50.0, yes_count=2, no_count=3) == OutcomeLevel.RED

    def test_zero_icr_is_not_forced_red(self) -> None:
        assert determine_outcome(0.0, 50.0, yes_count=0, no_count=0) == OutcomeLevel.YELLOW


class TestScenarios:
    """End-to-end scoring scenarios at 8.5%."""

    def test_scenario_a_all_no_is_green(self) -> None:
        score = compute_score(
            _inputs(loan_amount=500000, property_value=1000000, net_profit=80000, **ALL_NO),
            8.5,
        )
        assert score.lvr == pytest.approx(50.0)
        assert score.icr == pytest.approx(80000 / 42500)
        assert score.outcome_level == OutcomeLevel.GREEN

    def test_scenario_b_one_yes_is_yellow(self) -> None:
        answers = {**ALL_NO, "credit_issues": "yes"}
        score = compute_score(
            _inputs(loan_amount=500000, property_value=1000000, net_profit=80000, **answers),
            8.5,
        )
        assert score.outcome_level == OutcomeLevel.YELLOW

    def test_scenario_c_high_lvr_strong_icr_is_yellow(self) -> None:
        score = compute_score(
            _inputs(loan_amount=900000, property_value=1000000, net_profit=191250),
            8.5,
        )
        assert score.lvr == pytest.approx(90.0)
        assert score.icr == pytest.approx(2.5)
        assert score.outcome_level == OutcomeLevel.YELLOW

    @pytest.mark.parametrize("credit_issues", ["no", "yes", None])
    def test_scenario_d_icr_of_one_is_red(self, credit_issues) -> None:
        answers = {**ALL_NO, "credit_issues": credit_issues}
        score = compute_score(
            _inputs(loan_amount=500000, property_value=600000, net_profit=42500, **answers),
            8.5,
        )
        assert score.icr == pytest.approx(1.0)
        assert score.outcome_level == OutcomeLevel.RED

    def test_compute_is_idempotent(self) -> None:
        inputs = _inputs(loan_amount=750000, property_value=900000, net_profit=120000)
        assert compute_score(inputs, 8.5) == compute_score(inputs, 8.5)


class TestScoreCalculator:
    """Tests for the config-backed calculator."""

    def test_uses_configured_rate(self) -> None:
        calculator = ScoreCalculator(StaticInterestRate(10.0))
        score = calculator.compute(_inputs(loan_amount=100000, net_profit=20000))
        assert score.icr == pytest.approx(2.0)

    def test_outcome_level_labels(self) -> None:
        assert OutcomeLevel.GREEN.label == "green"
        assert int(OutcomeLevel.RED) == 3
        assert "Submit now" in OutcomeLevel.YELLOW.message
