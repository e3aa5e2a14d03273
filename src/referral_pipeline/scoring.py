"""
Deterministic ICR/LVR scoring and outcome banding.

The outcome band is produced by an ordered chain of (predicate, action)
rules where later rules override earlier ones. The order is load-bearing:
a "yes" risk answer turns green into yellow, and a weak ICR forces red
regardless of anything before it.
"""

import logging
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

GREEN_MIN_ICR = 2.0
GREEN_MAX_LVR = 65.0
YELLOW_MAX_LVR = 80.0
RED_ICR_CEILING = 1.5

FLAG_COUNT = 5

# Opportunity attributes feeding the score; a change to any triggers rescoring
SCORE_INPUT_FIELDS: tuple[str, ...] = (
    "loan_amount",
    "property_value",
    "net_profit",
    "amortisation",
    "depreciation",
    "existing_interest_costs",
    "rental_expense",
    "proposed_rental_income",
    "existing_liabilities",
    "additional_security",
    "smsf_structure",
    "ato_liabilities",
    "credit_issues",
)

RISK_FLAG_FIELDS: tuple[str, ...] = SCORE_INPUT_FIELDS[-FLAG_COUNT:]


class OutcomeLevel(IntEnum):
    """Risk band. Stored as 1/2/3."""

    GREEN = 1
    YELLOW = 2
    RED = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def message(self) -> str:
        """Guidance shown to the referrer for this band."""
        if self == OutcomeLevel.GREEN:
            return "Deal looks good. Submit now!"
        if self == OutcomeLevel.YELLOW:
            return (
                "Deal looks ok, we just need further confirmation. Submit now "
                "and a team member will be in touch to discuss."
            )
        return (
            "Deal does not meet the streamlined process and will require further "
            "assessment. Submit now and a team member will be in touch to discuss."
        )


def normalize_answer(value: Any) -> Optional[str]:
    """
    Normalize a yes/no risk answer.

    Accepts "yes"/"no" in any case, 1/0 and True/False. Anything else is
    treated as unanswered.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float)):
        if value == 1:
            return "yes"
        if value == 0:
            return "no"
        return None
    text = str(value).strip().lower()
    if text in ("yes", "1", "true"):
        return "yes"
    if text in ("no", "0", "false"):
        return "no"
    return None


def _amount(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


@dataclass(frozen=True)
class ScoreInputs:
    """Financial inputs for a score. Missing amounts count as 0."""

    loan_amount: float = 0.0
    property_value: float = 0.0
    net_profit: float = 0.0
    amortisation: float = 0.0
    depreciation: float = 0.0
    existing_interest_costs: float = 0.0
    rental_expense: float = 0.0
    proposed_rental_income: float = 0.0
    existing_liabilities: Optional[str] = None
    additional_security: Optional[str] = None
    smsf_structure: Optional[str] = None
    ato_liabilities: Optional[str] = None
    credit_issues: Optional[str] = None

    @classmethod
    def from_source(cls, source: Any) -> "ScoreInputs":
        """Build inputs from any object (or mapping) exposing the input fields."""
        if isinstance(source, dict):
            get = source.get
        else:
            get = lambda name: getattr(source, name, None)  # noqa: E731
        amounts = {name: _amount(get(name)) for name in SCORE_INPUT_FIELDS[:-FLAG_COUNT]}
        flags = {name: normalize_answer(get(name)) for name in RISK_FLAG_FIELDS}
        return cls(**amounts, **flags)

    @property
    def answers(self) -> list[Optional[str]]:
        return [normalize_answer(getattr(self, name)) for name in RISK_FLAG_FIELDS]

    @property
    def yes_count(self) -> int:
        return sum(1 for a in self.answers if a == "yes")

    @property
    def no_count(self) -> int:
        return sum(1 for a in self.answers if a == "no")


@dataclass(frozen=True)
class ScoreResult:
    """Derived score for an opportunity."""

    icr: float
    lvr: float
    outcome_level: OutcomeLevel


@dataclass
class _BandState:
    icr: float
    lvr: float
    yes_count: int
    no_count: int
    level: Optional[OutcomeLevel] = None


BandRule = tuple[str, Callable[[_BandState], bool], OutcomeLevel]

# Evaluated top to bottom; every matching rule overwrites the level.
BANDING_RULES: list[BandRule] = [
    (
        "strong icr, low lvr",
        lambda s: s.icr >= GREEN_MIN_ICR and s.lvr <= GREEN_MAX_LVR,
        OutcomeLevel.GREEN,
    ),
    (
        "strong icr, high lvr",
        lambda s: s.icr >= GREEN_MIN_ICR and s.lvr > GREEN_MAX_LVR,
        OutcomeLevel.YELLOW,
    ),
    (
        "weak icr, moderate lvr",
        lambda s: s.icr < GREEN_MIN_ICR and s.lvr <= YELLOW_MAX_LVR,
        OutcomeLevel.YELLOW,
    ),
    (
        "weak icr, high lvr",
        lambda s: s.icr < GREEN_MIN_ICR and s.lvr > YELLOW_MAX_LVR,
        OutcomeLevel.RED,
    ),
    (
        "all risk answers no",
        lambda s: s.no_count == FLAG_COUNT and s.level != OutcomeLevel.GREEN,
        OutcomeLevel.GREEN,
    ),
    (
        "some no answers, no yes answers",
        lambda s: s.no_count > 0 and s.yes_count == 0 and s.level != OutcomeLevel.GREEN,
        OutcomeLevel.GREEN,
    ),
    (
        "yes answer on a green deal",
        lambda s: s.yes_count > 0 and s.level == OutcomeLevel.GREEN,
        OutcomeLevel.YELLOW,
    ),
    (
        "any yes answer",
        lambda s: s.yes_count > 0,
        OutcomeLevel.YELLOW,
    ),
    (
        "icr below floor",
        lambda s: 0 < s.icr < RED_ICR_CEILING,
        OutcomeLevel.RED,
    ),
]


def calculate_lvr(loan_amount: float, property_value: float) -> float:
    """Loan-to-value ratio as a percentage; 0 when there is no property value."""
    if property_value > 0:
        return (loan_amount / property_value) * 100
    return 0.0


def calculate_icr(inputs: ScoreInputs, interest_rate_percent: float) -> float:
    """
    Interest coverage ratio.

    0 when no income component is positive, when there is no interest to
    cover, or when losses outweigh income. Never negative.
    """
    components = (
        inputs.net_profit,
        inputs.amortisation,
        inputs.depreciation,
        inputs.existing_interest_costs,
        inputs.rental_expense,
        inputs.proposed_rental_income,
    )
    if not any(c > 0 for c in components):
        return 0.0
    proposed_interest_cost = inputs.loan_amount * (interest_rate_percent / 100)
    total_interest = inputs.existing_interest_costs + proposed_interest_cost
    if total_interest > 0:
        return max(sum(components) / total_interest, 0.0)
    return 0.0


def determine_outcome(
    icr: float, lvr: float, yes_count: int, no_count: int
) -> OutcomeLevel:
    """Run the banding rule chain."""
    state = _BandState(icr=icr, lvr=lvr, yes_count=yes_count, no_count=no_count)
    for name, predicate, level in BANDING_RULES:
        if predicate(state):
            state.level = level
    # Unreachable for finite inputs; the base rules cover every icr/lvr pair
    return state.level if state.level is not None else OutcomeLevel.RED


def compute_score(inputs: ScoreInputs, interest_rate_percent: float) -> ScoreResult:
    """
    Compute ICR, LVR and outcome band.

    Args:
        inputs: Financial inputs and risk answers
        interest_rate_percent: Assumed rate on the proposed loan, e.g. 8.5

    Returns:
        ScoreResult
    """
    lvr = calculate_lvr(inputs.loan_amount, inputs.property_value)
    icr = calculate_icr(inputs, interest_rate_percent)
    level = determine_outcome(icr, lvr, inputs.yes_count, inputs.no_count)
    return ScoreResult(icr=icr, lvr=lvr, outcome_level=level)


class ScoreCalculator:
    """Scores inputs using the interest rate from a config collaborator."""

    def __init__(self, config):
        """
        Args:
            config: ConfigCollaborator supplying the interest rate
        """
        self.config = config

    def compute(self, inputs: ScoreInputs) -> ScoreResult:
        rate = self.config.get_interest_rate_percent()
        result = compute_score(inputs, rate)
        logger.debug(
            f"Scored inputs at {rate}%: icr={result.icr:.3f} "
            f"lvr={result.lvr:.1f} outcome={result.outcome_level.label}"
        )
        return result
