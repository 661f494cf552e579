"""Scoring oracle - decision policy and the in-process heuristic model"""

import random
from typing import Dict, List, Optional, Protocol, Tuple
from credit_workflow.domain.models import (
    ApplicantData,
    ConfidenceLevel,
    DecisionState,
    ScoringResult,
    ShapValue,
)
from credit_workflow.domain.ratios import (
    DEBT_RATIO_WARNING_PCT,
    REMAINING_TO_LIVE_FLOOR,
    capacity_in_months,
    debt_ratio,
    guarantee_ratio,
    remaining_to_live,
)

# Fixed policy: strictly greater than 0.6 approves
APPROVAL_THRESHOLD = 0.6

WEIGHTS: Dict[str, float] = {
    "debt_ratio": 0.30,
    "remaining_to_live": 0.25,
    "guarantee_coverage": 0.25,
    "repayment_capacity": 0.15,
    "renewal": 0.05,
}

LONG_REPAYMENT_MONTHS = 60
LOW_GUARANTEE_PCT = 50.0


class ScoringOracle(Protocol):
    """
    Anything that maps applicant data to an approval probability.

    Transient failures should surface as ScoringUnavailable or OSError
    (ConnectionError included); callers retry those and nothing else.
    """

    async def score(self, applicant_data: ApplicantData) -> ScoringResult:
        ...


def decide(probability: float) -> DecisionState:
    """Map a probability to the automatic decision"""
    if probability > APPROVAL_THRESHOLD:
        return DecisionState.AUTO_APPROVED
    return DecisionState.AUTO_REJECTED


def confidence_level(probability: float) -> ConfidenceLevel:
    """
    Band the probability into a confidence level.

    Bands are checked in order and are not symmetric around 0.5:
    - > 0.8 or < 0.3:   HIGH
    - > 0.65 or < 0.45: MEDIUM
    - otherwise:        LOW
    """
    if probability > 0.8 or probability < 0.3:
        return ConfidenceLevel.HIGH
    if probability > 0.65 or probability < 0.45:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def score_components(data: ApplicantData) -> Dict[str, float]:
    """
    Normalize each risk dimension to 0.0 (worst) - 1.0 (best).

    - debt_ratio: 1 - debt/revenues
    - remaining_to_live: share of revenues left after charges
    - guarantee_coverage: guarantee / amount asked, capped at 1
    - repayment_capacity: a year of remaining-to-live vs amount asked, capped at 1
    - renewal: existing customers renewing a credit
    """
    rtl = remaining_to_live(data)
    debt_component = 1.0 - min(debt_ratio(data) / 100, 1.0)
    rtl_component = min(max(rtl / data.revenues, 0.0), 1.0) if data.revenues > 0 else 0.0
    guarantee_component = min(guarantee_ratio(data) / 100, 1.0)
    capacity_component = min(rtl * 12 / data.amount_asked, 1.0) if rtl > 0 and data.amount_asked > 0 else 0.0

    return {
        "debt_ratio": debt_component,
        "remaining_to_live": rtl_component,
        "guarantee_coverage": guarantee_component,
        "repayment_capacity": capacity_component,
        "renewal": 1.0 if data.is_renewal else 0.0,
    }


def calculate_probability(components: Dict[str, float], noise: float = 0.0) -> float:
    """Weighted sum of components plus optional noise, clamped to [0, 1]"""
    score = sum(WEIGHTS[name] * value for name, value in components.items()) + noise
    return round(min(max(score, 0.0), 1.0), 4)


def explain(data: ApplicantData, components: Dict[str, float]) -> Tuple[ShapValue, ...]:
    """Per-feature contribution relative to a neutral 0.5 component"""
    capacity = capacity_in_months(data)
    raw_values = {
        "debt_ratio": round(debt_ratio(data), 2),
        "remaining_to_live": round(remaining_to_live(data), 2),
        "guarantee_coverage": round(guarantee_ratio(data), 2),
        "repayment_capacity": round(capacity, 2) if capacity is not None else "n/a",
        "renewal": data.is_renewal,
    }
    shap_values = [
        ShapValue(
            feature=name,
            impact=round(WEIGHTS[name] * (value - 0.5), 4),
            value=raw_values[name],
        )
        for name, value in components.items()
    ]
    shap_values.sort(key=lambda s: abs(s.impact), reverse=True)
    return tuple(shap_values)


def identify_risk_factors(data: ApplicantData) -> List[str]:
    factors = []
    ratio = debt_ratio(data)
    if ratio > DEBT_RATIO_WARNING_PCT:
        factors.append(f"Debt ratio of {ratio:.1f}% exceeds {DEBT_RATIO_WARNING_PCT:.0f}%")

    rtl = remaining_to_live(data)
    if rtl < 0:
        factors.append("Monthly charges exceed monthly revenues")
    elif rtl < REMAINING_TO_LIVE_FLOOR:
        factors.append(f"Remaining-to-live below {REMAINING_TO_LIVE_FLOOR:.0f}")

    if guarantee_ratio(data) < LOW_GUARANTEE_PCT:
        factors.append("Guarantee covers less than half of the amount asked")

    capacity = capacity_in_months(data)
    if capacity is None or capacity > LONG_REPAYMENT_MONTHS:
        factors.append(f"Repayment would take more than {LONG_REPAYMENT_MONTHS} months of remaining-to-live")
    return factors


def recommend(data: ApplicantData) -> List[str]:
    recommendations = []
    if debt_ratio(data) > DEBT_RATIO_WARNING_PCT:
        recommendations.append("Reduce outstanding debt before applying")
    if remaining_to_live(data) < REMAINING_TO_LIVE_FLOOR:
        recommendations.append("Lower monthly charges to increase remaining-to-live")
    if guarantee_ratio(data) < LOW_GUARANTEE_PCT:
        recommendations.append("Provide an additional guarantee")
    capacity = capacity_in_months(data)
    if capacity is None or capacity > LONG_REPAYMENT_MONTHS:
        recommendations.append("Consider asking for a smaller amount")
    return recommendations


class HeuristicScoringModel:
    """
    In-process scoring oracle.

    A hand-tuned weighted sum of financial ratios. Noise is drawn from a
    seeded generator so runs are reproducible; noise=0.0 makes it fully
    deterministic.
    """

    def __init__(self, noise: float = 0.0, seed: Optional[int] = None):
        self.noise = noise
        self._rng = random.Random(seed)

    def evaluate(self, data: ApplicantData) -> ScoringResult:
        components = score_components(data)
        jitter = self._rng.uniform(-self.noise, self.noise) if self.noise else 0.0

        return ScoringResult(
            probability=calculate_probability(components, jitter),
            shap_values=explain(data, components),
            risk_factors=tuple(identify_risk_factors(data)),
            recommendations=tuple(recommend(data)),
        )

    async def score(self, applicant_data: ApplicantData) -> ScoringResult:
        return self.evaluate(applicant_data)
