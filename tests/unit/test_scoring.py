"""Unit tests for the decision policy and the heuristic scoring model"""

import pytest
from credit_workflow.domain.models import ApplicantData, ConfidenceLevel, DecisionState
from credit_workflow.domain.scoring import (
    APPROVAL_THRESHOLD,
    HeuristicScoringModel,
    calculate_probability,
    confidence_level,
    decide,
    score_components,
)


def _data(**overrides) -> ApplicantData:
    values = dict(
        revenues=250000,
        charges=80000,
        debt=50000,
        amount_asked=150000,
        guarantee_estimated_value=500000,
        is_renewal=0,
    )
    values.update(overrides)
    return ApplicantData(**values)


def test_threshold_is_strict():
    """Exactly 0.6 is rejected; anything above approves"""
    assert decide(APPROVAL_THRESHOLD) == DecisionState.AUTO_REJECTED
    assert decide(0.600001) == DecisionState.AUTO_APPROVED
    assert decide(0.0) == DecisionState.AUTO_REJECTED
    assert decide(1.0) == DecisionState.AUTO_APPROVED


@pytest.mark.parametrize(
    "probability,expected",
    [
        (0.95, ConfidenceLevel.HIGH),
        (0.81, ConfidenceLevel.HIGH),
        (0.8, ConfidenceLevel.MEDIUM),
        (0.7, ConfidenceLevel.MEDIUM),
        (0.65, ConfidenceLevel.LOW),
        (0.5, ConfidenceLevel.LOW),
        (0.45, ConfidenceLevel.LOW),
        (0.44, ConfidenceLevel.MEDIUM),
        (0.3, ConfidenceLevel.MEDIUM),
        (0.29, ConfidenceLevel.HIGH),
        (0.0, ConfidenceLevel.HIGH),
    ],
)
def test_confidence_bands(probability, expected):
    """Bands are asymmetric: HIGH outside (0.3, 0.8), LOW inside [0.45, 0.65]"""
    assert confidence_level(probability) == expected


def test_score_components_healthy_applicant():
    components = score_components(_data())

    assert components["debt_ratio"] == pytest.approx(0.8)
    assert components["remaining_to_live"] == pytest.approx(0.68)
    assert components["guarantee_coverage"] == 1.0  # capped
    assert components["repayment_capacity"] == 1.0  # capped
    assert components["renewal"] == 0.0


def test_score_components_no_remaining_to_live():
    components = score_components(_data(revenues=5000, charges=5000, debt=1000, amount_asked=20000))

    assert components["remaining_to_live"] == 0.0
    assert components["repayment_capacity"] == 0.0


def test_calculate_probability_is_clamped():
    components = score_components(_data())

    assert calculate_probability(components, noise=5.0) == 1.0
    assert calculate_probability(components, noise=-5.0) == 0.0


def test_heuristic_model_scenario_values():
    """0.24 debt + 0.17 rtl + 0.25 guarantee + 0.15 capacity"""
    result = HeuristicScoringModel().evaluate(_data())

    assert result.probability == pytest.approx(0.81)
    assert decide(result.probability) == DecisionState.AUTO_APPROVED
    assert confidence_level(result.probability) == ConfidenceLevel.HIGH


def test_heuristic_model_explains_every_feature():
    result = HeuristicScoringModel().evaluate(_data())

    features = [s.feature for s in result.shap_values]
    assert sorted(features) == sorted(
        ["debt_ratio", "remaining_to_live", "guarantee_coverage", "repayment_capacity", "renewal"]
    )
    impacts = [abs(s.impact) for s in result.shap_values]
    assert impacts == sorted(impacts, reverse=True)


def test_heuristic_model_flags_risk_factors():
    result = HeuristicScoringModel().evaluate(
        _data(revenues=3000, charges=2900, debt=2000, amount_asked=30000, guarantee_estimated_value=0)
    )

    assert any("Debt ratio" in factor for factor in result.risk_factors)
    assert any("Remaining-to-live" in factor for factor in result.risk_factors)
    assert "Provide an additional guarantee" in result.recommendations


def test_heuristic_model_is_deterministic_without_noise():
    model = HeuristicScoringModel()
    data = _data(debt=120000)

    assert model.evaluate(data).probability == model.evaluate(data).probability


def test_heuristic_model_seeded_noise_is_reproducible():
    data = _data(debt=120000)
    first = [HeuristicScoringModel(noise=0.05, seed=7).evaluate(data).probability for _ in range(3)]
    second = [HeuristicScoringModel(noise=0.05, seed=7).evaluate(data).probability for _ in range(3)]

    assert first == second
    baseline = HeuristicScoringModel().evaluate(data).probability
    assert all(abs(p - baseline) <= 0.05 + 1e-4 for p in first)


async def test_heuristic_model_as_oracle():
    result = await HeuristicScoringModel().score(_data())

    assert 0.0 <= result.probability <= 1.0
