"""
Unit tests for risk aggregation, insights and metadata.
"""
import math

import pytest

from model_utils import (
    COHORT_SIZE, estimate_risk, generate_insights, get_contributions, get_meta, get_risk_estimate,
    risk_level, sigmoid, what_if,
)
from shap_engine import contributions


EXTREME_PATIENTS = [
    {"calcium": -100, "bmi": -1e9, "tsh": -5, "age": 0, "magnesium": -3},
    {"calcium": 1e9, "bmi": 900, "tsh": 1e6, "age": 300, "magnesium": 50},
    {"calcium": 3.0, "bmi": 15, "tsh": 0.1, "age": 80, "magnesium": 1.2},
    {"calcium": 1.5, "bmi": 50, "tsh": 10, "age": 18, "magnesium": 0.5},
]


class TestRiskLevel:

    def test_boundaries(self):
        assert risk_level(0.0) == "Low"
        assert risk_level(0.08) == "Low"
        assert risk_level(0.0801) == "Moderate"
        assert risk_level(0.15) == "Moderate"
        assert risk_level(0.1501) == "High"
        assert risk_level(0.999) == "High"


class TestSigmoid:

    def test_no_overflow_for_large_inputs(self):
        assert sigmoid(1000.0) == 1.0
        assert sigmoid(-1000.0) == 0.0
        assert sigmoid(0.0) == 0.5

    def test_symmetry(self):
        assert sigmoid(2.5) + sigmoid(-2.5) == pytest.approx(1.0)


class TestEstimateRisk:

    def test_reference_patient(self, reference_patient):
        est = estimate_risk(reference_patient, "baseline")
        expected_logit = math.log(0.046 / 0.954) + 8 * est.total_contribution
        assert est.probability == pytest.approx(1 / (1 + math.exp(-expected_logit)))
        assert est.probability == pytest.approx(0.0212, abs=1e-3)
        assert est.risk_level == "Low"
        assert est.base_risk == 0.046

    def test_uncertainty_decomposition(self, reference_patient):
        est = estimate_risk(reference_patient, "balanced")
        p = est.probability
        assert est.epistemic_uncertainty == pytest.approx(0.191 / 2)
        assert est.aleatoric_uncertainty == pytest.approx(math.sqrt(p * (1 - p) / COHORT_SIZE))
        assert est.total_uncertainty == pytest.approx(
            math.hypot(est.epistemic_uncertainty, est.aleatoric_uncertainty))
        assert est.ci_lower == pytest.approx(max(0.0, p - est.total_uncertainty))
        assert est.ci_upper == pytest.approx(min(1.0, p + est.total_uncertainty))

    def test_total_contribution_matches_sum(self, high_risk_patient):
        est = estimate_risk(high_risk_patient, "baseline")
        assert est.total_contribution == pytest.approx(sum(est.contributions.values()))

    def test_low_risk_preset(self, low_risk_patient):
        assert estimate_risk(low_risk_patient, "baseline").risk_level == "Low"

    def test_high_risk_preset(self, high_risk_patient):
        est = estimate_risk(high_risk_patient, "baseline")
        assert est.risk_level == "High"
        assert est.probability == pytest.approx(0.40, abs=0.01)

    @pytest.mark.parametrize("patient", EXTREME_PATIENTS)
    @pytest.mark.parametrize("variant", ["baseline", "balanced"])
    def test_probability_and_band_bounds(self, patient, variant):
        est = estimate_risk(patient, variant)
        assert 0.001 <= est.probability <= 0.999
        assert 0.0 <= est.ci_lower <= est.probability <= est.ci_upper <= 1.0

    def test_out_of_range_input_is_clamped(self, out_of_range_patient):
        clamped = {"calcium": 3.0, "bmi": 15.0, "tsh": 10.0, "age": 18.0, "magnesium": 1.2}
        assert estimate_risk(out_of_range_patient) == estimate_risk(clamped)

    def test_does_not_mutate_input(self, out_of_range_patient):
        before = dict(out_of_range_patient)
        estimate_risk(out_of_range_patient, "balanced")
        assert out_of_range_patient == before


class TestQueries:

    def test_get_risk_estimate_accepts_loose_input(self, reference_patient):
        loose = {k: str(v) for k, v in reference_patient.items()}
        got = get_risk_estimate(loose, "baseline")
        assert got.probability == pytest.approx(estimate_risk(reference_patient, "baseline").probability)

    def test_get_contributions_clamps(self, reference_patient):
        got = get_contributions({**reference_patient, "calcium": 100}, "baseline")
        assert got == contributions({**reference_patient, "calcium": 3.0}, "baseline")

    def test_what_if(self, reference_patient):
        res = what_if(reference_patient, {"calcium": 1.85})
        assert res["after"].probability > res["before"].probability
        assert res["before"] == estimate_risk(reference_patient)

    def test_meta(self):
        meta = get_meta()
        assert meta["features"] == ["calcium", "bmi", "tsh", "age", "magnesium"]
        assert set(meta["variants"]) == {"baseline", "balanced"}
        assert meta["variants"]["baseline"]["metrics"]["roc_auc"] == 0.757
        assert meta["thresholds"] == {"moderate": 0.08, "high": 0.15}


class TestInsights:

    def test_reference_patient(self, reference_patient):
        insights = generate_insights(reference_patient, "baseline")
        assert [i.kind for i in insights] == ["summary", "protective", "uncertainty"]
        assert insights[0].text == (
            "This patient presents with a low risk of 2.1% for post-thyroidectomy hypocalcemia.")
        assert insights[1].text == "Age at Diagnosis (41 years) is providing -43.6% risk reduction."
        assert insights[2].text == "Prediction confidence: 91.0%."

    def test_high_risk_drivers(self, high_risk_patient):
        insights = generate_insights(high_risk_patient, "baseline")
        assert [i.kind for i in insights] == ["summary", "risk", "risk", "risk", "uncertainty"]
        assert insights[1].text == "Body Mass Index (35.00 kg/m²) is contributing +88.7% to risk."
