import logging, math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional, Union

from feature_catalog import (
    FEATS, REFERENCE_PATIENT, SPECS, clamp_vector, get_catalog, get_feature_spec, prepare_vector,
)
from shap_engine import VARIANTS, ModelVariant, contributions, get_variant

logger = logging.getLogger(__name__)

# Attribution-to-log-odds scale and size of the calibration cohort
LOGIT_SCALE = 8.0
COHORT_SIZE = 395

PROBABILITY_FLOOR = 0.001
PROBABILITY_CEILING = 0.999

MODERATE_THRESHOLD = 0.08
HIGH_THRESHOLD = 0.15

# Drivers at or below this magnitude are left out of insights
INSIGHT_MIN_CONTRIBUTION = 0.05
INSIGHT_TOP_N = 3

VariantLike = Union[str, ModelVariant, None]


@dataclass(frozen=True)
class RiskEstimate:
    probability: float
    ci_lower: float
    ci_upper: float
    total_contribution: float
    epistemic_uncertainty: float
    aleatoric_uncertainty: float
    total_uncertainty: float
    risk_level: str
    base_risk: float
    contributions: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class Insight:
    kind: str
    text: str


def risk_level(probability: float) -> str:
    if probability > HIGH_THRESHOLD:
        return "High"
    if probability > MODERATE_THRESHOLD:
        return "Moderate"
    return "Low"


def logit(p: float) -> float:
    return math.log(p / (1.0 - p))


def sigmoid(z: float) -> float:
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    e = math.exp(z)
    return e / (1.0 + e)


def clamp_probability(p: float) -> float:
    return max(PROBABILITY_FLOOR, min(PROBABILITY_CEILING, p))


def estimate_risk(vector: Mapping[str, float], variant: VariantLike = None) -> RiskEstimate:
    """Calibrated probability, confidence band and uncertainty split for one vector.

    The vector is clamped into the feature domains before the contribution
    curves are evaluated. Every other analysis gets its probabilities here.
    """
    variant = get_variant(variant)
    x = clamp_vector(vector)
    contrib = contributions(x, variant)
    total = sum(contrib.values())

    log_odds = logit(variant.base_risk) + LOGIT_SCALE * total
    p = clamp_probability(sigmoid(log_odds))

    # Uncertainty decomposition: fixed model term + sampling term
    epistemic = variant.residual_sd / 2.0
    aleatoric = math.sqrt(p * (1.0 - p) / COHORT_SIZE)
    total_unc = math.sqrt(epistemic ** 2 + aleatoric ** 2)

    return RiskEstimate(
        probability=p,
        ci_lower=max(0.0, p - total_unc),
        ci_upper=min(1.0, p + total_unc),
        total_contribution=total,
        epistemic_uncertainty=epistemic,
        aleatoric_uncertainty=aleatoric,
        total_uncertainty=total_unc,
        risk_level=risk_level(p),
        base_risk=variant.base_risk,
        contributions=contrib,
    )


def risk_probability(vector: Mapping[str, float], variant: VariantLike = None) -> float:
    return estimate_risk(vector, variant).probability


def what_if(patient, tweaks, variant: VariantLike = None):
    base = prepare_vector(patient)
    new_patient = prepare_vector({**base, **(tweaks or {})})
    return {"before": estimate_risk(base, variant), "after": estimate_risk(new_patient, variant)}


def _format_value(feature: str, value: float) -> str:
    return f"{value:.0f}" if feature == "age" else f"{value:.2f}"


def generate_insights(vector: Mapping[str, float], variant: VariantLike = None,
                      estimate: Optional[RiskEstimate] = None) -> List[Insight]:
    """Short narrative reading of an estimate: summary, top drivers, confidence."""
    x = clamp_vector(vector)
    est = estimate or estimate_risk(x, variant)
    insights = [Insight(
        "summary",
        f"This patient presents with a {est.risk_level.lower()} risk of "
        f"{est.probability * 100:.1f}% for post-thyroidectomy hypocalcemia.",
    )]

    drivers = sorted(est.contributions.items(), key=lambda t: abs(t[1]), reverse=True)[:INSIGHT_TOP_N]
    for f, value in drivers:
        if abs(value) <= INSIGHT_MIN_CONTRIBUTION:
            continue
        spec = SPECS[f]
        shown = f"{spec.name} ({_format_value(f, x[f])} {spec.unit})"
        pct = value * LOGIT_SCALE * 100
        if value > 0:
            insights.append(Insight("risk", f"{shown} is contributing +{pct:.1f}% to risk."))
        else:
            insights.append(Insight("protective", f"{shown} is providing {pct:.1f}% risk reduction."))

    insights.append(Insight(
        "uncertainty",
        f"Prediction confidence: {(1.0 - est.total_uncertainty) * 100:.1f}%.",
    ))
    return insights


# ---------- Query interface ----------
def get_risk_estimate(patient, variant: VariantLike = None) -> RiskEstimate:
    return estimate_risk(prepare_vector(patient), variant)


def get_contributions(patient, variant: VariantLike = None) -> Dict[str, float]:
    return contributions(clamp_vector(prepare_vector(patient)), get_variant(variant))


# Expose META to API
def get_meta():
    return {
        "features": list(FEATS),
        "specs": get_catalog(),
        "variants": {name: v.summary() for name, v in VARIANTS.items()},
        "thresholds": {"moderate": MODERATE_THRESHOLD, "high": HIGH_THRESHOLD},
        "reference_patient": dict(REFERENCE_PATIENT),
    }


__all__ = [
    "RiskEstimate", "Insight", "estimate_risk", "risk_probability", "risk_level", "what_if",
    "generate_insights", "get_risk_estimate", "get_contributions", "get_feature_spec", "get_meta",
]
