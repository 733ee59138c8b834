"""What-changes-the-risk analyses built on top of the risk aggregator.

All functions are pure: they take the feature vector and the variant
explicitly and return fresh value objects. The stability analysis is the only
random one and draws from a caller-seeded numpy Generator.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from feature_catalog import FEATS, SPECS, clamp_vector, prepare_vector
from model_utils import (
    PROBABILITY_CEILING, PROBABILITY_FLOOR, VariantLike, estimate_risk, logit, risk_probability,
)
from shap_engine import contributions, get_variant

logger = logging.getLogger(__name__)

# Counterfactual search
LEARNING_RATE = 0.01
EPSILON = 0.001
MAX_ITERATIONS = 100
TOLERANCE = 0.005
FEASIBILITY_BUDGET = 10.0
MAX_STEP_HALVINGS = 10

# Sensitivity
DEFAULT_RANGE_FRACTION = 0.10

# Stability
DEFAULT_SAMPLE_COUNT = 100
NOISE_FRACTION = 0.05  # full width of the uniform noise, as a share of the domain
STABLE_CV = 0.3

# Trajectory
DEFAULT_HORIZON_DAYS = 7
TRAJECTORY_CALCIUM_CEILING = 2.4
TRAJECTORY_CALCIUM_GAIN = 0.2


@dataclass(frozen=True)
class FeatureChange:
    original: float
    target: float
    change: float
    percent_change: float


@dataclass(frozen=True)
class CounterfactualPlan:
    target_risk: float
    target_vector: Dict[str, float]
    changes: Dict[str, FeatureChange]
    total_change: float
    achieved_risk: float
    feasible: bool
    converged: bool
    iterations: int

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class SensitivityEntry:
    feature: str
    low: float
    high: float
    range: float


@dataclass(frozen=True)
class FeatureStability:
    mean: float
    std: float
    cv: float
    stable: bool


@dataclass(frozen=True)
class TrajectoryPoint:
    day: int
    calcium: float
    probability: float
    ci_lower: float
    ci_upper: float


# ---------- Counterfactual ----------
def _objective(p: float, scale: str) -> float:
    return logit(p) if scale == "logit" else p


def counterfactual(vector: Mapping[str, float], target_risk: float, variant: VariantLike = None, *,
                   learning_rate: float = LEARNING_RATE, epsilon: float = EPSILON,
                   max_iterations: int = MAX_ITERATIONS, tolerance: float = TOLERANCE,
                   scale: str = "logit") -> CounterfactualPlan:
    """Search for a nearby vector whose risk is within `tolerance` of `target_risk`.

    Gradient descent with forward-difference gradients, every feature updated
    at once and clamped back into its domain after each step. With
    ``scale="logit"`` the risk gap and the gradients are taken on the log-odds
    scale; ``scale="probability"`` uses raw probabilities.

    A step is only taken if it shrinks ``|p - target|``; otherwise it is halved
    up to ``MAX_STEP_HALVINGS`` times. When no shorter step helps either, the
    search stops where it is. Running out of iterations is not an error: the
    plan reports ``converged=False``.
    """
    if scale not in ("logit", "probability"):
        raise ValueError(f"Unknown objective scale '{scale}'")
    variant = get_variant(variant)
    start = clamp_vector(vector)
    target = max(PROBABILITY_FLOOR, min(PROBABILITY_CEILING, float(target_risk)))
    target_obj = _objective(target, scale)

    best = dict(start)
    p = risk_probability(best, variant)
    converged = False
    iterations = 0
    for iterations in range(max_iterations + 1):
        gap = abs(p - target)
        if gap < tolerance:
            converged = True
            break
        if iterations == max_iterations:
            break

        current_obj = _objective(p, scale)
        diff = current_obj - target_obj
        gradients = {}
        for f in FEATS:
            perturbed = dict(best)
            perturbed[f] += epsilon
            gradients[f] = (_objective(risk_probability(perturbed, variant), scale) - current_obj) / epsilon

        rate = learning_rate
        for _ in range(MAX_STEP_HALVINGS + 1):
            candidate = {f: SPECS[f].clamp(best[f] - rate * diff * gradients[f]) for f in FEATS}
            candidate_p = risk_probability(candidate, variant)
            if abs(candidate_p - target) < gap:
                break
            rate /= 2.0
        else:
            logger.debug("Counterfactual stalled at iteration %d: no step reduces the gap", iterations)
            break
        best, p = candidate, candidate_p

    changes = {}
    total_change = 0.0
    for f in FEATS:
        diff = best[f] - start[f]
        changes[f] = FeatureChange(
            original=start[f],
            target=best[f],
            change=diff,
            percent_change=(diff / start[f] * 100.0) if start[f] else 0.0,
        )
        total_change += abs(diff)

    achieved = risk_probability(best, variant)
    if not converged:
        logger.warning("Counterfactual search stopped after %d iterations at risk %.4f (target %.4f)",
                       iterations, achieved, target)
    else:
        logger.debug("Counterfactual converged in %d iterations", iterations)

    return CounterfactualPlan(
        target_risk=float(target_risk),
        target_vector=best,
        changes=changes,
        total_change=total_change,
        achieved_risk=achieved,
        feasible=total_change < FEASIBILITY_BUDGET,
        converged=converged,
        iterations=iterations,
    )


# ---------- Sensitivity (tornado) ----------
def tornado(vector: Mapping[str, float], variant: VariantLike = None,
            range_fraction: float = DEFAULT_RANGE_FRACTION) -> List[SensitivityEntry]:
    """One-at-a-time perturbation of each feature, most influential first.

    Each feature moves by ``step * range_fraction * 100`` in both directions;
    `low`/`high` are the risk deltas (probability units) from the baseline.
    """
    variant = get_variant(variant)
    x = clamp_vector(vector)
    baseline = risk_probability(x, variant)

    entries = []
    for f in FEATS:
        spec = SPECS[f]
        increment = spec.step * (range_fraction * 100.0)
        up_risk = risk_probability({**x, f: spec.clamp(x[f] + increment)}, variant)
        down_risk = risk_probability({**x, f: spec.clamp(x[f] - increment)}, variant)
        entries.append(SensitivityEntry(
            feature=f,
            low=down_risk - baseline,
            high=up_risk - baseline,
            range=abs(up_risk - down_risk),
        ))

    return sorted(entries, key=lambda e: e.range, reverse=True)


# ---------- Stability (Monte Carlo) ----------
def summarize_samples(samples: Sequence[float], stable_cv: float = STABLE_CV) -> FeatureStability:
    """Mean, population std and coefficient of variation of |contribution| samples.

    An all-zero sample has no spread to speak of: its CV is 0 and it counts
    as stable.
    """
    arr = np.asarray(samples, dtype=float)
    mean = float(arr.mean()) if arr.size else 0.0
    std = float(arr.std()) if arr.size else 0.0
    cv = std / mean if mean != 0 else 0.0
    return FeatureStability(mean=mean, std=std, cv=cv, stable=cv < stable_cv)


def stability(vector: Mapping[str, float], variant: VariantLike = None,
              sample_count: int = DEFAULT_SAMPLE_COUNT, seed: Optional[int] = None,
              rng: Optional[np.random.Generator] = None) -> Dict[str, FeatureStability]:
    """How steady each feature's contribution is under small noise on all inputs."""
    variant = get_variant(variant)
    x = clamp_vector(vector)
    rng = rng if rng is not None else np.random.default_rng(seed)
    n = max(1, int(sample_count))
    logger.debug("Stability analysis: variant=%s samples=%d seed=%s", variant.name, n, seed)

    widths = np.array([SPECS[f].width for f in FEATS])
    lows = np.array([SPECS[f].min for f in FEATS])
    highs = np.array([SPECS[f].max for f in FEATS])
    center = np.array([x[f] for f in FEATS])

    report = {}
    for i, f in enumerate(FEATS):
        noise = (rng.uniform(0.0, 1.0, size=(n, len(FEATS))) - 0.5) * widths * NOISE_FRACTION
        noisy = np.clip(center + noise, lows, highs)
        samples = [
            abs(contributions(dict(zip(FEATS, row.tolist())), variant)[f])
            for row in noisy
        ]
        report[f] = summarize_samples(samples)
    return report


# ---------- Trajectory ----------
def trajectory(vector: Mapping[str, float], variant: VariantLike = None,
               horizon_days: int = DEFAULT_HORIZON_DAYS) -> List[TrajectoryPoint]:
    """Daily risk while calcium climbs linearly toward the target level.

    Only calcium moves, capped at the target level from day 0 on; a
    non-positive horizon gives the day-0 point alone.
    """
    variant = get_variant(variant)
    x = clamp_vector(vector)
    horizon = int(horizon_days)
    start = x["calcium"]

    points = []
    for day in range(max(horizon, 0) + 1):
        rise = (day / horizon) * TRAJECTORY_CALCIUM_GAIN if horizon > 0 else 0.0
        calcium = min(TRAJECTORY_CALCIUM_CEILING, start + rise)
        est = estimate_risk({**x, "calcium": calcium}, variant)
        points.append(TrajectoryPoint(
            day=day,
            calcium=calcium,
            probability=est.probability,
            ci_lower=est.ci_lower,
            ci_upper=est.ci_upper,
        ))
    return points


# ---------- Query interface ----------
def get_counterfactual_plan(patient, target_risk: float, variant: VariantLike = None, **kwargs) -> CounterfactualPlan:
    return counterfactual(prepare_vector(patient), target_risk, variant, **kwargs)


def get_sensitivity_report(patient, variant: VariantLike = None,
                           range_fraction: float = DEFAULT_RANGE_FRACTION) -> List[SensitivityEntry]:
    return tornado(prepare_vector(patient), variant, range_fraction)


def get_stability_report(patient, variant: VariantLike = None, sample_count: int = DEFAULT_SAMPLE_COUNT,
                         seed: Optional[int] = None) -> Dict[str, FeatureStability]:
    return stability(prepare_vector(patient), variant, sample_count=sample_count, seed=seed)


def get_trajectory(patient, variant: VariantLike = None,
                   horizon_days: int = DEFAULT_HORIZON_DAYS) -> List[TrajectoryPoint]:
    return trajectory(prepare_vector(patient), variant, horizon_days)
