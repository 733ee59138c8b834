"""Closed-form SHAP-style contribution curves for the two model variants.

Each feature curve is a table of breakpoints and one branch per segment. The
branch coefficients were calibrated offline against the gradient-boosting
model and live in ``artifacts/model_variants.json``; nothing here is fitted.

The calibrated branches do not meet at their breakpoints, so every breakpoint
gets a narrow smoothstep join (half-width = the feature's step size) that
crossfades the two neighbouring branches. Outside the join bands the
calibrated formulas are evaluated unchanged.
"""
import json, logging, math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Tuple, Union

from feature_catalog import ART, FEATS, SPECS

logger = logging.getLogger(__name__)

# keeps power tails finite for arbitrarily large finite inputs
MAX_SCALED_DISTANCE = 1e6


# ---------- Branch shapes ----------
@dataclass(frozen=True)
class Power:
    """Risk tail growing as the feature moves past `ref` in `direction`."""
    scale: float
    ref: float
    width: float
    exponent: float
    direction: str = "below"

    def __call__(self, x: float) -> float:
        dist = (self.ref - x) if self.direction == "below" else (x - self.ref)
        z = min(max(0.0, dist) / self.width, MAX_SCALED_DISTANCE)
        return self.scale * z ** self.exponent


@dataclass(frozen=True)
class Log:
    scale: float
    ref: float
    width: float

    def __call__(self, x: float) -> float:
        return self.scale * math.log1p(max(0.0, x - self.ref) / self.width)


@dataclass(frozen=True)
class Linear:
    scale: float
    ref: float
    width: float

    def __call__(self, x: float) -> float:
        return self.scale * (x - self.ref) / self.width


@dataclass(frozen=True)
class Cosine:
    offset: float
    scale: float
    ref: float
    width: float

    def __call__(self, x: float) -> float:
        return self.offset - self.scale * math.cos(math.pi * (x - self.ref) / self.width)


@dataclass(frozen=True)
class Gaussian:
    """Protective bump: negative, largest in magnitude at `center`."""
    scale: float
    center: float
    width: float

    def __call__(self, x: float) -> float:
        z = (x - self.center) / self.width
        return -self.scale * math.exp(-(z * z))


@dataclass(frozen=True)
class EdgeGaussian:
    """Protective bump keyed on the distance to the nearer window edge."""
    scale: float
    lower: float
    upper: float
    width: float

    def __call__(self, x: float) -> float:
        z = min(abs(x - self.lower), abs(x - self.upper)) / self.width
        return -self.scale * math.exp(-(z * z))


@dataclass(frozen=True)
class Sine:
    scale: float
    ref: float
    width: float

    def __call__(self, x: float) -> float:
        return self.scale * math.sin(math.pi * (x - self.ref) / self.width)


BRANCH_KINDS = {
    "power": Power,
    "log": Log,
    "linear": Linear,
    "cosine": Cosine,
    "gaussian": Gaussian,
    "edge_gaussian": EdgeGaussian,
    "sine": Sine,
}

Branch = Callable[[float], float]


def make_branch(params: Mapping) -> Branch:
    params = dict(params)
    kind = params.pop("kind")
    if kind not in BRANCH_KINDS:
        raise ValueError(f"Unknown branch kind '{kind}'")
    return BRANCH_KINDS[kind](**params)


def smoothstep(s: float) -> float:
    s = max(0.0, min(1.0, s))
    return s * s * (3.0 - 2.0 * s)


@dataclass(frozen=True)
class FeatureCurve:
    breakpoints: Tuple[float, ...]
    branches: Tuple[Branch, ...]

    def __post_init__(self):
        if len(self.branches) != len(self.breakpoints) + 1:
            raise ValueError("A curve needs exactly one branch per segment")

    def segment(self, x: float) -> int:
        # the first breakpoint opens its right segment, later ones close their left one
        if x < self.breakpoints[0]:
            return 0
        return 1 + sum(1 for t in self.breakpoints[1:] if x > t)

    def __call__(self, x: float, join_width: float = 0.0) -> float:
        h = join_width
        if h > 0:
            for i, t in enumerate(self.breakpoints):
                if abs(x - t) < h:
                    w = smoothstep((x - t + h) / (2.0 * h))
                    return (1.0 - w) * self.branches[i](x) + w * self.branches[i + 1](x)
        return self.branches[self.segment(x)](x)


@dataclass(frozen=True)
class ModelVariant:
    name: str
    label: str
    base_risk: float
    residual_sd: float
    curves: Dict[str, FeatureCurve]
    metrics: Dict[str, float] = field(default_factory=dict)
    aliases: Tuple[str, ...] = ()
    description: str = ""

    def summary(self) -> Dict:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "base_risk": self.base_risk,
            "residual_sd": self.residual_sd,
            "metrics": dict(self.metrics),
        }


def _load_variants() -> Dict[str, ModelVariant]:
    raw = json.loads((ART / "model_variants.json").read_text(encoding="utf-8"))
    variants = {}
    for name, cfg in raw.items():
        curves = {}
        for f in FEATS:
            c = cfg["curves"][f]
            curves[f] = FeatureCurve(
                breakpoints=tuple(float(t) for t in c["breakpoints"]),
                branches=tuple(make_branch(b) for b in c["branches"]),
            )
        variants[name] = ModelVariant(
            name=name,
            label=cfg.get("label", name.title()),
            base_risk=float(cfg["base_risk"]),
            residual_sd=float(cfg["residual_sd"]),
            curves=curves,
            metrics={k: float(v) for k, v in cfg.get("metrics", {}).items()},
            aliases=tuple(a.lower() for a in cfg.get("aliases", [])),
            description=cfg.get("description", ""),
        )
    logger.info("Loaded model variants: %s", ", ".join(variants))
    return variants


VARIANTS = _load_variants()
DEFAULT_VARIANT = "baseline"


def get_variant(variant: Union[str, ModelVariant, None] = None) -> ModelVariant:
    """Resolve a variant by name or alias (case-insensitive)."""
    if isinstance(variant, ModelVariant):
        return variant
    key = (variant or DEFAULT_VARIANT).strip().lower()
    if key in VARIANTS:
        return VARIANTS[key]
    for v in VARIANTS.values():
        if key in v.aliases:
            return v
    raise ValueError(f"Unknown model variant '{variant}'; expected one of {list(VARIANTS)}")


def contributions(vector: Mapping[str, float], variant: Union[str, ModelVariant]) -> Dict[str, float]:
    """Per-feature contributions (log-odds scale) for an already prepared vector.

    Defined for every finite input; callers that want domain semantics clamp
    first.
    """
    variant = get_variant(variant)
    return {
        f: variant.curves[f](float(vector[f]), join_width=SPECS[f].step)
        for f in FEATS
    }


def breakpoints(variant: ModelVariant) -> List[Tuple[str, float]]:
    return [(f, t) for f in FEATS for t in variant.curves[f].breakpoints]
