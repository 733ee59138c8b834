import json, logging, math, os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

ART = Path(os.environ.get("HYPOCAL_ARTIFACTS", Path(__file__).resolve().parent / "artifacts"))

META = json.loads((ART / "feature_meta.json").read_text(encoding="utf-8"))

FEATS = tuple(META["features"])
REFERENCE_PATIENT = {f: float(META["reference_patient"][f]) for f in FEATS}


@dataclass(frozen=True)
class FeatureSpec:
    """Static description of one clinical input.

    `optimal` and `critical` are keyed by variant name and only used for
    presentation; the numeric core reads min/max/step.
    """
    id: str
    name: str
    unit: str
    rank: int
    min: float
    max: float
    step: float
    optimal: Dict[str, Tuple[float, float]]
    critical: Dict[str, float]
    description: str = ""

    @property
    def width(self) -> float:
        return self.max - self.min

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, value))

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "rank": self.rank,
            "min": self.min,
            "max": self.max,
            "step": self.step,
            "optimal": {k: list(v) for k, v in self.optimal.items()},
            "critical": dict(self.critical),
            "description": self.description,
        }


def _load_specs() -> Dict[str, FeatureSpec]:
    specs = {}
    for f in FEATS:
        raw = META["specs"][f]
        specs[f] = FeatureSpec(
            id=f,
            name=raw["name"],
            unit=raw["unit"],
            rank=int(raw["rank"]),
            min=float(raw["min"]),
            max=float(raw["max"]),
            step=float(raw["step"]),
            optimal={k: (float(lo), float(hi)) for k, (lo, hi) in raw.get("optimal", {}).items()},
            critical={k: float(v) for k, v in raw.get("critical", {}).items()},
            description=raw.get("description", ""),
        )
    return specs


SPECS = _load_specs()
logger.info("Loaded %d feature specs from %s", len(SPECS), ART)


def get_feature_spec(feature_id: str) -> FeatureSpec:
    try:
        return SPECS[feature_id]
    except KeyError:
        raise ValueError(f"Unknown feature '{feature_id}'; expected one of {list(FEATS)}") from None


def clamp(feature_id: str, value: float) -> float:
    return get_feature_spec(feature_id).clamp(value)


def clamp_vector(vector: Mapping[str, float]) -> Dict[str, float]:
    """Clamp every catalog feature of `vector` into its declared domain."""
    return {f: SPECS[f].clamp(float(vector[f])) for f in FEATS}


def prepare_vector(patient: Optional[Mapping[str, object]]) -> Dict[str, float]:
    """Coerce a loosely typed patient mapping into a complete feature vector.

    Values are cast to float; missing, non-numeric and non-finite entries fall
    back to the reference patient. Out-of-range values are kept as given:
    clamping is the analytic components' job. Unknown keys are ignored.
    """
    patient = patient or {}
    row = {f: patient.get(f, None) for f in FEATS}
    df = pd.DataFrame([row], columns=list(FEATS), dtype=object)

    vector = {}
    for f in FEATS:
        value = pd.to_numeric(df[f], errors="coerce").iloc[0]
        if pd.isna(value) or not math.isfinite(float(value)):
            logger.debug("Imputing %s with reference value %s", f, REFERENCE_PATIENT[f])
            value = REFERENCE_PATIENT[f]
        vector[f] = float(value)
    return vector


def get_catalog() -> Dict[str, Dict]:
    return {f: SPECS[f].to_dict() for f in FEATS}
