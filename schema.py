from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Tuple

class PatientRequest(BaseModel):
    patient: Dict[str, object]  # missing / non-numeric values fall back to reference
    variant: str = "baseline"

class InsightModel(BaseModel):
    kind: str
    text: str

class RiskResponse(BaseModel):
    probability: float
    ci_lower: float
    ci_upper: float
    total_contribution: float
    epistemic_uncertainty: float
    aleatoric_uncertainty: float
    total_uncertainty: float
    risk_level: str
    base_risk: float
    contributions: Dict[str, float]

class PredictResponse(RiskResponse):
    insights: List[InsightModel] = []

class ContributionsResponse(BaseModel):
    variant: str
    contributions: Dict[str, float]

class WhatIfRequest(PatientRequest):
    tweaks: Dict[str, object]

class WhatIfResponse(BaseModel):
    before: RiskResponse
    after: RiskResponse

class CounterfactualRequest(PatientRequest):
    target_risk: float = Field(0.05, gt=0.0, lt=1.0)

class FeatureChangeModel(BaseModel):
    original: float
    target: float
    change: float
    percent_change: float

class CounterfactualResponse(BaseModel):
    target_risk: float
    target_vector: Dict[str, float]
    changes: Dict[str, FeatureChangeModel]
    total_change: float
    achieved_risk: float
    feasible: bool
    converged: bool
    iterations: int

class SensitivityRequest(PatientRequest):
    range_fraction: float = Field(0.10, ge=0.0, le=1.0)

class SensitivityEntryModel(BaseModel):
    feature: str
    low: float
    high: float
    range: float

class SensitivityResponse(BaseModel):
    baseline_risk: float
    entries: List[SensitivityEntryModel]

class StabilityRequest(PatientRequest):
    sample_count: int = Field(100, ge=1, le=5000)
    seed: Optional[int] = None

class FeatureStabilityModel(BaseModel):
    mean: float
    std: float
    cv: float
    stable: bool

class StabilityResponse(BaseModel):
    features: Dict[str, FeatureStabilityModel]

class TrajectoryRequest(PatientRequest):
    horizon_days: int = Field(7, le=365)

class TrajectoryPointModel(BaseModel):
    day: int
    calcium: float
    probability: float
    ci_lower: float
    ci_upper: float

class TrajectoryResponse(BaseModel):
    points: List[TrajectoryPointModel]

class FeatureSpecResponse(BaseModel):
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
