"""FastAPI service exposing the hypocalcemia risk explanation queries."""
from dataclasses import asdict
import logging
from typing import Dict

from fastapi import FastAPI, HTTPException

from analysis import (
    get_counterfactual_plan,
    get_sensitivity_report,
    get_stability_report,
    get_trajectory,
)
from feature_catalog import prepare_vector
from model_utils import (
    estimate_risk,
    generate_insights,
    get_contributions,
    get_feature_spec,
    get_meta,
    what_if,
)
from schema import (
    ContributionsResponse,
    CounterfactualRequest,
    CounterfactualResponse,
    FeatureSpecResponse,
    PatientRequest,
    PredictResponse,
    RiskResponse,
    SensitivityRequest,
    SensitivityResponse,
    StabilityRequest,
    StabilityResponse,
    TrajectoryRequest,
    TrajectoryResponse,
    WhatIfRequest,
    WhatIfResponse,
)
from shap_engine import get_variant

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Hypocalcemia Risk Explainer API",
    description=(
        "Serve post-thyroidectomy hypocalcemia risk estimates with uncertainty "
        "bands, SHAP-style attributions, counterfactual plans, sensitivity, "
        "stability and trajectory analyses."
    ),
    version="0.1.0",
)


@app.get("/meta")
def read_meta() -> Dict:
    """Return metadata describing features, ranges, units and model variants."""
    return get_meta()


@app.get("/features/{feature_id}", response_model=FeatureSpecResponse)
def read_feature(feature_id: str) -> FeatureSpecResponse:
    try:
        spec = get_feature_spec(feature_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return FeatureSpecResponse(**spec.to_dict())


def _bad_request(exc: ValueError) -> HTTPException:
    logger.info("Rejected request: %s", exc)
    return HTTPException(status_code=400, detail=str(exc))


@app.post("/predict", response_model=PredictResponse)
def predict(req: PatientRequest) -> PredictResponse:
    try:
        variant = get_variant(req.variant)
        vector = prepare_vector(req.patient)
        est = estimate_risk(vector, variant)
        insights = generate_insights(vector, variant, estimate=est)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return PredictResponse(**est.to_dict(), insights=[asdict(i) for i in insights])


@app.post("/contributions", response_model=ContributionsResponse)
def contributions(req: PatientRequest) -> ContributionsResponse:
    try:
        variant = get_variant(req.variant)
        contrib = get_contributions(req.patient, variant)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return ContributionsResponse(variant=variant.name, contributions=contrib)


@app.post("/what-if", response_model=WhatIfResponse)
def run_what_if(req: WhatIfRequest) -> WhatIfResponse:
    try:
        res = what_if(req.patient, req.tweaks, req.variant)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return WhatIfResponse(
        before=RiskResponse(**res["before"].to_dict()),
        after=RiskResponse(**res["after"].to_dict()),
    )


@app.post("/counterfactual", response_model=CounterfactualResponse)
def counterfactual(req: CounterfactualRequest) -> CounterfactualResponse:
    try:
        plan = get_counterfactual_plan(req.patient, req.target_risk, req.variant)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return CounterfactualResponse(**plan.to_dict())


@app.post("/sensitivity", response_model=SensitivityResponse)
def sensitivity(req: SensitivityRequest) -> SensitivityResponse:
    try:
        baseline = estimate_risk(prepare_vector(req.patient), req.variant).probability
        entries = get_sensitivity_report(req.patient, req.variant, req.range_fraction)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return SensitivityResponse(baseline_risk=baseline, entries=[asdict(e) for e in entries])


@app.post("/stability", response_model=StabilityResponse)
def stability(req: StabilityRequest) -> StabilityResponse:
    try:
        report = get_stability_report(req.patient, req.variant, req.sample_count, req.seed)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return StabilityResponse(features={f: asdict(s) for f, s in report.items()})


@app.post("/trajectory", response_model=TrajectoryResponse)
def trajectory(req: TrajectoryRequest) -> TrajectoryResponse:
    try:
        points = get_trajectory(req.patient, req.variant, req.horizon_days)
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return TrajectoryResponse(points=[asdict(p) for p in points])
