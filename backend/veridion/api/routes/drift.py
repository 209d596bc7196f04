"""Drift detection routes: numeric, concept, prediction, categorical and dataset drift."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import JSONResponse

from veridion.api import dependencies as deps
from veridion.detection.drift_engine import (
    create_drift_detection_engine,
    run_comprehensive_drift_analysis,
)
from veridion.models.drift_model import (
    CategoricalDriftRequest,
    ConceptDriftRequest,
    DataDriftRequest,
    DatasetDriftRequest,
    PredictionDriftRequest,
)

router = APIRouter(prefix="/drift")


async def _run(label: str, fn, *args):
    try:
        return await deps.run_in_pool(fn, *args)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"{label} error: {str(e)}")


def _monitor(system_id: Optional[str], result: Dict[str, Any]) -> Dict[str, Any]:
    if system_id:
        result["monitor"] = deps.drift_monitor.record(system_id, result)
    return result


@router.post("/data")
async def data_drift(body: DataDriftRequest, background_tasks: BackgroundTasks):
    def _task():
        engine = create_drift_detection_engine(body.config)
        return engine.detect_data_drift(body.baseline_data, body.current_data, body.feature_name)

    result = await _run("Data drift", _task)
    result = deps.to_serializable(_monitor(body.system_id, {**result, "feature_name": body.feature_name}))
    background_tasks.add_task(deps.store.save_result, result, "drift", body.feature_name)
    return JSONResponse(content=result)


@router.post("/concept")
async def concept_drift(body: ConceptDriftRequest, background_tasks: BackgroundTasks):
    def _task():
        engine = create_drift_detection_engine(body.config)
        return engine.detect_concept_drift(body.predictions, body.window_size)

    result = deps.to_serializable(_monitor(body.system_id, await _run("Concept drift", _task)))
    background_tasks.add_task(deps.store.save_result, result, "drift", "concept")
    return JSONResponse(content=result)


@router.post("/prediction")
async def prediction_drift(body: PredictionDriftRequest, background_tasks: BackgroundTasks):
    def _task():
        engine = create_drift_detection_engine(body.config)
        return engine.detect_prediction_drift(body.baseline_predictions, body.current_predictions)

    result = deps.to_serializable(_monitor(body.system_id, await _run("Prediction drift", _task)))
    background_tasks.add_task(deps.store.save_result, result, "drift", "prediction")
    return JSONResponse(content=result)


@router.post("/categorical")
async def categorical_drift(body: CategoricalDriftRequest, background_tasks: BackgroundTasks):
    def _task():
        engine = create_drift_detection_engine(body.config)
        return engine.detect_categorical_drift(
            body.baseline_categories, body.current_categories, body.feature_name
        )

    result = await _run("Categorical drift", _task)
    result = deps.to_serializable(_monitor(body.system_id, {**result, "feature_name": body.feature_name}))
    background_tasks.add_task(deps.store.save_result, result, "drift", body.feature_name)
    return JSONResponse(content=result)


@router.post("/dataset")
async def dataset_drift(body: DatasetDriftRequest, background_tasks: BackgroundTasks):
    result = await _run(
        "Dataset drift",
        run_comprehensive_drift_analysis,
        body.baseline_data, body.current_data, body.feature_types, body.config,
    )
    if body.system_id:
        result["monitor"] = [
            deps.drift_monitor.record(body.system_id, r) for r in result["feature_results"]
        ]
    result = deps.to_serializable(result)
    background_tasks.add_task(deps.store.save_result, result, "drift", "dataset")
    return JSONResponse(content=result)


@router.get("/monitor/{system_id}")
async def drift_monitor_status(system_id: str):
    """Trend and alarm state for every feature recorded under this system."""
    features = deps.drift_monitor.features(system_id)
    if not features:
        raise HTTPException(status_code=404, detail="No drift history for this system.")
    return {
        "system_id": system_id,
        "features": [deps.drift_monitor.status(system_id, f) for f in features],
    }


@router.get("/monitor/{system_id}/{feature}/timeline")
async def drift_monitor_timeline(system_id: str, feature: str):
    timeline = deps.drift_monitor.timeline(system_id, feature)
    if not timeline:
        raise HTTPException(status_code=404, detail="No drift history for this feature.")
    return {"system_id": system_id, "feature": feature, "timeline": timeline}


@router.get("/history")
async def drift_history(limit: int = 20):
    return {"results": deps.store.get_history("drift", limit=limit)}
