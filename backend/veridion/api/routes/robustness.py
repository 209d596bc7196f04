"""Robustness assessment routes: upload a sklearn model plus evaluation CSV."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse

from veridion.api import dependencies as deps
from veridion.robustness.engine import (
    create_robustness_test_engine,
    run_quick_robustness_assessment,
)

router = APIRouter(prefix="/robustness")


@router.post("/assess")
async def assess_model(
    background_tasks: BackgroundTasks,
    model_file: UploadFile = File(...),
    dataset_file: UploadFile = File(...),
    mode: str = Query("quick", pattern="^(quick|full)$"),
    seed: Optional[int] = None,
):
    """Run adversarial and edge-case tests (and stress tests in full mode) against an uploaded model."""
    if not model_file.filename.lower().endswith(".pkl"):
        raise HTTPException(status_code=400, detail="Only .pkl (pickle) model files are accepted.")
    if not dataset_file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Dataset must be a .csv file.")

    model_bytes = await model_file.read()
    dataset_bytes = await dataset_file.read()
    model_name = model_file.filename
    dataset_name = dataset_file.filename

    def _run_assessment():
        model, metadata = deps.model_loader.load_and_validate(model_bytes, model_name)
        dataset = deps.csv_engine.ingest(dataset_bytes, dataset_name)

        n_expected = metadata.get("n_features_in")
        if n_expected and n_expected != len(dataset["feature_names"]):
            raise ValueError(
                f"Model expects {n_expected} features but the dataset has "
                f"{len(dataset['feature_names'])} numeric feature columns"
            )

        predict = deps.model_loader.make_predict_fn(model)
        inputs = dataset["features"].tolist()
        labels = dataset["labels"].tolist()

        if mode == "full":
            engine = create_robustness_test_engine({"random_seed": seed})
            report = engine.run_comprehensive_robustness_analysis(
                predict, inputs, labels, dataset["feature_ranges"]
            )
        else:
            report = run_quick_robustness_assessment(
                predict, inputs, labels, dataset["feature_ranges"], random_seed=seed
            )

        return {
            "analysis_id": f"rob-{uuid.uuid4().hex[:12]}",
            "mode": mode,
            "model_metadata": metadata,
            "dataset": {
                "filename": dataset_name,
                "n_rows": dataset["n_rows"],
                "feature_names": dataset["feature_names"],
                "label_column": dataset["label_column"],
                "warnings": dataset["warnings"],
            },
            **report,
        }

    try:
        result = await deps.run_in_pool(_run_assessment)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Robustness assessment error: {str(e)}")

    result = deps.to_serializable(result)
    background_tasks.add_task(deps.store.save_result, result, "robustness", model_name)
    return JSONResponse(content=result)


@router.get("/history")
async def robustness_history(limit: int = 20):
    return {"results": deps.store.get_history("robustness", limit=limit)}


@router.get("/{analysis_id}")
async def robustness_result(analysis_id: str):
    result = deps.store.get_result(analysis_id, kind="robustness")
    if not result:
        raise HTTPException(status_code=404, detail="Assessment not found.")
    return result
