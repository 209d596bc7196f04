"""Incident learning routes: pattern analysis, recommendations and their lifecycle."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import JSONResponse

from veridion.api import dependencies as deps
from veridion.core.errors import InvalidTransitionError, NotFoundError
from veridion.models.incident_model import (
    PatternAnalysisRequest,
    RootCauseAnalysis,
    StatusChangeRequest,
)

router = APIRouter(prefix="/incidents/learning")


@router.post("/analyze")
async def analyze_patterns(body: PatternAnalysisRequest, background_tasks: BackgroundTasks):
    """Mine patterns from the submitted incidents and optionally generate recommendations."""

    def _run_analysis():
        result = deps.pattern_engine.analyze_patterns(body.incidents, now=body.now)
        if body.generate_recommendations:
            recs = deps.recommendation_generator.generate_from_patterns(result["patterns"])
            saved = deps.recommendation_generator.save_recommendations(recs)
            result["recommendations_generated"] = len(saved)
        return result

    try:
        result = await deps.run_in_pool(_run_analysis)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Pattern analysis error: {str(e)}")

    result = deps.to_serializable(result)
    background_tasks.add_task(deps.store.save_result, result, "patterns", "incident_learning")
    return JSONResponse(content=result)


@router.get("/patterns")
async def list_patterns(type: Optional[str] = None, status: Optional[str] = None):
    patterns = deps.store.list_patterns(
        pattern_type=type.upper() if type else None,
        status=status.upper() if status else None,
    )
    return {"patterns": patterns, "total": len(patterns)}


@router.get("/recommendations")
async def list_recommendations(status: Optional[str] = None, priority: Optional[str] = None):
    recs = deps.store.list_recommendations(
        status=status.upper() if status else None,
        priority=priority.upper() if priority else None,
    )
    return {"recommendations": recs, "total": len(recs)}


@router.get("/recommendations/{rec_id}")
async def get_recommendation(rec_id: str):
    rec = deps.store.get_recommendation(rec_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Recommendation not found.")
    return rec


@router.put("/recommendations/{rec_id}")
async def update_recommendation_status(rec_id: str, body: StatusChangeRequest):
    try:
        rec = deps.recommendation_generator.transition_status(
            rec_id, body.status, body.changed_by, body.reason
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return rec


@router.post("/root-cause")
async def recommendations_from_root_cause(body: RootCauseAnalysis):
    """Generate and save recommendations from a completed root-cause analysis."""
    try:
        generated = deps.recommendation_generator.generate_from_root_cause(body)
        saved = deps.recommendation_generator.save_recommendations(generated)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Recommendation error: {str(e)}")

    return JSONResponse(content=deps.to_serializable({
        "rca_id": body.id,
        "generated": len(generated),
        "saved": len(saved),
        "recommendations": saved,
    }))
