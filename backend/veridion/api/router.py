"""API router composition.

All REST endpoints live under `/api/v1/*`.
"""

from fastapi import APIRouter

from veridion.api.routes.drift import router as drift_router
from veridion.api.routes.evidence import router as evidence_router
from veridion.api.routes.learning import router as learning_router
from veridion.api.routes.robustness import router as robustness_router


api_router = APIRouter()

api_router.include_router(drift_router, tags=["drift"])
api_router.include_router(robustness_router, tags=["robustness"])
api_router.include_router(learning_router, tags=["incident-learning"])
api_router.include_router(evidence_router, tags=["evidence"])
