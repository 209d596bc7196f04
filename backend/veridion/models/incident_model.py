"""Incident-learning request and record models (pydantic typing layer)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

PATTERN_TYPES = (
    "RECURRING", "SEASONAL", "CASCADE", "CORRELATED", "ESCALATING",
    "SYSTEMIC", "VENDOR_RELATED", "HUMAN_ERROR", "CONFIGURATION", "CAPACITY",
)
ROOT_CAUSE_CATEGORIES = (
    "TECHNICAL_FAILURE", "HUMAN_ERROR", "PROCESS_GAP", "EXTERNAL_FACTOR",
    "VENDOR_ISSUE", "CAPACITY_ISSUE", "CONFIGURATION_ERROR", "SECURITY_BREACH",
    "DEPENDENCY_FAILURE", "UNKNOWN",
)
RECOMMENDATION_STATUSES = (
    "PROPOSED", "APPROVED", "IN_PROGRESS", "IMPLEMENTED", "VERIFIED", "REJECTED", "DEFERRED",
)


class Incident(BaseModel):
    id: str
    occurred_at: datetime
    resolved_at: Optional[datetime] = None
    title: str = ""
    description: str = ""
    category: Optional[str] = None
    type: Optional[str] = None
    severity: Optional[str] = None
    status: str = "RESOLVED"
    duration_minutes: float = 0
    affected_users: int = 0
    affected_systems: List[str] = []
    affected_services: List[str] = []
    root_causes: List[str] = []


class ContributingFactor(BaseModel):
    factor: str
    weight: float = Field(0.5, ge=0, le=1)


class RootCause(BaseModel):
    id: Optional[str] = None
    category: str = "UNKNOWN"
    description: str = ""
    confidence: float = Field(50, ge=0, le=100)
    is_primary: bool = False
    contributing_factors: List[ContributingFactor] = []
    evidence: List[str] = []


class RootCauseAnalysis(BaseModel):
    id: str
    incident_id: str
    analysis_type: str = "MANUAL"
    analysis_method: str = "5-Whys"
    root_causes: List[RootCause] = []
    analyzed_by: str = "analyst"
    analyzed_at: Optional[datetime] = None


class PatternAnalysisRequest(BaseModel):
    incidents: List[Incident]
    now: Optional[datetime] = None
    generate_recommendations: bool = True


class StatusChangeRequest(BaseModel):
    status: str
    changed_by: str
    reason: Optional[str] = None
