"""Drift request models (optional typing layer)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class DataDriftRequest(BaseModel):
    baseline_data: List[float]
    current_data: List[float]
    feature_name: str = "feature"
    system_id: Optional[str] = None
    config: Dict[str, Any] = {}


class ConceptDriftRequest(BaseModel):
    predictions: List[float]
    window_size: int = Field(100, ge=1)
    system_id: Optional[str] = None
    config: Dict[str, Any] = {}


class PredictionDriftRequest(BaseModel):
    baseline_predictions: List[float]
    current_predictions: List[float]
    system_id: Optional[str] = None
    config: Dict[str, Any] = {}


class CategoricalDriftRequest(BaseModel):
    baseline_categories: List[str]
    current_categories: List[str]
    feature_name: str = "categorical_feature"
    system_id: Optional[str] = None
    config: Dict[str, Any] = {}


class DatasetDriftRequest(BaseModel):
    baseline_data: Dict[str, List[Union[float, str]]]
    current_data: Dict[str, List[Union[float, str]]]
    feature_types: Dict[str, str]
    system_id: Optional[str] = None
    config: Dict[str, Any] = {}
