"""Evidence event log and store statistics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from veridion.api import dependencies as deps

router = APIRouter(prefix="/evidence")


@router.get("/events")
async def list_events(event_type: Optional[str] = None, limit: int = Query(100, ge=1, le=1000)):
    events = deps.evidence.events(event_type, limit)
    return {"events": events, "total": len(events)}


@router.get("/stats")
async def store_stats():
    return deps.store.get_stats()
