"""
Evidence recorder.

Append-only audit events for DORA Art. 13 learning activity. Each event is
logged and, when a store is attached, persisted to the evidence_events table.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

SEVERITIES = ("INFO", "LOW", "MEDIUM", "HIGH", "CRITICAL")
MEMORY_EVENT_LIMIT = 1000


class EvidenceRecorder:
    def __init__(self, store=None, memory_limit: int = MEMORY_EVENT_LIMIT):
        self.store = store
        # store-less recorders keep only the newest events
        self._events: Deque[Dict[str, Any]] = deque(maxlen=memory_limit)

    def record(self, event_type: str, severity: str = "INFO",
               metadata: Optional[Dict[str, Any]] = None,
               regulatory_tags: Optional[List[str]] = None,
               articles: Optional[List[str]] = None) -> Dict[str, Any]:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown evidence severity '{severity}'")

        event = {
            "event_id": f"evt-{uuid.uuid4().hex[:12]}",
            "event_type": event_type,
            "severity": severity,
            "regulatory_tags": regulatory_tags or ["DORA"],
            "articles": articles or ["Art.13"],
            "metadata": metadata or {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        logger.info("Evidence event %s [%s] %s", event_type, severity, event["metadata"])

        if self.store is not None:
            self.store.insert_event(event)
        else:
            self._events.append(event)
        return event

    def events(self, event_type: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent events first."""
        if self.store is not None:
            return self.store.list_events(event_type, limit)
        matching = [e for e in self._events if event_type is None or e["event_type"] == event_type]
        return list(reversed(matching))[:limit]
