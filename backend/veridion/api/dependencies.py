"""
Shared API dependencies/state.

This module centralizes singleton engines, the result store and the evidence
recorder so route modules can stay thin and consistent.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Callable, Optional

from veridion.core.config import settings
from veridion.core.evidence import EvidenceRecorder
from veridion.detection.drift_monitor import DriftMonitor
from veridion.ingestion.csv_loader import CSVIngestionEngine
from veridion.ingestion.model_loader import ModelLoader
from veridion.learning.patterns import PatternRecognitionEngine
from veridion.learning.recommendations import RecommendationGenerator
from veridion.models.database import ResultStore
from veridion.utils.serialization import to_serializable  # noqa: F401  (re-exported for routes)


# ── Singletons ────────────────────────────────────────────────────────────────
store = ResultStore(settings.sqlite_path or None)
evidence = EvidenceRecorder(store)
drift_monitor = DriftMonitor()
pattern_engine = PatternRecognitionEngine(store=store, evidence=evidence)
recommendation_generator = RecommendationGenerator(store=store, evidence=evidence)
model_loader = ModelLoader()
csv_engine = CSVIngestionEngine()


_executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> concurrent.futures.ThreadPoolExecutor:
    """The shared analysis pool; at most `analysis_workers` analyses run at once."""
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=settings.analysis_workers, thread_name_prefix="veridion-analysis"
            )
        return _executor


def shutdown_executor() -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=True)
            _executor = None


async def run_in_pool(fn: Callable[..., Any], *args: Any) -> Any:
    """Run CPU-bound analysis off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(get_executor(), fn, *args)
