import asyncio
import threading
import time

from fastapi.testclient import TestClient

from veridion.api import dependencies as deps
from veridion.core.config import settings
from veridion.main import app


def test_analysis_pool_is_shared_and_bounded() -> None:
    deps.shutdown_executor()
    lock = threading.Lock()
    active = 0
    peak = 0

    def _work() -> str:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.05)
        with lock:
            active -= 1
        return threading.current_thread().name

    async def _burst():
        return await asyncio.gather(*(deps.run_in_pool(_work) for _ in range(3 * settings.analysis_workers)))

    names = asyncio.run(_burst())

    assert peak <= settings.analysis_workers
    assert len(set(names)) <= settings.analysis_workers
    assert all(name.startswith("veridion-analysis") for name in names)
    assert deps.get_executor() is deps.get_executor()


def test_lifespan_shuts_the_pool_down_and_it_is_recreated_on_demand() -> None:
    pool = deps.get_executor()
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    assert deps._executor is None

    replacement = deps.get_executor()
    assert replacement is not pool
    assert replacement.submit(lambda: 42).result() == 42
