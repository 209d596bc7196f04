"""
Veridion Insights — FastAPI Main Application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from veridion.api import dependencies as deps
from veridion.api.router import api_router
from veridion.core.config import settings
from veridion.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("%s v%s starting (store: %s)", settings.app_name, settings.version,
                settings.sqlite_path or ":memory:")
    yield
    logger.info("Shutting down...")
    deps.shutdown_executor()


app = FastAPI(
    title=settings.app_name,
    description="Drift detection, model robustness testing and incident pattern learning",
    version=settings.version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": settings.version, "platform": settings.app_name}


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
