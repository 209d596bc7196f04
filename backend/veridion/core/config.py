"""Application configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
import os


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True)
class Settings:
    app_name: str = "Veridion Insights"
    version: str = "1.0.0"
    cors_allow_origins: str = os.getenv("VERIDION_CORS_ORIGINS", "*")
    api_prefix: str = "/api/v1"
    sqlite_path: str = os.getenv("VERIDION_SQLITE_PATH", "")
    log_level: str = os.getenv("VERIDION_LOG_LEVEL", "INFO")
    host: str = os.getenv("VERIDION_HOST", "0.0.0.0")
    port: int = field(default_factory=lambda: _getenv_int("VERIDION_PORT", 8000))

    drift_min_sample_size: int = field(
        default_factory=lambda: _getenv_int("VERIDION_DRIFT_MIN_SAMPLES", 100)
    )
    drift_significance_level: float = field(
        default_factory=lambda: _getenv_float("VERIDION_DRIFT_SIGNIFICANCE", 0.05)
    )
    robustness_seed: int = field(
        default_factory=lambda: _getenv_int("VERIDION_ROBUSTNESS_SEED", 42)
    )
    analysis_workers: int = field(
        default_factory=lambda: _getenv_int("VERIDION_ANALYSIS_WORKERS", 2)
    )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()
