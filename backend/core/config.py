"""
ChannelLens Backend Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "ChannelLens"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./channellens.db"
    database_echo: bool = False

    # ── ML defaults (outer surfaces only; core functions take explicit args) ──
    ml_forecast_horizon_days: int = 7
    ml_min_history_days: int = 30
    ml_quality_gate_smape_max: float = 0.35
    ml_quality_gate_mase_max: float = 2.0
    ml_seasonality_period_days: int = 7

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_guardrails(settings)
    return settings


def _enforce_guardrails(settings: Settings) -> None:
    if settings.ml_forecast_horizon_days <= 0:
        raise ValueError("ml_forecast_horizon_days must be positive")
    if settings.ml_min_history_days <= 0:
        raise ValueError("ml_min_history_days must be positive")
    if settings.ml_seasonality_period_days <= 0:
        raise ValueError("ml_seasonality_period_days must be positive")
    if settings.ml_quality_gate_smape_max < 0 or settings.ml_quality_gate_mase_max < 0:
        raise ValueError("Quality gate thresholds must be non-negative")

    env = settings.app_env.strip().lower()
    is_local = env in {"", "local", "dev", "development", "test"}
    if is_local:
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
