"""Pydantic Settings configuration models.

3-tier config hierarchy (lowest to highest priority):
1. Pydantic defaults (in code below)
2. .env file (loaded by Pydantic Settings)
3. Environment variables (e.g., STRATLAB_SWEEP__MAX_COMBINATIONS=5000)
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
VALID_LOG_FORMATS = frozenset({"console", "json"})
VALID_RANK_METRICS = frozenset({
    "totalReturn",
    "annualizedReturn",
    "sharpeRatio",
    "sortinoRatio",
    "profitFactor",
    "winRate",
    "expectancy",
    "maxDrawdown",
})


class EngineConfig(BaseModel):
    """Defaults for single backtest runs and boundary validation."""

    initial_capital: float = Field(default=10000.0, gt=0)
    commission_pct: float = Field(default=0.1, ge=0, le=5)
    min_bars: int = Field(default=10, ge=2)
    min_source_length: int = Field(default=10, ge=1)


class SweepConfig(BaseModel):
    """Parameter sweep limits and ranking."""

    max_combinations: int = Field(default=1000, ge=1, le=100_000)
    max_workers: int = Field(default=4, ge=1, le=32)
    rank_by: str = "sharpeRatio"
    top_n: int = Field(default=10, ge=1, le=1000)

    @field_validator("rank_by")
    @classmethod
    def validate_rank_by(cls, v: str) -> str:
        if v not in VALID_RANK_METRICS:
            raise ValueError(
                f"rank_by must be one of {sorted(VALID_RANK_METRICS)}, got {v}"
            )
        return v


class AIConfig(BaseModel):
    """OpenAI-compatible suggestion endpoint. Empty api_key disables it."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Env var examples:
        STRATLAB_LOG_LEVEL=DEBUG
        STRATLAB_ENGINE__COMMISSION_PCT=0.05
        STRATLAB_AI__API_KEY=sk-...
    """

    model_config = SettingsConfigDict(
        env_prefix="STRATLAB_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"
    engine: EngineConfig = EngineConfig()
    sweep: SweepConfig = SweepConfig()
    ai: AIConfig = AIConfig()
    db_path: str = "data/strategylab.db"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {v}"
            )
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in VALID_LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {sorted(VALID_LOG_FORMATS)}, got {v}"
            )
        return v
