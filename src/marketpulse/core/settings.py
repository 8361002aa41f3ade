from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MARKETPULSE_",
        extra="allow",
    )

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./marketpulse.db"
    create_schema_on_startup: bool = False
    tracing_enabled: bool = True

    # Query cache
    standard_cache_ttl_seconds: int = 60 * 60
    trending_cache_ttl_seconds: int = 30 * 60

    # Ranking engine
    trending_window_days: int = 7
    ranking_oversample_factor: int = 3
    trending_oversample_factor: int = 2
    sales_leaderboard_oversample_factor: int = 2
    ranking_timeout_seconds: float | None = None
    # JSON object keyed by entity type, e.g. {"artwork": {"views": 30}}
    ranking_weights: dict[str, dict[str, float]] = Field(default_factory=dict)

    @field_validator("ranking_weights")
    @classmethod
    def _check_weights(cls, value: dict[str, dict[str, float]]) -> dict[str, dict[str, float]]:
        for entity_type, weights in value.items():
            for dimension, weight in weights.items():
                if weight < 0:
                    raise ValueError(
                        f"ranking weight {entity_type}.{dimension} must be non-negative, got {weight}"
                    )
        return value

    # Daily aggregation
    aggregated_metric_types: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["artwork_view", "artist_view", "artwork_sale", "ai_interaction"]
    )
    aggregation_scheduler_enabled: bool = False
    aggregation_cron: str = "15 0 * * *"
    aggregation_timezone: str = "UTC"

    @field_validator("aggregated_metric_types", mode="before")
    @classmethod
    def _parse_metric_types(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
