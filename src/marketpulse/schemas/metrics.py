from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from marketpulse.domain import CandidateEntity, EntityType, MetricBucket, MetricType

# meta: schema: market-metrics


class MetricEventCreate(BaseModel):
    metric_type: MetricType
    subject_id: str = Field(..., min_length=1)
    actor_id: str | None = None
    value: float = 1.0
    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime | None = None


class MetricEventCreated(BaseModel):
    event_id: int
    metric_type: MetricType


class MetricBucketResponse(BaseModel):
    period_bucket: str
    total_value: float
    count: int

    @classmethod
    def from_bucket(cls, bucket: MetricBucket) -> "MetricBucketResponse":
        return cls(**bucket.as_dict())


class CandidateResponse(BaseModel):
    id: str
    rank: int
    computed_score: float
    raw_metrics: dict[str, float] = Field(default_factory=dict)
    last_activity_at: datetime | None = None
    annotations: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_candidate(cls, candidate: CandidateEntity) -> "CandidateResponse":
        return cls(
            id=candidate.id,
            rank=candidate.rank,
            computed_score=candidate.computed_score,
            raw_metrics=dict(candidate.raw_metrics),
            last_activity_at=candidate.last_activity_at,
            annotations=dict(candidate.annotations),
        )


class RankingResponse(BaseModel):
    entity_type: EntityType
    items: list[CandidateResponse]


class AggregationRequest(BaseModel):
    metric_date: date | None = Field(default=None, description="Day to aggregate; defaults to yesterday (UTC)")


class MarketplaceItemUpsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    item_type: EntityType
    artist_id: str | None = None
    curator_id: str | None = None
    category: str | None = None
    published: bool = True
    annotations: dict[str, float] = Field(default_factory=dict)


class MarketplaceItemResponse(MarketplaceItemUpsert):
    id: str
