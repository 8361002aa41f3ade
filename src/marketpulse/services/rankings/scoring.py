"""Weighted multi-factor scoring and deterministic ordering."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, Mapping, Sequence

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import CandidateEntity, EntityType

DEFAULT_WEIGHT_PROFILES: dict[EntityType, dict[str, float]] = {
    EntityType.ARTWORK: {
        "views": 20,
        "sales": 25,
        "revenue": 15,
        "quality": 15,
        "artistic_innovation": 10,
        "engagement": 10,
        "recency": 5,
    },
    EntityType.ARTIST: {
        "artwork_count": 10,
        "total_views": 15,
        "total_sales": 20,
        "total_revenue": 20,
        "avg_artwork_quality": 15,
        "artistic_growth": 10,
        "marketplace_engagement": 10,
    },
    EntityType.COLLECTION: {
        "artwork_count": 15,
        "collection_views": 20,
        "total_sales": 25,
        "collection_cohesion": 20,
        "artistic_diversity": 10,
        "curator_reputation": 10,
    },
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class RankingWeightProfile:
    """Dimension weights for one entity class; only their ratios matter."""

    entity_type: EntityType
    weights: Mapping[str, float]

    def __post_init__(self) -> None:
        for dimension, weight in self.weights.items():
            if isinstance(weight, bool) or not isinstance(weight, (int, float)):
                raise InvalidArgumentError(f"weight for {dimension!r} must be a number")
            if not math.isfinite(weight) or weight < 0:
                raise InvalidArgumentError(f"weight for {dimension!r} must be a non-negative finite number")
        object.__setattr__(self, "weights", {key: float(value) for key, value in self.weights.items()})

    @property
    def total(self) -> float:
        return sum(self.weights.values())

    def normalized(self) -> dict[str, float]:
        total = self.total
        if total <= 0:
            return {dimension: 0.0 for dimension in self.weights}
        return {dimension: weight / total for dimension, weight in self.weights.items()}

    def with_weight(self, dimension: str, weight: float) -> "RankingWeightProfile":
        return RankingWeightProfile(self.entity_type, {**self.weights, dimension: weight})


def build_weight_profiles(
    overrides: Mapping[str, Mapping[str, float]] | None = None,
) -> dict[EntityType, RankingWeightProfile]:
    """Defaults merged with per-entity overrides from configuration."""

    merged = {entity: dict(weights) for entity, weights in DEFAULT_WEIGHT_PROFILES.items()}
    for entity_key, weights in (overrides or {}).items():
        try:
            entity = EntityType(entity_key)
        except ValueError as exc:
            raise InvalidArgumentError(f"unknown entity type {entity_key!r} in ranking weights") from exc
        merged[entity].update(weights)
    return {entity: RankingWeightProfile(entity, weights) for entity, weights in merged.items()}


def recency_score(last_activity_at: datetime | None, now: datetime, lookback_days: int) -> float:
    """Linear decay from 1 (active right now) to 0 (at the edge of the window)."""

    if last_activity_at is None or lookback_days <= 0:
        return 0.0
    days_ago = max(0.0, (now - last_activity_at).total_seconds() / 86400)
    return max(0.0, 1.0 - days_ago / lookback_days)


def score_candidates(
    candidates: Sequence[CandidateEntity],
    profile: RankingWeightProfile,
) -> list[CandidateEntity]:
    """Attach ``computed_score`` to every candidate.

    Each dimension is scaled by the largest value in the pool, so a score is a
    weighted average of values in ``[0, 1]``. Missing and negative values count
    as zero.
    """

    weights = profile.normalized()
    maxima: dict[str, float] = {}
    for dimension in weights:
        maxima[dimension] = max(
            (max(0.0, float(candidate.raw_metrics.get(dimension, 0.0))) for candidate in candidates),
            default=0.0,
        )

    scored: list[CandidateEntity] = []
    for candidate in candidates:
        score = 0.0
        for dimension, weight in weights.items():
            ceiling = maxima[dimension]
            if weight <= 0 or ceiling <= 0:
                continue
            value = max(0.0, float(candidate.raw_metrics.get(dimension, 0.0)))
            score += weight * (value / ceiling)
        scored.append(replace(candidate, computed_score=round(score, 12)))
    return scored


def ranking_order_key(candidate: CandidateEntity) -> tuple[float, float, str]:
    last = candidate.last_activity_at or _EPOCH
    return (-candidate.computed_score, -last.timestamp(), candidate.id)


def order_candidates(candidates: Iterable[CandidateEntity]) -> list[CandidateEntity]:
    return sorted(candidates, key=ranking_order_key)


def assign_ranks(candidates: Iterable[CandidateEntity]) -> list[CandidateEntity]:
    return [replace(candidate, rank=position) for position, candidate in enumerate(candidates, start=1)]


__all__ = [
    "DEFAULT_WEIGHT_PROFILES",
    "RankingWeightProfile",
    "assign_ranks",
    "build_weight_profiles",
    "order_candidates",
    "ranking_order_key",
    "recency_score",
    "score_candidates",
]
