"""Pluggable curation pass applied after scoring, plus learning-signal routing."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Iterable, Mapping, Protocol, Sequence

from loguru import logger

from marketpulse.core.errors import CurationAdapterError
from marketpulse.domain import CandidateEntity, EntityType, MetricEventRecord, MetricType, RankingPeriod
from marketpulse.observability.rankings import RankingObservabilityStore

DailySummary = Mapping[str, Mapping[str, float]]

# Learning signal subscriptions per agent role.
QUALITY_SIGNALS = frozenset({MetricType.ARTWORK_VIEW, MetricType.ARTWORK_SALE, MetricType.AI_INTERACTION})
CURATION_SIGNALS = frozenset({MetricType.ARTWORK_VIEW, MetricType.ARTIST_VIEW, MetricType.SEARCH_QUERY})
BUSINESS_SIGNALS = frozenset({MetricType.ARTWORK_SALE, MetricType.NFT_MINTING})


@dataclass(frozen=True, slots=True)
class CurationContext:
    """What the engine was asked for when it hands candidates to an adapter."""

    operation: str
    entity_type: EntityType
    limit: int
    category: str | None = None
    period: RankingPeriod | None = None


class CurationAdapter(Protocol):
    """Reorders or filters a scored candidate pool.

    Adapters may only return candidates drawn from the input. Annotations on
    returned candidates are merged onto the engine's originals; scores and raw
    metrics always come from the engine.
    """

    name: str

    async def curate(
        self,
        entity_type: EntityType,
        candidates: Sequence[CandidateEntity],
        context: CurationContext,
    ) -> Sequence[CandidateEntity]:
        ...

    async def observe_event(self, record: MetricEventRecord) -> None:
        ...

    async def observe_daily_summary(self, metric_date: date, summary: DailySummary) -> None:
        ...


class NullCurationAdapter:
    """Identity adapter used when no curation backend is configured."""

    name = "null"

    async def curate(
        self,
        entity_type: EntityType,
        candidates: Sequence[CandidateEntity],
        context: CurationContext,
    ) -> Sequence[CandidateEntity]:
        return list(candidates)

    async def observe_event(self, record: MetricEventRecord) -> None:
        return None

    async def observe_daily_summary(self, metric_date: date, summary: DailySummary) -> None:
        return None


def adapter_name(adapter: Any) -> str:
    return str(getattr(adapter, "name", None) or type(adapter).__name__)


class CurationRegistry:
    """Routes curation requests and learning signals to adapters."""

    def __init__(
        self,
        default: CurationAdapter | None = None,
        *,
        observability: RankingObservabilityStore | None = None,
    ) -> None:
        self._default: CurationAdapter = default or NullCurationAdapter()
        self._routes: dict[str, CurationAdapter] = {}
        self._subscriptions: list[tuple[CurationAdapter, frozenset[MetricType]]] = []
        self.observability = observability

    @classmethod
    def with_agents(
        cls,
        *,
        quality: CurationAdapter | None = None,
        curation: CurationAdapter | None = None,
        business: CurationAdapter | None = None,
        observability: RankingObservabilityStore | None = None,
    ) -> "CurationRegistry":
        """Registry wired the way the marketplace agents divide work.

        The curation agent orders trending artworks; the business agent orders
        trending artists and the sales leaderboard. Each agent learns from the
        metric types it cares about.
        """

        registry = cls(observability=observability)
        if quality is not None:
            registry.subscribe(quality, QUALITY_SIGNALS)
        if curation is not None:
            registry.route(curation, operation="trending", entity_type=EntityType.ARTWORK)
            registry.subscribe(curation, CURATION_SIGNALS)
        if business is not None:
            registry.route(business, operation="trending", entity_type=EntityType.ARTIST)
            registry.route(business, operation="sales_leaderboard")
            registry.subscribe(business, BUSINESS_SIGNALS)
        return registry

    def route(
        self,
        adapter: CurationAdapter,
        *,
        operation: str | None = None,
        entity_type: EntityType | str | None = None,
    ) -> None:
        entity_key = EntityType(entity_type).value if entity_type is not None else "*"
        self._routes[f"{operation or '*'}:{entity_key}"] = adapter

    def subscribe(self, adapter: CurationAdapter, metric_types: Iterable[MetricType | str]) -> None:
        self._subscriptions.append((adapter, frozenset(MetricType(value) for value in metric_types)))

    def resolve(self, operation: str, entity_type: EntityType) -> CurationAdapter:
        for key in (
            f"{operation}:{entity_type.value}",
            f"{operation}:*",
            f"*:{entity_type.value}",
        ):
            adapter = self._routes.get(key)
            if adapter is not None:
                return adapter
        return self._default

    def learners_for(self, metric_type: MetricType) -> list[CurationAdapter]:
        return [adapter for adapter, types in self._subscriptions if metric_type in types]

    def adapters(self) -> list[CurationAdapter]:
        """Every distinct adapter known to the registry, in registration order."""

        seen: list[CurationAdapter] = []
        for adapter in [*self._routes.values(), *(adapter for adapter, _ in self._subscriptions)]:
            if not any(adapter is existing for existing in seen):
                seen.append(adapter)
        return seen

    async def notify_event(self, record: MetricEventRecord) -> None:
        for adapter in self.learners_for(record.metric_type):
            try:
                await adapter.observe_event(record)
            except Exception as exc:
                self._learning_failed(adapter, "observe_event", exc)

    async def notify_daily_summary(self, metric_date: date, summary: DailySummary) -> None:
        for adapter in self.adapters():
            try:
                await adapter.observe_daily_summary(metric_date, summary)
            except Exception as exc:
                self._learning_failed(adapter, "observe_daily_summary", exc)

    def _learning_failed(self, adapter: CurationAdapter, hook: str, exc: Exception) -> None:
        name = adapter_name(adapter)
        logger.bind(adapter=name, hook=hook).warning("Curation learning hook failed", error=str(exc))
        if self.observability is not None:
            self.observability.record_learning_failure(name)


async def apply_curation(
    adapter: CurationAdapter,
    candidates: Sequence[CandidateEntity],
    context: CurationContext,
    *,
    observability: RankingObservabilityStore | None = None,
) -> list[CandidateEntity]:
    """Run ``adapter`` over ``candidates`` and keep only well-formed output.

    Returned ids must belong to the input; anything else is dropped. Duplicates
    keep their first position. Errors, non-list output and empty output fall
    back to the engine's order.
    """

    if not candidates:
        return []

    name = adapter_name(adapter)
    originals = {candidate.id: candidate for candidate in candidates}

    def _fallback(reason: str) -> list[CandidateEntity]:
        logger.bind(adapter=name, operation=context.operation, entity_type=context.entity_type.value).warning(
            "Curation output discarded; keeping engine order", reason=reason
        )
        if observability is not None:
            observability.record_curation(name, fallback=True)
        return list(candidates)

    try:
        curated = await adapter.curate(context.entity_type, tuple(candidates), context)
    except Exception as exc:
        return _fallback(str(CurationAdapterError(name, str(exc))))

    if not isinstance(curated, (list, tuple)):
        return _fallback(f"expected a list of candidates, got {type(curated).__name__}")

    result: list[CandidateEntity] = []
    seen: set[str] = set()
    foreign: list[str] = []
    for item in curated:
        if isinstance(item, CandidateEntity):
            candidate_id, annotations = item.id, item.annotations
        elif isinstance(item, str):
            candidate_id, annotations = item, {}
        else:
            foreign.append(repr(item))
            continue

        original = originals.get(candidate_id)
        if original is None:
            foreign.append(candidate_id)
            continue
        if candidate_id in seen:
            continue
        seen.add(candidate_id)
        if annotations and annotations != original.annotations:
            original = replace(original, annotations={**original.annotations, **annotations})
        result.append(original)

    if foreign:
        error = CurationAdapterError(name, f"returned {len(foreign)} unknown candidate(s)")
        logger.bind(adapter=name, operation=context.operation).warning(
            "Dropped curated candidates outside the pool", error=str(error), ids=foreign[:10]
        )

    if not result:
        return _fallback("adapter returned no known candidates")

    if observability is not None:
        observability.record_curation(name, fallback=False, foreign_ids=len(foreign))
    return result


__all__ = [
    "BUSINESS_SIGNALS",
    "CURATION_SIGNALS",
    "CurationAdapter",
    "CurationContext",
    "CurationRegistry",
    "DailySummary",
    "NullCurationAdapter",
    "QUALITY_SIGNALS",
    "adapter_name",
    "apply_curation",
]
