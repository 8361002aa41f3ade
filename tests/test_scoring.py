from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import CandidateEntity, EntityType
from marketpulse.services.rankings.scoring import (
    DEFAULT_WEIGHT_PROFILES,
    RankingWeightProfile,
    assign_ranks,
    build_weight_profiles,
    order_candidates,
    recency_score,
    score_candidates,
)

NOW = datetime(2024, 3, 15, tzinfo=timezone.utc)


def _candidate(candidate_id: str, last_activity_at: datetime | None = None, **metrics: float) -> CandidateEntity:
    return CandidateEntity(
        id=candidate_id,
        raw_metrics=metrics,
        computed_score=0.0,
        last_activity_at=last_activity_at,
    )


def test_more_recent_candidate_wins_when_everything_else_ties():
    profile = RankingWeightProfile(
        EntityType.ARTWORK, {"views": 20, "sales": 25, "revenue": 15, "quality": 15, "recency": 5}
    )
    shared = {"views": 40.0, "sales": 2.0, "revenue": 300.0, "quality": 0.8}
    recent = _candidate("old-id", recency=recency_score(NOW - timedelta(days=1), NOW, 30), **shared)
    stale = _candidate("a-id", recency=recency_score(NOW - timedelta(days=20), NOW, 30), **shared)

    ranked = assign_ranks(order_candidates(score_candidates([stale, recent], profile)))

    assert [candidate.id for candidate in ranked] == ["old-id", "a-id"]
    assert ranked[0].computed_score > ranked[1].computed_score
    assert [candidate.rank for candidate in ranked] == [1, 2]


def test_raising_a_weighted_dimension_never_lowers_the_score():
    profile = RankingWeightProfile(EntityType.ARTWORK, DEFAULT_WEIGHT_PROFILES[EntityType.ARTWORK])
    peer = _candidate("peer", views=100.0, sales=4.0, revenue=800.0)
    before = score_candidates([_candidate("x", views=10.0, sales=1.0), peer], profile)[0].computed_score
    after = score_candidates([_candidate("x", views=60.0, sales=1.0), peer], profile)[0].computed_score

    assert after >= before


def test_scores_are_bounded_and_missing_or_negative_values_count_as_zero():
    profile = RankingWeightProfile(EntityType.ARTWORK, {"views": 1, "sales": 1})
    scored = score_candidates(
        [_candidate("a", views=10.0, sales=5.0), _candidate("b", views=-3.0), _candidate("c")],
        profile,
    )

    assert [candidate.computed_score for candidate in scored] == [1.0, 0.0, 0.0]


def test_zero_total_weight_scores_everything_zero():
    profile = RankingWeightProfile(EntityType.ARTIST, {"total_views": 0})

    scored = score_candidates([_candidate("r1", total_views=10.0)], profile)

    assert scored[0].computed_score == 0.0


def test_ties_break_on_recency_then_id():
    base = NOW - timedelta(days=2)
    candidates = [
        CandidateEntity(id="b", raw_metrics={}, computed_score=0.5, last_activity_at=base),
        CandidateEntity(id="a", raw_metrics={}, computed_score=0.5, last_activity_at=base),
        CandidateEntity(id="c", raw_metrics={}, computed_score=0.5, last_activity_at=NOW),
        CandidateEntity(id="d", raw_metrics={}, computed_score=0.9, last_activity_at=None),
    ]

    assert [candidate.id for candidate in order_candidates(candidates)] == ["d", "c", "a", "b"]


def test_recency_decays_linearly_within_the_window():
    assert recency_score(NOW, NOW, 30) == 1.0
    assert recency_score(NOW - timedelta(days=15), NOW, 30) == pytest.approx(0.5)
    assert recency_score(NOW - timedelta(days=45), NOW, 30) == 0.0
    assert recency_score(None, NOW, 30) == 0.0


def test_weight_profiles_merge_overrides_and_validate():
    profiles = build_weight_profiles({"artwork": {"views": 30}})

    assert profiles[EntityType.ARTWORK].weights["views"] == 30.0
    assert profiles[EntityType.ARTWORK].weights["sales"] == 25.0
    assert profiles[EntityType.COLLECTION].weights == {
        key: float(value) for key, value in DEFAULT_WEIGHT_PROFILES[EntityType.COLLECTION].items()
    }
    assert profiles[EntityType.ARTWORK].normalized()["views"] == pytest.approx(30 / 110)

    with pytest.raises(InvalidArgumentError):
        build_weight_profiles({"gallery": {"views": 1}})
    with pytest.raises(InvalidArgumentError):
        build_weight_profiles({"artist": {"total_views": -1}})
    with pytest.raises(InvalidArgumentError):
        RankingWeightProfile(EntityType.ARTWORK, {"views": float("inf")})


def test_weights_keep_their_share_when_no_candidate_has_the_dimension():
    profile = RankingWeightProfile(EntityType.ARTWORK, {"views": 1, "quality": 1})

    scored = score_candidates([_candidate("A1", views=4), _candidate("A2", views=2)], profile)

    assert [candidate.computed_score for candidate in scored] == [0.5, 0.25]
