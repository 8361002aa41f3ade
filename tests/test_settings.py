import pytest

from marketpulse.core.settings import Settings


def test_metric_types_parse_from_comma_separated_env(monkeypatch) -> None:
    monkeypatch.setenv("MARKETPULSE_AGGREGATED_METRIC_TYPES", "artwork_view, artwork_sale,,nft_minting")

    config = Settings()

    assert config.aggregated_metric_types == ["artwork_view", "artwork_sale", "nft_minting"]


def test_ranking_weights_parse_from_json_env(monkeypatch) -> None:
    monkeypatch.setenv("MARKETPULSE_RANKING_WEIGHTS", '{"artist": {"total_sales": 40}}')
    monkeypatch.setenv("MARKETPULSE_RANKING_TIMEOUT_SECONDS", "2.5")

    config = Settings()

    assert config.ranking_weights == {"artist": {"total_sales": 40.0}}
    assert config.ranking_timeout_seconds == 2.5
    assert config.standard_cache_ttl_seconds == 3600
    assert config.trending_cache_ttl_seconds == 1800


def test_negative_ranking_weight_is_rejected() -> None:
    with pytest.raises(ValueError, match="artwork.views"):
        Settings(ranking_weights={"artwork": {"views": -1}})
