"""Metadata shapes accepted per metric type at the recorder boundary."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from marketpulse.core.errors import InvalidArgumentError
from marketpulse.domain import MetricType


class EventMetadata(BaseModel):
    """Base model: unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class ArtworkViewMetadata(EventMetadata):
    referrer: str | None = None


class ArtistViewMetadata(EventMetadata):
    referrer: str | None = None


class ArtworkSaleMetadata(EventMetadata):
    seller_id: str | None = None
    artist_id: str | None = None
    transaction_type: str = "primary_sale"


class AIInteractionMetadata(EventMetadata):
    interaction_type: str = Field(min_length=1)
    interaction_data: Dict[str, Any] = Field(default_factory=dict)


class NFTMintMetadata(EventMetadata):
    owner_id: str | None = None
    token_id: str | None = None
    blockchain: str | None = None
    contract_address: str | None = None


class SearchQueryMetadata(EventMetadata):
    query: str


METADATA_MODELS: dict[MetricType, type[EventMetadata]] = {
    MetricType.ARTWORK_VIEW: ArtworkViewMetadata,
    MetricType.ARTIST_VIEW: ArtistViewMetadata,
    MetricType.ARTWORK_SALE: ArtworkSaleMetadata,
    MetricType.AI_INTERACTION: AIInteractionMetadata,
    MetricType.NFT_MINTING: NFTMintMetadata,
    MetricType.SEARCH_QUERY: SearchQueryMetadata,
}


def validate_metadata(metric_type: MetricType, metadata: Dict[str, Any] | None) -> Dict[str, Any]:
    """Validate ``metadata`` for ``metric_type`` and return its JSON-ready form."""

    model = METADATA_MODELS[metric_type]
    try:
        parsed = model.model_validate(metadata or {})
    except ValidationError as exc:
        raise InvalidArgumentError(f"invalid metadata for {metric_type.value}: {exc.errors()[0]['msg']}") from exc
    return parsed.model_dump(mode="json", exclude_none=True)


__all__ = [
    "AIInteractionMetadata",
    "ArtistViewMetadata",
    "ArtworkSaleMetadata",
    "ArtworkViewMetadata",
    "EventMetadata",
    "METADATA_MODELS",
    "NFTMintMetadata",
    "SearchQueryMetadata",
    "validate_metadata",
]
