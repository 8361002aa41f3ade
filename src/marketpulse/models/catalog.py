"""Catalogue reference data consumed by the ranking engine."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Index, JSON, String, func
from sqlalchemy.dialects.postgresql import JSONB

from marketpulse.db.base import Base


class MarketplaceItem(Base):
    """Artwork, artist or collection known to the marketplace.

    ``annotations`` carries externally computed scores (quality, innovation,
    cohesion, curator reputation) keyed by ranking dimension name.
    """

    __tablename__ = "marketplace_items"
    __table_args__ = (
        Index("ix_marketplace_items_type_category", "item_type", "category"),
        Index("ix_marketplace_items_artist_id", "artist_id"),
    )

    id = Column(String(length=128), primary_key=True)
    item_type = Column(String(length=32), nullable=False)
    artist_id = Column(String(length=128), nullable=True)
    curator_id = Column(String(length=128), nullable=True)
    category = Column(String(length=128), nullable=True)
    published = Column(Boolean, nullable=False, default=True)
    annotations = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class CollectionMembership(Base):
    """Artwork membership within a curated collection."""

    __tablename__ = "collection_memberships"
    __table_args__ = (Index("ix_collection_memberships_artwork_id", "artwork_id"),)

    collection_id = Column(String(length=128), primary_key=True)
    artwork_id = Column(String(length=128), primary_key=True)
    added_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
