"""
SQLAlchemy ORM model for rental listings with rent-stabilization enrichment.
"""
from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, JSON, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from rentwatch.database import Base


class ListingModel(Base):
    """
    ORM model for canonical rental listings.

    The primary key is source-stable ("streeteasy:12345") so repeated
    observations of the same unit update one row.
    """
    __tablename__ = "listings"

    id = Column(String(100), primary_key=True)
    source = Column(String(50), nullable=False, default="streeteasy")
    external_id = Column(String(100), nullable=False)

    # Location
    address = Column(String(500), nullable=False, default="")
    neighborhood = Column(String(100), nullable=False, default="")
    neighborhood_key = Column(String(100), nullable=False, default="")  # normalize_area(neighborhood)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Listing details
    title = Column(String(500), nullable=True)
    price = Column(Integer, nullable=False)
    bedrooms = Column(Integer, nullable=False, default=0)
    bathrooms = Column(Float, nullable=False, default=0)  # Float to support 1.5 baths
    sqft = Column(Integer, nullable=True)
    no_fee = Column(Boolean, nullable=False, default=False)
    listing_url = Column(Text, nullable=False, default="")
    image_url = Column(Text, nullable=True)

    # Rent stabilization enrichment
    rent_stabilization_status = Column(String(20), nullable=False, default="unknown")
    rent_stabilization_probability = Column(Float, nullable=True)  # 0.0 - 1.0
    rent_stabilization_reason = Column(Text, nullable=True)
    rent_stabilization_checked_at = Column(DateTime(timezone=True), nullable=True)
    building_id = Column(String(20), nullable=True)  # PLUTO BBL

    # Metadata
    raw_data = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    first_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    last_seen_at = Column(DateTime(timezone=True), server_default=func.now())
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index('idx_listings_neighborhood', 'neighborhood'),
        Index('idx_listings_neighborhood_key_active', 'neighborhood_key', 'is_active'),
        Index('idx_listings_price', 'price'),
        Index('idx_listings_first_seen_at', 'first_seen_at'),
        Index('idx_listings_is_active', 'is_active'),
    )

    def __repr__(self):
        return f"<Listing {self.id}: {self.address} - ${self.price}/mo>"
