from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RentStabilizationStatus(str, Enum):
    """Likelihood that a listing's building is rent stabilized."""
    UNKNOWN = "unknown"
    UNLIKELY = "unlikely"
    PROBABLE = "probable"
    CONFIRMED = "confirmed"


class Listing(BaseModel):
    """Canonical listing shape produced by every listing source."""
    id: str = Field(..., description="Source-stable identifier, e.g. 'streeteasy:12345'")
    source: str = "streeteasy"
    title: str = ""
    address: str = ""
    neighborhood: str = ""
    price: int = Field(..., ge=0)
    bedrooms: int = Field(0, ge=0)
    bathrooms: float = Field(0, ge=0)
    sqft: Optional[int] = None
    no_fee: bool = False
    listing_url: str = ""
    image_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    is_active: bool = True
    rent_stabilization_status: RentStabilizationStatus = RentStabilizationStatus.UNKNOWN
    rent_stabilization_probability: Optional[float] = Field(None, ge=0.0, le=1.0)
    rent_stabilization_checked_at: Optional[datetime] = None
    building_id: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "streeteasy:4417812",
            "source": "streeteasy",
            "address": "212 E 7th St #4B",
            "neighborhood": "East Village",
            "price": 3500,
            "bedrooms": 2,
            "bathrooms": 1,
            "no_fee": True,
            "listing_url": "https://streeteasy.com/rental/4417812",
            "latitude": 40.7246,
            "longitude": -73.9816,
            "rent_stabilization_status": "probable",
            "rent_stabilization_probability": 0.7,
        }
    })

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_model(cls, model) -> "Listing":
        """Build from a ListingModel row."""
        return cls(
            id=model.id,
            source=model.source,
            title=model.title or "",
            address=model.address or "",
            neighborhood=model.neighborhood or "",
            price=model.price,
            bedrooms=model.bedrooms or 0,
            bathrooms=model.bathrooms or 0,
            sqft=model.sqft,
            no_fee=bool(model.no_fee),
            listing_url=model.listing_url or "",
            image_url=model.image_url,
            latitude=model.latitude,
            longitude=model.longitude,
            first_seen_at=model.first_seen_at,
            last_seen_at=model.last_seen_at,
            is_active=bool(model.is_active),
            rent_stabilization_status=model.rent_stabilization_status or RentStabilizationStatus.UNKNOWN,
            rent_stabilization_probability=model.rent_stabilization_probability,
            rent_stabilization_checked_at=model.rent_stabilization_checked_at,
            building_id=model.building_id,
        )


class AlertCriteria(BaseModel):
    """
    A saved alert as the engine sees it.

    The same rules apply when the web app creates an alert and when the
    engine loads one: an alert that fails them is never checked.
    """
    id: str
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    areas: List[str] = Field(..., min_length=1, description="Neighborhood names")
    min_price: Optional[int] = Field(None, gt=0)
    max_price: Optional[int] = Field(None, gt=0)
    min_beds: Optional[int] = Field(None, ge=0, le=10)
    max_beds: Optional[int] = Field(None, ge=0, le=10)
    min_baths: Optional[float] = Field(None, ge=0, le=10)
    no_fee: bool = False
    filter_rent_stabilized: bool = False
    enable_email: bool = True
    enable_sms: bool = True
    notify_only_new: bool = True
    preferred_frequency: str = "1hour"
    is_active: bool = True
    last_checked: Optional[datetime] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": "8c0f6a52-6d4e-4d0e-9d64-3f0b8f1f7d1a",
            "user_id": "user_2abc",
            "name": "EV 2BR under 4k",
            "areas": ["East Village"],
            "max_price": 4000,
            "min_beds": 2,
            "filter_rent_stabilized": True,
            "enable_email": True,
            "enable_sms": False,
            "notify_only_new": True,
            "preferred_frequency": "30min",
        }
    })

    @field_validator("areas")
    @classmethod
    def _strip_areas(cls, areas: List[str]) -> List[str]:
        cleaned = [a.strip() for a in areas if a and a.strip()]
        if not cleaned:
            raise ValueError("At least one neighborhood is required")
        return cleaned

    @model_validator(mode="after")
    def _check_ranges_and_channels(self) -> "AlertCriteria":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("Minimum price cannot exceed maximum price")
        if self.min_beds is not None and self.max_beds is not None and self.min_beds > self.max_beds:
            raise ValueError("Minimum bedrooms cannot exceed maximum bedrooms")
        if not (self.enable_email or self.enable_sms):
            raise ValueError("At least one notification method must be enabled")
        return self


class RunStatsResponse(BaseModel):
    """Response model for the cron trigger endpoint."""
    success: bool
    message: str
    stats: dict

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "message": "Alert check completed successfully",
            "stats": {
                "alerts_processed": 12,
                "alerts_skipped": 30,
                "listings_fetched": 240,
                "listings_matched": 9,
                "notifications_sent": 7,
                "errors": {"count": 1, "samples": ["[streeteasy] timed out"]},
            },
        }
    })


class HealthResponse(BaseModel):
    """Response model for health check endpoint"""
    status: str
    message: str
    channels: Dict[str, dict] = Field(default_factory=dict, description="Per-channel configuration status")


class EmailCheckRequest(BaseModel):
    """Request body for sending an operator check email."""
    email: str
    test_type: Literal["simple", "rental"] = "simple"


class SmsCheckRequest(BaseModel):
    """Request body for sending an operator check SMS."""
    to: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=1600)
