"""
SQLAlchemy ORM model for saved rental alerts.
"""
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, Text, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from rentwatch.database import Base


class AlertModel(Base):
    """
    A user's saved search criteria plus notification preferences.

    Created and edited by the web app. The checking engine only reads
    alerts and advances last_checked.
    """
    __tablename__ = "alerts"

    id = Column(String(50), primary_key=True)  # UUID
    user_id = Column(String(100), nullable=False)  # Auth provider user ID
    name = Column(String(100), nullable=False)

    # Search criteria
    areas = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list)  # neighborhood names
    min_price = Column(Integer, nullable=True)
    max_price = Column(Integer, nullable=True)
    min_beds = Column(Integer, nullable=True)
    max_beds = Column(Integer, nullable=True)
    min_baths = Column(Float, nullable=True)
    no_fee = Column(Boolean, nullable=False, default=False)
    filter_rent_stabilized = Column(Boolean, nullable=False, default=False)

    # Notification preferences
    enable_email = Column(Boolean, nullable=False, default=True)
    enable_sms = Column(Boolean, nullable=False, default=True)
    notify_only_new = Column(Boolean, nullable=False, default=True)
    preferred_frequency = Column(String(20), nullable=False, default="1hour")

    # Status
    is_active = Column(Boolean, nullable=False, default=True)
    last_checked = Column(DateTime(timezone=True), nullable=True)  # null if never checked

    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_alerts_user_id', 'user_id'),
        Index('idx_alerts_is_active', 'is_active'),
        Index('idx_alerts_last_checked', 'last_checked'),
    )

    def to_dict(self) -> dict:
        """Convert model to a plain dict for validation and logging."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "areas": list(self.areas or []),
            "min_price": self.min_price,
            "max_price": self.max_price,
            "min_beds": self.min_beds,
            "max_beds": self.max_beds,
            "min_baths": self.min_baths,
            "no_fee": bool(self.no_fee),
            "filter_rent_stabilized": bool(self.filter_rent_stabilized),
            "enable_email": bool(self.enable_email),
            "enable_sms": bool(self.enable_sms),
            "notify_only_new": bool(self.notify_only_new),
            "preferred_frequency": self.preferred_frequency,
            "is_active": bool(self.is_active),
            "last_checked": self.last_checked,
        }

    def __repr__(self):
        return f"<Alert {self.id}: {self.name}>"
