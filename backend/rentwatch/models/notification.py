"""
SQLAlchemy ORM models for notification dedup records and delivery attempts.
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, Index, UniqueConstraint
from sqlalchemy.sql import func

from rentwatch.database import Base


class NotificationRecordModel(Base):
    """
    One row per (alert, listing) pair that has been dispatched.

    Written once and never updated. Its presence is the only signal the
    engine uses to decide a listing was already sent for an alert.
    """
    __tablename__ = "notification_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(String(50), nullable=False)
    listing_id = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('alert_id', 'listing_id', name='uq_notification_records_pair'),
        Index('idx_notification_records_alert', 'alert_id'),
    )

    def __repr__(self):
        return f"<NotificationRecord {self.alert_id}/{self.listing_id}>"


class NotificationDeliveryModel(Base):
    """
    Insert-only log of individual channel send attempts.
    """
    __tablename__ = "notification_deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(String(50), nullable=False)
    listing_id = Column(String(100), nullable=False)
    channel = Column(String(20), nullable=False)  # email, sms
    success = Column(Boolean, nullable=False, default=False)
    provider_message_id = Column(String(255), nullable=True)  # Resend ID / Twilio SID
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_notification_deliveries_alert', 'alert_id'),
        Index('idx_notification_deliveries_channel', 'channel', 'success'),
    )

    def __repr__(self):
        status = "ok" if self.success else "failed"
        return f"<NotificationDelivery {self.channel} {self.alert_id}/{self.listing_id} {status}>"
