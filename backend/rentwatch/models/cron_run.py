"""
SQLAlchemy ORM model for tracking alert-check runs.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from rentwatch.database import Base


class CronRunModel(Base):
    """
    ORM model for tracking orchestrator run status and metrics.
    """
    __tablename__ = "cron_runs"

    # Primary key
    id = Column(String(50), primary_key=True)  # UUID

    job_name = Column(String(50), nullable=False, default="check-alerts")
    trigger = Column(String(20), nullable=False, default="beat")  # beat, http, manual

    # Status tracking
    status = Column(String(20), nullable=False, default="started")
    # started, completed, failed

    # Timing
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    # Metrics
    alerts_processed = Column(Integer, default=0)
    alerts_skipped = Column(Integer, default=0)
    alerts_deferred = Column(Integer, default=0)
    listings_fetched = Column(Integer, default=0)
    listings_matched = Column(Integer, default=0)
    notifications_sent = Column(Integer, default=0)
    error_count = Column(Integer, default=0)

    # Error handling
    error_message = Column(Text, nullable=True)
    error_samples = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    __table_args__ = (
        Index('idx_cron_runs_status', 'status'),
        Index('idx_cron_runs_started_at', 'started_at'),
    )

    def to_dict(self) -> dict:
        """Convert model to dictionary for API responses."""
        return {
            "id": self.id,
            "job_name": self.job_name,
            "trigger": self.trigger,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "metrics": {
                "alerts_processed": self.alerts_processed,
                "alerts_skipped": self.alerts_skipped,
                "alerts_deferred": self.alerts_deferred,
                "listings_fetched": self.listings_fetched,
                "listings_matched": self.listings_matched,
                "notifications_sent": self.notifications_sent,
                "error_count": self.error_count,
            },
            "error_message": self.error_message,
            "error_samples": self.error_samples or [],
        }

    @property
    def duration_seconds(self) -> int:
        """Calculate run duration in seconds."""
        if not self.started_at:
            return 0
        end = self.completed_at or datetime.now(timezone.utc)
        started = self.started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)
        return int((end - started).total_seconds())

    def __repr__(self):
        return f"<CronRun {self.id}: {self.job_name} - {self.status}>"
