"""
Celery application configuration for rentwatch background tasks.
Uses Redis as message broker.
"""
import os
from dotenv import load_dotenv
from celery import Celery
from celery.schedules import crontab

# Load environment variables from .env file
load_dotenv()

# Redis URL for message broker
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Create Celery app
celery_app = Celery(
    "rentwatch",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=[
        "rentwatch.tasks.alert_tasks",
        "rentwatch.tasks.maintenance_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,  # One task at a time

    # Result backend settings
    result_expires=86400,  # 24 hours

    # A run must finish before the next beat tick
    task_soft_time_limit=840,
    task_time_limit=900,
)

celery_app.conf.beat_schedule = {
    # Tier scheduling happens per alert, so the beat runs at the fastest tier
    "check-alerts": {
        "task": "rentwatch.tasks.alert_tasks.check_all_alerts",
        "schedule": crontab(minute="*/15"),
    },

    # Daily stale-listing sweep at 4 AM UTC
    "mark-stale-listings": {
        "task": "rentwatch.tasks.maintenance_tasks.mark_stale_listings",
        "schedule": crontab(hour=4, minute=0),
    },
}

celery_app.conf.task_routes = {
    "rentwatch.tasks.maintenance_tasks.*": {"queue": "maintenance"},
}


def get_celery_app() -> Celery:
    """Get the Celery application instance."""
    return celery_app
