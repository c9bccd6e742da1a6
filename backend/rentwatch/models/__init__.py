"""
ORM models for the rentwatch database.
"""
from rentwatch.models.alert import AlertModel
from rentwatch.models.listing import ListingModel
from rentwatch.models.notification import NotificationRecordModel, NotificationDeliveryModel
from rentwatch.models.cron_run import CronRunModel

__all__ = [
    "AlertModel",
    "ListingModel",
    "NotificationRecordModel",
    "NotificationDeliveryModel",
    "CronRunModel",
]
