from mirror.views.sync import health, manual_sync
from mirror.views.webhook import drive_webhook

__all__ = ["health", "manual_sync", "drive_webhook"]
