"""
Celery tasks for mirror operations.

Provides asynchronous processing of push notifications, bounded
retries of failed changes, the periodic poll, and push-channel renewal.
"""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def process_notification_task(notification: dict):
    """
    Apply one acknowledged push notification.

    Args:
        notification: Notification.to_dict() payload
    """
    from mirror.sync.state import get_mirror_state
    from mirror.sync.webhook import Notification

    processor = get_mirror_state().webhook_processor()
    outcome = processor.handle(Notification.from_dict(notification))
    return outcome.value


@shared_task(ignore_result=True)
def retry_change_task(record: dict):
    """
    Run one retry attempt of a failed change.

    Args:
        record: RetryRecord.to_dict() payload
    """
    from mirror.sync.retry import RetryRecord
    from mirror.sync.state import get_mirror_state

    processor = get_mirror_state().webhook_processor()
    return processor.retry.dispatch(RetryRecord.from_dict(record))


@shared_task(ignore_result=True)
def poll_drive_task():
    """Reconcile the mirror against Drive changes since the lagged watermark."""
    from mirror.sync.state import get_mirror_state

    try:
        stats = get_mirror_state().poller().run()
    except Exception as e:
        logger.error(f"Error in automatic poll: {e}")
        return {"status": "failed", "error": str(e)}

    return {"status": "completed", **stats.as_dict()}


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    max_retries=3,
)
def renew_webhook_task(self):
    """
    Register a fresh push channel on the changes feed.

    Channels expire; registering a new one before the old expires keeps
    notifications flowing. The old channel lapses on its own.
    """
    from mirror.channels import register_push_channel, webhook_address
    from mirror.providers.google_drive import GoogleDriveClient
    from mirror.sync.state import get_mirror_state

    address = webhook_address()
    if not address:
        logger.info("WEBHOOK_URL not configured, skipping channel renewal")
        return {"status": "skipped", "reason": "no_webhook_url"}

    channel = register_push_channel(GoogleDriveClient(), get_mirror_state().watermark, address)
    return {
        "status": "completed",
        "channel_id": channel["id"],
        "resource_id": channel["resource_id"],
    }
