"""
Drive push notification endpoint.

Drive expects a fast 2xx, so the view only validates and queues; the
change itself is applied by process_notification_task.
"""

import logging

from django.conf import settings
from django.http import HttpRequest, HttpResponse, HttpResponseBadRequest, HttpResponseForbidden
from django.utils.crypto import constant_time_compare
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from mirror.sync.exceptions import InvalidNotificationError
from mirror.sync.webhook import Notification
from mirror.tasks import process_notification_task

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def drive_webhook(request: HttpRequest) -> HttpResponse:
    try:
        notification = Notification.from_headers(request.headers)
    except InvalidNotificationError as e:
        logger.warning(f"Rejected notification: {e}")
        return HttpResponseBadRequest(str(e))

    expected_token = settings.DRIVE_WEBHOOK_TOKEN
    if expected_token and not constant_time_compare(notification.channel_token, expected_token):
        logger.warning(f"Rejected notification with bad channel token (channel {notification.channel_id})")
        return HttpResponseForbidden("Invalid channel token")

    logger.info(
        f"Drive notification received: {notification.raw_state} for {notification.resource_id} "
        f"(message {notification.message_number or '?'})"
    )

    try:
        process_notification_task.delay(notification.to_dict())
    except Exception as e:
        # The poll picks the change up later
        logger.error(f"Failed to queue notification {notification.resource_id}: {e}")

    return HttpResponse("Notification received", content_type="text/plain")
