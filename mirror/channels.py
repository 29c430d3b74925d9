"""
Push-channel lifecycle for the Drive changes feed.

Registration is administrative and off the data path: a channel is
registered once, then re-registered periodically before it expires.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.conf import settings

if TYPE_CHECKING:
    from mirror.providers.google_drive import GoogleDriveClient
    from mirror.sync.watermark import WatermarkStore

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/sync/webhook"

CHANNEL_ID_KEY = "push_channel_id"
CHANNEL_RESOURCE_KEY = "push_channel_resource_id"


def webhook_address(base_url: str | None = None) -> str | None:
    """Full notification address for ``base_url`` (default WEBHOOK_URL)."""
    base_url = base_url or settings.WEBHOOK_URL
    if not base_url:
        return None
    if base_url.rstrip("/").endswith(WEBHOOK_PATH):
        return base_url.rstrip("/")
    return f"{base_url.rstrip('/')}{WEBHOOK_PATH}"


def register_push_channel(
    client: GoogleDriveClient,
    watermark: WatermarkStore,
    address: str,
    ttl_seconds: int | None = None,
) -> dict:
    """
    Register a web_hook channel on the changes feed.

    Seeds the changes cursor first if none is stored, so the first
    notification has a position to drain from. Once the new channel is
    registered, the channel it replaces is stopped.

    Returns:
        Dict with id, resource_id and expiration
    """
    page_token = watermark.cursor()
    if page_token is None:
        page_token = client.get_start_page_token()
        watermark.set_cursor(page_token)
        logger.info(f"Seeded changes cursor: {page_token}")

    channel = client.watch_changes(
        address=address,
        channel_id=f"drive-mirror-{uuid.uuid4().hex}",
        ttl_seconds=ttl_seconds or settings.WEBHOOK_TTL_SECONDS,
        page_token=page_token,
        token=settings.DRIVE_WEBHOOK_TOKEN or None,
    )

    logger.info(
        f"Registered push channel {channel['id']} -> {address} "
        f"(resource {channel['resource_id']}, expires {channel['expiration']})"
    )

    previous_id = watermark.get(CHANNEL_ID_KEY)
    previous_resource = watermark.get(CHANNEL_RESOURCE_KEY)
    watermark.set(CHANNEL_ID_KEY, channel["id"])
    watermark.set(CHANNEL_RESOURCE_KEY, channel["resource_id"] or "")

    if previous_id and previous_resource:
        stop_previous_channel(client, previous_id, previous_resource)

    return channel


def stop_previous_channel(client: GoogleDriveClient, channel_id: str, resource_id: str) -> None:
    """Stop a replaced channel; it expires on its own if the stop fails."""
    try:
        client.stop_channel(channel_id, resource_id)
    except Exception as e:
        logger.warning(f"Failed to stop previous push channel {channel_id}: {e}")
        return
    logger.info(f"Stopped previous push channel {channel_id}")
