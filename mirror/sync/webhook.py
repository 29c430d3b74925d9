"""
Push notification handling.

Drive notifications are acknowledged by the view before anything else
happens; this module does the work afterwards, in a Celery worker:
deduplicate, fetch the node's current snapshot, and apply it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from mirror.providers.google_drive import (
    DriveChange,
    NodeNotFoundError,
    parse_rfc3339,
    to_rfc3339,
)
from mirror.sync.exceptions import InvalidNotificationError, PartialSyncError
from mirror.sync.path_builder import PathBuilder
from mirror.sync.retry import RetryDispatcher, RetryRecord
from mirror.sync.walker import SyncStats, TreeWalker
from mirror.sync.watermark import EPOCH_FLOOR

if TYPE_CHECKING:
    from mirror.providers.google_drive import DriveFile, GoogleDriveClient
    from mirror.sync.dedup import ChangeDeduplicator
    from mirror.sync.watermark import WatermarkStore

logger = logging.getLogger(__name__)


class ResourceState(enum.Enum):
    ADD = "add"
    UPDATE = "update"
    CHANGE = "change"
    TRASHED = "trashed"
    OTHER = "other"

    @classmethod
    def from_header(cls, value: str | None) -> "ResourceState":
        """Map an X-Goog-Resource-State value onto a state; unknown values are OTHER."""
        return _HEADER_STATES.get((value or "").strip().lower(), cls.OTHER)


_HEADER_STATES = {
    "add": ResourceState.ADD,
    "update": ResourceState.UPDATE,
    "untrash": ResourceState.UPDATE,
    "change": ResourceState.CHANGE,
    "trash": ResourceState.TRASHED,
    "trashed": ResourceState.TRASHED,
    "remove": ResourceState.TRASHED,
}


class Outcome(enum.Enum):
    """What happened to one detected change."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    DEFERRED = "deferred"
    IGNORED = "ignored"


@dataclass
class Notification:
    """A Drive push notification, reduced to the headers we act on."""

    resource_id: str
    state: ResourceState
    raw_state: str
    received_at: datetime
    channel_id: str = ""
    channel_token: str = ""
    message_number: str = ""

    @classmethod
    def from_headers(cls, headers, received_at: datetime | None = None) -> "Notification":
        """
        Build a notification from request headers.

        Raises:
            InvalidNotificationError: If the resource ID or state is missing
        """
        resource_id = (headers.get("X-Goog-Resource-Id") or "").strip()
        raw_state = (headers.get("X-Goog-Resource-State") or "").strip()
        if not resource_id or not raw_state:
            raise InvalidNotificationError(
                "Notification is missing X-Goog-Resource-Id or X-Goog-Resource-State"
            )

        return cls(
            resource_id=resource_id,
            state=ResourceState.from_header(raw_state),
            raw_state=raw_state,
            received_at=received_at or timezone.now(),
            channel_id=headers.get("X-Goog-Channel-Id", ""),
            channel_token=headers.get("X-Goog-Channel-Token", ""),
            message_number=headers.get("X-Goog-Message-Number", ""),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Notification":
        return cls(
            resource_id=data["resource_id"],
            state=ResourceState(data["state"]),
            raw_state=data.get("raw_state", data["state"]),
            received_at=parse_rfc3339(data["received_at"]),
            channel_id=data.get("channel_id", ""),
            channel_token=data.get("channel_token", ""),
            message_number=data.get("message_number", ""),
        )

    def to_dict(self) -> dict:
        return {
            "resource_id": self.resource_id,
            "state": self.state.value,
            "raw_state": self.raw_state,
            "received_at": self.received_at.isoformat(),
            "channel_id": self.channel_id,
            "channel_token": self.channel_token,
            "message_number": self.message_number,
        }


class WebhookProcessor:
    """
    Applies single-node changes to the mirror.

    Leaves are rewritten, folders are re-walked from the epoch floor
    (a folder-level change does not say which descendant changed), and
    trashed nodes are deleted from the mirror. Failures become retry
    records instead of errors.
    """

    def __init__(
        self,
        client: GoogleDriveClient,
        store,
        deduplicator: ChangeDeduplicator,
        root_folder_id: str | None = None,
        retry: RetryDispatcher | None = None,
        change_feed: ChangeFeedConsumer | None = None,
    ):
        self.client = client
        self.store = store
        self.deduplicator = deduplicator
        self.root_folder_id = root_folder_id or settings.ROOT_FOLDER_ID
        self.walker = TreeWalker(client, store)
        self.path_builder = PathBuilder(client, self.root_folder_id)
        self.retry = retry or RetryDispatcher(self.apply_payload)
        self.change_feed = change_feed

    def handle(self, notification: Notification) -> Outcome:
        state = notification.state
        logger.info(
            f"Processing {notification.raw_state} notification for resource "
            f"{notification.resource_id}"
        )

        if state is ResourceState.OTHER:
            logger.debug(f"Ignoring {notification.raw_state} notification")
            return Outcome.IGNORED

        if self.change_feed is not None:
            stats = self.change_feed.drain(self)
            logger.info(
                f"Changes feed drained: {stats.ok} applied, {stats.fail} deferred, "
                f"{stats.skipped} skipped"
            )
            return Outcome.APPLIED

        if state in (
            ResourceState.ADD,
            ResourceState.UPDATE,
            ResourceState.CHANGE,
            ResourceState.TRASHED,
        ):
            return self.process_node(notification.resource_id, notification.received_at, state)

        raise ValueError(f"Unhandled resource state: {state}")

    def process_node(
        self,
        node_id: str,
        detected_at: datetime,
        state: ResourceState = ResourceState.CHANGE,
    ) -> Outcome:
        # A notification carries no modifiedTime, so repeated deliveries
        # collapse on receipt time. The leaf version is recorded after the write.
        signature = self.deduplicator.signature_for(node_id, detected_at)
        if not self.deduplicator.should_process(signature):
            return Outcome.SKIPPED

        try:
            self.apply_node(node_id)
        except Exception as e:
            logger.warning(f"Change {signature} failed, queueing retry: {e}")
            self.retry.enqueue(
                RetryRecord(signature=str(signature), payload={"node_id": node_id, "state": state.value})
            )
            return Outcome.DEFERRED

        return Outcome.APPLIED

    def process_change(self, change: DriveChange) -> Outcome:
        """Apply one entry of the changes feed, using the snapshot it carries."""
        if change.file is None:
            if change.removed:
                logger.info(
                    f"Change for {change.file_id} was removed without metadata "
                    f"(no longer visible to the service identity), mirror left as is"
                )
            else:
                logger.debug(
                    f"Change for {change.file_id} has no file metadata "
                    f"(type={change.change_type}), skipping"
                )
            return Outcome.SKIPPED

        node = change.file
        signature = self.deduplicator.signature_for(node.id, node.modified_time)
        if not self.deduplicator.should_process(signature, to_rfc3339(node.modified_time)):
            return Outcome.SKIPPED

        try:
            self.apply_snapshot(change.file)
        except Exception as e:
            logger.warning(f"Change {signature} failed, queueing retry: {e}")
            self.retry.enqueue(
                RetryRecord(signature=str(signature), payload={"node_id": change.file_id})
            )
            return Outcome.DEFERRED

        return Outcome.APPLIED

    def apply_payload(self, payload: dict) -> SyncStats:
        return self.apply_node(payload["node_id"])

    def apply_node(self, node_id: str) -> SyncStats:
        """
        Fetch the current snapshot of ``node_id`` and apply it.

        Raises:
            PartialSyncError: If a folder walk had failed items
            Exception: Drive or object store errors
        """
        try:
            node = self.client.get_file_metadata(node_id)
        except NodeNotFoundError:
            logger.warning(f"Node {node_id} no longer exists, nothing to apply")
            return SyncStats(skipped=1)

        return self.apply_snapshot(node)

    def apply_snapshot(self, node: DriveFile) -> SyncStats:
        key = self.path_builder.key_for(node)
        if key is None:
            logger.info(f"{node.name} ({node.id}) is outside the mirror root, skipping")
            return SyncStats(skipped=1)

        if node.trashed:
            return self._delete(node, key)

        if node.is_folder:
            stats = self.walker.walk(node.id, key, EPOCH_FLOOR)
            logger.info(
                f"Folder resync {key or '/'}: {stats.ok} files, {stats.fail} failed, "
                f"{stats.folders} folders"
            )
            if stats.fail:
                raise PartialSyncError(f"{stats.fail} items failed under {key or '/'}", stats)
            return stats

        if not node.is_downloadable:
            logger.debug(f"Skipping non-downloadable {node.name} ({node.mime_type})")
            return SyncStats(skipped=1)

        self.walker.write_leaf(node, key)
        self.deduplicator.record_version(
            self.deduplicator.signature_for(node.id, node.modified_time),
            to_rfc3339(node.modified_time),
        )
        return SyncStats(ok=1)

    def _delete(self, node: DriveFile, key: str) -> SyncStats:
        if not key:
            logger.error(f"Mirror root {node.id} reported trashed, refusing to clear the mirror")
            return SyncStats(skipped=1)

        keys = self.store.list_keys(key) if node.is_folder else [key]
        stats = SyncStats()
        for object_key in keys:
            if self.store.delete(object_key):
                logger.info(f"Deleted trashed {object_key}")
            else:
                logger.info(f"Trashed {object_key} already absent from mirror")
            stats.ok += 1
        return stats


class ChangeFeedConsumer:
    """
    Drains the Drive changes feed from the persisted cursor.

    The cursor is saved after each page has been handled, so after a
    crash the feed replays from the last saved position.
    """

    def __init__(self, client: GoogleDriveClient, watermark: WatermarkStore):
        self.client = client
        self.watermark = watermark

    def drain(self, processor: WebhookProcessor) -> SyncStats:
        cursor = self.watermark.cursor()
        if cursor is None:
            token = self.client.get_start_page_token()
            self.watermark.set_cursor(token)
            logger.info(f"No changes cursor stored, starting from {token}")
            return SyncStats()

        stats = SyncStats()
        for changes, resume_token in self.client.iter_all_changes(cursor):
            for change in changes:
                outcome = processor.process_change(change)
                if outcome is Outcome.APPLIED:
                    stats.ok += 1
                elif outcome is Outcome.DEFERRED:
                    stats.fail += 1
                else:
                    stats.skipped += 1
            self.watermark.set_cursor(resume_token)

        return stats
