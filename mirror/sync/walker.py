"""
Incremental tree walk from a Drive folder into the object store.

Only children modified after the watermark are listed and mirrored.
Each item is isolated: a failed download or upload is counted and the
walk moves on to its siblings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from mirror.providers.google_drive import FileNotDownloadableError, to_rfc3339
from mirror.sync.exceptions import DownloadError, StorageError
from mirror.sync.path_builder import folder_prefix, leaf_key, placeholder_key

if TYPE_CHECKING:
    from mirror.providers.google_drive import DriveFile, GoogleDriveClient
    from mirror.sync.dedup import ChangeDeduplicator

logger = logging.getLogger(__name__)

# Drive timestamps have millisecond resolution
WATERMARK_STEP = timedelta(milliseconds=1)


@dataclass
class SyncStats:
    """
    Result of one walk.

    ``earliest_unsynced`` is the oldest modifiedTime the walk listed but
    did not mirror (failed, or skipped as a duplicate). A watermark must
    stay below it so the next walk lists that item again.
    """

    ok: int = 0
    fail: int = 0
    folders: int = 0
    skipped: int = 0
    earliest_unsynced: datetime | None = None

    def hold_back(self, modified_time: datetime) -> None:
        if self.earliest_unsynced is None or modified_time < self.earliest_unsynced:
            self.earliest_unsynced = modified_time

    def safe_watermark(self, started: datetime) -> datetime:
        """The latest watermark that still relists everything left unsynced."""
        if self.earliest_unsynced is None:
            return started
        return min(started, self.earliest_unsynced - WATERMARK_STEP)

    def merge(self, other: SyncStats) -> None:
        self.ok += other.ok
        self.fail += other.fail
        self.folders += other.folders
        self.skipped += other.skipped
        if other.earliest_unsynced is not None:
            self.hold_back(other.earliest_unsynced)

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "fail": self.fail,
            "folders": self.folders,
            "skipped": self.skipped,
        }


class TreeWalker:
    """
    Mirrors the part of a Drive subtree that changed since a watermark.

    Folders are visited depth-first from an explicit stack, so deep
    trees never grow the call stack.
    """

    def __init__(self, client: GoogleDriveClient, store):
        self.client = client
        self.store = store

    def walk(
        self,
        node_id: str,
        path_prefix: str,
        since: datetime,
        deduplicator: ChangeDeduplicator | None = None,
    ) -> SyncStats:
        """
        Walk the folder ``node_id`` whose objects live under ``path_prefix``.

        Args:
            node_id: Drive folder ID to start from
            path_prefix: Key prefix of that folder ("" or ending in "/")
            since: Only children modified strictly after this are synced
            deduplicator: When given, leaf versions already admitted in
                the current window are skipped

        Returns:
            SyncStats for the whole subtree

        Raises:
            Exception: Listing errors for ``node_id`` itself
        """
        stats = SyncStats()
        stack: list[tuple[str, str, datetime]] = []

        self._visit(node_id, path_prefix, since, since, stats, stack, deduplicator)

        while stack:
            folder_id, prefix, modified_time = stack.pop()
            try:
                self._visit(folder_id, prefix, modified_time, since, stats, stack, deduplicator)
            except Exception as e:
                logger.warning(f"Failed to list folder {prefix or folder_id}: {e}")
                stats.fail += 1
                stats.hold_back(modified_time)

        return stats

    def _visit(
        self,
        folder_id: str,
        prefix: str,
        folder_modified: datetime,
        since: datetime,
        stats: SyncStats,
        stack: list[tuple[str, str, datetime]],
        deduplicator: ChangeDeduplicator | None,
    ) -> None:
        items = self.client.list_children(folder_id, modified_after=since)

        if not items:
            if not self.client.has_children(folder_id):
                self._write_placeholder(prefix, folder_modified, stats)
            return

        logger.info(f"Processing {len(items)} items in: {prefix or '/'}")

        subfolders = []
        for item in items:
            if item.is_folder:
                stats.folders += 1
                subfolders.append((item.id, folder_prefix(prefix, item), item.modified_time))
            else:
                self._sync_leaf(item, prefix, stats, deduplicator)

        # Reversed so subfolders are popped in listing order
        stack.extend(reversed(subfolders))

    def _sync_leaf(
        self,
        item: DriveFile,
        prefix: str,
        stats: SyncStats,
        deduplicator: ChangeDeduplicator | None,
    ) -> None:
        if not item.is_downloadable:
            logger.debug(f"Skipping non-downloadable {item.name} ({item.mime_type})")
            stats.skipped += 1
            return

        if deduplicator is not None:
            signature = deduplicator.signature_for(item.id, item.modified_time)
            if not deduplicator.should_process(signature, to_rfc3339(item.modified_time)):
                stats.skipped += 1
                stats.hold_back(item.modified_time)
                return

        key = leaf_key(prefix, item)
        try:
            self.write_leaf(item, key)
            stats.ok += 1
        except Exception as e:
            logger.warning(f"Failed to mirror {key}: {e}")
            stats.fail += 1
            stats.hold_back(item.modified_time)

    def _write_placeholder(self, prefix: str, folder_modified: datetime, stats: SyncStats) -> None:
        key = placeholder_key(prefix)
        try:
            self.store.write(key, b"", "text/plain")
            logger.info(f"Empty folder -> {key}")
            stats.ok += 1
        except Exception as e:
            logger.warning(f"Failed to write placeholder {key}: {e}")
            stats.fail += 1
            stats.hold_back(folder_modified)

    def write_leaf(self, drive_file: DriveFile, key: str) -> None:
        """
        Download one file and write it to ``key``.

        Raises:
            FileNotDownloadableError: If the file type has no content
            DownloadError: If the download fails
            StorageError: If the object store write fails
        """
        try:
            data = self.client.download(drive_file)
        except FileNotDownloadableError:
            raise
        except Exception as e:
            raise DownloadError(f"Failed to download {drive_file.name}: {e}") from e

        try:
            self.store.write(key, data, drive_file.content_type)
        except Exception as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

        logger.info(f"Uploaded -> {key}")
