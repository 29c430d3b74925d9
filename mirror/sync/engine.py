"""
Root-level sync runs: manual syncs and the shared tracked walk.

Every root walk is recorded as a SyncRun so manual and polled syncs
leave the same audit trail.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from mirror.models import RunStatus, SyncRun, SyncTrigger
from mirror.sync.walker import SyncStats, TreeWalker

if TYPE_CHECKING:
    from mirror.providers.google_drive import GoogleDriveClient
    from mirror.sync.dedup import ChangeDeduplicator
    from mirror.sync.watermark import WatermarkStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Walks the mirror root and maintains the watermark.

    The watermark moves only after a walk finishes without raising. It
    moves to the time the walk started, or to just before the oldest
    item the walk failed to mirror, whichever is earlier.
    """

    def __init__(
        self,
        client: GoogleDriveClient,
        store,
        watermark: WatermarkStore,
        root_folder_id: str | None = None,
    ):
        self.client = client
        self.store = store
        self.watermark = watermark
        self.root_folder_id = root_folder_id or settings.ROOT_FOLDER_ID
        self.walker = TreeWalker(client, store)

    def run_manual_sync(self, full_resync: bool = False) -> SyncStats:
        """
        Sync everything modified since the watermark.

        Args:
            full_resync: Reset the watermark to the epoch floor first

        Returns:
            SyncStats for the root walk

        Raises:
            Exception: If the root folder cannot be listed
        """
        if full_resync:
            self.watermark.reset()

        since = self.watermark.last_sync()
        started = timezone.now()

        stats = self.run_tracked(SyncTrigger.MANUAL, since)
        self.watermark.advance(stats.safe_watermark(started))
        return stats

    def run_tracked(
        self,
        trigger: str,
        since: datetime,
        deduplicator: ChangeDeduplicator | None = None,
    ) -> SyncStats:
        """
        Walk the root from ``since`` and record the run.

        Raises:
            Exception: Root listing failures, after marking the run failed
        """
        run = SyncRun.objects.create(trigger=trigger, since=since)
        logger.info(f"Starting {trigger} sync of {self.root_folder_id} since {since.isoformat()}")

        try:
            stats = self.walker.walk(self.root_folder_id, "", since, deduplicator)
        except Exception as e:
            run.status = RunStatus.FAILED
            run.error_message = str(e)
            run.completed_at = timezone.now()
            run.save()

            logger.error(f"{trigger.capitalize()} sync failed: {e}", exc_info=True)
            raise

        run.status = RunStatus.COMPLETED
        run.completed_at = timezone.now()
        run.files_ok = stats.ok
        run.files_failed = stats.fail
        run.folders = stats.folders
        run.save()

        logger.info(
            f"{trigger.capitalize()} sync completed: {stats.ok} files, "
            f"{stats.fail} failed, {stats.folders} folders, {stats.skipped} skipped"
        )
        return stats
