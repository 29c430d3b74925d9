"""
Process-wide sync state and the components built around it.

The watermark store and the deduplicator are the only mutable state
shared between the manual, webhook and poll workflows. They live in one
MirrorState owned by the process and handed to each workflow, never in
module globals read from inside the engine.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from django.conf import settings

from mirror.providers.google_drive import GoogleDriveClient
from mirror.storage import get_object_store
from mirror.sync.dedup import ChangeDeduplicator
from mirror.sync.engine import SyncEngine
from mirror.sync.poller import PollingReconciler
from mirror.sync.watermark import WatermarkStore
from mirror.sync.webhook import ChangeFeedConsumer, WebhookProcessor


@dataclass
class MirrorState:
    watermark: WatermarkStore
    deduplicator: ChangeDeduplicator

    @classmethod
    def from_settings(cls) -> "MirrorState":
        return cls(
            watermark=WatermarkStore(),
            deduplicator=ChangeDeduplicator(
                window_seconds=settings.DEDUP_WINDOW_SECONDS,
                bucket_seconds=settings.DEDUP_BUCKET_SECONDS,
            ),
        )

    def sync_engine(self, client=None, store=None) -> SyncEngine:
        return SyncEngine(
            client=client or GoogleDriveClient(),
            store=store or get_object_store(),
            watermark=self.watermark,
        )

    def poller(self, client=None, store=None) -> PollingReconciler:
        return PollingReconciler(
            engine=self.sync_engine(client, store),
            watermark=self.watermark,
            deduplicator=self.deduplicator,
        )

    def webhook_processor(self, client=None, store=None) -> WebhookProcessor:
        client = client or GoogleDriveClient()
        change_feed = None
        if settings.DRIVE_USE_CHANGES_FEED:
            change_feed = ChangeFeedConsumer(client, self.watermark)
        return WebhookProcessor(
            client=client,
            store=store or get_object_store(),
            deduplicator=self.deduplicator,
            change_feed=change_feed,
        )


_state: MirrorState | None = None
_state_lock = threading.Lock()


def get_mirror_state() -> MirrorState:
    """Return this process's MirrorState, creating it on first use."""
    global _state
    with _state_lock:
        if _state is None:
            _state = MirrorState.from_settings()
        return _state


def reset_mirror_state() -> None:
    """Drop the process state (tests, settings changes)."""
    global _state
    with _state_lock:
        _state = None
