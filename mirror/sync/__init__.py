"""
Incremental sync engine from a Drive folder tree into a flat object store.
"""

from mirror.sync.dedup import ChangeDeduplicator, ChangeSignature, ExpiringSet
from mirror.sync.engine import SyncEngine
from mirror.sync.exceptions import (
    DownloadError,
    InvalidNotificationError,
    PartialSyncError,
    StorageError,
    SyncError,
)
from mirror.sync.poller import PollingReconciler
from mirror.sync.retry import RetryDispatcher, RetryRecord
from mirror.sync.walker import SyncStats, TreeWalker
from mirror.sync.watermark import EPOCH_FLOOR, WatermarkStore
from mirror.sync.webhook import (
    ChangeFeedConsumer,
    Notification,
    Outcome,
    ResourceState,
    WebhookProcessor,
)

__all__ = [
    "SyncEngine",
    "SyncStats",
    "TreeWalker",
    "WatermarkStore",
    "EPOCH_FLOOR",
    "ChangeDeduplicator",
    "ChangeSignature",
    "ExpiringSet",
    "WebhookProcessor",
    "ChangeFeedConsumer",
    "Notification",
    "Outcome",
    "ResourceState",
    "PollingReconciler",
    "RetryDispatcher",
    "RetryRecord",
    "SyncError",
    "DownloadError",
    "StorageError",
    "PartialSyncError",
    "InvalidNotificationError",
]
