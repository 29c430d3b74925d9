"""
Exceptions for sync operations.
"""


class SyncError(Exception):
    """Base exception for sync operations."""

    pass


class DownloadError(SyncError):
    """Failed to download file content."""

    pass


class StorageError(SyncError):
    """Failed to write to or delete from the object store."""

    pass


class PartialSyncError(SyncError):
    """A subtree walk finished with failed items."""

    def __init__(self, message: str, stats=None):
        super().__init__(message)
        self.stats = stats


class InvalidNotificationError(SyncError):
    """Push notification is missing required identifying fields."""

    pass
