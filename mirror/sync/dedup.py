"""
Change deduplication across the webhook and poll paths.

Admitted signatures live in the Django cache, so every worker process
behind the same cache backend sees the same window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from django.core.cache import cache

logger = logging.getLogger(__name__)

DEDUP_KEY_PREFIX = "mirror:dedup:"


@dataclass(frozen=True)
class ChangeSignature:
    """Identifies one change: a node within a time bucket."""

    node_id: str
    bucket: int

    @classmethod
    def for_node(cls, node_id: str, at: datetime, bucket_seconds: int) -> "ChangeSignature":
        return cls(node_id=node_id, bucket=int(at.timestamp()) // bucket_seconds)

    def __str__(self) -> str:
        return f"{self.node_id}@{self.bucket}"


class ExpiringSet:
    """
    Set of keys that expire ``ttl`` seconds after insertion.

    Each member carries a value (the version it was admitted for, or 1).
    Insertion is ``cache.add``, which is atomic on the shared backends.
    """

    def __init__(self, ttl: float, key_prefix: str = DEDUP_KEY_PREFIX):
        self.ttl = ttl
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def add_if_absent(self, key: str, value=1) -> bool:
        """
        Insert ``key`` unless a live copy is present.

        Returns:
            True if inserted, False if already present
        """
        return cache.add(self._key(key), value, timeout=self.ttl)

    def get(self, key: str, default=None):
        return cache.get(self._key(key), default)

    def set(self, key: str, value) -> None:
        """Insert or overwrite ``key``, restarting its expiry."""
        cache.set(self._key(key), value, timeout=self.ttl)


class ChangeDeduplicator:
    """
    Admits each change signature once per window.

    When a version (the node's modifiedTime in RFC 3339) is given, a
    signature already in the window is admitted again for a strictly
    newer version, so a second edit inside one bucket is not lost.
    Admission is independent of what happens to the change afterwards.
    """

    def __init__(self, window_seconds: float, bucket_seconds: int = 60):
        self.bucket_seconds = bucket_seconds
        self._seen = ExpiringSet(ttl=window_seconds)

    def signature_for(self, node_id: str, at: datetime) -> ChangeSignature:
        return ChangeSignature.for_node(node_id, at, self.bucket_seconds)

    def should_process(self, signature: ChangeSignature, version: str | None = None) -> bool:
        key = str(signature)
        if self._seen.add_if_absent(key, version or ""):
            return True

        if version is not None:
            seen = self._seen.get(key)
            if not seen or seen < version:
                self._seen.set(key, version)
                return True

        logger.info(f"Skipping duplicate change {signature}")
        return False

    def record_version(self, signature: ChangeSignature, version: str) -> None:
        """Mark ``version`` of the signature's node as applied."""
        key = str(signature)
        seen = self._seen.get(key)
        if not seen or seen < version:
            self._seen.set(key, version)
