"""
Flat object stores the Drive tree is mirrored into.

Keys are "/"-separated names; every object is written with a single
call so readers never observe a half-written object:
    GCSObjectStore   - one upload per object into a Cloud Storage bucket
    LocalObjectStore - temp file + rename under MIRROR_LOCAL_ROOT/<bucket>/
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

from django.conf import settings
from google.api_core.exceptions import NotFound
from google.cloud import storage as gcs

logger = logging.getLogger(__name__)


class InvalidKeyError(ValueError):
    """Raised when an object key would escape the store's namespace."""

    pass


def validate_key(key: str) -> str:
    """
    Reject keys that are empty, absolute, or contain traversal segments.

    Returns:
        The key unchanged
    """
    if not key or key.startswith("/"):
        raise InvalidKeyError(f"Invalid object key: {key!r}")
    if any(part in ("", ".", "..") for part in key.split("/")):
        raise InvalidKeyError(f"Invalid object key: {key!r}")
    return key


class GCSObjectStore:
    """Object store backed by a Google Cloud Storage bucket."""

    def __init__(self, bucket_name: str, client: gcs.Client | None = None):
        self.bucket_name = bucket_name
        self._client = client
        self._bucket = None

    def _get_bucket(self):
        if self._bucket is None:
            if self._client is None:
                self._client = gcs.Client()
            self._bucket = self._client.bucket(self.bucket_name)
        return self._bucket

    def write(self, key: str, data: bytes, content_type: str) -> None:
        blob = self._get_bucket().blob(validate_key(key))
        blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
        logger.info(f"Uploaded gs://{self.bucket_name}/{key} ({len(data)} bytes)")

    def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if the object was deleted, False if it was already absent
        """
        try:
            self._get_bucket().blob(validate_key(key)).delete()
        except NotFound:
            logger.debug(f"gs://{self.bucket_name}/{key} already absent")
            return False
        logger.info(f"Deleted gs://{self.bucket_name}/{key}")
        return True

    def list_keys(self, prefix: str) -> list[str]:
        bucket = self._get_bucket()
        return [blob.name for blob in bucket.client.list_blobs(bucket, prefix=prefix)]


class LocalObjectStore:
    """
    Object store on the local filesystem.

    Each key maps to a file under ``root``; writes go through a temp
    file in ``root/.tmp`` and are renamed into place.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.tmp_dir = self.root / ".tmp"

    def path_for(self, key: str) -> Path:
        return self.root / validate_key(key)

    def write(self, key: str, data: bytes, content_type: str) -> None:
        target_path = self.path_for(key)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

        tmp_path = self.tmp_dir / f"{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target_path)
        except Exception:
            # Clean up temp file on error
            if tmp_path.exists():
                tmp_path.unlink()
            raise

        logger.info(f"Wrote {target_path} ({len(data)} bytes, {content_type})")

    def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if the object was deleted, False if it was already absent
        """
        target_path = self.path_for(key)
        if not target_path.is_file():
            return False
        target_path.unlink()
        self._cleanup_empty_dirs(target_path.parent)
        logger.info(f"Deleted {target_path}")
        return True

    def list_keys(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        keys = []
        for path in self.root.rglob("*"):
            if not path.is_file() or self.tmp_dir in path.parents:
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def _cleanup_empty_dirs(self, path: Path) -> None:
        """Remove empty directories up to root."""
        while path != self.root and path.exists():
            try:
                path.rmdir()
                path = path.parent
            except OSError:
                # Directory not empty
                break


def get_object_store():
    """Build the object store selected by MIRROR_OBJECT_STORE."""
    backend = settings.MIRROR_OBJECT_STORE
    if backend == "gcs":
        return GCSObjectStore(settings.BUCKET_NAME)
    if backend == "local":
        return LocalObjectStore(Path(settings.MIRROR_LOCAL_ROOT) / settings.BUCKET_NAME)
    raise ValueError(f"Unknown MIRROR_OBJECT_STORE: {backend}")
