"""
Object key building for mirrored Drive nodes.

A key is a pure function of the node's ancestor names below the mirror
root and the node's kind, so two walks over an unchanged subtree always
write the same keys.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mirror.providers.google_drive import DriveFile, GoogleDriveClient

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "__placeholder"


def sanitize_name(name: str) -> str:
    """
    Make a display name safe to use as one key segment.

    Slashes and control characters become underscores so a name can
    never introduce extra hierarchy.
    """
    name = "".join("_" if ch == "/" or ord(ch) < 32 else ch for ch in name).strip()
    if not name:
        return "unnamed"
    if name in (".", ".."):
        return name.replace(".", "_")
    return name


def leaf_name(drive_file: DriveFile) -> str:
    """
    Sanitized name of a leaf, with the export extension for Google Docs.

    Args:
        drive_file: A non-folder node

    Returns:
        e.g. "Budget.xlsx" for a spreadsheet named "Budget"
    """
    name = sanitize_name(drive_file.name)
    extension = drive_file.export_extension
    if extension and not name.lower().endswith(extension):
        name += extension
    return name


def folder_prefix(parent_prefix: str, drive_file: DriveFile) -> str:
    return f"{parent_prefix}{sanitize_name(drive_file.name)}/"


def leaf_key(parent_prefix: str, drive_file: DriveFile) -> str:
    return f"{parent_prefix}{leaf_name(drive_file)}"


def placeholder_key(prefix: str) -> str:
    return f"{prefix}{PLACEHOLDER_NAME}"


class PathBuilder:
    """
    Resolves the object key of an arbitrary node by walking its parents.

    Used on the single-node paths (webhook, changes feed, retries) where
    the node is not reached by descending from the root. Folder names
    are cached per instance.
    """

    MAX_DEPTH = 256

    def __init__(self, client: GoogleDriveClient, root_folder_id: str):
        self.client = client
        self.root_folder_id = root_folder_id
        self._folder_cache: dict[str, DriveFile] = {}

    def prefix_of_parent(self, drive_file: DriveFile) -> str | None:
        """
        Build the key prefix of the folder containing ``drive_file``.

        Returns:
            "" for direct children of the root, "A/B/" for deeper nodes,
            or None when the node is not below the mirror root
        """
        names: list[str] = []
        parent_id = drive_file.parent_id

        for _ in range(self.MAX_DEPTH):
            if parent_id is None:
                return None
            if parent_id == self.root_folder_id:
                return "".join(f"{sanitize_name(n)}/" for n in reversed(names))

            parent = self._get_folder(parent_id)
            names.append(parent.name)
            parent_id = parent.parent_id

        logger.error(f"Ancestor chain of {drive_file.id} exceeds {self.MAX_DEPTH} levels")
        return None

    def key_for(self, drive_file: DriveFile) -> str | None:
        """
        Build the object key (leaf) or key prefix (folder) for a node.

        Returns:
            "A/b.txt" for a leaf, "A/C/" for a folder, "" for the root
            itself, or None when the node is outside the mirror root
        """
        if drive_file.id == self.root_folder_id:
            return ""

        prefix = self.prefix_of_parent(drive_file)
        if prefix is None:
            return None
        if drive_file.is_folder:
            return folder_prefix(prefix, drive_file)
        return leaf_key(prefix, drive_file)

    def _get_folder(self, folder_id: str) -> DriveFile:
        if folder_id not in self._folder_cache:
            self._folder_cache[folder_id] = self.client.get_file_metadata(folder_id)
        return self._folder_cache[folder_id]
