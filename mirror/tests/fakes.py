"""In-memory stand-ins for Drive and the object store."""

from datetime import datetime, timezone

from mirror.providers.google_drive import (
    FOLDER_MIME_TYPE,
    DriveFile,
    FileNotDownloadableError,
    NodeNotFoundError,
)

OLD = datetime(2024, 1, 1, tzinfo=timezone.utc)
WATERMARK = datetime(2024, 6, 1, tzinfo=timezone.utc)
NEW = datetime(2024, 7, 1, tzinfo=timezone.utc)


def make_file(
    file_id: str,
    name: str,
    parent: str = "root",
    mime_type: str = "text/plain",
    modified_time: datetime = NEW,
    trashed: bool = False,
) -> DriveFile:
    return DriveFile(
        id=file_id,
        name=name,
        mime_type=mime_type,
        size=None,
        modified_time=modified_time,
        md5_checksum=None,
        parents=[parent] if parent else [],
        trashed=trashed,
    )


def make_folder(folder_id: str, name: str, parent: str = "root", **kwargs) -> DriveFile:
    return make_file(folder_id, name, parent=parent, mime_type=FOLDER_MIME_TYPE, **kwargs)


class FakeDrive:
    """
    A Drive tree held in a dict, with the GoogleDriveClient surface.

    ``failing_lists`` and ``failing_downloads`` hold IDs whose calls raise.
    """

    def __init__(self, root_id: str = "root"):
        self.root_id = root_id
        self.nodes: dict[str, DriveFile] = {}
        self.contents: dict[str, bytes] = {}
        self.failing_lists: set[str] = set()
        self.failing_downloads: set[str] = set()
        self.listed: list[str] = []
        self.downloaded: list[str] = []
        self.start_page_token = "start-1"
        self.change_pages: list = []
        self.changes_error: Exception | None = None

    def add(self, node: DriveFile, content: bytes = b"data") -> DriveFile:
        self.nodes[node.id] = node
        if not node.is_folder:
            self.contents[node.id] = content
        return node

    def list_children(self, parent_id, modified_after=None, page_size=1000):
        self.listed.append(parent_id)
        if parent_id in self.failing_lists:
            raise RuntimeError(f"listing {parent_id} failed")
        return [
            node
            for node in self.nodes.values()
            if node.parent_id == parent_id
            and not node.trashed
            and (modified_after is None or node.modified_time > modified_after)
        ]

    def has_children(self, folder_id):
        return bool(self.list_children(folder_id))

    def get_file_metadata(self, file_id):
        if file_id == self.root_id and file_id not in self.nodes:
            return make_folder(self.root_id, "Root", parent=None)
        if file_id not in self.nodes:
            raise NodeNotFoundError(f"File {file_id} not found")
        return self.nodes[file_id]

    def download(self, drive_file):
        if not drive_file.is_downloadable:
            raise FileNotDownloadableError(f"File type {drive_file.mime_type} cannot be downloaded")
        if drive_file.id in self.failing_downloads:
            raise RuntimeError(f"download of {drive_file.id} failed")
        self.downloaded.append(drive_file.id)
        return self.contents.get(drive_file.id, b"")

    def get_start_page_token(self):
        return self.start_page_token

    def iter_all_changes(self, start_token):
        self.changes_started_from = start_token
        for changes, resume_token in self.change_pages:
            yield changes, resume_token
        if self.changes_error is not None:
            raise self.changes_error


class FakeObjectStore:
    """Object store keeping (data, content_type) per key."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.failing_keys: set[str] = set()
        self.writes: list[str] = []
        self.deletes: list[str] = []

    def write(self, key, data, content_type):
        if key in self.failing_keys:
            raise RuntimeError(f"write of {key} failed")
        self.writes.append(key)
        self.objects[key] = (data, content_type)

    def delete(self, key):
        self.deletes.append(key)
        return self.objects.pop(key, None) is not None

    def list_keys(self, prefix):
        return sorted(key for key in self.objects if key.startswith(prefix))
