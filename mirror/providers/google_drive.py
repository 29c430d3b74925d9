"""
Google Drive API client for mirror operations.

Provides folder listing filtered by modification time, file download
and export, the Changes API feed, and push-channel registration.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from typing import Iterator

from google.auth import default as google_auth_default
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

logger = logging.getLogger(__name__)

# Google API scopes
SCOPES = [
    "https://www.googleapis.com/auth/drive",
]

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Google Docs MIME types that need export
GOOGLE_DOC_TYPES = {
    "application/vnd.google-apps.document": (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ".docx",
    ),
    "application/vnd.google-apps.spreadsheet": (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ".xlsx",
    ),
    "application/vnd.google-apps.presentation": (
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        ".pptx",
    ),
    "application/vnd.google-apps.drawing": ("application/pdf", ".pdf"),
    "application/vnd.google-apps.script": ("application/vnd.google-apps.script+json", ".json"),
}

# MIME types that cannot be downloaded (shortcuts, etc.)
NON_DOWNLOADABLE_TYPES = {
    FOLDER_MIME_TYPE,
    "application/vnd.google-apps.shortcut",
    "application/vnd.google-apps.form",
    "application/vnd.google-apps.map",
    "application/vnd.google-apps.site",
    "application/vnd.google-apps.fusiontable",
}

FILE_FIELDS = "id,name,mimeType,size,modifiedTime,md5Checksum,parents,trashed"


class GoogleDriveError(Exception):
    """Base exception for Google Drive operations."""

    pass


class NodeNotFoundError(GoogleDriveError):
    """Raised when Drive reports that a file or folder does not exist."""

    pass


class FileNotDownloadableError(GoogleDriveError):
    """Raised when a file type cannot be downloaded."""

    pass


def parse_rfc3339(value: str) -> datetime:
    """Parse a Drive timestamp such as ``2024-01-15T10:30:00.000Z``."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def to_rfc3339(value: datetime) -> str:
    """Format an aware datetime the way Drive queries expect it."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


@dataclass
class DriveFile:
    """Represents a file or folder from Google Drive."""

    id: str
    name: str
    mime_type: str
    size: int | None
    modified_time: datetime
    md5_checksum: str | None
    parents: list[str]
    trashed: bool

    @classmethod
    def from_api_response(cls, data: dict) -> "DriveFile":
        """Create DriveFile from Google API response."""
        return cls(
            id=data["id"],
            name=data["name"],
            mime_type=data.get("mimeType", ""),
            size=int(data["size"]) if "size" in data else None,
            modified_time=parse_rfc3339(data["modifiedTime"]),
            md5_checksum=data.get("md5Checksum"),
            parents=data.get("parents", []),
            trashed=data.get("trashed", False),
        )

    @property
    def parent_id(self) -> str | None:
        return self.parents[0] if self.parents else None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def is_google_doc(self) -> bool:
        return self.mime_type in GOOGLE_DOC_TYPES

    @property
    def is_downloadable(self) -> bool:
        return self.mime_type not in NON_DOWNLOADABLE_TYPES

    @property
    def export_mime_type(self) -> str | None:
        """Return the export MIME type for Google Docs, or None if not a Doc."""
        if self.mime_type in GOOGLE_DOC_TYPES:
            return GOOGLE_DOC_TYPES[self.mime_type][0]
        return None

    @property
    def export_extension(self) -> str | None:
        """Return the file extension for exported Google Docs."""
        if self.mime_type in GOOGLE_DOC_TYPES:
            return GOOGLE_DOC_TYPES[self.mime_type][1]
        return None

    @property
    def content_type(self) -> str:
        """MIME type of the bytes written to the mirror."""
        return self.export_mime_type or self.mime_type or "application/octet-stream"


@dataclass
class DriveChange:
    """Represents a change from the Google Drive Changes API."""

    file_id: str
    removed: bool
    file: DriveFile | None
    change_type: str  # 'file' or 'drive'
    time: datetime | None

    @classmethod
    def from_api_response(cls, data: dict) -> "DriveChange":
        """Create DriveChange from Google API response."""
        file_data = data.get("file")
        time_str = data.get("time")
        return cls(
            file_id=data.get("fileId", ""),
            removed=data.get("removed", False),
            file=DriveFile.from_api_response(file_data) if file_data else None,
            change_type=data.get("changeType", "file"),
            time=parse_rfc3339(time_str) if time_str else None,
        )


@dataclass
class ChangesPage:
    """A page of changes from the Changes API."""

    changes: list[DriveChange]
    new_start_page_token: str | None
    next_page_token: str | None

    @property
    def has_more(self) -> bool:
        return self.next_page_token is not None


class GoogleDriveClient:
    """
    Client for Google Drive API operations.

    Credentials come from Application Default Credentials unless
    passed in explicitly.
    """

    def __init__(self, credentials=None):
        self._credentials = credentials
        self._service = None

    def _get_credentials(self):
        if self._credentials is None:
            self._credentials, project = google_auth_default(scopes=SCOPES)
            logger.debug(f"Loaded default credentials (project={project})")
        return self._credentials

    def _get_service(self):
        """Get or create the Drive API service."""
        if self._service is None:
            self._service = build(
                "drive", "v3", credentials=self._get_credentials(), cache_discovery=False
            )
        return self._service

    def list_children(
        self,
        parent_id: str,
        modified_after: datetime | None = None,
        page_size: int = 1000,
    ) -> list[DriveFile]:
        """
        List non-trashed direct children of a folder.

        Args:
            parent_id: The folder ID
            modified_after: Only return children modified strictly after this time
            page_size: Number of files per page

        Returns:
            All matching children across every result page
        """
        query = f"'{parent_id}' in parents and trashed = false"
        if modified_after is not None:
            query += f" and modifiedTime > '{to_rfc3339(modified_after)}'"

        service = self._get_service()
        files: list[DriveFile] = []
        page_token = None

        while True:
            params = {
                "q": query,
                "pageSize": page_size,
                "fields": f"nextPageToken,files({FILE_FIELDS})",
                "supportsAllDrives": True,
                "includeItemsFromAllDrives": True,
            }
            if page_token:
                params["pageToken"] = page_token

            response = self._execute(service.files().list(**params), parent_id)
            files.extend(DriveFile.from_api_response(f) for f in response.get("files", []))

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        return files

    def has_children(self, folder_id: str) -> bool:
        """Return True if the folder has at least one non-trashed child."""
        service = self._get_service()
        response = self._execute(
            service.files().list(
                q=f"'{folder_id}' in parents and trashed = false",
                pageSize=1,
                fields="files(id)",
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ),
            folder_id,
        )
        return bool(response.get("files"))

    def get_file_metadata(self, file_id: str) -> DriveFile:
        """
        Get metadata for a single file or folder.

        Raises:
            NodeNotFoundError: If Drive does not know the ID
        """
        service = self._get_service()
        response = self._execute(
            service.files().get(fileId=file_id, fields=FILE_FIELDS, supportsAllDrives=True),
            file_id,
        )
        return DriveFile.from_api_response(response)

    def download(self, drive_file: DriveFile) -> bytes:
        """
        Download a file's content, exporting Google Docs.

        Raises:
            FileNotDownloadableError: If file type cannot be downloaded
        """
        if not drive_file.is_downloadable:
            raise FileNotDownloadableError(
                f"File type {drive_file.mime_type} cannot be downloaded"
            )

        service = self._get_service()
        if drive_file.is_google_doc:
            request = service.files().export_media(
                fileId=drive_file.id, mimeType=drive_file.export_mime_type
            )
        else:
            request = service.files().get_media(fileId=drive_file.id)

        buffer = BytesIO()
        downloader = MediaIoBaseDownload(buffer, request)

        done = False
        try:
            while not done:
                status, done = downloader.next_chunk()
                if status:
                    logger.debug(f"Download progress: {int(status.progress() * 100)}%")
        except HttpError as e:
            if e.resp.status == 404:
                raise NodeNotFoundError(f"File {drive_file.id} not found") from e
            raise

        return buffer.getvalue()

    def get_start_page_token(self) -> str:
        """Get the starting page token for the Changes API."""
        service = self._get_service()
        response = service.changes().getStartPageToken(supportsAllDrives=True).execute()
        return response["startPageToken"]

    def list_changes(self, page_token: str, page_size: int = 1000) -> ChangesPage:
        """
        List changes since the given page token.

        Args:
            page_token: The page token from previous call or getStartPageToken
            page_size: Number of changes per page (max 1000)

        Returns:
            ChangesPage with changes and next/new tokens
        """
        service = self._get_service()
        response = (
            service.changes()
            .list(
                pageToken=page_token,
                pageSize=page_size,
                fields=(
                    "nextPageToken,newStartPageToken,"
                    f"changes(fileId,removed,changeType,time,file({FILE_FIELDS}))"
                ),
                includeItemsFromAllDrives=True,
                supportsAllDrives=True,
            )
            .execute()
        )

        return ChangesPage(
            changes=[DriveChange.from_api_response(c) for c in response.get("changes", [])],
            new_start_page_token=response.get("newStartPageToken"),
            next_page_token=response.get("nextPageToken"),
        )

    def iter_all_changes(self, start_token: str) -> Iterator[tuple[list[DriveChange], str]]:
        """
        Iterate through all changes, yielding each page with the token to resume after it.

        Yields:
            Tuple of (list of changes, resume_token)
        """
        page_token = start_token

        while True:
            page = self.list_changes(page_token)
            resume_token = page.new_start_page_token or page.next_page_token or page_token

            yield page.changes, resume_token

            if page.has_more:
                page_token = page.next_page_token
            else:
                break

    def watch_changes(
        self,
        address: str,
        channel_id: str,
        ttl_seconds: int,
        page_token: str,
        token: str | None = None,
    ) -> dict:
        """
        Register a web_hook push channel on the changes feed.

        Returns:
            Dict with id, resource_id and expiration (aware datetime)
        """
        body = {
            "id": channel_id,
            "type": "web_hook",
            "address": address,
            "expiration": str(int((time.time() + ttl_seconds) * 1000)),
        }
        if token:
            body["token"] = token

        service = self._get_service()
        response = (
            service.changes()
            .watch(pageToken=page_token, body=body, supportsAllDrives=True)
            .execute()
        )

        expiration = response.get("expiration")
        return {
            "id": response.get("id", channel_id),
            "resource_id": response.get("resourceId"),
            "expiration": datetime.fromtimestamp(int(expiration) / 1000, tz=timezone.utc)
            if expiration
            else None,
        }

    def stop_channel(self, channel_id: str, resource_id: str) -> None:
        """Stop a previously registered push channel."""
        service = self._get_service()
        service.channels().stop(body={"id": channel_id, "resourceId": resource_id}).execute()

    def _execute(self, request, file_id: str) -> dict:
        try:
            return request.execute()
        except HttpError as e:
            if e.resp.status == 404:
                raise NodeNotFoundError(f"File {file_id} not found") from e
            raise
