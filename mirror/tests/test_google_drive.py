"""Tests for Google Drive provider."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httplib2
from django.test import TestCase
from googleapiclient.errors import HttpError

from mirror.providers.google_drive import (
    GOOGLE_DOC_TYPES,
    SCOPES,
    ChangesPage,
    DriveChange,
    DriveFile,
    FileNotDownloadableError,
    GoogleDriveClient,
    NodeNotFoundError,
    parse_rfc3339,
    to_rfc3339,
)


def http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"")


class TimestampTests(TestCase):
    def test_to_rfc3339_uses_milliseconds_and_z(self):
        value = datetime(2024, 6, 1, 8, 5, 3, 123456, tzinfo=timezone.utc)
        self.assertEqual(to_rfc3339(value), "2024-06-01T08:05:03.123Z")

    def test_naive_datetime_is_utc(self):
        self.assertEqual(to_rfc3339(datetime(2024, 6, 1)), "2024-06-01T00:00:00.000Z")

    def test_parse_rfc3339(self):
        self.assertEqual(
            parse_rfc3339("2024-01-15T10:30:00.000Z"),
            datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        )


class DriveFileTests(TestCase):
    def test_from_api_response_regular_file(self):
        data = {
            "id": "file123",
            "name": "document.pdf",
            "mimeType": "application/pdf",
            "size": "12345",
            "modifiedTime": "2024-01-15T10:30:00.000Z",
            "md5Checksum": "abc123",
            "parents": ["folder456"],
            "trashed": False,
        }

        file = DriveFile.from_api_response(data)

        self.assertEqual(file.id, "file123")
        self.assertEqual(file.size, 12345)
        self.assertEqual(file.parent_id, "folder456")
        self.assertFalse(file.is_folder)
        self.assertFalse(file.is_google_doc)
        self.assertTrue(file.is_downloadable)
        self.assertEqual(file.content_type, "application/pdf")

    def test_from_api_response_google_doc(self):
        data = {
            "id": "doc123",
            "name": "My Document",
            "mimeType": "application/vnd.google-apps.document",
            "modifiedTime": "2024-01-15T10:30:00.000Z",
            "parents": ["folder456"],
        }

        file = DriveFile.from_api_response(data)

        self.assertTrue(file.is_google_doc)
        self.assertIsNone(file.size)
        self.assertEqual(file.export_extension, ".docx")
        self.assertEqual(
            file.content_type,
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )

    def test_folder_and_form_are_not_downloadable(self):
        for mime_type in ("application/vnd.google-apps.folder", "application/vnd.google-apps.form"):
            file = DriveFile.from_api_response(
                {"id": "x", "name": "x", "mimeType": mime_type, "modifiedTime": "2024-01-15T10:30:00.000Z"}
            )
            self.assertFalse(file.is_downloadable, mime_type)

    def test_missing_mime_type_falls_back_to_octet_stream(self):
        file = DriveFile.from_api_response(
            {"id": "x", "name": "x", "modifiedTime": "2024-01-15T10:30:00.000Z"}
        )

        self.assertEqual(file.content_type, "application/octet-stream")
        self.assertIsNone(file.parent_id)

    def test_all_google_doc_types_are_downloadable(self):
        for mime_type, (export_mime, extension) in GOOGLE_DOC_TYPES.items():
            file = DriveFile.from_api_response(
                {"id": "t", "name": "t", "mimeType": mime_type, "modifiedTime": "2024-01-15T10:30:00.000Z"}
            )
            self.assertTrue(file.is_downloadable, mime_type)
            self.assertEqual(file.export_mime_type, export_mime)
            self.assertTrue(extension.startswith("."))


class DriveChangeTests(TestCase):
    def test_from_api_response_removal(self):
        change = DriveChange.from_api_response(
            {"fileId": "file123", "removed": True, "changeType": "file", "time": "2024-01-15T10:30:00.000Z"}
        )

        self.assertTrue(change.removed)
        self.assertIsNone(change.file)
        self.assertEqual(change.time, datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))

    def test_page_with_next_token_has_more(self):
        self.assertTrue(ChangesPage(changes=[], new_start_page_token=None, next_page_token="n").has_more)
        self.assertFalse(ChangesPage(changes=[], new_start_page_token="s", next_page_token=None).has_more)


@patch("mirror.providers.google_drive.build")
@patch("mirror.providers.google_drive.google_auth_default")
class GoogleDriveClientTests(TestCase):
    def _client(self, mock_auth, mock_build):
        mock_auth.return_value = (MagicMock(), "test-project")
        self.service = MagicMock()
        mock_build.return_value = self.service
        return GoogleDriveClient()

    def test_uses_application_default_credentials(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)

        client._get_service()
        client._get_service()

        mock_auth.assert_called_once_with(scopes=SCOPES)
        mock_build.assert_called_once_with(
            "drive", "v3", credentials=mock_auth.return_value[0], cache_discovery=False
        )

    def test_list_children_filters_and_paginates(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        list_method = self.service.files.return_value.list
        list_method.return_value.execute.side_effect = [
            {
                "files": [{"id": "a", "name": "a.txt", "modifiedTime": "2024-07-01T00:00:00.000Z"}],
                "nextPageToken": "p2",
            },
            {"files": [{"id": "b", "name": "b.txt", "modifiedTime": "2024-07-02T00:00:00.000Z"}]},
        ]

        files = client.list_children("folder1", modified_after=datetime(2024, 6, 1, tzinfo=timezone.utc))

        self.assertEqual([f.id for f in files], ["a", "b"])
        first, second = list_method.call_args_list
        self.assertEqual(
            first.kwargs["q"],
            "'folder1' in parents and trashed = false and modifiedTime > '2024-06-01T00:00:00.000Z'",
        )
        self.assertEqual(first.kwargs["pageSize"], 1000)
        self.assertNotIn("pageToken", first.kwargs)
        self.assertEqual(second.kwargs["pageToken"], "p2")

    def test_has_children(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        list_method = self.service.files.return_value.list
        list_method.return_value.execute.return_value = {"files": []}

        self.assertFalse(client.has_children("folder1"))
        self.assertEqual(list_method.call_args.kwargs["pageSize"], 1)
        self.assertNotIn("modifiedTime", list_method.call_args.kwargs["q"])

    def test_get_file_metadata_not_found(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        self.service.files.return_value.get.return_value.execute.side_effect = http_error(404)

        with self.assertRaises(NodeNotFoundError):
            client.get_file_metadata("missing")

    def test_other_http_errors_propagate(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        self.service.files.return_value.get.return_value.execute.side_effect = http_error(500)

        with self.assertRaises(HttpError):
            client.get_file_metadata("file1")

    @patch("mirror.providers.google_drive.MediaIoBaseDownload")
    def test_download_exports_google_docs(self, mock_downloader, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)

        def fake_downloader(buffer, request):
            buffer.write(b"exported")
            downloader = MagicMock()
            downloader.next_chunk.return_value = (None, True)
            return downloader

        mock_downloader.side_effect = fake_downloader
        doc = DriveFile.from_api_response(
            {
                "id": "doc1",
                "name": "Doc",
                "mimeType": "application/vnd.google-apps.document",
                "modifiedTime": "2024-01-15T10:30:00.000Z",
            }
        )

        self.assertEqual(client.download(doc), b"exported")
        self.service.files.return_value.export_media.assert_called_once_with(
            fileId="doc1",
            mimeType="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
        self.service.files.return_value.get_media.assert_not_called()

    def test_download_rejects_non_downloadable(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        shortcut = DriveFile.from_api_response(
            {
                "id": "s1",
                "name": "Shortcut",
                "mimeType": "application/vnd.google-apps.shortcut",
                "modifiedTime": "2024-01-15T10:30:00.000Z",
            }
        )

        with self.assertRaises(FileNotDownloadableError):
            client.download(shortcut)

    def test_iter_all_changes_yields_resume_tokens(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        self.service.changes.return_value.list.return_value.execute.side_effect = [
            {"changes": [{"fileId": "f1", "removed": True}], "nextPageToken": "p2"},
            {"changes": [], "newStartPageToken": "start-2"},
        ]

        pages = list(client.iter_all_changes("start-1"))

        self.assertEqual([token for _, token in pages], ["p2", "start-2"])
        self.assertEqual(pages[0][0][0].file_id, "f1")

    def test_watch_changes(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)
        watch = self.service.changes.return_value.watch
        watch.return_value.execute.return_value = {
            "id": "chan-1",
            "resourceId": "res-1",
            "expiration": "1719835200000",
        }

        channel = client.watch_changes(
            address="https://example.com/sync/webhook",
            channel_id="chan-1",
            ttl_seconds=3600,
            page_token="start-1",
            token="secret",
        )

        body = watch.call_args.kwargs["body"]
        self.assertEqual(body["type"], "web_hook")
        self.assertEqual(body["token"], "secret")
        self.assertEqual(watch.call_args.kwargs["pageToken"], "start-1")
        self.assertEqual(channel["resource_id"], "res-1")
        self.assertEqual(channel["expiration"], datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc))

    def test_stop_channel(self, mock_auth, mock_build):
        client = self._client(mock_auth, mock_build)

        client.stop_channel("chan-1", "res-1")

        self.service.channels.return_value.stop.assert_called_once_with(
            body={"id": "chan-1", "resourceId": "res-1"}
        )
