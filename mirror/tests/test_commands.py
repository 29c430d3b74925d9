"""Tests for management commands."""

import json
from datetime import datetime, timezone
from io import StringIO
from unittest.mock import MagicMock, patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings

from mirror.sync.engine import SyncEngine
from mirror.sync.watermark import WatermarkStore
from mirror.tests.fakes import FakeDrive, FakeObjectStore, make_file


@patch("mirror.management.commands.sync_mirror.get_mirror_state")
class SyncMirrorCommandTests(TestCase):
    def setUp(self):
        self.drive = FakeDrive()
        self.store = FakeObjectStore()
        self.engine = SyncEngine(self.drive, self.store, WatermarkStore(), root_folder_id="root")
        self.drive.add(make_file("b", "b.txt"))

    def test_sync(self, mock_state):
        mock_state.return_value.sync_engine.return_value = self.engine
        out = StringIO()

        call_command("sync_mirror", stdout=out)

        self.assertIn("Files written: 1", out.getvalue())
        self.assertIn("b.txt", self.store.objects)

    def test_json_output(self, mock_state):
        mock_state.return_value.sync_engine.return_value = self.engine
        out = StringIO()

        call_command("sync_mirror", "--json", stdout=out)

        data = json.loads(out.getvalue())
        self.assertEqual(data["status"], "success")
        self.assertEqual(data["stats"]["ok"], 1)

    def test_full_resync(self, mock_state):
        engine = mock_state.return_value.sync_engine.return_value
        engine.run_manual_sync.return_value = MagicMock(ok=0, fail=0, folders=0, skipped=0)

        call_command("sync_mirror", "--full-resync", stdout=StringIO())

        engine.run_manual_sync.assert_called_once_with(full_resync=True)

    def test_failure_raises_command_error(self, mock_state):
        mock_state.return_value.sync_engine.return_value = self.engine
        self.drive.failing_lists.add("root")

        with self.assertRaises(CommandError):
            call_command("sync_mirror", stdout=StringIO())

    def test_item_failures_reported(self, mock_state):
        mock_state.return_value.sync_engine.return_value = self.engine
        self.drive.failing_downloads.add("b")
        out = StringIO()

        call_command("sync_mirror", stdout=out)

        self.assertIn("1 item(s) failed", out.getvalue())


class RegisterWebhookCommandTests(TestCase):
    @override_settings(WEBHOOK_URL="")
    def test_without_webhook_url_warns(self):
        out = StringIO()

        call_command("register_webhook", stdout=out)

        self.assertIn("WEBHOOK_URL not set", out.getvalue())

    @override_settings(WEBHOOK_URL="https://mirror.example.com", DRIVE_WEBHOOK_TOKEN="secret")
    @patch("mirror.management.commands.register_webhook.GoogleDriveClient")
    def test_registers_channel(self, mock_client_cls):
        client = mock_client_cls.return_value
        client.get_start_page_token.return_value = "start-1"
        client.watch_changes.return_value = {
            "id": "drive-mirror-abc",
            "resource_id": "res-1",
            "expiration": datetime(2024, 7, 2, tzinfo=timezone.utc),
        }
        out = StringIO()

        call_command("register_webhook", "--ttl-seconds", "600", stdout=out)

        kwargs = client.watch_changes.call_args.kwargs
        self.assertEqual(kwargs["address"], "https://mirror.example.com/sync/webhook")
        self.assertEqual(kwargs["ttl_seconds"], 600)
        self.assertEqual(kwargs["page_token"], "start-1")
        self.assertEqual(kwargs["token"], "secret")
        self.assertIn("Resource ID: res-1", out.getvalue())
        self.assertEqual(WatermarkStore().cursor(), "start-1")

    @patch("mirror.management.commands.register_webhook.GoogleDriveClient")
    def test_explicit_address_and_existing_cursor(self, mock_client_cls):
        WatermarkStore().set_cursor("cursor-5")
        client = mock_client_cls.return_value
        client.watch_changes.return_value = {"id": "c", "resource_id": "r", "expiration": None}

        call_command("register_webhook", "--address", "https://other.example.com/hook", stdout=StringIO())

        client.get_start_page_token.assert_not_called()
        kwargs = client.watch_changes.call_args.kwargs
        self.assertEqual(kwargs["address"], "https://other.example.com/hook")
        self.assertEqual(kwargs["page_token"], "cursor-5")
