"""
Django management command to register a Drive push channel.
"""

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from googleapiclient.errors import HttpError

from mirror.channels import register_push_channel, webhook_address
from mirror.providers.google_drive import GoogleDriveClient, GoogleDriveError
from mirror.sync.state import get_mirror_state


class Command(BaseCommand):
    help = "Register a push notification channel on the Drive changes feed"

    def add_arguments(self, parser):
        parser.add_argument(
            "--address",
            help="Public HTTPS URL of the webhook endpoint (default: derived from WEBHOOK_URL)",
        )
        parser.add_argument(
            "--ttl-seconds",
            type=int,
            default=None,
            help=f"Channel lifetime in seconds (default: {settings.WEBHOOK_TTL_SECONDS})",
        )

    def handle(self, *args, **options):
        address = options["address"] or webhook_address()
        if not address:
            self.stdout.write(
                self.style.WARNING("WEBHOOK_URL not set, skipping webhook registration")
            )
            return

        self.stdout.write(f"Registering push channel for {address}")

        try:
            channel = register_push_channel(
                GoogleDriveClient(),
                get_mirror_state().watermark,
                address,
                ttl_seconds=options["ttl_seconds"],
            )
        except (GoogleDriveError, HttpError) as e:
            raise CommandError(f"Failed to register webhook: {e}")

        expiration = channel["expiration"]
        self.stdout.write(
            self.style.SUCCESS(
                f"\n✓ Webhook registered:\n"
                f"  - Channel ID: {channel['id']}\n"
                f"  - Resource ID: {channel['resource_id']}\n"
                f"  - Expires: {expiration.isoformat() if expiration else 'unknown'}"
            )
        )
