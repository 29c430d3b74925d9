"""
Django management command to mirror the Drive root folder into the object store.
"""

import json

from django.core.management.base import BaseCommand, CommandError

from mirror.sync.state import get_mirror_state


class Command(BaseCommand):
    help = "Sync everything modified since the watermark into the object store"

    def add_arguments(self, parser):
        parser.add_argument(
            "--full-resync",
            action="store_true",
            help="Reset the watermark to the epoch floor and resync everything",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Print the result as JSON",
        )

    def handle(self, *args, **options):
        engine = get_mirror_state().sync_engine()

        if options["full_resync"]:
            self.stdout.write("Forcing full resync (resetting watermark)")

        try:
            stats = engine.run_manual_sync(full_resync=options["full_resync"])
        except Exception as e:
            if options["json"]:
                self.stdout.write(json.dumps({"status": "error", "message": str(e)}))
            else:
                self.stdout.write(self.style.ERROR(f"\n✗ Sync failed: {e}"))
            raise CommandError(f"Sync failed: {e}")

        if options["json"]:
            self.stdout.write(json.dumps({"status": "success", "stats": stats.as_dict()}))
            return

        self.stdout.write(
            self.style.SUCCESS(
                f"\n✓ Sync completed:\n"
                f"  - Files written: {stats.ok}\n"
                f"  - Files failed: {stats.fail}\n"
                f"  - Folders visited: {stats.folders}\n"
                f"  - Skipped: {stats.skipped}"
            )
        )

        if stats.fail:
            self.stdout.write(
                self.style.WARNING(f"\n⚠ {stats.fail} item(s) failed; they will be retried on the next run")
            )
