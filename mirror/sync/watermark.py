"""
Watermark persistence: last fully reconciled time and changes cursor.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from django.db import transaction

from mirror.models import SyncState
from mirror.providers.google_drive import parse_rfc3339, to_rfc3339

logger = logging.getLogger(__name__)

EPOCH_FLOOR = datetime(2000, 1, 1, tzinfo=timezone.utc)

LAST_SYNC_KEY = "last_sync"
CURSOR_KEY = "changes_cursor"


class WatermarkStore:
    """
    Named string values backed by the SyncState table.

    The last-sync timestamp only moves forward through ``advance``;
    ``reset`` is the one way back to the epoch floor.
    """

    def get(self, key: str) -> str | None:
        state = SyncState.objects.filter(key=key).first()
        if state is None or not state.value:
            return None
        return state.value

    def set(self, key: str, value: str) -> None:
        SyncState.objects.update_or_create(key=key, defaults={"value": value})

    def last_sync(self) -> datetime:
        """Return the watermark, or the epoch floor if none was stored."""
        value = self.get(LAST_SYNC_KEY)
        if value is None:
            return EPOCH_FLOOR
        try:
            return parse_rfc3339(value)
        except ValueError:
            logger.warning(f"Unparseable watermark {value!r}, using epoch floor")
            return EPOCH_FLOOR

    def advance(self, timestamp: datetime) -> bool:
        """
        Move the watermark forward to ``timestamp``.

        Returns:
            True if stored, False if the current watermark is already
            at or past ``timestamp``
        """
        with transaction.atomic():
            state, _ = SyncState.objects.select_for_update().get_or_create(
                key=LAST_SYNC_KEY, defaults={"value": ""}
            )
            if state.value:
                try:
                    current = parse_rfc3339(state.value)
                except ValueError:
                    current = EPOCH_FLOOR
                if timestamp <= current:
                    logger.debug(
                        f"Watermark not advanced: {to_rfc3339(timestamp)} <= {state.value}"
                    )
                    return False

            state.value = to_rfc3339(timestamp)
            state.save(update_fields=["value", "updated_at"])

        logger.info(f"Watermark advanced to {state.value}")
        return True

    def reset(self) -> None:
        """Full resync: rewind to the epoch floor and forget the changes cursor."""
        with transaction.atomic():
            self.set(LAST_SYNC_KEY, to_rfc3339(EPOCH_FLOOR))
            SyncState.objects.filter(key=CURSOR_KEY).delete()
        logger.warning("Watermark reset to epoch floor")

    def cursor(self) -> str | None:
        return self.get(CURSOR_KEY)

    def set_cursor(self, token: str) -> None:
        self.set(CURSOR_KEY, token)
        logger.debug(f"Saved changes cursor: {token[:20]}")
