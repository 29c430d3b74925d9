"""
Bounded retries for single-node changes that failed to apply.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from typing import Callable

from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass
class RetryRecord:
    """A failed change waiting for another attempt."""

    signature: str
    payload: dict = field(default_factory=dict)
    attempts: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "RetryRecord":
        return cls(
            signature=data["signature"],
            payload=dict(data.get("payload", {})),
            attempts=int(data.get("attempts", 0)),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def next_attempt(self) -> "RetryRecord":
        return replace(self, attempts=self.attempts + 1)


class RetryDispatcher:
    """
    Re-queues failed changes until they succeed or hit the attempt ceiling.

    Queueing is best effort: if the channel itself fails, the record is
    logged and dropped and the next poll picks the change up.
    """

    def __init__(
        self,
        apply: Callable[[dict], object],
        send: Callable[[RetryRecord], None] | None = None,
        max_attempts: int | None = None,
        backoff_seconds: int | None = None,
    ):
        self.apply = apply
        self.send = send or self._send_to_celery
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.RETRY_MAX_ATTEMPTS
        )
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.RETRY_BACKOFF_SECONDS
        )

    def enqueue(self, record: RetryRecord) -> bool:
        """
        Queue ``record`` for another attempt.

        Returns:
            True if queued, False if dropped (ceiling reached or channel down)
        """
        if record.attempts >= self.max_attempts:
            logger.error(
                f"Giving up on change {record.signature} after {record.attempts} "
                f"attempts: {record.payload}"
            )
            return False

        try:
            self.send(record)
        except Exception as e:
            logger.error(f"Retry channel unavailable, dropping change {record.signature}: {e}")
            return False

        logger.info(
            f"Queued retry {record.attempts + 1}/{self.max_attempts} for change {record.signature}"
        )
        return True

    def dispatch(self, record: RetryRecord) -> bool:
        """
        Run one retry attempt, re-queueing on failure.

        Returns:
            True if the change applied
        """
        record = record.next_attempt()
        try:
            self.apply(record.payload)
        except Exception as e:
            logger.warning(
                f"Retry {record.attempts}/{self.max_attempts} of change {record.signature} failed: {e}"
            )
            self.enqueue(record)
            return False

        logger.info(f"Retry {record.attempts} of change {record.signature} succeeded")
        return True

    def _send_to_celery(self, record: RetryRecord) -> None:
        from mirror.tasks import retry_change_task

        retry_change_task.apply_async(
            kwargs={"record": record.to_dict()},
            countdown=self.backoff_seconds * 2 ** record.attempts,
        )
