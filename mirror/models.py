from django.db import models


class SyncTrigger(models.TextChoices):
    MANUAL = "manual", "Manual"
    POLL = "poll", "Poll"


class RunStatus(models.TextChoices):
    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class SyncState(models.Model):
    """
    Small named values the sync engine persists between runs.

    Holds the last fully reconciled timestamp and the changes-feed
    cursor. See mirror/sync/watermark.py.
    """

    key = models.CharField(max_length=64, unique=True)
    value = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.key}={self.value}"


class SyncRun(models.Model):
    """
    Records each root walk for audit and debugging.
    """

    trigger = models.CharField(max_length=10, choices=SyncTrigger.choices)
    since = models.DateTimeField()
    started_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=10, choices=RunStatus.choices, default=RunStatus.RUNNING
    )

    # Statistics
    files_ok = models.PositiveIntegerField(default=0)
    files_failed = models.PositiveIntegerField(default=0)
    folders = models.PositiveIntegerField(default=0)

    error_message = models.TextField(blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["trigger", "-started_at"], name="mirror_run_trigger_idx"),
            models.Index(fields=["status"], name="mirror_run_status_idx"),
        ]
        ordering = ["-started_at"]

    def __str__(self):
        return f"{self.get_trigger_display()} sync since {self.since:%Y-%m-%d %H:%M} - {self.get_status_display()}"
