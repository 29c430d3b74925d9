from django.contrib import admin

from .models import SyncRun, SyncState


@admin.register(SyncState)
class SyncStateAdmin(admin.ModelAdmin):
    list_display = ["key", "value", "updated_at"]
    search_fields = ["key"]
    readonly_fields = ["updated_at"]


@admin.register(SyncRun)
class SyncRunAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "trigger",
        "status",
        "since",
        "started_at",
        "completed_at",
        "files_ok",
        "files_failed",
        "folders",
    ]
    list_filter = ["trigger", "status", "started_at"]
    search_fields = ["error_message"]
    readonly_fields = ["started_at", "completed_at", "since"]
