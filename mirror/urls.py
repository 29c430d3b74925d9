from django.urls import path

from mirror import views

app_name = "mirror"

urlpatterns = [
    path("", views.health, name="health"),
    path("sync", views.manual_sync, name="manual_sync"),
    path("sync/webhook", views.drive_webhook, name="drive_webhook"),
]
