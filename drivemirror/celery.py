import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "drivemirror.settings")

app = Celery("drivemirror")

# CELERY_-prefixed Django settings configure the app
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
