"""
Django settings for the drive mirror service.

Every value can be overridden from the environment.
"""

import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def env_int(name, default):
    value = os.environ.get(name)
    return int(value) if value else default


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "drive-mirror-insecure-dev-key")
DEBUG = env_bool("DJANGO_DEBUG")
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "mirror.apps.MirrorConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "drivemirror.urls"
WSGI_APPLICATION = "drivemirror.wsgi.application"
APPEND_SLASH = False

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

STATIC_URL = "static/"

# Logging

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "mirror": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

# Mirror

ROOT_FOLDER_ID = os.environ.get("ROOT_FOLDER_ID", "")
BUCKET_NAME = os.environ.get("BUCKET_NAME", "")

# "gcs" or "local"
MIRROR_OBJECT_STORE = os.environ.get("MIRROR_OBJECT_STORE", "gcs")
MIRROR_LOCAL_ROOT = os.environ.get("MIRROR_LOCAL_ROOT", str(BASE_DIR / "mirror_data"))

WEBHOOK_URL = os.environ.get("WEBHOOK_URL", "")
DRIVE_WEBHOOK_TOKEN = os.environ.get("DRIVE_WEBHOOK_TOKEN", "")
DRIVE_USE_CHANGES_FEED = env_bool("DRIVE_USE_CHANGES_FEED", True)
WEBHOOK_TTL_SECONDS = env_int("WEBHOOK_TTL_SECONDS", 24 * 60 * 60)
WEBHOOK_RENEW_HOURS = env_int("WEBHOOK_RENEW_HOURS", 20)

POLL_ENABLED = env_bool("POLL_ENABLED", True)
POLL_INTERVAL_SECONDS = env_int("POLL_INTERVAL_SECONDS", 30)
POLL_LOOKBACK_SECONDS = env_int("POLL_LOOKBACK_SECONDS", 300)

DEDUP_WINDOW_SECONDS = env_int("DEDUP_WINDOW_SECONDS", 300)
DEDUP_BUCKET_SECONDS = env_int("DEDUP_BUCKET_SECONDS", 60)

RETRY_MAX_ATTEMPTS = env_int("RETRY_MAX_ATTEMPTS", 3)
RETRY_BACKOFF_SECONDS = env_int("RETRY_BACKOFF_SECONDS", 10)

# Celery

CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_TASK_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER")

CELERY_BEAT_SCHEDULE = {
    "renew-webhook": {
        "task": "mirror.tasks.renew_webhook_task",
        "schedule": timedelta(hours=WEBHOOK_RENEW_HOURS),
    },
}

if POLL_ENABLED:
    CELERY_BEAT_SCHEDULE["poll-drive"] = {
        "task": "mirror.tasks.poll_drive_task",
        "schedule": timedelta(seconds=POLL_INTERVAL_SECONDS),
    }

# Cache
# Dedup signatures live here, so every web and worker process must share
# one backend. Defaults to the broker's redis.

CACHE_URL = os.environ.get("CACHE_URL", CELERY_BROKER_URL)

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": CACHE_URL,
    }
}
