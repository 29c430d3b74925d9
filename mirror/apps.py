import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class MirrorConfig(AppConfig):
    name = 'mirror'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        """
        Run when Django app is ready.

        Warns about missing configuration for the server processes.
        """
        # Only run in the main process (not in migrations, etc.)
        import sys
        if 'runserver' not in sys.argv and 'sync_mirror' not in sys.argv:
            return

        from django.conf import settings

        if not settings.ROOT_FOLDER_ID:
            logger.warning("ROOT_FOLDER_ID is not set; syncs will fail until it is configured")
        if settings.MIRROR_OBJECT_STORE == "gcs" and not settings.BUCKET_NAME:
            logger.warning("BUCKET_NAME is not set; object writes will fail")
        if not settings.WEBHOOK_URL:
            logger.info("WEBHOOK_URL not set, relying on polling for change detection")
