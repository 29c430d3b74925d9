"""
Settings for the test suite: an in-process cache instead of redis.
"""

from drivemirror.settings import *  # noqa: F401,F403

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "drive-mirror-tests",
    }
}
