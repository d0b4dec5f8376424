"""
pytest settings (DJANGO_SETTINGS_MODULE=config.settings.test).

In-memory SQLite, eager Celery, no Redis and no external services. Every
network client is replaced by a fake or an httpx.MockTransport in tests.
"""

from .base import *  # noqa: F401,F403

DEBUG = False
ALLOWED_HOSTS = ["testserver", "localhost"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "catalog-test",
    }
}

REDIS_URL = ""
SENTRY_DSN = ""

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

for _logger in ("django", "catalog_crawler"):
    LOGGING["loggers"][_logger]["level"] = "WARNING"

AUTH_PASSWORD_VALIDATORS = []
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CRAWLER_RENDERER = "httpx"
CRAWLER_REQUEST_TIMEOUT = 5
CRAWLER_MAX_RETRIES = 0

AI_SERVICE_URL = ""
FACT_CHECK_SERVICE_URL = ""
DOCUMENT_AI_URL = ""
PIPELINE_TIMEOUT = 30
