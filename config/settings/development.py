"""
Local development: SQLite file, in-process cache, DEBUG logging.

Point AI_SERVICE_URL / FACT_CHECK_SERVICE_URL / DOCUMENT_AI_URL at local
stubs (or leave them empty to skip those stages' network calls) when
running the pipeline from a laptop.
"""

from .base import *  # noqa: F401,F403

DEBUG = True
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "0.0.0.0"]
INTERNAL_IPS = ["127.0.0.1"]

# The one-current-price constraint is a partial unique index, which SQLite
# also supports, so the ledger behaves the same as on Postgres.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "catalog.sqlite3",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "catalog-dev",
    }
}

for _logger in ("django", "catalog_crawler"):
    LOGGING["loggers"][_logger]["level"] = "DEBUG"

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"
AUTH_PASSWORD_VALIDATORS = []

# Slow local renders, few retries
CRAWLER_REQUEST_TIMEOUT = 60
CRAWLER_MAX_RETRIES = 1
PIPELINE_TIMEOUT = 1800
