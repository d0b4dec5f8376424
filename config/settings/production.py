"""
Production: PostgreSQL, Redis cache and broker, Playwright rendering.

Everything host-specific comes from the environment (see base.py for the
crawler and AI service variables).
"""

import os

from .base import *  # noqa: F401,F403

DEBUG = False
ALLOWED_HOSTS = [host.strip() for host in os.getenv("ALLOWED_HOSTS", "").split(",") if host.strip()]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "vehicle_catalog"),
        "USER": os.getenv("DB_USER", ""),
        "PASSWORD": os.getenv("DB_PASSWORD", ""),
        "HOST": os.getenv("DB_HOST", ""),
        "PORT": os.getenv("DB_PORT", "5432"),
        "CONN_MAX_AGE": 60,
        "OPTIONS": {"connect_timeout": 10},
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": REDIS_URL,
    }
}

LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["catalog_crawler"]["level"] = "INFO"

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
SECURE_HSTS_SECONDS = 60 * 60 * 24 * 365
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True

# Manufacturer sites render prices client-side
CRAWLER_RENDERER = os.getenv("CRAWLER_RENDERER", "playwright")
CRAWLER_REQUEST_TIMEOUT = 30
CRAWLER_MAX_RETRIES = 3
