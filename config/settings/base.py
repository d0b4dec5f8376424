"""
Settings shared by every environment of the vehicle catalog crawler.

development.py, production.py and test.py import * from here and set
DATABASES and CACHES. Anything deployment-specific is read from the
environment (a .env file is honoured).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv("SECRET_KEY", "catalog-crawler-local-only-secret")
DEBUG = os.getenv("DEBUG", "True") == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "catalog_crawler",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# Admin only; the API renders JSON
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

# Set per environment
DATABASES = {}
CACHES = {}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": f"django.contrib.auth.password_validation.{name}"}
    for name in (
        "UserAttributeSimilarityValidator",
        "MinimumLengthValidator",
        "CommonPasswordValidator",
        "NumericPasswordValidator",
    )
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Redis / Celery

# Checked by /api/health/; empty disables the check
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/2")

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
# Hard ceiling above PIPELINE_TIMEOUT
CELERY_TASK_TIME_LIMIT = 30 * 60

CELERY_TASK_ROUTES = {
    "catalog_crawler.tasks.run_catalog_pipeline": {"queue": "pipeline"},
    "catalog_crawler.tasks.apply_price_updates": {"queue": "default"},
}


# REST API

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 100,
    "DEFAULT_THROTTLE_RATES": {
        "price_update": "120/hour",
    },
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Vehicle Catalog Crawler API",
    "DESCRIPTION": "Price-update batches and price history for the vehicle catalog",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging / Sentry

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": LOG_LEVEL},
        "catalog_crawler": {"handlers": ["console"], "level": LOG_LEVEL},
    },
}

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

if SENTRY_DSN:
    import sentry_sdk

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        environment=SENTRY_ENVIRONMENT,
    )


# Crawler Configuration

# Default timeout for HTTP requests (seconds)
CRAWLER_REQUEST_TIMEOUT = int(os.getenv("CRAWLER_REQUEST_TIMEOUT", "30"))

# Maximum retries for failed requests
CRAWLER_MAX_RETRIES = int(os.getenv("CRAWLER_MAX_RETRIES", "2"))

# Link depth followed from the seed page
CRAWLER_MAX_DEPTH = int(os.getenv("CRAWLER_MAX_DEPTH", "1"))

# Concurrent page and PDF fetches per level
CRAWLER_MAX_CONCURRENCY = int(os.getenv("CRAWLER_MAX_CONCURRENCY", "5"))

# Outbound links followed per page
CRAWLER_MAX_LINKS_PER_PAGE = int(os.getenv("CRAWLER_MAX_LINKS_PER_PAGE", "20"))

# Total pages fetched per run
CRAWLER_MAX_PAGES = int(os.getenv("CRAWLER_MAX_PAGES", "50"))

# Page renderer: "httpx" or "playwright"
CRAWLER_RENDERER = os.getenv("CRAWLER_RENDERER", "httpx")

# Extra hosts the crawler may follow besides the seed host
CRAWLER_ALLOWED_HOSTS = [
    host for host in os.getenv("CRAWLER_ALLOWED_HOSTS", "").split(",") if host
]

# Largest PDF downloaded (bytes)
CRAWLER_MAX_PDF_BYTES = int(os.getenv("CRAWLER_MAX_PDF_BYTES", str(25 * 1024 * 1024)))


# Document Configuration

# Optional document-AI service; local pypdf text extraction is used when unset
DOCUMENT_AI_URL = os.getenv("DOCUMENT_AI_URL", "")
DOCUMENT_AI_API_KEY = os.getenv("DOCUMENT_AI_API_KEY", "")

PDF_MAX_PAGES = int(os.getenv("PDF_MAX_PAGES", "60"))
PDF_MAX_TEXT_CHARS = int(os.getenv("PDF_MAX_TEXT_CHARS", "30000"))

# Only process PDFs that look like price lists
PDF_PRICELIST_ONLY = os.getenv("PDF_PRICELIST_ONLY", "True") == "True"

NORMALIZER_MAX_SECTION_CHARS = int(os.getenv("NORMALIZER_MAX_SECTION_CHARS", "30000"))


# AI Service Configuration

AI_SERVICE_URL = os.getenv("AI_SERVICE_URL", "")
AI_SERVICE_API_KEY = os.getenv("AI_SERVICE_API_KEY", "")
AI_EXTRACTION_MODEL = os.getenv("AI_EXTRACTION_MODEL", "")
AI_SERVICE_TIMEOUT = float(os.getenv("AI_SERVICE_TIMEOUT", "120"))

EXTRACTION_MAX_CHARS = int(os.getenv("EXTRACTION_MAX_CHARS", "60000"))
EXTRACTION_ENABLE_IMAGES = os.getenv("EXTRACTION_ENABLE_IMAGES", "False") == "True"

FACT_CHECK_SERVICE_URL = os.getenv("FACT_CHECK_SERVICE_URL", "")
FACT_CHECK_API_KEY = os.getenv("FACT_CHECK_API_KEY", "")
FACT_CHECK_MODEL = os.getenv("FACT_CHECK_MODEL", "")
FACT_CHECK_ENABLED = os.getenv("FACT_CHECK_ENABLED", "True") == "True"
FACT_CHECK_MAX_CLAIMS = int(os.getenv("FACT_CHECK_MAX_CLAIMS", "20"))


# Pipeline Configuration

# Wall-clock budget of a whole run (seconds)
PIPELINE_TIMEOUT = int(os.getenv("PIPELINE_TIMEOUT", "600"))

# Price fields whose change supersedes the current ledger row
RECONCILIATION_TRACKED_PRICE_FIELDS = [
    field for field in os.getenv(
        "RECONCILIATION_TRACKED_PRICE_FIELDS",
        "pris,privatleasing,foretagsleasing,billan_per_man",
    ).split(",") if field
]
