"""
GET /api/health/

Unauthenticated; load balancers and uptime checks poll it. HTTP 503 only
when the database is unreachable. Redis and Celery are reported but never
make the service unhealthy, since the API and ledger work without them.
"""

import logging
from datetime import timedelta

import redis
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone

from catalog_crawler.models import ScrapeSession, ScrapeSessionStatus

logger = logging.getLogger(__name__)


def get_redis_connection():
    """Redis client for REDIS_URL, or None when it is not set."""
    redis_url = getattr(settings, "REDIS_URL", "")
    if not redis_url:
        return None
    return redis.Redis.from_url(redis_url, socket_connect_timeout=2, socket_timeout=2)


def get_celery_worker_count() -> int:
    """Number of workers answering an inspect ping (0 when none or no broker)."""
    try:
        from config.celery import app as celery_app

        replies = celery_app.control.inspect(timeout=1).active()
    except Exception as e:
        logger.debug(f"Celery inspect failed: {e}")
        return 0
    return len(replies or {})


def _database_status() -> str:
    try:
        connection.ensure_connection()
    except Exception:
        return "error"
    return "connected"


def _redis_status() -> str:
    try:
        client = get_redis_connection()
        if client is None:
            return "not_configured"
        return "connected" if client.ping() else "error"
    except redis.RedisError:
        return "error"


def _run_metrics():
    """(last completed run as ISO string, success rate % over the last 24h)."""
    since = timezone.now() - timedelta(hours=24)
    finished = ScrapeSession.objects.filter(
        completed_at__gte=since,
        status__in=[ScrapeSessionStatus.COMPLETED, ScrapeSessionStatus.FAILED],
    )
    success_rate = None
    total = finished.count()
    if total:
        succeeded = finished.filter(status=ScrapeSessionStatus.COMPLETED).count()
        success_rate = round(succeeded / total * 100, 1)

    latest = (
        ScrapeSession.objects.filter(completed_at__isnull=False)
        .order_by("-completed_at")
        .first()
    )
    return (latest.completed_at.isoformat() if latest else None), success_rate


def health_check(request):
    database = _database_status()

    last_run, success_rate = None, None
    if database == "connected":
        try:
            last_run, success_rate = _run_metrics()
        except DatabaseError as e:
            logger.warning(f"Health check could not read scrape sessions: {e}")

    healthy = database == "connected"
    return JsonResponse(
        {
            "status": "healthy" if healthy else "unhealthy",
            "database": database,
            "redis": _redis_status(),
            "celery_workers": get_celery_worker_count(),
            "last_run": last_run,
            "run_success_rate_24h": success_rate,
        },
        status=200 if healthy else 503,
    )
