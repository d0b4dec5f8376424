"""
Celery app for the vehicle catalog crawler.

Two queues:
- pipeline: crawl/extract/reconcile runs (minutes each)
- default:  price-update batches and anything else short
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("catalog_crawler")

# CELERY_* keys in Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

app.conf.task_queues = {
    name: {"exchange": name, "routing_key": name}
    for name in ("pipeline", "default")
}
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "catalog_crawler.tasks.run_catalog_pipeline": {"queue": "pipeline"},
    "catalog_crawler.tasks.apply_price_updates": {"queue": "default"},
}
