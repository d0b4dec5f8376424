"""
Catalog crawler application configuration.
"""

from django.apps import AppConfig


class CatalogCrawlerConfig(AppConfig):
    """Configuration for the catalog_crawler Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "catalog_crawler"
    verbose_name = "Vehicle Catalog Crawler"
