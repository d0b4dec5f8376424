"""
Root URLconf.

- /admin/                catalog and scrape-session admin
- /api/schema|docs|redoc OpenAPI schema and viewers
- /api/health/           unauthenticated health check
- /api/v1/               price batch and price history
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)

from catalog_crawler.views import health_check

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
    path("api/redoc/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("api/health/", health_check, name="health-check"),
    path("api/v1/", include("catalog_crawler.api.urls")),
]
