"""
Catalog API URL Configuration

Endpoints:
- POST /api/v1/prices/batch/                  - Apply price-update batch
- GET  /api/v1/variants/<variant_id>/prices/  - Variant price history
"""

from django.urls import path

from catalog_crawler.api.views import (
    batch_price_update,
    variant_price_history,
)

app_name = 'catalog_api'

urlpatterns = [
    path('prices/batch/', batch_price_update, name='batch_price_update'),
    path('variants/<uuid:variant_id>/prices/', variant_price_history, name='variant_price_history'),
]
