"""
Catalog API Views

REST API endpoints for the price ledger:
- Batch price updates from upstream price scrapes
- Price history of a variant

All endpoints require authentication.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter

from catalog_crawler.api.throttling import PriceUpdateThrottle
from catalog_crawler.models import VehicleVariant
from catalog_crawler.services.catalog_store import get_catalog_store

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 500


def _get_price_update_service():
    """Get PriceUpdateService instance (lazy import to avoid circular imports)."""
    from catalog_crawler.services.price_updates import PriceUpdateService
    return PriceUpdateService()


def _serialize_price(price):
    return {
        'id': str(price.id),
        'pris': price.pris,
        'old_pris': price.old_pris,
        'privatleasing': price.privatleasing,
        'old_privatleasing': price.old_privatleasing,
        'foretagsleasing': price.foretagsleasing,
        'old_foretagsleasing': price.old_foretagsleasing,
        'billan_per_man': price.billan_per_man,
        'old_billan_per_man': price.old_billan_per_man,
        'leasing_months': price.leasing_months,
        'is_campaign': price.is_campaign,
        'campaign_name': price.campaign_name,
        'source_url': price.source_url,
        'valid_from': price.valid_from.isoformat(),
        'valid_until': price.valid_until.isoformat() if price.valid_until else None,
        'is_current': price.is_current,
    }


@extend_schema(
    tags=['Prices'],
    summary='Apply a batch of price updates',
    description='''
    Update prices of existing variants. Each record is matched by brand,
    vehicle, variant and motor type. A changed price expires the current
    ledger row and inserts a new one; an unchanged price writes nothing.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'updates': {
                    'type': 'array',
                    'items': {
                        'type': 'object',
                        'properties': {
                            'brand': {'type': 'string'},
                            'vehicle': {'type': 'string'},
                            'variant': {'type': 'string'},
                            'motor_type': {'type': 'string'},
                            'prices': {'type': 'object'},
                        },
                        'required': ['brand', 'vehicle', 'variant', 'motor_type'],
                    },
                },
            },
            'required': ['updates'],
        }
    },
    responses={
        200: {
            'description': 'Batch processed',
            'content': {
                'application/json': {
                    'example': {
                        'success': True,
                        'message': 'Processed 2 price updates',
                        'summary': {'total': 2, 'success': 2, 'updated': 1, 'unchanged': 1, 'errors': 0},
                        'results': [
                            {'brand': 'Suzuki', 'vehicle': 'Vitara', 'variant': 'Select',
                             'motor_type': 'HYBRID', 'success': True, 'updated': True},
                        ],
                    }
                }
            }
        },
        400: {'description': 'Missing or malformed updates list'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([PriceUpdateThrottle])
def batch_price_update(request):
    """
    Apply a batch of price updates.

    Request body:
    {
        "updates": [
            {"brand": "Suzuki", "vehicle": "Vitara", "variant": "Select",
             "motor_type": "HYBRID", "prices": {"pris": 449900, "old_pris": 459900}}
        ]
    }

    Per-record results are returned in order, with an aggregate summary.
    """
    updates = request.data.get('updates')
    if not isinstance(updates, list):
        return Response(
            {'error': 'updates must be a list'},
            status=status.HTTP_400_BAD_REQUEST
        )

    if len(updates) > MAX_BATCH_SIZE:
        return Response(
            {'error': f'Maximum {MAX_BATCH_SIZE} updates per batch'},
            status=status.HTTP_400_BAD_REQUEST
        )

    service = _get_price_update_service()
    return Response(service.apply_batch(updates))


@extend_schema(
    tags=['Prices'],
    summary='Get price history of a variant',
    description='All ledger rows of a variant, newest first. The current row has valid_until null.',
    parameters=[
        OpenApiParameter(
            name='variant_id',
            type=str,
            location=OpenApiParameter.PATH,
            description='UUID of the vehicle variant',
        ),
    ],
    responses={
        200: {'description': 'Price history'},
        404: {'description': 'Variant not found'},
    },
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def variant_price_history(request, variant_id):
    """
    Get the price ledger of a variant.
    """
    variant = (
        VehicleVariant.objects.select_related('vehicle__brand')
        .filter(id=variant_id)
        .first()
    )
    if variant is None:
        return Response(
            {'error': 'Variant not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    history = get_catalog_store().price_history(variant.id)
    current = next((p for p in history if p.is_current), None)

    return Response({
        'variant_id': str(variant.id),
        'brand': variant.vehicle.brand.name,
        'vehicle': variant.vehicle.name,
        'model_year': variant.vehicle.model_year,
        'variant': variant.name,
        'motor_type': variant.motor_type,
        'drivetrain': variant.drivetrain,
        'current': _serialize_price(current) if current else None,
        'history': [_serialize_price(p) for p in history],
    })
