"""
API throttling classes.
"""

from rest_framework.throttling import UserRateThrottle


class PriceUpdateThrottle(UserRateThrottle):
    """
    Throttle for price-update batches.

    Rate: 120 requests per hour per user.
    Applied to: /api/v1/prices/batch/
    """

    rate = '120/hour'
    scope = 'price_update'
