"""
Throttle classes for the operator API.
"""

from rest_framework.throttling import UserRateThrottle


class DispatchThrottle(UserRateThrottle):
    """
    Throttle for crawl dispatch.

    Rate: 10 requests per hour per user.
    Applied to: /api/v1/dispatch/
    """

    rate = '10/hour'
    scope = 'dispatch'
