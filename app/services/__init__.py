"""
Business logic services for the LashClub membership platform.
"""
from .tier_service import TierService
from .membership_service import MembershipService
from .points_service import PointsService
from .stripe_service import StripeService, StripeWebhookHandler

__all__ = [
    'TierService',
    'MembershipService',
    'PointsService',
    'StripeService',
    'StripeWebhookHandler',
]
