"""
Webhook handlers for LashClub.
Processes Stripe subscription events for memberships.
"""
from .stripe import stripe_webhook_bp

__all__ = [
    'stripe_webhook_bp',
]
