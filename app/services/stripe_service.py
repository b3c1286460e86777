"""
Stripe integration service for membership subscriptions.
Handles membership checkout, cancellation and subscription webhooks.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import stripe
from dateutil.relativedelta import relativedelta
from flask import current_app

from ..models import User, MembershipStatus
from ..utils.exceptions import ConfigurationError, PaymentProviderError

logger = logging.getLogger(__name__)

MEMBERSHIP_CHECKOUT_TYPE = 'membership_subscription'

# Stripe subscription status -> local membership status
SUBSCRIPTION_STATUS_MAP = {
    'active': MembershipStatus.ACTIVE,
    'trialing': MembershipStatus.ACTIVE,
    'past_due': MembershipStatus.PAST_DUE,
    'unpaid': MembershipStatus.PAST_DUE,
    'incomplete': MembershipStatus.PAST_DUE,
    'canceled': MembershipStatus.CANCELLED,
    'incomplete_expired': MembershipStatus.CANCELLED,
}


def _get(obj, key, default=None):
    """Read a field from a Stripe object or plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        return default
    return default if value is None else value


def _from_unix(timestamp) -> datetime:
    """Unix seconds -> naive UTC datetime (storage convention)."""
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).replace(tzinfo=None)


def resolve_period_end(subscription, now: Optional[datetime] = None) -> datetime:
    """
    Work out when the current billing period ends.

    Newer Stripe API versions report period bounds on the subscription item
    rather than the subscription, and some payloads carry neither, so fall
    back in order: subscription, first item, billing anchor + 1 month,
    start date + 1 month, 30 days from now.
    """
    period_end = _get(subscription, 'current_period_end')
    if period_end:
        return _from_unix(period_end)

    items = _get(_get(subscription, 'items'), 'data') or []
    if items:
        period_end = _get(items[0], 'current_period_end')
        if period_end:
            return _from_unix(period_end)

    anchor = _get(subscription, 'billing_cycle_anchor')
    if anchor:
        return _from_unix(anchor) + relativedelta(months=1)

    start = _get(subscription, 'start_date')
    if start:
        return _from_unix(start) + relativedelta(months=1)

    return (now or datetime.utcnow()) + timedelta(days=30)


class StripeService:
    """Service for handling Stripe billing operations."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or current_app.config.get('STRIPE_SECRET_KEY')

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _require_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError('Stripe is not configured')
        stripe.api_key = self.api_key

    def create_membership_checkout(
        self,
        user: User,
        tier,
        success_url: str,
        cancel_url: str
    ) -> Dict[str, str]:
        """
        Create a Stripe Checkout session for a membership subscription.

        Args:
            user: Subscribing user
            tier: MembershipTier (must have a stripe_price_id)
            success_url: URL to redirect after successful payment
            cancel_url: URL to redirect if payment cancelled

        Returns:
            Dict with session_id and url
        """
        self._require_configured()
        if not tier.stripe_price_id:
            raise ConfigurationError(f'Tier {tier.id} not configured with a Stripe price')

        metadata = {
            'type': MEMBERSHIP_CHECKOUT_TYPE,
            'user_id': str(user.id),
            'tier_id': tier.id,
            'tier_name': tier.name,
        }
        session_params = {
            'mode': 'subscription',
            'line_items': [{'price': tier.stripe_price_id, 'quantity': 1}],
            'success_url': success_url + '?session_id={CHECKOUT_SESSION_ID}',
            'cancel_url': cancel_url,
            'metadata': metadata,
            'subscription_data': {'metadata': metadata},
        }
        if user.stripe_customer_id:
            session_params['customer'] = user.stripe_customer_id
        else:
            session_params['customer_email'] = user.email

        try:
            session = stripe.checkout.Session.create(**session_params)
        except stripe.StripeError as e:
            raise PaymentProviderError(f'Could not create checkout session: {e}', e)

        return {'session_id': session.id, 'url': session.url}

    def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> Dict[str, Any]:
        """
        Cancel a subscription. By default the member keeps benefits until the
        end of the paid period.
        """
        self._require_configured()
        try:
            if at_period_end:
                subscription = stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)
            else:
                subscription = stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as e:
            raise PaymentProviderError(f'Could not cancel subscription {subscription_id}: {e}', e)

        return {
            'subscription_id': subscription_id,
            'status': _get(subscription, 'status'),
            'cancel_at_period_end': _get(subscription, 'cancel_at_period_end', False),
        }

    def get_subscription(self, subscription_id: str):
        self._require_configured()
        try:
            return stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as e:
            raise PaymentProviderError(f'Could not retrieve subscription {subscription_id}: {e}', e)

    @staticmethod
    def construct_webhook_event(payload: bytes, sig_header: str, webhook_secret: str):
        """
        Construct and verify a Stripe webhook event.

        Raises:
            stripe.SignatureVerificationError: If signature invalid
            ValueError: If payload is not valid JSON
        """
        return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


class StripeWebhookHandler:
    """Handler for processing Stripe subscription webhook events."""

    def __init__(self, membership_service, stripe_service: Optional[StripeService] = None):
        self.membership_service = membership_service
        self.stripe_service = stripe_service or StripeService()

    def handle_event(self, event) -> Dict[str, Any]:
        """
        Route and handle a Stripe webhook event.

        Returns:
            Result dict with handled status
        """
        event_type = event['type']
        data = event['data']['object']

        handlers = {
            'checkout.session.completed': self._handle_checkout_completed,
            'invoice.paid': self._handle_invoice_paid,
            'invoice.payment_failed': self._handle_payment_failed,
            'customer.subscription.updated': self._handle_subscription_updated,
            'customer.subscription.deleted': self._handle_subscription_deleted,
        }

        handler = handlers.get(event_type)
        if handler:
            return handler(data)

        logger.info(f'Unhandled Stripe event type: {event_type}')
        return {'handled': False, 'event_type': event_type}

    def _handle_checkout_completed(self, session) -> Dict[str, Any]:
        """Activate membership after a paid subscription checkout."""
        metadata = _get(session, 'metadata') or {}
        if _get(metadata, 'type') != MEMBERSHIP_CHECKOUT_TYPE:
            return {'handled': False, 'error': 'Not a membership checkout'}

        user_id = _get(metadata, 'user_id')
        tier_id = _get(metadata, 'tier_id')
        tier_name = _get(metadata, 'tier_name')
        if not user_id or not tier_id or not tier_name:
            return {'handled': False, 'error': 'Missing required session metadata'}

        subscription_id = _get(session, 'subscription')
        if isinstance(subscription_id, dict) or hasattr(subscription_id, 'id'):
            subscription_id = _get(subscription_id, 'id')
        if not subscription_id:
            return {'handled': False, 'error': 'Subscription not found on session'}

        # Always retrieve fresh to get period fields
        subscription = self.stripe_service.get_subscription(subscription_id)

        user = self.membership_service.activate_subscription(
            user_id=int(user_id),
            tier_id=tier_id,
            tier_name=tier_name,
            stripe_subscription_id=subscription_id,
            stripe_customer_id=_get(session, 'customer'),
            current_period_end=resolve_period_end(subscription),
            cancel_at_period_end=bool(_get(subscription, 'cancel_at_period_end', False)),
        )

        return {'handled': True, 'user_id': user.id, 'action': 'activated_membership'}

    @staticmethod
    def _invoice_subscription_id(invoice) -> Optional[str]:
        subscription_id = _get(invoice, 'subscription')
        if subscription_id:
            return subscription_id
        # 2025+ API versions nest it under parent.subscription_details
        details = _get(_get(invoice, 'parent'), 'subscription_details')
        return _get(details, 'subscription')

    def _find_user(self, subscription_id: str) -> Optional[User]:
        return User.query.filter_by(stripe_subscription_id=subscription_id).first()

    def _handle_invoice_paid(self, invoice) -> Dict[str, Any]:
        """Renewal: extend the period and start a fresh usage window."""
        subscription_id = self._invoice_subscription_id(invoice)
        if not subscription_id:
            return {'handled': False, 'error': 'No subscription in invoice'}

        user = self._find_user(subscription_id)
        if not user:
            return {'handled': False, 'error': f'No user for subscription {subscription_id}'}

        subscription = self.stripe_service.get_subscription(subscription_id)
        self.membership_service.renew_membership(user.id, resolve_period_end(subscription))

        return {'handled': True, 'user_id': user.id, 'action': 'renewed_membership'}

    def _handle_payment_failed(self, invoice) -> Dict[str, Any]:
        subscription_id = self._invoice_subscription_id(invoice)
        if not subscription_id:
            return {'handled': False, 'error': 'No subscription in invoice'}

        user = self._find_user(subscription_id)
        if not user:
            return {'handled': False, 'error': f'No user for subscription {subscription_id}'}

        self.membership_service.set_membership_status(user.id, MembershipStatus.PAST_DUE)

        return {'handled': True, 'user_id': user.id, 'action': 'marked_past_due'}

    def _handle_subscription_updated(self, subscription) -> Dict[str, Any]:
        """Sync status, cancellation flag, period end and tier."""
        subscription_id = _get(subscription, 'id')
        user = self._find_user(subscription_id)
        if not user:
            return {'handled': False, 'error': f'No user for subscription {subscription_id}'}

        new_tier_id = None
        items = _get(_get(subscription, 'items'), 'data') or []
        if items:
            price_id = _get(_get(items[0], 'price'), 'id')
            new_tier = self.membership_service.tier_service.get_tier_by_price_id(price_id)
            if new_tier and new_tier.id != user.tier_id:
                new_tier_id = new_tier.id

        self.membership_service.sync_subscription(
            user_id=user.id,
            status=SUBSCRIPTION_STATUS_MAP.get(_get(subscription, 'status'), user.membership_status),
            current_period_end=resolve_period_end(subscription),
            cancel_at_period_end=bool(_get(subscription, 'cancel_at_period_end', False)),
            tier_id=new_tier_id,
        )

        return {
            'handled': True,
            'user_id': user.id,
            'action': 'subscription_updated',
            'new_tier_id': new_tier_id,
        }

    def _handle_subscription_deleted(self, subscription) -> Dict[str, Any]:
        subscription_id = _get(subscription, 'id')
        user = self._find_user(subscription_id)
        if not user:
            return {'handled': False, 'error': f'No user for subscription {subscription_id}'}

        self.membership_service.set_membership_status(user.id, MembershipStatus.CANCELLED)

        return {'handled': True, 'user_id': user.id, 'action': 'cancelled_membership'}
