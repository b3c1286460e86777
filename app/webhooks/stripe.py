"""
Stripe webhook endpoint.
Handles subscription billing events from Stripe.
"""
import stripe
from flask import Blueprint, request, jsonify, current_app

from ..services.membership_service import MembershipService
from ..services.stripe_service import StripeService, StripeWebhookHandler
from ..utils.errors import bad_request, service_unavailable, ErrorCode

stripe_webhook_bp = Blueprint('stripe_webhook', __name__)


@stripe_webhook_bp.route('', methods=['POST'])
def handle_stripe_webhook():
    """
    Handle incoming Stripe webhook events.

    Stripe sends events for:
    - checkout.session.completed (new membership)
    - invoice.paid (renewal, resets free-service usage)
    - invoice.payment_failed
    - customer.subscription.updated (status, tier change, cancel flag)
    - customer.subscription.deleted (cancellation)
    """
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')
    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')

    if not webhook_secret:
        return service_unavailable('Webhook secret not configured')

    if not sig_header:
        return bad_request('Missing Stripe-Signature header', ErrorCode.INVALID_SIGNATURE)

    # Verify and construct the event
    try:
        event = StripeService.construct_webhook_event(payload, sig_header, webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        current_app.logger.warning(f'Stripe webhook rejected: {e}')
        return bad_request('Webhook signature verification failed', ErrorCode.INVALID_SIGNATURE)

    handler = StripeWebhookHandler(MembershipService())
    result = handler.handle_event(event)

    current_app.logger.info(f"[Stripe Webhook] {event['type']}: {result}")

    return jsonify(result)
