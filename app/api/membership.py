"""
Membership API endpoints.
Handles the tier catalog, member pricing quotes, priority bookings and
subscription checkout/cancellation.

Domain errors (LashClubError) raised here are turned into JSON responses by
the app-level error handler.
"""
import logging
from decimal import Decimal, InvalidOperation
from flask import Blueprint, request, jsonify, g

from ..middleware.auth import require_user
from ..services.membership_service import MembershipService
from ..services.stripe_service import StripeService
from ..utils.exceptions import ValidationError
from ..utils.serialization import json_safe

logger = logging.getLogger(__name__)

membership_bp = Blueprint('membership', __name__)


def parse_price(data: dict, key: str = 'price') -> Decimal:
    """Read a non-negative money amount from a JSON body."""
    if data.get(key) is None:
        raise ValidationError(f'{key} is required', key)
    try:
        value = Decimal(str(data[key]))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{key} must be a number', key)
    if not value.is_finite() or value < 0:
        raise ValidationError(f'{key} must be a non-negative number', key)
    return value


def parse_int(data: dict, key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a whole number', key)


# ==================== Public Endpoints ====================

@membership_bp.route('/tiers', methods=['GET'])
def list_tiers():
    """
    List available membership tiers.

    Returns:
        List of active tiers with benefits
    """
    service = MembershipService()
    return jsonify({'tiers': service.tier_service.get_catalog()})


# ==================== Member Endpoints ====================

@membership_bp.route('/status', methods=['GET'])
@require_user
def get_membership_status():
    """Current user's membership and points."""
    user = g.user
    return jsonify({
        'membership': user.membership_dict(),
        'is_member': user.has_active_membership,
        'points': {
            'balance': user.points_balance or 0,
            'lifetime_earned': user.lifetime_points_earned or 0,
        },
    })


@membership_bp.route('/benefits', methods=['GET'])
@require_user
def get_benefits():
    """Benefits, usage and remaining free services for the current period."""
    service = MembershipService()
    return jsonify(json_safe(service.get_membership_summary(g.user)))


@membership_bp.route('/quote/product', methods=['POST'])
@require_user
def quote_product():
    """
    Member price for a product.

    Request body:
        price: number (required)
    """
    data = request.get_json(silent=True) or {}
    price = parse_price(data)

    service = MembershipService()
    return jsonify(json_safe(service.quote_product_price(g.user, price)))


@membership_bp.route('/quote/service', methods=['POST'])
@require_user
def quote_service():
    """
    Member price for a service booking.

    Request body:
        price: number (required)
        service_id: string
        is_refill: bool
        is_full_set: bool
        points_to_redeem: int
    """
    data = request.get_json(silent=True) or {}
    price = parse_price(data)

    service = MembershipService()
    quote = service.quote_service_price(
        g.user,
        price,
        service_id=data.get('service_id'),
        is_refill=bool(data.get('is_refill')),
        is_full_set=bool(data.get('is_full_set')),
        points_to_redeem=parse_int(data, 'points_to_redeem'),
    )
    return jsonify(json_safe(quote))


@membership_bp.route('/priority-booking', methods=['POST'])
@require_user
def priority_booking():
    """
    Book a free refill or full set from the monthly allowance.

    Request body:
        benefit_type: 'refill' or 'full_set' (required)
        service_id: string (required)
        date: string (required)
        time: string (required)
    """
    data = request.get_json(silent=True) or {}
    for field in ('benefit_type', 'service_id', 'date', 'time'):
        if not data.get(field):
            raise ValidationError(f'{field} is required', field)

    service = MembershipService()
    claim = service.claim_free_service(g.user_id, data['benefit_type'])

    label = 'Refill' if data['benefit_type'] == 'refill' else 'Full Set'
    return jsonify({
        'success': True,
        'claim': claim,
        'booking': {
            'service_id': data['service_id'],
            'date': data['date'],
            'time': data['time'],
            'price': 0,
            'status': 'confirmed',
            'payment_status': 'paid',
            'notes': f"Priority booking - Free {label} ({claim['tier_name']} membership)",
        },
        'message': 'Priority booking confirmed!',
    }), 201


@membership_bp.route('/checkout', methods=['POST'])
@require_user
def create_checkout():
    """
    Start a Stripe subscription checkout for a tier.

    Request body:
        tier_id: string (required)
        success_url: string (required)
        cancel_url: string (required)
    """
    data = request.get_json(silent=True) or {}
    for field in ('tier_id', 'success_url', 'cancel_url'):
        if not data.get(field):
            raise ValidationError(f'{field} is required', field)

    service = MembershipService()
    tier = service.tier_service.get_tier(data['tier_id'])
    session = StripeService().create_membership_checkout(
        g.user, tier, data['success_url'], data['cancel_url']
    )
    return jsonify(session)


@membership_bp.route('/cancel', methods=['POST'])
@require_user
def cancel_membership():
    """Cancel at period end; the member keeps benefits until then."""
    service = MembershipService()
    user = service.cancel_membership(g.user_id)

    return jsonify({
        'success': True,
        'message': 'Membership will be cancelled at the end of your billing period',
        'cancel_date': user.current_period_end.isoformat() if user.current_period_end else None,
    })
