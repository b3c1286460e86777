"""
Points API endpoints for the LashClub loyalty program.

Handles:
- Points balance and history queries
- Redemption previews and redemptions for service bookings
"""
from flask import Blueprint, request, jsonify, g

from ..middleware.auth import require_user
from ..services.points_service import PointsService
from ..utils.serialization import json_safe
from .membership import parse_price, parse_int

points_bp = Blueprint('points', __name__)


@points_bp.route('/balance', methods=['GET'])
@require_user
def get_points_balance():
    """
    Get the current user's points balance.

    Returns:
        Balance, lifetime earnings, dollar value and redemption eligibility
    """
    service = PointsService()
    return jsonify(json_safe(service.get_balance(g.user_id)))


@points_bp.route('/history', methods=['GET'])
@require_user
def get_points_history():
    """
    Get the current user's points history (paginated, newest first).

    Query params:
        page: Page number (default 1)
        per_page: Items per page (default 20, max 100)
    """
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = max(request.args.get('per_page', 20, type=int), 1)

    service = PointsService()
    pagination = service.get_history(g.user_id, page=page, per_page=per_page)

    return jsonify({
        'history': [entry.to_dict() for entry in pagination.items],
        'pagination': {
            'page': pagination.page,
            'per_page': pagination.per_page,
            'total': pagination.total,
            'pages': pagination.pages,
            'has_next': pagination.has_next,
            'has_prev': pagination.has_prev,
        }
    })


@points_bp.route('/redeem-preview', methods=['POST'])
@require_user
def redeem_preview():
    """
    How many points could be redeemed against a service.

    Request body:
        service_amount: number (required)
    """
    data = request.get_json(silent=True) or {}
    amount = parse_price(data, 'service_amount')

    service = PointsService()
    return jsonify(json_safe(service.preview_redemption(g.user_id, amount)))


@points_bp.route('/redeem', methods=['POST'])
@require_user
def redeem_points():
    """
    Redeem points against a service booking.

    Request body:
        points: int (required)
        service_amount: number (required), the price being paid
        order_id: Booking reference (optional)
    """
    data = request.get_json(silent=True) or {}
    points = parse_int(data, 'points')
    amount = parse_price(data, 'service_amount')

    service = PointsService()
    result = service.redeem_for_service(g.user_id, points, amount, order_id=data.get('order_id'))
    return jsonify(json_safe(result))
