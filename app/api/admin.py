"""
Admin API routes for LashClub.
Handles user membership management, points adjustments, service completion
and the tier catalog.

Authentication:
- Admin bearer tokens (type 'admin') via @require_admin
"""
from datetime import datetime
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..middleware.auth import require_admin
from ..services.membership_service import MembershipService
from ..services.points_service import PointsService
from ..utils.errors import bad_request, ErrorCode
from ..utils.exceptions import ValidationError, InvalidStatusTransitionError
from ..utils.serialization import json_safe
from .membership import parse_price

admin_bp = Blueprint('admin', __name__)

MEMBERSHIP_ACTIONS = ('assign', 'change', 'cancel')


# ================== Users ==================

@admin_bp.route('/users/<int:user_id>', methods=['GET'])
@require_admin
def get_user(user_id):
    """Get a user with membership, usage and recent points history."""
    service = MembershipService()
    user = service.get_user(user_id)
    summary = service.get_membership_summary(user)

    return jsonify(json_safe({
        'user': user.to_dict(include_history=True),
        'benefits': summary['benefits'],
        'remaining': summary['remaining'],
    }))


@admin_bp.route('/users/<int:user_id>', methods=['PATCH'])
@require_admin
def update_user(user_id):
    """
    Apply an admin action to a user.

    Request body:
        action: update-membership | adjust-points | reset-usage | suspend | unsuspend

        update-membership: membership_action (assign|change|cancel), tier_id
        adjust-points: points_amount (int, may be negative), reason
        suspend: reason
    """
    data = request.get_json(silent=True) or {}
    action = data.get('action')

    membership = MembershipService()
    user = membership.get_user(user_id)

    if action == 'update-membership':
        membership_action = data.get('membership_action')
        if membership_action not in MEMBERSHIP_ACTIONS:
            raise ValidationError(
                f"membership_action must be one of: {', '.join(MEMBERSHIP_ACTIONS)}",
                'membership_action'
            )
        if membership_action == 'cancel':
            user = membership.cancel_membership(user.id, immediate=True)
        else:
            if not data.get('tier_id'):
                raise ValidationError('tier_id is required', 'tier_id')
            user = membership.assign_membership(user.id, data['tier_id'])

    elif action == 'adjust-points':
        PointsService(membership).adjust_points(
            user.id,
            data.get('points_amount'),
            reason=data.get('reason'),
            created_by=g.admin,
        )

    elif action == 'reset-usage':
        user = membership.reset_usage(user.id)

    elif action == 'suspend':
        if user.suspended:
            raise InvalidStatusTransitionError('account', 'suspended', 'suspended')
        user.suspended = True
        user.suspended_at = datetime.utcnow()
        user.suspended_reason = data.get('reason') or 'No reason provided'
        db.session.commit()

    elif action == 'unsuspend':
        if not user.suspended:
            raise InvalidStatusTransitionError('account', 'active', 'active')
        user.suspended = False
        user.suspended_at = None
        user.suspended_reason = None
        db.session.commit()

    else:
        return bad_request('Invalid action', ErrorCode.INVALID_ACTION)

    db.session.refresh(user)
    current_app.logger.info(f'Admin {g.admin}: {action} on user {user.id}')

    return jsonify({
        'success': True,
        'message': f'User {action} successfully',
        'user': user.to_dict(),
    })


@admin_bp.route('/users/<int:user_id>/complete-service', methods=['POST'])
@require_admin
def complete_service(user_id):
    """
    Mark a service as completed and award points.

    Request body:
        amount: number (required) - amount paid for the service
        order_id: string - appointment/order reference
        description: string
    """
    data = request.get_json(silent=True) or {}
    amount = parse_price(data, 'amount')

    result = PointsService().earn_for_service(
        user_id,
        amount,
        order_id=data.get('order_id'),
        description=data.get('description'),
        created_by=g.admin,
    )
    return jsonify(json_safe(result))


# ================== Tiers ==================

@admin_bp.route('/tiers/<tier_id>', methods=['PUT'])
@require_admin
def upsert_tier(tier_id):
    """
    Create or update a catalog tier.

    Request body:
        name, price, popular, features, benefits, stripe_price_id,
        display_order, is_active
    """
    data = request.get_json(silent=True) or {}

    service = MembershipService()
    tier = service.tier_service.upsert_tier(tier_id, data)
    return jsonify({'success': True, 'tier': tier.to_dict()})
