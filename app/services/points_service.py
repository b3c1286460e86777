"""
Points Service for the LashClub loyalty program.

- Points are earned on completed services (membership points rate, floored)
- Points are redeemed 1:1 against service bookings, never products
- Admins can adjust balances; every change leaves a PointsHistoryEntry

Balance changes are single UPDATE statements; redemption only succeeds
while the stored balance still covers it, so the balance never goes negative.
"""
import logging
from typing import Optional, Dict, Any

from flask import current_app
from sqlalchemy import update, case

from ..extensions import db
from ..models import User, PointsHistoryEntry, PointsEntryType
from ..utils.exceptions import (
    UserNotFoundError,
    ValidationError,
    InsufficientPointsError,
)
from .benefits import to_money
from .points_rules import (
    calculate_points_earned,
    calculate_points_discount,
    calculate_max_redeemable_points,
    calculate_points_value,
    can_redeem_points,
)

logger = logging.getLogger(__name__)


class PointsService:
    """
    Central service for points operations.

    Usage:
        service = PointsService(membership_service)
        service.earn_for_service(user_id, 120, order_id='appt_123')
        service.redeem_for_service(user_id, 100, service_amount=120)
    """

    def __init__(self, membership_service=None):
        if membership_service is None:
            from .membership_service import MembershipService
            membership_service = MembershipService()
        self.membership_service = membership_service

    @property
    def minimum_redemption(self) -> int:
        return current_app.config['POINTS_MINIMUM_REDEMPTION']

    @property
    def points_per_dollar(self) -> int:
        return current_app.config['POINTS_PER_DOLLAR']

    def _get_user(self, user_id: int) -> User:
        user = db.session.get(User, user_id) if user_id is not None else None
        if not user:
            raise UserNotFoundError(user_id)
        return user

    def _record(self, user: User, entry_type: str, amount: int, description: str,
                order_id: Optional[str], created_by: str) -> PointsHistoryEntry:
        entry = PointsHistoryEntry(
            user_id=user.id,
            entry_type=entry_type,
            amount=amount,
            balance_after=user.points_balance,
            description=description,
            order_id=order_id,
            created_by=created_by,
        )
        db.session.add(entry)
        return entry

    # ==================== Queries ====================

    def get_balance(self, user_id: int) -> Dict[str, Any]:
        user = self._get_user(user_id)
        balance = user.points_balance or 0
        return {
            'user_id': user.id,
            'balance': balance,
            'lifetime_earned': user.lifetime_points_earned or 0,
            'value': calculate_points_value(balance, self.points_per_dollar),
            'can_redeem': can_redeem_points(balance, self.minimum_redemption),
            'minimum_redemption': self.minimum_redemption,
        }

    def get_history(self, user_id: int, page: int = 1, per_page: int = 20):
        """Paginated history, newest first."""
        self._get_user(user_id)
        query = PointsHistoryEntry.query.filter_by(user_id=user_id).order_by(
            PointsHistoryEntry.created_at.desc(),
            PointsHistoryEntry.id.desc()
        )
        return query.paginate(page=page, per_page=min(per_page, 100), error_out=False)

    def preview_redemption(self, user_id: int, service_amount) -> Dict[str, Any]:
        user = self._get_user(user_id)
        balance = user.points_balance or 0
        max_points = calculate_max_redeemable_points(balance, service_amount, self.minimum_redemption)
        return {
            'balance': balance,
            'can_redeem': can_redeem_points(balance, self.minimum_redemption),
            'max_redeemable_points': max_points,
            'max_discount': calculate_points_discount(max_points, self.points_per_dollar),
        }

    # ==================== Balance changes ====================

    def earn_for_service(
        self,
        user_id: int,
        service_amount,
        order_id: Optional[str] = None,
        description: Optional[str] = None,
        created_by: str = 'system'
    ) -> Dict[str, Any]:
        """
        Award points for a completed service.

        Uses the member's tier points rate; users without an active
        membership earn nothing.

        Returns:
            Dict with points_earned and the new balance
        """
        user = self._get_user(user_id)
        if to_money(service_amount) < 0:
            raise ValidationError('Service amount cannot be negative', 'service_amount')

        benefits = self.membership_service.get_benefits_for_user(user)
        points = calculate_points_earned(service_amount, benefits.points_rate) if benefits else 0

        if points <= 0:
            return {'user_id': user.id, 'points_earned': 0, 'balance': user.points_balance or 0}

        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                points_balance=User.points_balance + points,
                lifetime_points_earned=User.lifetime_points_earned + points,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(user)
        self._record(
            user, PointsEntryType.EARNED, points,
            description or f'Earned {points} points on ${to_money(service_amount):.2f} service',
            order_id, created_by
        )
        db.session.commit()

        logger.info(f'Points earned: user {user.id} +{points} (balance {user.points_balance})')
        return {'user_id': user.id, 'points_earned': points, 'balance': user.points_balance}

    def redeem_for_service(
        self,
        user_id: int,
        points: int,
        service_amount,
        order_id: Optional[str] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Redeem points against a service booking.

        Raises:
            ValidationError: Non-positive amount or more than the booking allows
            InsufficientPointsError: Balance below the minimum or below points
        """
        if points is None or int(points) <= 0:
            raise ValidationError('Points to redeem must be positive', 'points')
        points = int(points)

        user = self._get_user(user_id)
        balance = user.points_balance or 0

        if not can_redeem_points(balance, self.minimum_redemption):
            raise InsufficientPointsError(balance, self.minimum_redemption)

        max_points = calculate_max_redeemable_points(balance, service_amount, self.minimum_redemption)
        if points > max_points:
            raise ValidationError(
                f'Cannot redeem {points} points; maximum for this booking is {max_points}',
                'points'
            )

        result = db.session.execute(
            update(User)
            .where(User.id == user.id, User.points_balance >= points)
            .values(points_balance=User.points_balance - points)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.session.rollback()
            db.session.refresh(user)
            raise InsufficientPointsError(user.points_balance or 0, points)

        db.session.refresh(user)
        discount = calculate_points_discount(points, self.points_per_dollar)
        self._record(
            user, PointsEntryType.REDEEMED, points,
            description or f'Redeemed {points} points for ${discount:.2f} off',
            order_id, 'system'
        )
        db.session.commit()

        logger.info(f'Points redeemed: user {user.id} -{points} (balance {user.points_balance})')
        return {
            'user_id': user.id,
            'points_redeemed': points,
            'discount': discount,
            'balance': user.points_balance,
        }

    def adjust_points(self, user_id: int, amount: int, reason: Optional[str] = None,
                      created_by: str = 'admin') -> Dict[str, Any]:
        """
        Manual adjustment (admin).

        Negative adjustments clamp the balance at zero. Positive adjustments
        count towards lifetime earnings.
        """
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            raise ValidationError('Points amount must be a whole number', 'points_amount')
        if amount == 0:
            raise ValidationError('Points amount cannot be zero', 'points_amount')

        user = self._get_user(user_id)
        new_balance = User.points_balance + amount
        values = {'points_balance': case((new_balance < 0, 0), else_=new_balance)}
        if amount > 0:
            values['lifetime_points_earned'] = User.lifetime_points_earned + amount

        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        db.session.refresh(user)
        self._record(
            user,
            PointsEntryType.EARNED if amount > 0 else PointsEntryType.REDEEMED,
            abs(amount),
            reason or 'Admin adjustment',
            None,
            created_by
        )
        db.session.commit()

        logger.info(f'Points adjusted: user {user.id} {amount:+d} by {created_by} (balance {user.points_balance})')
        return {'user_id': user.id, 'adjustment': amount, 'balance': user.points_balance}
