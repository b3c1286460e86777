"""
Membership service for tiers, billing periods and free-service usage.

Usage counters are changed with single conditional UPDATE statements so two
bookings for the same member cannot both pass the allowance check.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from dateutil.relativedelta import relativedelta
from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import User, MembershipStatus
from ..utils.exceptions import (
    UserNotFoundError,
    ValidationError,
    MembershipInactiveError,
    BenefitExhaustedError,
    PaymentProviderError,
    ConfigurationError,
)
from .benefits import (
    MembershipBenefits,
    MembershipUsage,
    calculate_member_product_price,
    calculate_member_service_price,
    get_remaining_free_services,
    should_reset_usage,
)
from .points_rules import (
    calculate_max_redeemable_points,
    calculate_points_discount,
    calculate_points_earned,
    calculate_final_price,
)
from .tier_service import TierService

logger = logging.getLogger(__name__)

# Benefit type -> (usage column, allowance attribute on MembershipBenefits)
FREE_SERVICE_BENEFITS = {
    'refill': ('refills_used', 'free_refills_per_month'),
    'full_set': ('full_sets_used', 'free_full_sets_per_month'),
}


class MembershipService:
    """
    Service for membership operations.

    Collaborators are injected so tests and webhooks can swap them:

        service = MembershipService(tier_service=TierService())
        quote = service.quote_service_price(user, 85, 'classic-refill', is_refill=True)
    """

    def __init__(self, tier_service: Optional[TierService] = None, stripe_service=None):
        self.tier_service = tier_service or TierService()
        self._stripe_service = stripe_service

    @property
    def stripe_service(self):
        if self._stripe_service is None:
            from .stripe_service import StripeService
            self._stripe_service = StripeService()
        return self._stripe_service

    # ==================== Lookups ====================

    def get_user(self, user_id: int) -> User:
        user = db.session.get(User, user_id) if user_id is not None else None
        if not user:
            raise UserNotFoundError(user_id)
        return user

    def get_benefits_for_user(self, user: User) -> Optional[MembershipBenefits]:
        """Benefits apply only while the membership is active."""
        if not user.has_active_membership:
            return None
        return self.tier_service.get_benefits(user.tier_id)

    def effective_usage(self, user: User, now: Optional[datetime] = None) -> MembershipUsage:
        """Usage as it stands for pricing: zeroed when a reset is due."""
        if self._usage_reset_due(user, now):
            return MembershipUsage(current_period_start=now or datetime.utcnow())
        return MembershipUsage.coerce(user)

    def get_membership_summary(self, user: User) -> Dict[str, Any]:
        benefits = self.get_benefits_for_user(user)
        usage = self.effective_usage(user)
        return {
            'membership': user.membership_dict(),
            'benefits': benefits.to_dict() if benefits else None,
            'usage': usage.to_dict(),
            'remaining': get_remaining_free_services(benefits, usage),
        }

    # ==================== Pricing ====================

    def quote_product_price(self, user: Optional[User], original_price) -> Dict[str, Any]:
        """Member price for a product. Products never earn or redeem points."""
        benefits = self.get_benefits_for_user(user) if user else None
        return calculate_member_product_price(original_price, benefits)

    def quote_service_price(
        self,
        user: Optional[User],
        original_price,
        service_id: Optional[str] = None,
        is_refill: bool = False,
        is_full_set: bool = False,
        points_to_redeem: int = 0
    ) -> Dict[str, Any]:
        """
        Price a service booking for a user.

        Applies the membership rule first, then any points redemption against
        the member price.

        Raises:
            ValidationError: If points_to_redeem exceeds what may be redeemed
        """
        benefits = self.get_benefits_for_user(user) if user else None
        usage = self.effective_usage(user) if user else None

        quote = calculate_member_service_price(
            original_price, service_id, benefits, usage, is_refill, is_full_set
        )

        points_to_redeem = int(points_to_redeem or 0)
        if points_to_redeem < 0:
            raise ValidationError('Points to redeem cannot be negative', 'points_to_redeem')

        config = current_app.config
        balance = user.points_balance if user else 0
        max_points = calculate_max_redeemable_points(
            balance, quote['price'], minimum=config['POINTS_MINIMUM_REDEMPTION']
        )
        if points_to_redeem > max_points:
            raise ValidationError(
                f'Cannot redeem {points_to_redeem} points; maximum for this booking is {max_points}',
                'points_to_redeem'
            )

        points_discount = calculate_points_discount(points_to_redeem, config['POINTS_PER_DOLLAR'])
        final_price = calculate_final_price(quote['price'], points_discount)

        quote.update({
            'original_price': original_price,
            'max_redeemable_points': max_points,
            'points_redeemed': points_to_redeem,
            'points_discount': points_discount,
            'final_price': final_price,
            'points_to_earn': calculate_points_earned(final_price, benefits.points_rate) if benefits else 0,
        })
        return quote

    # ==================== Membership lifecycle ====================

    def assign_membership(self, user_id: int, tier_id: str, now: Optional[datetime] = None) -> User:
        """
        Assign or change a user's tier by hand (admin).

        Starts a fresh billing period of MEMBERSHIP_PERIOD_DAYS and a fresh
        usage window.
        """
        user = self.get_user(user_id)
        tier = self.tier_service.get_tier(tier_id)
        now = now or datetime.utcnow()

        user.tier_id = tier.id
        user.tier_name = tier.name
        user.membership_status = MembershipStatus.ACTIVE
        user.current_period_end = now + timedelta(days=current_app.config['MEMBERSHIP_PERIOD_DAYS'])
        user.cancel_at_period_end = False
        self._reset_usage_fields(user, now)
        db.session.commit()

        logger.info(f'Membership assigned: user {user.id} -> {tier.id}')
        return user

    def activate_subscription(
        self,
        user_id: int,
        tier_id: str,
        tier_name: str,
        stripe_subscription_id: str,
        stripe_customer_id: Optional[str],
        current_period_end: datetime,
        cancel_at_period_end: bool = False
    ) -> User:
        """Activate a membership paid through Stripe checkout."""
        user = self.get_user(user_id)
        changed_tier = user.tier_id != tier_id

        user.tier_id = tier_id
        user.tier_name = tier_name
        user.membership_status = MembershipStatus.ACTIVE
        user.stripe_subscription_id = stripe_subscription_id
        if stripe_customer_id:
            user.stripe_customer_id = stripe_customer_id
        user.current_period_end = current_period_end
        user.cancel_at_period_end = cancel_at_period_end
        if changed_tier or user.usage_period_start is None:
            self._reset_usage_fields(user, datetime.utcnow())
        db.session.commit()

        logger.info(f'Membership activated: user {user.id} -> {tier_id} (subscription {stripe_subscription_id})')
        return user

    def renew_membership(self, user_id: int, current_period_end: datetime) -> User:
        """Billing renewal: extend the period and start a new usage window."""
        user = self.get_user(user_id)
        user.membership_status = MembershipStatus.ACTIVE
        user.current_period_end = current_period_end
        self._reset_usage_fields(user, datetime.utcnow())
        db.session.commit()

        logger.info(f'Membership renewed: user {user.id} until {current_period_end.isoformat()}')
        return user

    def sync_subscription(
        self,
        user_id: int,
        status: str,
        current_period_end: datetime,
        cancel_at_period_end: bool,
        tier_id: Optional[str] = None
    ) -> User:
        user = self.get_user(user_id)
        user.membership_status = status
        user.current_period_end = current_period_end
        user.cancel_at_period_end = cancel_at_period_end
        if tier_id:
            tier = self.tier_service.get_tier(tier_id)
            user.tier_id = tier.id
            user.tier_name = tier.name
            self._reset_usage_fields(user, datetime.utcnow())
        db.session.commit()
        return user

    def set_membership_status(self, user_id: int, status: str) -> User:
        if status not in MembershipStatus.ALL:
            raise ValidationError(f'Unknown membership status: {status}', 'status')
        user = self.get_user(user_id)
        user.membership_status = status
        if status == MembershipStatus.CANCELLED:
            user.stripe_subscription_id = None  # No longer valid
        db.session.commit()

        logger.info(f'Membership status: user {user.id} -> {status}')
        return user

    def cancel_membership(self, user_id: int, immediate: bool = False) -> User:
        """
        Cancel a membership.

        Members cancel at period end and keep benefits until then. Admins
        may cancel immediately, which also flips the status to cancelled.
        A Stripe failure is logged and does not block the local update.

        Raises:
            MembershipInactiveError: Member-initiated cancel without an active membership
        """
        user = self.get_user(user_id)

        if not immediate and not user.has_active_membership:
            raise MembershipInactiveError(user.membership_status)

        if user.stripe_subscription_id:
            try:
                self.stripe_service.cancel_subscription(user.stripe_subscription_id, at_period_end=True)
            except (PaymentProviderError, ConfigurationError) as e:
                logger.error(f'Stripe cancellation failed for user {user.id}: {e.message}')

        if user.tier_id:
            user.cancel_at_period_end = True
            if immediate:
                user.membership_status = MembershipStatus.CANCELLED
        db.session.commit()

        logger.info(f"Membership cancel requested: user {user.id} ({'immediate' if immediate else 'at period end'})")
        return user

    # ==================== Usage ====================

    def reset_usage(self, user_id: int, now: Optional[datetime] = None) -> User:
        """Zero the free-service counters and start a new usage window (admin)."""
        user = self.get_user(user_id)
        self._reset_usage_fields(user, now or datetime.utcnow())
        db.session.commit()
        return user

    def refresh_usage_period(self, user: User, now: Optional[datetime] = None) -> bool:
        """
        Reset the usage window if it is due.

        The reset is a compare-and-swap on the old window start, so two
        requests racing to reset only reset once.

        Returns:
            True if this call reset the counters
        """
        if not self._usage_reset_due(user, now):
            return False

        now = now or datetime.utcnow()
        old_start = user.usage_period_start
        condition = (User.usage_period_start.is_(None) if old_start is None
                     else User.usage_period_start == old_start)

        result = db.session.execute(
            update(User)
            .where(User.id == user.id, condition)
            .values(usage_period_start=now, refills_used=0, full_sets_used=0)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        db.session.refresh(user)
        return result.rowcount > 0

    def claim_free_service(self, user_id: int, benefit_type: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Consume one free refill or full set (priority booking).

        The allowance check and the increment are one UPDATE ... WHERE
        used < allowance. With ENFORCE_FREE_SERVICE_CAP off, the claim is
        recorded past the allowance instead of rejected.

        Raises:
            ValidationError: Unknown benefit type
            MembershipInactiveError: No active membership
            BenefitExhaustedError: Allowance used up (cap enforced)
        """
        if benefit_type not in FREE_SERVICE_BENEFITS:
            raise ValidationError(f'Unknown benefit type: {benefit_type}', 'benefit_type')

        user = self.get_user(user_id)
        benefits = self.get_benefits_for_user(user)
        if benefits is None:
            raise MembershipInactiveError(user.membership_status)

        column_name, allowance_attr = FREE_SERVICE_BENEFITS[benefit_type]
        allowance = getattr(benefits, allowance_attr)
        enforce_cap = current_app.config.get('ENFORCE_FREE_SERVICE_CAP', True)

        if allowance <= 0 and enforce_cap:
            raise BenefitExhaustedError(benefit_type, allowance, getattr(user, column_name) or 0)

        self.refresh_usage_period(user, now)

        column = getattr(User, column_name)
        stmt = update(User).where(
            User.id == user.id,
            User.membership_status == MembershipStatus.ACTIVE,
        )
        if enforce_cap:
            stmt = stmt.where(column < allowance)
        stmt = stmt.values({column: column + 1}).execution_options(synchronize_session=False)

        result = db.session.execute(stmt)
        db.session.commit()
        db.session.refresh(user)

        used = getattr(user, column_name)
        if result.rowcount == 0:
            if not user.has_active_membership:
                raise MembershipInactiveError(user.membership_status)
            raise BenefitExhaustedError(benefit_type, allowance, used)

        if used > allowance:
            logger.warning(f'Free {benefit_type} over allowance for user {user.id}: {used}/{allowance}')

        logger.info(f'Free {benefit_type} claimed: user {user.id} ({used}/{allowance})')
        return {
            'benefit_type': benefit_type,
            'used': used,
            'allowance': allowance,
            'remaining': get_remaining_free_services(benefits, user),
            'tier_name': user.tier_name,
        }

    def reset_stale_usage(self, dry_run: bool = False, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Sweep all members and reset usage windows that are due."""
        now = now or datetime.utcnow()
        result = {'processed': 0, 'reset': 0, 'user_ids': []}

        members = User.query.filter(User.tier_id.isnot(None)).all()
        for user in members:
            result['processed'] += 1
            if not self._usage_reset_due(user, now):
                continue
            if dry_run or self.refresh_usage_period(user, now):
                result['reset'] += 1
                result['user_ids'].append(user.id)

        return result

    # ==================== Internals ====================

    @staticmethod
    def _usage_reset_due(user: User, now: Optional[datetime] = None) -> bool:
        # A window with no known period end, or one that started at or after
        # it (renewal late or missing), runs one month from the last reset.
        period_end = user.current_period_end
        period_start = user.usage_period_start
        if period_start is not None and (period_end is None or period_start >= period_end):
            period_end = period_start + relativedelta(months=1)
        return should_reset_usage(period_start, period_end, now=now)

    @staticmethod
    def _reset_usage_fields(user: User, now: datetime) -> None:
        user.usage_period_start = now
        user.refills_used = 0
        user.full_sets_used = 0
