"""
Tests for the Membership Service.

Covers:
- Member pricing quotes (products, services, points redemption)
- Free-service claims and the monthly cap
- Usage window resets (including the stale-usage sweep)
- Membership lifecycle (assign, renew, cancel)
"""
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import update

from app.extensions import db
from app.models import User, MembershipStatus
from app.services.membership_service import MembershipService
from app.utils.exceptions import (
    BenefitExhaustedError,
    MembershipInactiveError,
    PaymentProviderError,
    TierNotFoundError,
    UserNotFoundError,
    ValidationError,
)


@pytest.fixture
def stripe_mock():
    return MagicMock()


@pytest.fixture
def service(app, stripe_mock):
    return MembershipService(stripe_service=stripe_mock)


class TestQuotes:
    """Tests for quote_product_price and quote_service_price."""

    def test_product_quote_for_member(self, service, member_user):
        quote = service.quote_product_price(member_user, 40)
        assert quote['price'] == Decimal('34.00')
        assert quote['discount'] == 15

    def test_product_quote_for_non_member(self, service, sample_user):
        quote = service.quote_product_price(sample_user, 40)
        assert quote['price'] == Decimal('40')
        assert quote['discount'] == 0

    def test_cancelled_member_gets_no_benefits(self, service, member_user):
        member_user.membership_status = MembershipStatus.CANCELLED
        db.session.commit()

        quote = service.quote_service_price(member_user, 85, 'classic-refill', is_refill=True)
        assert quote['is_free'] is False
        assert quote['price'] == Decimal('85')
        assert quote['points_to_earn'] == 0

    def test_free_refill_quote(self, service, member_user):
        quote = service.quote_service_price(member_user, 85, 'classic-refill', is_refill=True)
        assert quote['is_free'] is True
        assert quote['reason'] == 'Free refill (1/2 used)'
        assert quote['final_price'] == Decimal('0')
        assert quote['points_to_earn'] == 0

    def test_service_discount_and_points(self, service, member_user):
        # 10% off 150 = 135; redeem 100 points; 5% of 35 = 1 point
        quote = service.quote_service_price(member_user, 150, 'volume-fill', points_to_redeem=100)
        assert quote['price'] == Decimal('135.00')
        assert quote['max_redeemable_points'] == 135
        assert quote['points_discount'] == Decimal('100')
        assert quote['final_price'] == Decimal('35.00')
        assert quote['points_to_earn'] == 1

    def test_redeeming_more_than_allowed_is_rejected(self, service, member_user):
        with pytest.raises(ValidationError):
            service.quote_service_price(member_user, 50, 'volume-fill', points_to_redeem=200)

    def test_negative_points_rejected(self, service, member_user):
        with pytest.raises(ValidationError):
            service.quote_service_price(member_user, 50, points_to_redeem=-1)

    def test_quote_ignores_stale_usage(self, service, member_user):
        member_user.refills_used = 2
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=45)
        db.session.commit()

        quote = service.quote_service_price(member_user, 85, is_refill=True)
        assert quote['is_free'] is True


class TestClaimFreeService:
    """Tests for claim_free_service."""

    def test_claim_increments_counter(self, service, member_user):
        result = service.claim_free_service(member_user.id, 'refill')

        assert result['used'] == 1
        assert result['allowance'] == 2
        assert result['remaining'] == {'refills': 1, 'full_sets': 0}
        assert result['tier_name'] == 'Hybrid'
        assert db.session.get(User, member_user.id).refills_used == 1

    def test_allowance_is_enforced(self, service, member_user):
        service.claim_free_service(member_user.id, 'refill')
        service.claim_free_service(member_user.id, 'refill')

        with pytest.raises(BenefitExhaustedError) as exc_info:
            service.claim_free_service(member_user.id, 'refill')

        assert exc_info.value.allowance == 2
        assert db.session.get(User, member_user.id).refills_used == 2

    def test_tier_without_full_sets(self, service, member_user):
        with pytest.raises(BenefitExhaustedError):
            service.claim_free_service(member_user.id, 'full_set')

    def test_cap_can_be_disabled(self, app, service, member_user):
        app.config['ENFORCE_FREE_SERVICE_CAP'] = False
        member_user.refills_used = 2
        db.session.commit()

        result = service.claim_free_service(member_user.id, 'refill')
        assert result['used'] == 3
        assert result['remaining']['refills'] == 0

    def test_requires_active_membership(self, service, sample_user):
        with pytest.raises(MembershipInactiveError):
            service.claim_free_service(sample_user.id, 'refill')

    def test_unknown_benefit_type(self, service, member_user):
        with pytest.raises(ValidationError):
            service.claim_free_service(member_user.id, 'brow_tint')

    def test_stale_window_resets_before_claim(self, service, member_user):
        member_user.refills_used = 2
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=40)
        db.session.commit()

        result = service.claim_free_service(member_user.id, 'refill')
        assert result['used'] == 1

    def test_lapsed_period_resets_only_once(self, service, member_user):
        # Renewal webhook never arrived
        member_user.current_period_end = datetime.utcnow() - timedelta(days=1)
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=29)
        db.session.commit()

        claims = []
        for _ in range(5):
            try:
                claims.append(service.claim_free_service(member_user.id, 'refill'))
            except BenefitExhaustedError:
                pass

        assert [claim['used'] for claim in claims] == [1, 2]
        assert service.quote_service_price(member_user, 85, is_refill=True)['is_free'] is False


class TestUsageReset:
    """Tests for refresh_usage_period and reset_stale_usage."""

    def test_refresh_resets_only_once(self, service, member_user):
        member_user.refills_used = 2
        member_user.current_period_end = datetime.utcnow() - timedelta(hours=1)
        db.session.commit()

        assert service.refresh_usage_period(member_user) is True
        assert member_user.refills_used == 0
        # New window started now; the old period end no longer matters for a second racer
        member_user.current_period_end = datetime.utcnow() + timedelta(days=30)
        db.session.commit()
        assert service.refresh_usage_period(member_user) is False

    def test_compare_and_swap_loses_to_concurrent_reset(self, service, member_user):
        member_user.refills_used = 1
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=40)
        db.session.commit()
        stale_start = member_user.usage_period_start

        # Another request already reset the window and booked a refill
        db.session.execute(
            update(User).where(User.id == member_user.id).values(
                usage_period_start=datetime.utcnow(), refills_used=1
            )
        )
        db.session.commit()
        db.session.expire_all()

        # This request still holds the stale snapshot
        snapshot = db.session.get(User, member_user.id)
        with db.session.no_autoflush:
            snapshot.usage_period_start = stale_start
            assert service.refresh_usage_period(snapshot) is False

        assert db.session.get(User, member_user.id).refills_used == 1

    def test_manual_membership_without_period_end(self, service, member_user):
        member_user.current_period_end = None
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=5)
        db.session.commit()

        assert service.refresh_usage_period(member_user) is False

    def test_reset_stale_usage(self, service, member_user, sample_tiers):
        fresh = User(
            email='zoe@example.com', tier_id='volume', tier_name='Volume',
            membership_status=MembershipStatus.ACTIVE,
            current_period_end=datetime.utcnow() + timedelta(days=25),
            usage_period_start=datetime.utcnow() - timedelta(days=5),
            refills_used=1,
        )
        db.session.add(fresh)
        member_user.refills_used = 2
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=35)
        db.session.commit()

        preview = service.reset_stale_usage(dry_run=True)
        assert preview['processed'] == 2
        assert preview['user_ids'] == [member_user.id]
        assert db.session.get(User, member_user.id).refills_used == 2

        result = service.reset_stale_usage()
        assert result['reset'] == 1
        assert db.session.get(User, member_user.id).refills_used == 0
        assert db.session.get(User, fresh.id).refills_used == 1

    def test_sweep_after_lapsed_period_resets_once(self, service, member_user):
        member_user.refills_used = 2
        member_user.current_period_end = datetime.utcnow() - timedelta(days=10)
        member_user.usage_period_start = datetime.utcnow() - timedelta(days=40)
        db.session.commit()

        assert service.reset_stale_usage()['reset'] == 1
        service.claim_free_service(member_user.id, 'refill')

        assert service.reset_stale_usage()['reset'] == 0
        assert db.session.get(User, member_user.id).refills_used == 1


class TestLifecycle:
    """Tests for assign/renew/cancel."""

    def test_assign_membership(self, service, sample_user, sample_tiers):
        user = service.assign_membership(sample_user.id, 'volume')

        assert user.tier_id == 'volume'
        assert user.tier_name == 'Volume'
        assert user.membership_status == MembershipStatus.ACTIVE
        assert user.refills_used == 0
        assert user.current_period_end > datetime.utcnow() + timedelta(days=29)

    def test_assign_unknown_tier(self, service, sample_user, sample_tiers):
        with pytest.raises(TierNotFoundError):
            service.assign_membership(sample_user.id, 'platinum')

    def test_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            service.get_user(4242)

    def test_renew_resets_usage(self, service, member_user):
        member_user.refills_used = 2
        db.session.commit()
        new_end = datetime.utcnow() + timedelta(days=31)

        user = service.renew_membership(member_user.id, new_end)

        assert user.refills_used == 0
        assert user.current_period_end == new_end

    def test_cancel_at_period_end(self, service, stripe_mock, member_user):
        user = service.cancel_membership(member_user.id)

        stripe_mock.cancel_subscription.assert_called_once_with('sub_test123', at_period_end=True)
        assert user.cancel_at_period_end is True
        assert user.membership_status == MembershipStatus.ACTIVE

    def test_cancel_survives_stripe_failure(self, service, stripe_mock, member_user):
        stripe_mock.cancel_subscription.side_effect = PaymentProviderError('Stripe down')

        user = service.cancel_membership(member_user.id)
        assert user.cancel_at_period_end is True

    def test_cancel_without_membership(self, service, sample_user):
        with pytest.raises(MembershipInactiveError):
            service.cancel_membership(sample_user.id)

    def test_immediate_cancel(self, service, member_user):
        user = service.cancel_membership(member_user.id, immediate=True)
        assert user.membership_status == MembershipStatus.CANCELLED
        assert user.has_active_membership is False

    def test_immediate_cancel_without_membership_changes_nothing(self, service, stripe_mock, sample_user):
        user = service.cancel_membership(sample_user.id, immediate=True)

        assert user.cancel_at_period_end is False
        assert user.membership_status != MembershipStatus.CANCELLED
        stripe_mock.cancel_subscription.assert_not_called()

    def test_cancelled_status_clears_subscription(self, service, member_user):
        user = service.set_membership_status(member_user.id, MembershipStatus.CANCELLED)
        assert user.stripe_subscription_id is None
