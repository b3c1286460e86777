"""
Shared pytest fixtures for LashClub tests.

The app fixture keeps one application context pushed for the whole test, so
fixtures, service calls and test-client requests share a database session.
"""
from datetime import datetime, timedelta

import pytest

from app import create_app
from app.extensions import db
from app.middleware.auth import create_token, TOKEN_TYPE_ADMIN
from app.models import MembershipTier, User, MembershipStatus
from app.services.tier_service import TierService


@pytest.fixture
def app():
    """Application configured for testing with a fresh in-memory database."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_tiers(app):
    """Default catalog (natural, hybrid, volume, mega) with Stripe prices."""
    TierService().seed_default_tiers(app.config['DEFAULT_TIERS'])

    tiers = {tier.id: tier for tier in MembershipTier.query.all()}
    tiers['hybrid'].stripe_price_id = 'price_hybrid_monthly'
    tiers['volume'].stripe_price_id = 'price_volume_monthly'
    db.session.commit()
    return tiers


@pytest.fixture
def sample_user(app):
    """Customer without a membership."""
    user = User(
        email='ava@example.com',
        first_name='Ava',
        last_name='Stone',
        points_balance=0,
        lifetime_points_earned=0,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def member_user(app, sample_tiers):
    """
    Active Hybrid member ten days into the billing period.

    Hybrid: 15% off products, 10% off services, 5% points, 2 free refills.
    """
    now = datetime.utcnow()
    user = User(
        email='mia@example.com',
        first_name='Mia',
        last_name='Lane',
        tier_id='hybrid',
        tier_name='Hybrid',
        membership_status=MembershipStatus.ACTIVE,
        stripe_customer_id='cus_test123',
        stripe_subscription_id='sub_test123',
        current_period_end=now + timedelta(days=20),
        cancel_at_period_end=False,
        usage_period_start=now - timedelta(days=10),
        refills_used=0,
        full_sets_used=0,
        points_balance=250,
        lifetime_points_earned=400,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def auth_headers(member_user):
    return {'Authorization': f'Bearer {create_token(member_user.id)}'}


@pytest.fixture
def user_headers(sample_user):
    return {'Authorization': f'Bearer {create_token(sample_user.id)}'}


@pytest.fixture
def admin_headers(app):
    return {'Authorization': f"Bearer {create_token('admin@lashclub.test', TOKEN_TYPE_ADMIN)}"}
