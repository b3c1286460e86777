"""
Tests for the `flask membership` CLI commands.
"""
from datetime import datetime, timedelta

from app.extensions import db
from app.models import User, MembershipTier


def test_seed_tiers(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['membership', 'seed-tiers'])

    assert result.exit_code == 0
    assert 'Created 4 tier(s)' in result.output
    assert MembershipTier.query.count() == 4


def test_reset_usage_sweep(app, member_user):
    member_user.refills_used = 2
    member_user.usage_period_start = datetime.utcnow() - timedelta(days=40)
    db.session.commit()
    runner = app.test_cli_runner()

    preview = runner.invoke(args=['membership', 'reset-usage', '--dry-run'])
    assert '[DRY RUN] Reset: 1 members' in preview.output
    assert db.session.get(User, member_user.id).refills_used == 2

    result = runner.invoke(args=['membership', 'reset-usage'])
    assert 'Reset: 1 members' in result.output
    assert db.session.get(User, member_user.id).refills_used == 0


def test_reset_usage_single_user(app, member_user):
    member_user.full_sets_used = 1
    db.session.commit()

    result = app.test_cli_runner().invoke(args=['membership', 'reset-usage', '--user-id', str(member_user.id)])

    assert f'Usage reset for {member_user.email}' in result.output
    assert db.session.get(User, member_user.id).full_sets_used == 0


def test_reset_usage_unknown_user(app):
    result = app.test_cli_runner().invoke(args=['membership', 'reset-usage', '--user-id', '999'])
    assert 'User 999 not found' in result.output


def test_stats(app, member_user):
    result = app.test_cli_runner().invoke(args=['membership', 'stats'])

    assert result.exit_code == 0
    assert 'Active members: 1' in result.output
    assert 'Outstanding points: 250' in result.output
