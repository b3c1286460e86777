"""
CLI Commands for memberships.

These commands can be run manually or via cron jobs:

# Usage window reset (the in-process scheduler does this daily)
15 0 * * * cd /app && flask membership reset-usage

# Load the default tier catalog into an empty database
flask membership seed-tiers
"""
from datetime import datetime

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import func

from ..extensions import db
from ..models import User, MembershipStatus, PointsHistoryEntry, PointsEntryType
from ..services.membership_service import MembershipService
from ..services.tier_service import TierService
from ..utils.exceptions import UserNotFoundError


@click.group('membership')
def membership_cli():
    """Membership commands."""
    pass


@membership_cli.command('reset-usage')
@click.option('--user-id', type=int, help='Reset one user now (or sweep all due members if not specified)')
@click.option('--dry-run', is_flag=True, help='Preview without resetting')
@with_appcontext
def reset_usage(user_id, dry_run):
    """
    Reset free-service usage counters.

    Without --user-id, only members whose usage window has rolled over are reset.
    """
    service = MembershipService()

    if user_id:
        try:
            user = service.get_user(user_id)
        except UserNotFoundError:
            click.echo(f"User {user_id} not found")
            return
        if dry_run:
            click.echo(f"[DRY RUN] Would reset usage for {user.email} "
                       f"(refills {user.refills_used}, full sets {user.full_sets_used})")
            return
        service.reset_usage(user.id)
        click.echo(f"Usage reset for {user.email}")
        return

    result = service.reset_stale_usage(dry_run=dry_run)

    click.echo(f"{'[DRY RUN] ' if dry_run else ''}Processed: {result['processed']} members")
    click.echo(f"{'[DRY RUN] ' if dry_run else ''}Reset: {result['reset']} members")
    for reset_id in result['user_ids'][:20]:
        click.echo(f"  - User {reset_id}")


@membership_cli.command('seed-tiers')
@with_appcontext
def seed_tiers():
    """Create the default tier catalog entries that are missing."""
    created = TierService().seed_default_tiers(current_app.config['DEFAULT_TIERS'])
    click.echo(f"Created {created} tier(s)")


@membership_cli.command('stats')
@with_appcontext
def membership_stats():
    """Show membership and points statistics."""
    click.echo("\nMembership Statistics")
    click.echo("=" * 40)

    rows = db.session.query(
        User.tier_id, User.membership_status, func.count(User.id)
    ).filter(User.tier_id.isnot(None)).group_by(User.tier_id, User.membership_status).all()

    if not rows:
        click.echo("No members yet")
    for tier_id, status, count in rows:
        click.echo(f"  {tier_id:<12} {status or 'unknown':<10} {count}")

    active = User.query.filter_by(membership_status=MembershipStatus.ACTIVE).count()
    outstanding = db.session.query(func.coalesce(func.sum(User.points_balance), 0)).scalar()

    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    earned_this_month = db.session.query(
        func.coalesce(func.sum(PointsHistoryEntry.amount), 0)
    ).filter(
        PointsHistoryEntry.entry_type == PointsEntryType.EARNED,
        PointsHistoryEntry.created_at >= month_start
    ).scalar()

    click.echo(f"\nActive members: {active}")
    click.echo(f"Outstanding points: {outstanding}")
    click.echo(f"Points earned this month: {earned_this_month}")


def init_app(app):
    """Register membership commands with the Flask app."""
    app.cli.add_command(membership_cli)
