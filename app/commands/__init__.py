"""
CLI Commands for LashClub.

Usage:
    flask membership reset-usage                 # Reset members whose usage window rolled over
    flask membership reset-usage --user-id 12    # Reset one member now
    flask membership seed-tiers                  # Create the default tier catalog
    flask membership stats                       # Membership and points statistics
"""
from .membership import init_app as init_membership_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_membership_commands(app)
