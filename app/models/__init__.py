"""
Database models for the LashClub membership service.
Membership tiers, customer accounts and loyalty points history.
"""
from .tier import MembershipTier
from .user import User, MembershipStatus
from .points import PointsHistoryEntry, PointsEntryType

__all__ = [
    'MembershipTier',
    'User',
    'MembershipStatus',
    'PointsHistoryEntry',
    'PointsEntryType',
]
