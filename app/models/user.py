"""
User model with membership, usage and points state.
"""
from datetime import datetime
from ..extensions import db


class MembershipStatus:
    """Allowed values for User.membership_status."""
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    PAST_DUE = 'past_due'

    ALL = (ACTIVE, CANCELLED, PAST_DUE)


class User(db.Model):
    """
    Storefront customer account.

    Membership fields are written by Stripe webhooks and admin actions.
    Usage counters and the points balance are only changed through
    MembershipService / PointsService, which update them atomically.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    phone = db.Column(db.String(50))

    # Account suspension (admin)
    suspended = db.Column(db.Boolean, default=False, nullable=False)
    suspended_at = db.Column(db.DateTime)
    suspended_reason = db.Column(db.String(500))

    # Membership (NULL tier_id = not a member)
    tier_id = db.Column(db.String(50), db.ForeignKey('membership_tiers.id'))
    tier_name = db.Column(db.String(100))
    membership_status = db.Column(db.String(20))  # active, cancelled, past_due
    stripe_customer_id = db.Column(db.String(50))      # cus_xxxxx
    stripe_subscription_id = db.Column(db.String(50), index=True)  # sub_xxxxx
    current_period_end = db.Column(db.DateTime)
    cancel_at_period_end = db.Column(db.Boolean, default=False, nullable=False)

    # Free-service usage for the current window
    usage_period_start = db.Column(db.DateTime)
    refills_used = db.Column(db.Integer, default=0, nullable=False)
    full_sets_used = db.Column(db.Integer, default=0, nullable=False)

    # Loyalty points
    points_balance = db.Column(db.Integer, default=0, nullable=False)
    lifetime_points_earned = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tier = db.relationship('MembershipTier', backref=db.backref('users', lazy='dynamic'))
    points_history = db.relationship(
        'PointsHistoryEntry',
        backref='user',
        lazy='dynamic',
        order_by='PointsHistoryEntry.created_at.desc()'
    )

    __table_args__ = (
        db.CheckConstraint('points_balance >= 0', name='ck_users_points_balance_non_negative'),
        db.CheckConstraint('refills_used >= 0', name='ck_users_refills_used_non_negative'),
        db.CheckConstraint('full_sets_used >= 0', name='ck_users_full_sets_used_non_negative'),
    )

    def __repr__(self):
        return f'<User {self.id} {self.email}>'

    @property
    def full_name(self) -> str:
        return ' '.join(p for p in (self.first_name, self.last_name) if p)

    @property
    def has_active_membership(self) -> bool:
        return bool(self.tier_id) and self.membership_status == MembershipStatus.ACTIVE

    def membership_dict(self):
        if not self.tier_id:
            return None
        return {
            'tier_id': self.tier_id,
            'tier_name': self.tier_name,
            'status': self.membership_status,
            'stripe_customer_id': self.stripe_customer_id,
            'stripe_subscription_id': self.stripe_subscription_id,
            'current_period_end': self.current_period_end.isoformat() if self.current_period_end else None,
            'cancel_at_period_end': self.cancel_at_period_end,
            'usage': {
                'current_period_start': self.usage_period_start.isoformat() if self.usage_period_start else None,
                'refills_used': self.refills_used or 0,
                'full_sets_used': self.full_sets_used or 0,
            },
        }

    def to_dict(self, include_history=False):
        data = {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'suspended': self.suspended,
            'suspended_at': self.suspended_at.isoformat() if self.suspended_at else None,
            'suspended_reason': self.suspended_reason,
            'membership': self.membership_dict(),
            'points': {
                'balance': self.points_balance or 0,
                'lifetime_earned': self.lifetime_points_earned or 0,
            },
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

        if include_history:
            data['points']['history'] = [entry.to_dict() for entry in self.points_history.limit(50)]

        return data
