"""
Points history model for LashClub loyalty points.
"""
from datetime import datetime
from ..extensions import db


class PointsEntryType:
    EARNED = 'earned'
    REDEEMED = 'redeemed'


class PointsHistoryEntry(db.Model):
    """
    Immutable audit record of a points balance change.

    Used for:
    - Points earned on completed services
    - Points redeemed against service bookings
    - Admin adjustments (stored as earned/redeemed by sign)
    """
    __tablename__ = 'points_history'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    entry_type = db.Column(db.String(20), nullable=False)  # earned, redeemed
    amount = db.Column(db.Integer, nullable=False)  # Always positive; direction is entry_type
    balance_after = db.Column(db.Integer)
    description = db.Column(db.String(500))
    order_id = db.Column(db.String(100))  # Appointment / checkout reference

    created_by = db.Column(db.String(100), default='system')  # 'system', 'admin', 'stripe'
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        db.CheckConstraint('amount >= 0', name='ck_points_history_amount_non_negative'),
    )

    def __repr__(self):
        return f'<PointsHistoryEntry {self.id}: {self.entry_type} {self.amount} for user {self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.created_at.isoformat() if self.created_at else None,
            'type': self.entry_type,
            'amount': self.amount,
            'balance_after': self.balance_after,
            'description': self.description,
            'order_id': self.order_id,
        }
