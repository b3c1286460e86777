"""
MembershipTier model.
"""
from datetime import datetime
from decimal import Decimal
from ..extensions import db


class MembershipTier(db.Model):
    """
    Membership plan offered on the storefront.

    Tier ids are slugs ('natural', 'hybrid', ...) because the storefront and
    Stripe checkout metadata refer to tiers by slug.
    """
    __tablename__ = 'membership_tiers'

    id = db.Column(db.String(50), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal('0'))  # Monthly price
    popular = db.Column(db.Boolean, default=False)

    # Marketing bullet points shown on the membership page
    features = db.Column(db.JSON, default=list)

    # Discounts and monthly allowances (camelCase keys as authored by admin)
    # Example: {"productDiscount": 10, "freeRefillsPerMonth": 2, "includedServiceIds": []}
    benefits = db.Column(db.JSON)

    stripe_price_id = db.Column(db.String(100))  # price_xxxxx (monthly)

    display_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<MembershipTier {self.id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': float(self.price) if self.price is not None else 0.0,
            'popular': bool(self.popular),
            'features': self.features or [],
            'benefits': self.benefits,
            'stripe_price_id': self.stripe_price_id,
            'display_order': self.display_order,
            'is_active': self.is_active,
        }
