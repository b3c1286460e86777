"""
Tier Catalog Service.

Admin-authored membership tier catalog:
- Listing active tiers for the storefront (cached)
- Resolving a tier's benefits
- Creating/updating tiers from the back-office
- Seeding the default catalog
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List

from ..extensions import db
from ..models import MembershipTier
from ..utils.cache import get_cached_tier_catalog, cache_tier_catalog, invalidate_tier_catalog
from ..utils.exceptions import TierNotFoundError, ValidationError
from .benefits import MembershipBenefits, get_membership_benefits

logger = logging.getLogger(__name__)


class TierService:
    """
    Service for the membership tier catalog.

    Usage:
        service = TierService()
        catalog = service.get_catalog()
        benefits = service.get_benefits('hybrid')
    """

    def get_catalog(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        """
        Get the tier catalog as plain dicts, ordered for display.

        Active-only listings are served from cache.
        """
        if not include_inactive:
            cached = get_cached_tier_catalog()
            if cached is not None:
                return cached

        query = MembershipTier.query
        if not include_inactive:
            query = query.filter_by(is_active=True)
        catalog = [
            tier.to_dict()
            for tier in query.order_by(MembershipTier.display_order, MembershipTier.price).all()
        ]

        if not include_inactive:
            cache_tier_catalog(catalog)
        return catalog

    def get_tier(self, tier_id: str) -> MembershipTier:
        tier = db.session.get(MembershipTier, tier_id) if tier_id else None
        if not tier:
            raise TierNotFoundError(tier_id)
        return tier

    def get_benefits(self, tier_id: Optional[str]) -> Optional[MembershipBenefits]:
        """
        Benefits for a tier id, or None when the tier is unknown.

        Active tiers resolve from the cached catalog. A retired tier falls
        back to the database so its remaining members keep their benefits.
        """
        if not tier_id:
            return None
        catalog = self.get_catalog()
        if not any(tier['id'] == tier_id for tier in catalog):
            tier = db.session.get(MembershipTier, tier_id)
            catalog = [tier.to_dict()] if tier else []
        return get_membership_benefits(tier_id, catalog)

    def get_tier_by_price_id(self, stripe_price_id: str) -> Optional[MembershipTier]:
        if not stripe_price_id:
            return None
        return MembershipTier.query.filter_by(stripe_price_id=stripe_price_id).first()

    def upsert_tier(self, tier_id: str, data: Dict[str, Any]) -> MembershipTier:
        """
        Create or update a catalog entry.

        Args:
            tier_id: Tier slug
            data: Fields to set (name, price, popular, features, benefits,
                  stripe_price_id, display_order, is_active)

        Returns:
            The saved MembershipTier

        Raises:
            ValidationError: On a missing name or malformed price/benefits
        """
        if not tier_id or not str(tier_id).strip():
            raise ValidationError('Tier id is required', 'id')

        tier = db.session.get(MembershipTier, tier_id)
        is_new = tier is None
        if is_new:
            tier = MembershipTier(id=tier_id)

        name = data.get('name', tier.name)
        if not name:
            raise ValidationError('Tier name is required', 'name')
        tier.name = name

        if 'price' in data or is_new:
            try:
                price = Decimal(str(data.get('price', 0)))
            except (InvalidOperation, ValueError):
                raise ValidationError('Price must be a number', 'price')
            if price < 0:
                raise ValidationError('Price cannot be negative', 'price')
            tier.price = price

        if 'benefits' in data:
            benefits = data['benefits']
            if benefits is not None and not isinstance(benefits, dict):
                raise ValidationError('Benefits must be an object', 'benefits')
            self._validate_benefits(benefits or {})
            tier.benefits = benefits

        if 'features' in data:
            tier.features = list(data['features'] or [])

        for attr in ('popular', 'stripe_price_id', 'display_order', 'is_active'):
            if attr in data:
                setattr(tier, attr, data[attr])

        if is_new:
            db.session.add(tier)
        db.session.commit()
        invalidate_tier_catalog()

        logger.info(f"Tier {'created' if is_new else 'updated'}: {tier.id}")
        return tier

    def seed_default_tiers(self, tiers: List[Dict[str, Any]]) -> int:
        """Insert catalog entries that do not exist yet. Returns count created."""
        created = 0
        for order, entry in enumerate(tiers):
            if db.session.get(MembershipTier, entry['id']):
                continue
            db.session.add(MembershipTier(
                id=entry['id'],
                name=entry['name'],
                price=Decimal(str(entry.get('price', 0))),
                popular=entry.get('popular', False),
                features=entry.get('features', []),
                benefits=entry.get('benefits'),
                display_order=entry.get('display_order', order),
                is_active=True,
            ))
            created += 1

        if created:
            db.session.commit()
            invalidate_tier_catalog()
        return created

    @staticmethod
    def _validate_benefits(benefits: Dict[str, Any]) -> None:
        resolved = MembershipBenefits.from_partial(benefits)
        for label, value in (('productDiscount', resolved.product_discount),
                             ('serviceDiscount', resolved.service_discount)):
            if not 0 <= value <= 100:
                raise ValidationError(f'{label} must be between 0 and 100', 'benefits')
        if resolved.points_rate < 0:
            raise ValidationError('pointsRate cannot be negative', 'benefits')
        if resolved.free_refills_per_month < 0 or resolved.free_full_sets_per_month < 0:
            raise ValidationError('Free service allowances cannot be negative', 'benefits')
