"""
Tests for the tier catalog service.
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from app.services.benefits import MembershipBenefits
from app.services.tier_service import TierService
from app.utils.exceptions import TierNotFoundError, ValidationError


@pytest.fixture
def service(app):
    return TierService()


class TestCatalog:

    def test_seed_is_idempotent(self, app, service):
        assert service.seed_default_tiers(app.config['DEFAULT_TIERS']) == 4
        assert service.seed_default_tiers(app.config['DEFAULT_TIERS']) == 0

    def test_catalog_order_and_shape(self, service, sample_tiers):
        catalog = service.get_catalog()

        assert [tier['id'] for tier in catalog] == ['natural', 'hybrid', 'volume', 'mega']
        hybrid = catalog[1]
        assert hybrid['price'] == 120.0
        assert hybrid['popular'] is True
        assert hybrid['benefits']['serviceDiscount'] == 10

    def test_inactive_tiers_hidden_from_storefront(self, service, sample_tiers):
        service.upsert_tier('natural', {'is_active': False})

        assert 'natural' not in [tier['id'] for tier in service.get_catalog()]
        assert 'natural' in [tier['id'] for tier in service.get_catalog(include_inactive=True)]

    def test_benefits_for_inactive_tier_still_resolve(self, service, sample_tiers):
        # Existing members of a retired tier keep their benefits
        service.upsert_tier('natural', {'is_active': False})
        assert service.get_benefits('natural').free_refills_per_month == 1

    def test_benefits_served_from_cached_catalog(self, service, sample_tiers):
        cached = [{'id': 'hybrid', 'benefits': {'serviceDiscount': 33}}]
        with patch('app.services.tier_service.get_cached_tier_catalog', return_value=cached):
            benefits = service.get_benefits('hybrid')

        assert benefits.service_discount == 33

    def test_unknown_tier_has_no_benefits(self, service, sample_tiers):
        assert service.get_benefits('diamond') is None
        assert service.get_benefits(None) is None

    def test_get_tier_unknown(self, service, sample_tiers):
        with pytest.raises(TierNotFoundError):
            service.get_tier('diamond')

    def test_get_tier_by_price_id(self, service, sample_tiers):
        assert service.get_tier_by_price_id('price_volume_monthly').id == 'volume'
        assert service.get_tier_by_price_id('price_missing') is None
        assert service.get_tier_by_price_id(None) is None


class TestUpsertTier:

    def test_create_with_partial_benefits(self, service):
        tier = service.upsert_tier('classic', {
            'name': 'Classic',
            'price': '79.50',
            'benefits': {'freeRefillsPerMonth': 1},
        })

        assert tier.price == Decimal('79.50')
        assert service.get_benefits('classic') == MembershipBenefits(free_refills_per_month=1)

    def test_update_keeps_unspecified_fields(self, service, sample_tiers):
        tier = service.upsert_tier('mega', {'popular': True})

        assert tier.name == 'Mega'
        assert tier.popular is True
        assert tier.benefits['includedServiceIds'] == ['lash-bath']

    def test_name_required_for_new_tier(self, service):
        with pytest.raises(ValidationError):
            service.upsert_tier('nameless', {'price': 10})

    @pytest.mark.parametrize('benefits', [
        {'productDiscount': 120},
        {'serviceDiscount': -5},
        {'pointsRate': -1},
        {'freeRefillsPerMonth': -1},
    ])
    def test_invalid_benefits(self, service, benefits):
        with pytest.raises(ValidationError):
            service.upsert_tier('broken', {'name': 'Broken', 'benefits': benefits})

    def test_negative_price(self, service):
        with pytest.raises(ValidationError):
            service.upsert_tier('cheap', {'name': 'Cheap', 'price': -1})
