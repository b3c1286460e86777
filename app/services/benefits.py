"""
Membership benefit rules.

Pure calculation layer used by checkout, priority booking and the admin
back-office:
- Resolving a tier's benefits from the tier catalog
- Member pricing for products and services
- Usage window resets and remaining free-service allowances

Nothing in here touches the database. Every function is total and returns a
safe default (no benefits, zero discount) instead of raising.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, List, Dict, Any, Iterable, Mapping, Union

from dateutil.relativedelta import relativedelta

CENT = Decimal('0.01')

# Tier JSON is authored by the storefront (camelCase) and by the admin API
# (snake_case); both spellings map onto the same field.
_BENEFIT_KEYS = {
    'product_discount': ('product_discount', 'productDiscount'),
    'service_discount': ('service_discount', 'serviceDiscount'),
    'points_rate': ('points_rate', 'pointsRate'),
    'free_refills_per_month': ('free_refills_per_month', 'freeRefillsPerMonth'),
    'free_full_sets_per_month': ('free_full_sets_per_month', 'freeFullSetsPerMonth'),
}

_USAGE_KEYS = {
    'current_period_start': ('current_period_start', 'currentPeriodStart'),
    'refills_used': ('refills_used', 'refillsUsed'),
    'full_sets_used': ('full_sets_used', 'fullSetsUsed'),
}


def _lookup(data: Any, names: Iterable[str], default=None):
    """Read the first present key/attribute out of a mapping or object."""
    for name in names:
        if isinstance(data, Mapping):
            value = data.get(name)
        else:
            value = getattr(data, name, None)
        if value is not None:
            return value
    return default


def _number(value) -> Union[int, float]:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0
    return int(parsed) if parsed.is_integer() else parsed


def to_money(value) -> Decimal:
    """Coerce a price into a Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        return Decimal('0')


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class MembershipBenefits:
    """Discounts and monthly allowances attached to a membership tier."""
    product_discount: Union[int, float] = 0
    service_discount: Union[int, float] = 0
    points_rate: Union[int, float] = 0
    free_refills_per_month: int = 0
    free_full_sets_per_month: int = 0
    included_service_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_partial(cls, data: Optional[Any]) -> 'MembershipBenefits':
        """
        Build a fully populated benefits record from partial tier JSON.

        Missing or null numbers become 0 and a missing included-services
        list becomes []; callers never need to check for absent fields.
        """
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data

        values = {
            attr: _number(_lookup(data, names))
            for attr, names in _BENEFIT_KEYS.items()
        }
        values['free_refills_per_month'] = int(values['free_refills_per_month'])
        values['free_full_sets_per_month'] = int(values['free_full_sets_per_month'])

        included = _lookup(data, ('included_service_ids', 'includedServiceIds'), [])
        values['included_service_ids'] = [str(s) for s in included]
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MembershipUsage:
    """Per-period counters of consumed free services."""
    current_period_start: Optional[datetime] = None
    refills_used: int = 0
    full_sets_used: int = 0

    @classmethod
    def coerce(cls, usage: Optional[Any]) -> 'MembershipUsage':
        """Accept None, a usage mapping (either key style) or a User row."""
        if usage is None:
            return cls()
        if isinstance(usage, cls):
            return usage

        start = _lookup(usage, _USAGE_KEYS['current_period_start'])
        if start is None:
            start = _lookup(usage, ('usage_period_start',))
        return cls(
            current_period_start=parse_timestamp(start),
            refills_used=int(_number(_lookup(usage, _USAGE_KEYS['refills_used'], 0))),
            full_sets_used=int(_number(_lookup(usage, _USAGE_KEYS['full_sets_used'], 0))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_period_start': self.current_period_start.isoformat() if self.current_period_start else None,
            'refills_used': self.refills_used,
            'full_sets_used': self.full_sets_used,
        }


# ==================== Benefits Resolver ====================

def get_membership_benefits(tier_id: Optional[str], tiers: Iterable[Any]) -> Optional[MembershipBenefits]:
    """
    Get membership benefits for a tier ID.

    Args:
        tier_id: Tier identifier (exact match)
        tiers: Tier catalog entries (dicts or MembershipTier rows)

    Returns:
        MembershipBenefits, or None if the tier is unknown or has no benefits
    """
    if not tier_id:
        return None

    for tier in tiers or []:
        if _lookup(tier, ('id',)) == tier_id:
            benefits = _lookup(tier, ('benefits',))
            if benefits is None:
                return None
            return MembershipBenefits.from_partial(benefits)
    return None


# ==================== Pricing ====================

def _percentage_off(original: Decimal, discount) -> Dict[str, Any]:
    savings = original * to_money(discount) / Decimal('100')
    price = original - savings
    return {
        'price': round_cents(price),
        'discount': discount,
        'savings': round_cents(savings),
    }


def calculate_member_product_price(original_price, benefits: Optional[MembershipBenefits]) -> Dict[str, Any]:
    """
    Calculate the member price for a product.

    Returns:
        {'price': Decimal, 'discount': percent, 'savings': Decimal}
    """
    original = to_money(original_price)
    if benefits is None or benefits.product_discount <= 0:
        return {'price': original, 'discount': 0, 'savings': Decimal('0')}
    return _percentage_off(original, benefits.product_discount)


def calculate_product_discount(original_price, benefits: Optional[MembershipBenefits]) -> Decimal:
    """Discounted product price only."""
    return calculate_member_product_price(original_price, benefits)['price']


def _free_result(original: Decimal, reason: str) -> Dict[str, Any]:
    return {
        'price': Decimal('0'),
        'discount': 100,
        'savings': original,
        'is_free': True,
        'reason': reason,
    }


def calculate_member_service_price(
    original_price,
    service_id: Optional[str],
    benefits: Optional[MembershipBenefits],
    usage: Optional[Any] = None,
    is_refill: bool = False,
    is_full_set: bool = False
) -> Dict[str, Any]:
    """
    Calculate the member price for a service booking.

    Rules are checked in order and the first match wins:
    included service, free refill, free full set, flat service discount,
    then no discount.

    Returns:
        {'price', 'discount', 'savings', 'is_free', 'reason'}
    """
    original = to_money(original_price)
    no_discount = {
        'price': original,
        'discount': 0,
        'savings': Decimal('0'),
        'is_free': False,
        'reason': None,
    }
    if benefits is None:
        return no_discount

    counters = MembershipUsage.coerce(usage)

    if service_id is not None and str(service_id) in benefits.included_service_ids:
        return _free_result(original, 'Included in membership')

    allowance = benefits.free_refills_per_month
    if is_refill and allowance > 0 and counters.refills_used < allowance:
        return _free_result(original, f'Free refill ({counters.refills_used + 1}/{allowance} used)')

    allowance = benefits.free_full_sets_per_month
    if is_full_set and allowance > 0 and counters.full_sets_used < allowance:
        return _free_result(original, f'Free full set ({counters.full_sets_used + 1}/{allowance} used)')

    if benefits.service_discount > 0:
        result = _percentage_off(original, benefits.service_discount)
        result.update({'is_free': False, 'reason': None})
        return result

    return no_discount


# ==================== Usage Periods ====================

def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def should_reset_usage(current_period_start, membership_period_end, now: Optional[datetime] = None) -> bool:
    """
    Check whether the free-service usage counters are due for a reset.

    Unknown state (either timestamp missing or unparseable) counts as due.
    Otherwise a reset is due once the billing period has ended, or when the
    usage window started more than one calendar month ago (a renewal webhook
    was missed).
    """
    period_start = parse_timestamp(current_period_start)
    period_end = parse_timestamp(membership_period_end)
    if period_start is None or period_end is None:
        return True

    now = parse_timestamp(now) or datetime.now(timezone.utc)

    if now > period_end:
        return True

    if period_start < now - relativedelta(months=1):
        return True

    return False


def get_remaining_free_services(benefits: Optional[MembershipBenefits], usage: Optional[Any]) -> Dict[str, int]:
    """Free refills and full sets left in the current period, never negative."""
    if benefits is None:
        return {'refills': 0, 'full_sets': 0}
    counters = MembershipUsage.coerce(usage)
    return {
        'refills': max(0, benefits.free_refills_per_month - counters.refills_used),
        'full_sets': max(0, benefits.free_full_sets_per_month - counters.full_sets_used),
    }
