"""
Loyalty points rules.

Points are earned on completed services only and redeemed 1:1 against
dollars on future service bookings. Products never earn or redeem points.
"""
import math
from decimal import Decimal
from typing import Union

from .benefits import to_money

Number = Union[int, float, Decimal]

# ==================== Configuration ====================

MINIMUM_REDEMPTION = 100     # Minimum balance before any points can be redeemed
POINTS_PER_DOLLAR = 1        # 1 point = $1 discount
EARN_ON_SERVICES_ONLY = True
REDEEM_ON_SERVICES_ONLY = True


def calculate_points_earned(service_amount: Number, points_rate: Number) -> int:
    """
    Points earned for a service booking.

    points_rate is a percentage (5 means 5% back in points). The result is
    floored so a fractional point is never granted.
    """
    if not points_rate or points_rate <= 0:
        return 0
    amount = to_money(service_amount)
    if amount <= 0:
        return 0
    return int(math.floor(amount * to_money(points_rate) / Decimal('100')))


def calculate_points_value(points: int, points_per_dollar: Number = POINTS_PER_DOLLAR) -> Decimal:
    """Dollar value of a points balance."""
    return to_money(points) * to_money(points_per_dollar)


def can_redeem_points(points_balance: int, minimum: int = MINIMUM_REDEMPTION) -> bool:
    return (points_balance or 0) >= minimum


def calculate_max_redeemable_points(
    points_balance: int,
    service_amount: Number,
    minimum: int = MINIMUM_REDEMPTION
) -> int:
    """
    Most points that can go towards a service.

    Capped by the balance and by the service cost in whole dollars.
    Zero when the balance is below the redemption minimum.
    """
    if not can_redeem_points(points_balance, minimum):
        return 0
    max_for_service = int(math.floor(to_money(service_amount)))
    return max(0, min(int(points_balance), max_for_service))


def calculate_points_discount(points_to_redeem: int, points_per_dollar: Number = POINTS_PER_DOLLAR) -> Decimal:
    return to_money(points_to_redeem) * to_money(points_per_dollar)


def calculate_final_price(original_price: Number, points_discount: Number) -> Decimal:
    """Charged price after points; never below zero."""
    return max(Decimal('0'), to_money(original_price) - to_money(points_discount))
