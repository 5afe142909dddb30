from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from apps.common.exceptions import DistanceExceeded, ValidationError
from apps.promotions.services import discount_for

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _created_key(zone):
    created_at = getattr(zone, "created_at", None)
    return created_at.timestamp() if isinstance(created_at, datetime) else 0


def match_zone(zones, distance):
    """Return the active zone whose [min, max) band holds ``distance``, or None.

    Overlapping bands resolve to the lowest ``min_distance``, then the newest zone.
    """
    distance = Decimal(distance)
    if distance < 0:
        raise ValidationError("distance must be greater than or equal to 0")

    candidates = [
        zone for zone in zones if zone.is_active and zone.min_distance <= distance < zone.max_distance
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda zone: (zone.min_distance, -_created_key(zone)))
    return candidates[0]


def check_distance(pricing, distance):
    if pricing.max_delivery_distance is not None and Decimal(distance) > pricing.max_delivery_distance:
        raise DistanceExceeded(
            f"Delivery is not available beyond {pricing.max_delivery_distance} km (requested {Decimal(distance)} km)."
        )


@dataclass
class FeeBreakdown:
    distance_km: Decimal
    zone: object
    base_price: Decimal
    distance_price: Decimal
    subtotal_fee: Decimal
    free_delivery_applied: bool
    fee_before_discount: Decimal
    promotion_discount: Decimal
    final_price: Decimal

    def as_dict(self):
        return {
            "distance_km": f"{self.distance_km:.2f}",
            "zone": (
                {"id": str(self.zone.id), "name": self.zone.name} if self.zone is not None else None
            ),
            "base_price": f"{self.base_price:.2f}",
            "distance_price": f"{self.distance_price:.2f}",
            "subtotal_fee": f"{self.subtotal_fee:.2f}",
            "free_delivery_applied": self.free_delivery_applied,
            "fee_before_discount": f"{self.fee_before_discount:.2f}",
            "promotion_discount": f"{self.promotion_discount:.2f}",
            "final_price": f"{self.final_price:.2f}",
        }


def compute_fee(distance, zones, pricing, order_subtotal, promotion=None):
    """Price a delivery. ``promotion`` must already have passed evaluation."""
    distance = Decimal(distance)
    order_subtotal = Decimal(order_subtotal)
    if order_subtotal < 0:
        raise ValidationError("order_subtotal must be greater than or equal to 0")

    if distance < 0:
        raise ValidationError("distance must be greater than or equal to 0")
    check_distance(pricing, distance)
    zone = match_zone(zones, distance)

    if zone is not None:
        base_price = ZERO
        distance_price = money(zone.price)
    else:
        base_price = money(pricing.default_base_price)
        distance_price = money(distance * pricing.default_price_per_km)

    subtotal_fee = max(base_price + distance_price, money(pricing.min_delivery_charge))

    threshold = pricing.free_delivery_threshold
    free_delivery_applied = order_subtotal >= threshold
    fee_before_discount = ZERO if free_delivery_applied else subtotal_fee

    promotion_discount = ZERO
    if promotion is not None:
        promotion_discount = min(discount_for(promotion, fee_before_discount), fee_before_discount)

    final_price = max(fee_before_discount - promotion_discount, ZERO)

    return FeeBreakdown(
        distance_km=money(distance),
        zone=zone,
        base_price=base_price,
        distance_price=distance_price,
        subtotal_fee=subtotal_fee,
        free_delivery_applied=free_delivery_applied,
        fee_before_discount=fee_before_discount,
        promotion_discount=promotion_discount,
        final_price=final_price,
    )
