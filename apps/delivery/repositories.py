import uuid
from types import SimpleNamespace

from django.utils import timezone

from apps.common.exceptions import InvalidPromotion, ValidationError
from apps.delivery.models import DeliveryLog, DeliveryPricing, DeliveryZone
from apps.orders.models import Order
from apps.promotions.services import find_promotion, redeem_for_order


class DjangoDeliveryRepository:
    """Storage used by DeliveryFeeService in production."""

    def pricing(self):
        return DeliveryPricing.load()

    def active_zones(self):
        return list(DeliveryZone.objects.filter(is_active=True))

    def find_promotion(self, code):
        return find_promotion(code)

    def holds_promotion(self, order, promotion):
        return Order.objects.filter(pk=order.pk, promotion_id=promotion.pk).exists()

    def redeem_promotion(self, promotion, order):
        return redeem_for_order(promotion, order)

    def append_log(self, **fields):
        return DeliveryLog.objects.create(**fields)


class InMemoryDeliveryRepository:
    """Storage backed by plain lists so the fee service runs without a database."""

    def __init__(self, *, pricing, zones=(), promotions=()):
        self._pricing = pricing
        self.zones = list(zones)
        self.promotions = {promotion.code.upper(): promotion for promotion in promotions}
        self.redemptions = {}
        self.logs = []

    def pricing(self):
        return self._pricing

    def active_zones(self):
        return [zone for zone in self.zones if zone.is_active]

    def find_promotion(self, code):
        return self.promotions.get((code or "").strip().upper())

    def holds_promotion(self, order, promotion):
        return self.redemptions.get(order.id) == promotion.code.upper()

    def redeem_promotion(self, promotion, order):
        held = self.redemptions.get(order.id)
        if held == promotion.code.upper():
            return False
        if held is not None:
            raise ValidationError("Order already has a promotion applied.")
        if promotion.usage_limit and promotion.usage_count >= promotion.usage_limit:
            raise InvalidPromotion(InvalidPromotion.EXHAUSTED)
        promotion.usage_count += 1
        self.redemptions[order.id] = promotion.code.upper()
        return True

    def append_log(self, **fields):
        entry = SimpleNamespace(id=uuid.uuid4(), created_at=timezone.now(), **fields)
        self.logs.append(entry)
        return entry
