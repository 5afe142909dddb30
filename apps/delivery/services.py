import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from apps.audit.services import record_audit
from apps.common.exceptions import DistanceExceeded, InvalidPromotion, ValidationError
from apps.delivery.models import DeliveryAdjustment, DeliveryLog, DeliveryLogAction
from apps.delivery.pricing import ZERO, compute_fee, money
from apps.delivery.repositories import DjangoDeliveryRepository
from apps.promotions.services import evaluate_promotion

logger = logging.getLogger(__name__)


class DeliveryFeeService:
    def __init__(self, repository=None):
        self.repository = repository or DjangoDeliveryRepository()

    def quote(self, *, distance, order_subtotal=ZERO, promo_code=None, redeem=False, user=None, order=None, now=None):
        """Price a delivery and append a DeliveryLog, whatever the outcome.

        With ``redeem`` the promotion's usage is consumed once for ``order``, which is what
        checkout does; plain quotes leave the counter alone. Nothing is consumed when the
        fee is already zero.
        """
        try:
            distance = Decimal(distance)
            order_subtotal = Decimal(order_subtotal)
        except (ArithmeticError, TypeError, ValueError):
            raise ValidationError("distance and order_subtotal must be numbers")
        if distance < 0:
            raise ValidationError("distance must be greater than or equal to 0")
        if order_subtotal < 0:
            raise ValidationError("order_subtotal must be greater than or equal to 0")
        if redeem and order is None:
            raise ValidationError("An order is required to redeem a promotion.")

        now = now or timezone.now()
        pricing = self.repository.pricing()
        zones = self.repository.active_zones()
        details = {"order_subtotal": f"{money(order_subtotal):.2f}"}
        promo_code = (promo_code or "").strip() or None
        if promo_code:
            details["promotion_code"] = promo_code.upper()

        try:
            base = compute_fee(distance, zones, pricing, order_subtotal)
        except DistanceExceeded as exc:
            details["error"] = exc.default_code
            self._log(DeliveryLogAction.CALCULATE, user, order, None, distance, None, details)
            logger.info("Delivery quote rejected for user=%s: %s", getattr(user, "pk", None), exc.detail)
            raise

        promotion = None
        redeemed = False
        if promo_code:
            promotion = self.repository.find_promotion(promo_code)
            held = redeem and promotion is not None and self.repository.holds_promotion(order, promotion)
            try:
                evaluate_promotion(promotion, order_subtotal, now, check_usage=not held)
                if redeem and not held and base.fee_before_discount > 0:
                    redeemed = self.repository.redeem_promotion(promotion, order)
            except (InvalidPromotion, ValidationError) as exc:
                details["error"] = exc.default_code
                details["promotion_reason"] = getattr(exc, "reason", str(exc.detail))
                self._log(DeliveryLogAction.CALCULATE, user, order, base, distance, base.fee_before_discount, details)
                logger.info("Promotion %s rejected for user=%s: %s", promo_code, getattr(user, "pk", None), exc.detail)
                raise
            if redeem:
                details["promotion_redeemed"] = redeemed

        breakdown = compute_fee(distance, zones, pricing, order_subtotal, promotion=promotion)
        details["free_delivery_applied"] = breakdown.free_delivery_applied
        if breakdown.zone is not None:
            details["zone_name"] = breakdown.zone.name

        action = DeliveryLogAction.PROMOTION_APPLIED if redeemed else DeliveryLogAction.CALCULATE
        log = self._log(action, user, order, breakdown, distance, breakdown.final_price, details)
        return breakdown, log

    def _log(self, action, user, order, breakdown, distance, final_price, details):
        return self.repository.append_log(
            action=action,
            user=user if user is not None and user.is_authenticated else None,
            order=order,
            zone=breakdown.zone if breakdown else None,
            distance_km=money(distance),
            base_price=breakdown.base_price if breakdown else ZERO,
            distance_price=breakdown.distance_price if breakdown else ZERO,
            promotion_discount=breakdown.promotion_discount if breakdown else ZERO,
            adjustment_amount=ZERO,
            final_price=final_price,
            details=details,
        )


def adjust_delivery_fee(*, order, adjusted_price, reason, actor):
    from apps.orders.models import Order

    adjusted_price = money(adjusted_price)
    if adjusted_price < 0:
        raise ValidationError("adjusted_price must be greater than or equal to 0")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        original_price = money(locked.delivery_fee)
        adjustment_amount = adjusted_price - original_price

        adjustment = DeliveryAdjustment.objects.create(
            order=locked,
            original_price=original_price,
            adjusted_price=adjusted_price,
            adjustment_amount=adjustment_amount,
            reason=reason,
            adjusted_by=actor,
        )
        locked.delivery_fee = adjusted_price
        locked.recalculate_total()
        locked.save(update_fields=["delivery_fee", "total_amount", "updated_at"])

        DeliveryLog.objects.create(
            action=DeliveryLogAction.ADJUSTMENT,
            user=actor,
            order=locked,
            base_price=ZERO,
            distance_price=ZERO,
            promotion_discount=ZERO,
            adjustment_amount=adjustment_amount,
            final_price=adjusted_price,
            details={"reason": reason, "original_price": f"{original_price:.2f}"},
        )
        record_audit(
            actor=actor,
            action="delivery.adjust",
            entity_type="order",
            entity_id=locked.id,
            payload={
                "adjustment_id": str(adjustment.id),
                "original_price": str(original_price),
                "adjusted_price": str(adjusted_price),
                "reason": reason,
            },
        )

    logger.info(
        "Delivery fee for order %s adjusted %s -> %s by user=%s", locked.id, original_price, adjusted_price, actor.pk
    )
    return adjustment
