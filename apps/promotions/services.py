import logging
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.common.exceptions import InvalidPromotion, ValidationError
from apps.orders.models import Order
from apps.promotions.models import DiscountType, Promotion

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def find_promotion(code):
    code = (code or "").strip()
    if not code:
        return None
    return Promotion.objects.filter(code__iexact=code).first()


def evaluate_promotion(promotion, order_subtotal, now=None, check_usage=True):
    """Raise InvalidPromotion with the first failing reason, checked in a fixed order.

    Inactive codes are reported as not found so a disabled code reads the same as a typo.
    ``check_usage`` is off when the caller already holds a redemption of this code.
    """
    now = now or timezone.now()
    if promotion is None or not promotion.is_active:
        raise InvalidPromotion(InvalidPromotion.NOT_FOUND)
    if now < promotion.valid_from:
        raise InvalidPromotion(InvalidPromotion.NOT_YET_ACTIVE)
    if now > promotion.valid_until:
        raise InvalidPromotion(InvalidPromotion.EXPIRED)
    if check_usage and promotion.usage_limit and promotion.usage_count >= promotion.usage_limit:
        raise InvalidPromotion(InvalidPromotion.EXHAUSTED)
    if Decimal(order_subtotal) < promotion.min_order_amount:
        raise InvalidPromotion(
            InvalidPromotion.BELOW_MINIMUM,
            f"Minimum order amount is {promotion.min_order_amount:.2f}.",
        )
    return promotion


def discount_for(promotion, fee):
    fee = _money(fee)
    if fee <= 0:
        return Decimal("0.00")

    if promotion.discount_type == DiscountType.PERCENTAGE:
        discount = fee * promotion.discount_value / Decimal("100")
        if promotion.max_discount_amount is not None:
            discount = min(discount, promotion.max_discount_amount)
    elif promotion.discount_type == DiscountType.FIXED_AMOUNT:
        discount = min(promotion.discount_value, fee)
    elif promotion.discount_type == DiscountType.FREE_DELIVERY:
        discount = fee
    else:
        discount = Decimal("0")

    return max(_money(discount), Decimal("0.00"))


def redeem_promotion(promotion):
    updated = (
        Promotion.objects.filter(pk=promotion.pk, is_active=True)
        .filter(Q(usage_limit=0) | Q(usage_count__lt=F("usage_limit")))
        .update(usage_count=F("usage_count") + 1)
    )
    if not updated:
        logger.warning("Promotion %s redemption rejected: usage limit reached", promotion.code)
        raise InvalidPromotion(InvalidPromotion.EXHAUSTED)
    promotion.refresh_from_db(fields=["usage_count"])
    logger.info("Promotion %s redeemed (%s/%s)", promotion.code, promotion.usage_count, promotion.usage_limit or "unlimited")
    return promotion


def redeem_for_order(promotion, order):
    """Consume one use of ``promotion`` for ``order``.

    Returns True when a use was consumed and False when the order already holds this code.
    """
    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.promotion_id == promotion.pk:
            logger.info("Promotion %s already redeemed for order %s", promotion.code, locked.pk)
            return False
        if locked.promotion_id is not None:
            raise ValidationError("Order already has a promotion applied.")
        redeem_promotion(promotion)
        locked.promotion = promotion
        locked.save(update_fields=["promotion", "updated_at"])
    order.promotion = promotion
    return True
