import logging

from django.db import transaction

from apps.common.exceptions import ValidationError
from apps.orders.models import Order, PaymentMethod, PaymentStatus
from apps.wallet.models import ReferenceType
from apps.wallet.services import debit

logger = logging.getLogger(__name__)


def wallet_reference(order):
    return f"order:{order.id}"


def pay_order_with_wallet(*, order, user):
    if order.customer_id != user.pk:
        raise ValidationError("Only the customer who placed the order can pay for it.")
    if order.payment_method != PaymentMethod.WALLET:
        raise ValidationError("This order is not set up for wallet payment.")

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.payment_status == PaymentStatus.COMPLETED:
            return locked, None

        result = debit(
            user=user,
            amount=locked.total_amount,
            description=f"Payment for order {locked.order_number}",
            reference_id=wallet_reference(locked),
            reference_type=ReferenceType.ORDER,
        )
        locked.payment_status = PaymentStatus.COMPLETED
        locked.save(update_fields=["payment_status", "updated_at"])

    logger.info("Order %s paid from wallet by user=%s amount=%s", locked.id, user.pk, locked.total_amount)
    return locked, result
