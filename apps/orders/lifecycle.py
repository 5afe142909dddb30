import logging

from django.db import transaction
from django.utils import timezone

from apps.audit.services import record_audit
from apps.common.exceptions import ValidationError
from apps.orders.models import Order, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

FORWARD_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY_FOR_PICKUP, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY_FOR_PICKUP: "ready_at",
    OrderStatus.OUT_FOR_DELIVERY: "out_for_delivery_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

ADMIN_MUTABLE_FIELDS = {"status", "payment_status"}


def is_forward_transition(current, target):
    return target in FORWARD_TRANSITIONS.get(current, set())


def apply_admin_update(*, order, data, actor):
    """Set ``status`` and/or ``payment_status`` on an order for an admin.

    Any status may be set from any status. Moves off the forward lifecycle are
    allowed as support overrides, but they are logged and flagged in the audit trail.
    """
    unknown = set(data) - ADMIN_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Only status and payment_status can be changed (got {', '.join(sorted(unknown))}).")
    if not data:
        raise ValidationError("Nothing to update: send status or payment_status.")

    new_status = data.get("status")
    new_payment_status = data.get("payment_status")
    if new_status is not None and new_status not in OrderStatus.values:
        raise ValidationError(f"Unknown order status '{new_status}'.")
    if new_payment_status is not None and new_payment_status not in PaymentStatus.values:
        raise ValidationError(f"Unknown payment status '{new_payment_status}'.")

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        update_fields = ["updated_at"]
        payload = {}

        if new_status is not None and new_status != locked.status:
            previous = locked.status
            override = not is_forward_transition(previous, new_status)
            if override:
                logger.warning(
                    "Order %s status override %s -> %s by user=%s", locked.id, previous, new_status, actor.pk
                )
            locked.status = new_status
            update_fields.append("status")
            stamp_field = STATUS_TIMESTAMPS.get(new_status)
            if stamp_field:
                setattr(locked, stamp_field, timezone.now())
                update_fields.append(stamp_field)
            payload["status"] = {"from": previous, "to": new_status, "override": override}

        if new_payment_status is not None and new_payment_status != locked.payment_status:
            if locked.payment_status == PaymentStatus.COMPLETED:
                raise ValidationError("A completed payment cannot be marked as pending again.")
            payload["payment_status"] = {"from": locked.payment_status, "to": new_payment_status}
            locked.payment_status = new_payment_status
            update_fields.append("payment_status")

        if len(update_fields) > 1:
            locked.save(update_fields=update_fields)
            record_audit(
                actor=actor,
                action="orders.update",
                entity_type="order",
                entity_id=locked.id,
                payload=payload,
            )

    return locked


def delete_order(*, order, actor):
    record_audit(
        actor=actor,
        action="orders.delete",
        entity_type="order",
        entity_id=order.id,
        payload={
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "total_amount": str(order.total_amount),
        },
    )
    logger.info("Order %s deleted by user=%s", order.id, actor.pk)
    order.delete()
