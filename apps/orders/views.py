from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Prefetch
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.exceptions import NotFound, ValidationError
from apps.common.permissions import RolePermission
from apps.orders.lifecycle import apply_admin_update, delete_order
from apps.orders.models import Order, OrderItem
from apps.orders.serializers import AdminOrderSerializer
from apps.orders.services import pay_order_with_wallet


def _order_queryset():
    return Order.objects.select_related("customer", "vendor__vendor_profile").prefetch_related(
        Prefetch("items", queryset=OrderItem.objects.order_by("product_name"))
    )


class AdminOrdersView(APIView):
    permission_classes = [RolePermission]
    capability_map = {
        "get": ["orders.manage"],
        "put": ["orders.manage"],
        "delete": ["orders.manage"],
    }

    def get(self, request):
        orders = _order_queryset().order_by("-created_at")
        status_param = request.query_params.get("status")
        if status_param:
            orders = orders.filter(status=status_param)
        return Response(AdminOrderSerializer(orders, many=True).data)

    def put(self, request):
        order = self._get_order(request)
        if not hasattr(request.data, "keys"):
            raise ValidationError("Body must be a JSON object.")
        data = {key: request.data.get(key) for key in request.data.keys()}
        updated = apply_admin_update(order=order, data=data, actor=request.user)
        return Response(AdminOrderSerializer(_order_queryset().get(pk=updated.pk)).data)

    def delete(self, request):
        order = self._get_order(request)
        delete_order(order=order, actor=request.user)
        return Response({"success": True}, status=status.HTTP_200_OK)

    @staticmethod
    def _get_order(request):
        order_id = request.query_params.get("id")
        if not order_id:
            raise ValidationError("Missing order id")
        try:
            return Order.objects.get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound("Order not found")


class OrderPayWithWalletView(GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["orders.pay"]}

    def post(self, request, pk=None):
        try:
            order = Order.objects.get(pk=pk, customer=request.user)
        except Order.DoesNotExist:
            raise NotFound("Order not found")

        order, result = pay_order_with_wallet(order=order, user=request.user)
        return Response(
            {
                "order": AdminOrderSerializer(_order_queryset().get(pk=order.pk)).data,
                "wallet": result.as_dict() if result else None,
            },
            status=status.HTTP_200_OK,
        )
