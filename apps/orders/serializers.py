from rest_framework import serializers

from apps.accounts.models import Vendor
from apps.orders.models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product_name", "quantity", "unit_price", "subtotal"]


class AdminOrderSerializer(serializers.ModelSerializer):
    customer = serializers.SerializerMethodField()
    vendor = serializers.SerializerMethodField()
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer",
            "vendor",
            "status",
            "payment_method",
            "payment_status",
            "delivery_type",
            "delivery_address",
            "subtotal",
            "delivery_fee",
            "discount_amount",
            "total_amount",
            "promotion",
            "items",
            "confirmed_at",
            "preparing_at",
            "ready_at",
            "out_for_delivery_at",
            "delivered_at",
            "cancelled_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_customer(self, obj):
        customer = obj.customer
        return {
            "id": customer.pk,
            "full_name": customer.display_name,
            "email": customer.email,
            "phone": customer.phone,
        }

    def get_vendor(self, obj):
        try:
            profile = obj.vendor.vendor_profile if obj.vendor_id else None
        except Vendor.DoesNotExist:
            profile = None
        if profile is None:
            return {"id": None, "business_name": "Unknown"}
        return {"id": str(profile.id), "business_name": profile.business_name}

