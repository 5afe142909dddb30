from decimal import Decimal

from rest_framework import serializers

from apps.delivery.models import DeliveryAdjustment, DeliveryLog, DeliveryPricing, DeliveryZone


class DeliveryZoneSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryZone
        fields = [
            "id",
            "name",
            "description",
            "min_distance",
            "max_distance",
            "price",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        min_distance = attrs.get("min_distance", getattr(self.instance, "min_distance", Decimal("0.00")))
        max_distance = attrs.get("max_distance", getattr(self.instance, "max_distance", None))
        if min_distance is not None and min_distance < 0:
            raise serializers.ValidationError({"min_distance": "Must be greater than or equal to 0."})
        if max_distance is not None and min_distance >= max_distance:
            raise serializers.ValidationError({"max_distance": "Must be greater than min_distance."})
        if attrs.get("price", Decimal("0")) < 0:
            raise serializers.ValidationError({"price": "Must be greater than or equal to 0."})
        return attrs


class DeliveryPricingSerializer(serializers.ModelSerializer):
    updated_by = serializers.CharField(source="updated_by.username", read_only=True, default=None)

    class Meta:
        model = DeliveryPricing
        fields = [
            "default_base_price",
            "default_price_per_km",
            "min_delivery_charge",
            "max_delivery_distance",
            "free_delivery_threshold",
            "updated_by",
            "updated_at",
        ]
        read_only_fields = ["updated_by", "updated_at"]

    def validate(self, attrs):
        for field_name, value in attrs.items():
            if value is not None and value < 0:
                raise serializers.ValidationError({field_name: "Must be greater than or equal to 0."})
        return attrs


class DeliveryQuoteSerializer(serializers.Serializer):
    distance = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=Decimal("0"))
    origin = serializers.CharField(required=False, allow_blank=False)
    destination = serializers.CharField(required=False, allow_blank=False)
    order_subtotal = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, default=Decimal("0.00"), min_value=Decimal("0")
    )
    promo_code = serializers.CharField(required=False, allow_blank=True, max_length=40)
    order = serializers.UUIDField(required=False)
    redeem = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs.get("distance") is None and not (attrs.get("origin") and attrs.get("destination")):
            raise serializers.ValidationError("Send distance, or origin and destination.")
        if attrs["redeem"] and not attrs.get("order"):
            raise serializers.ValidationError({"order": "Required to redeem a promotion."})
        return attrs


class DistanceRequestSerializer(serializers.Serializer):
    origin = serializers.CharField(max_length=500)
    destination = serializers.CharField(max_length=500)


class DeliveryLogSerializer(serializers.ModelSerializer):
    zone_name = serializers.CharField(source="zone.name", read_only=True, default=None)

    class Meta:
        model = DeliveryLog
        fields = [
            "id",
            "action",
            "user",
            "order",
            "zone",
            "zone_name",
            "distance_km",
            "base_price",
            "distance_price",
            "promotion_discount",
            "adjustment_amount",
            "final_price",
            "details",
            "created_at",
        ]
        read_only_fields = fields


class DeliveryAdjustmentSerializer(serializers.ModelSerializer):
    adjusted_by = serializers.CharField(source="adjusted_by.username", read_only=True)

    class Meta:
        model = DeliveryAdjustment
        fields = [
            "id",
            "order",
            "original_price",
            "adjusted_price",
            "adjustment_amount",
            "reason",
            "adjusted_by",
            "created_at",
        ]
        read_only_fields = ["id", "original_price", "adjustment_amount", "adjusted_by", "created_at"]
        extra_kwargs = {"adjusted_price": {"min_value": Decimal("0")}}
