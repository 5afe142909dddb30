from decimal import Decimal

from rest_framework import serializers

from apps.promotions.models import DiscountType, Promotion


class PromotionSerializer(serializers.ModelSerializer):
    created_by = serializers.CharField(source="created_by.username", read_only=True, default=None)

    class Meta:
        model = Promotion
        fields = [
            "id",
            "code",
            "name",
            "description",
            "discount_type",
            "discount_value",
            "min_order_amount",
            "max_discount_amount",
            "valid_from",
            "valid_until",
            "usage_limit",
            "usage_count",
            "is_active",
            "created_by",
            "created_at",
        ]
        read_only_fields = ["id", "usage_count", "created_by", "created_at"]

    def validate_code(self, value):
        code = value.strip().upper()
        if not code:
            raise serializers.ValidationError("Code is required.")
        queryset = Promotion.objects.filter(code__iexact=code)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError("A promotion with this code already exists.")
        return code

    def validate(self, attrs):
        def current(name):
            return attrs.get(name, getattr(self.instance, name, None))

        valid_from = current("valid_from")
        valid_until = current("valid_until")
        if valid_from and valid_until and valid_from > valid_until:
            raise serializers.ValidationError({"valid_until": "Must be on or after valid_from."})

        discount_type = current("discount_type")
        discount_value = current("discount_value") or Decimal("0")
        if discount_value < 0:
            raise serializers.ValidationError({"discount_value": "Must be greater than or equal to 0."})
        if discount_type == DiscountType.PERCENTAGE and discount_value > 100:
            raise serializers.ValidationError({"discount_value": "A percentage cannot exceed 100."})

        usage_limit = current("usage_limit") or 0
        if self.instance is not None and usage_limit and usage_limit < self.instance.usage_count:
            raise serializers.ValidationError({"usage_limit": "Cannot be lower than the current usage count."})
        return attrs
