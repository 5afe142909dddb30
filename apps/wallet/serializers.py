from decimal import Decimal

from rest_framework import serializers

from apps.wallet.models import WalletTransaction


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = [
            "id",
            "type",
            "amount",
            "balance_before",
            "balance_after",
            "description",
            "reference_type",
            "reference_id",
            "status",
            "created_at",
        ]
        read_only_fields = fields


class WithdrawSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    reference = serializers.CharField(required=False, allow_blank=True, max_length=60)
    description = serializers.CharField(required=False, allow_blank=True, max_length=200)
