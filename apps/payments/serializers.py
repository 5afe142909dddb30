from decimal import Decimal

from rest_framework import serializers

from apps.payments.models import PaymentPurpose
from apps.wallet.models import VirtualAccount


class InitializePaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    email = serializers.EmailField()
    type = serializers.ChoiceField(choices=PaymentPurpose.choices, default=PaymentPurpose.WALLET)


class VirtualAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = VirtualAccount
        fields = (
            "account_number",
            "account_name",
            "bank_name",
            "bank_code",
            "customer_code",
            "assigned",
            "active",
            "created_at",
        )
