from rest_framework import generics, status
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.permissions import RolePermission, has_capability
from apps.payments.serializers import VirtualAccountSerializer
from apps.wallet.models import ReferenceType, VirtualAccount, WalletTransaction
from apps.wallet.serializers import WalletTransactionSerializer, WithdrawSerializer
from apps.wallet.services import debit, minimum_amount


class WalletView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["wallet.use"]}

    def get(self, request):
        request.user.refresh_from_db(fields=["wallet_balance"])
        account = VirtualAccount.objects.filter(user=request.user).first()
        return Response(
            {
                "balance": f"{request.user.wallet_balance:.2f}",
                "minimum_amount": f"{minimum_amount():.2f}",
                "virtual_account": VirtualAccountSerializer(account).data if account else None,
            }
        )


class WalletTransactionListView(generics.ListAPIView):
    serializer_class = WalletTransactionSerializer
    permission_classes = [RolePermission]
    capability_map = {"get": ["wallet.use"]}

    def get_queryset(self):
        queryset = WalletTransaction.objects.order_by("-created_at", "-id")
        user_id = self.request.query_params.get("user")
        if user_id and str(user_id) != str(self.request.user.pk):
            if not has_capability(self.request.user, "wallet.view.any"):
                raise PermissionDenied("You can only view your own wallet transactions.")
            queryset = queryset.filter(user_id=user_id)
        else:
            queryset = queryset.filter(user=self.request.user)

        tx_type = self.request.query_params.get("type")
        if tx_type:
            queryset = queryset.filter(type=tx_type)
        return queryset


class WalletWithdrawView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["wallet.use"]}

    def post(self, request):
        serializer = WithdrawSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        key = (serializer.validated_data.get("reference") or "").strip()
        result = debit(
            user=request.user,
            amount=serializer.validated_data["amount"],
            description=serializer.validated_data.get("description") or "Wallet withdrawal",
            reference_id=f"withdrawal:{request.user.pk}:{key}" if key else None,
            reference_type=ReferenceType.WITHDRAWAL,
        )
        return Response(
            {
                **result.as_dict(),
                "transaction": WalletTransactionSerializer(result.transaction).data,
            },
            status=status.HTTP_200_OK if result.replayed else status.HTTP_201_CREATED,
        )
