from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.permissions import RolePermission
from apps.payments.serializers import InitializePaymentSerializer, VirtualAccountSerializer
from apps.payments.services import handle_webhook, initialize_payment, provision_virtual_account, verify_payment


class InitializePaymentView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["payments.initialize"]}

    def post(self, request):
        serializer = InitializePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = initialize_payment(
            user=request.user,
            amount=serializer.validated_data["amount"],
            email=serializer.validated_data["email"],
            purpose=serializer.validated_data["type"],
        )
        return Response(data, status=status.HTTP_200_OK)


class VerifyPaymentView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        result = verify_payment(
            reference=request.query_params.get("reference"),
            mode=request.query_params.get("type"),
            requester=request.user,
        )
        body = result.as_dict()
        if not result.success:
            body["error"] = "Payment was not successful"
            return Response(body, status=status.HTTP_400_BAD_REQUEST)
        return Response(body, status=status.HTTP_200_OK)


class CreateVirtualAccountView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"post": ["payments.virtual_account"]}

    def post(self, request):
        account, created = provision_virtual_account(user=request.user)
        return Response(
            {
                "success": True,
                "created": created,
                "message": "Virtual account created successfully" if created else "Virtual account already exists",
                "account": VirtualAccountSerializer(account).data,
            },
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class PaystackWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        data = handle_webhook(
            raw_body=request.body,
            signature=request.headers.get("X-Paystack-Signature"),
        )
        return Response(data, status=status.HTTP_200_OK)
