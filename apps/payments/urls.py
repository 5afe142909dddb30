from django.urls import path

from apps.payments.views import (
    CreateVirtualAccountView,
    InitializePaymentView,
    PaystackWebhookView,
    VerifyPaymentView,
)

urlpatterns = [
    path("initialize-payment/", InitializePaymentView.as_view(), name="initialize-payment"),
    path("verify-payment/", VerifyPaymentView.as_view(), name="verify-payment"),
    path("create-virtual-account/", CreateVirtualAccountView.as_view(), name="create-virtual-account"),
    path("paystack-webhook/", PaystackWebhookView.as_view(), name="paystack-webhook"),
]
