from django.urls import path

from apps.orders.views import AdminOrdersView, OrderPayWithWalletView

urlpatterns = [
    path("admin-orders/", AdminOrdersView.as_view(), name="admin-orders"),
    path("orders/<uuid:pk>/pay-with-wallet/", OrderPayWithWalletView.as_view(), name="order-pay-with-wallet"),
]
