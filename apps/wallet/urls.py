from django.urls import path

from apps.wallet.views import WalletTransactionListView, WalletView, WalletWithdrawView

urlpatterns = [
    path("wallet/", WalletView.as_view(), name="wallet"),
    path("wallet/transactions/", WalletTransactionListView.as_view(), name="wallet-transactions"),
    path("wallet/withdraw/", WalletWithdrawView.as_view(), name="wallet-withdraw"),
]
