from django.contrib import admin

from apps.wallet.models import VirtualAccount, WalletTransaction


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ("created_at", "user", "type", "amount", "balance_after", "reference_type", "reference_id")
    list_filter = ("type", "reference_type", "status")
    search_fields = ("reference_id", "user__username", "user__email")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(VirtualAccount)
class VirtualAccountAdmin(admin.ModelAdmin):
    list_display = ("user", "account_number", "bank_name", "customer_code", "assigned", "active")
    list_filter = ("assigned", "active")
    search_fields = ("account_number", "customer_code", "user__username", "user__email")
