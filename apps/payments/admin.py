from django.contrib import admin

from apps.payments.models import PaymentReference


@admin.register(PaymentReference)
class PaymentReferenceAdmin(admin.ModelAdmin):
    list_display = ("reference", "user", "purpose", "amount_requested", "amount_paid", "status", "verified_at")
    list_filter = ("purpose", "status")
    search_fields = ("reference", "email", "user__username")
    readonly_fields = ("created_at", "updated_at", "verified_at")
