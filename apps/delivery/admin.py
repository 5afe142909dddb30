from django.contrib import admin

from apps.delivery.models import DeliveryAdjustment, DeliveryLog, DeliveryPricing, DeliveryZone


@admin.register(DeliveryZone)
class DeliveryZoneAdmin(admin.ModelAdmin):
    list_display = ("name", "min_distance", "max_distance", "price", "is_active", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name",)


@admin.register(DeliveryPricing)
class DeliveryPricingAdmin(admin.ModelAdmin):
    list_display = (
        "default_base_price",
        "default_price_per_km",
        "min_delivery_charge",
        "max_delivery_distance",
        "free_delivery_threshold",
        "updated_at",
    )

    def has_add_permission(self, request):
        return not DeliveryPricing.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DeliveryLog)
class DeliveryLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "user", "order", "zone", "distance_km", "final_price")
    list_filter = ("action",)
    search_fields = ("user__username",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DeliveryAdjustment)
class DeliveryAdjustmentAdmin(admin.ModelAdmin):
    list_display = ("created_at", "order", "original_price", "adjusted_price", "adjusted_by")
    search_fields = ("order__order_number", "reason")
    readonly_fields = ("created_at",)
