from django.contrib import admin

from apps.promotions.models import Promotion


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "discount_value", "usage_count", "usage_limit", "is_active", "valid_until")
    list_filter = ("discount_type", "is_active")
    search_fields = ("code", "name")
    readonly_fields = ("usage_count", "created_at")
