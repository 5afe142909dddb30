from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User, Vendor


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (("Marketplace", {"fields": ("role", "full_name", "phone", "wallet_balance")}),)
    readonly_fields = ("wallet_balance",)
    list_display = DjangoUserAdmin.list_display + ("role", "wallet_balance")
    list_filter = DjangoUserAdmin.list_filter + ("role",)


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ("business_name", "user", "is_approved", "created_at")
    list_filter = ("is_approved",)
    search_fields = ("business_name", "user__username", "user__email")
