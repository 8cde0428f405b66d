"""Admin registrations for pricing rules."""

from django.contrib import admin

from .models import Promotion, ShippingMethod


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "discount_type", "discount_value", "starts_at", "ends_at", "times_used", "is_active")
    list_filter = ("discount_type", "is_active")
    search_fields = ("code", "name")
    readonly_fields = ("times_used", "created_at", "updated_at")
    date_hierarchy = "starts_at"


@admin.register(ShippingMethod)
class ShippingMethodAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "cost", "free_threshold", "is_express", "is_active", "sort_order")
    list_filter = ("is_active", "is_express")
    search_fields = ("name", "code")
    prepopulated_fields = {"code": ("name",)}
