from django.contrib import admin

from .models import IdempotencyKey, Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = ("sku", "product_name", "brand_name", "size_ml", "quantity", "unit_price", "line_total", "gift_wrap")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "status", "payment_status", "total_amount", "user", "email", "created_at")
    list_filter = ("status", "payment_status", "fulfillment_status", "created_at")
    search_fields = ("number", "email", "tracking_number")
    date_hierarchy = "created_at"
    inlines = [OrderItemInline]
    readonly_fields = (
        "number",
        "user",
        "subtotal",
        "discount_amount",
        "shipping_cost",
        "tax_amount",
        "total_amount",
        "promotion_code",
        "status",
        "payment_status",
        "fulfillment_status",
        "paid_at",
        "shipped_at",
        "delivered_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    )

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(admin.ModelAdmin):
    list_display = ("id", "key", "scope", "path", "method", "response_code", "created_at")
    list_filter = ("method", "response_code", "created_at")
    search_fields = ("key", "scope", "path")
    date_hierarchy = "created_at"
