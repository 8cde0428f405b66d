"""Admin registration for cart models.

Provides admin interfaces for `Cart` and `CartItem`, with inline items on
the cart page for support staff. Lines are read-only here: quantities
only change through the cart services so reservations stay in step.
"""

from django.contrib import admin, messages
from django.db import DatabaseError
from inventory.services import MovementError

from .models import Cart, CartItem
from .services import clear_cart, expire_idle_carts


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    can_delete = False
    fields = ("size", "quantity", "unit_price", "gift_wrap", "sample_included", "reservation", "created_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


class OwnerTypeFilter(admin.SimpleListFilter):
    title = "owner type"
    parameter_name = "owner_type"

    def lookups(self, request, model_admin):
        return (
            ("user", "User carts"),
            ("guest", "Guest carts"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value == "user":
            return queryset.filter(user__isnull=False)
        if value == "guest":
            return queryset.filter(user__isnull=True)
        return queryset


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "session_id", "promotion_code", "shipping_method", "updated_at", "created_at")
    list_filter = (OwnerTypeFilter,)
    search_fields = ("session_id", "user__username", "user__email")
    ordering = ("-updated_at",)
    readonly_fields = ("created_at", "updated_at")
    inlines = [CartItemInline]
    list_select_related = ("user", "shipping_method")
    actions = ["action_clear_cart", "action_expire_idle"]

    @admin.action(description="Clear cart (release reservations)")
    def action_clear_cart(self, request, queryset):
        successes = 0
        failures = 0
        for cart in queryset:
            try:
                clear_cart(cart=cart)
                successes += 1
            except (MovementError, DatabaseError):
                failures += 1
        if successes:
            messages.success(request, f"Cleared {successes} cart(s).")
        if failures:
            messages.error(request, f"Failed to clear {failures} cart(s).")

    @admin.action(description="Expire idle carts now (all carts past the idle TTL)")
    def action_expire_idle(self, request, queryset):
        count = expire_idle_carts()
        messages.success(request, f"Expired {count} idle cart(s).")

    def has_delete_permission(self, request, obj=None):
        # Deleting here would bypass reservation release
        return False


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ("id", "cart", "size", "quantity", "unit_price", "reservation", "updated_at")
    search_fields = ("size__sku", "cart__user__email", "cart__session_id")
    ordering = ("id",)
    readonly_fields = ("cart", "product", "size", "quantity", "unit_price", "reservation", "created_at", "updated_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# EOF
