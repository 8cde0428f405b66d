"""Admin registrations for inventory app."""

from django.contrib import admin

from .models import StockMovement, StockReservation


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ("id", "size", "movement_type", "quantity", "quantity_after", "reason", "reference", "created_at")
    list_filter = ("movement_type",)
    search_fields = ("size__sku", "reference")
    readonly_fields = ("size", "movement_type", "quantity", "quantity_after", "reason", "reference", "created_at")


@admin.register(StockReservation)
class StockReservationAdmin(admin.ModelAdmin):
    list_display = ("id", "size", "quantity", "state", "reference", "created_at")
    list_filter = ("state",)
    search_fields = ("size__sku", "reference")
    # Counters on ProductSize must only change through inventory.services
    readonly_fields = ("size", "quantity", "state", "reference", "created_at")


# EOF
