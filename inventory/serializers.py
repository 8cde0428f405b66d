"""Serializers for the inventory ledger.

Read-only serializers for stock per size, movements and reservations, plus
the staff write serializer for manual stock corrections.
"""

from catalog.models import ProductSize
from common.choices import MovementType
from rest_framework import serializers

from .models import StockMovement, StockReservation


class SizeStockSerializer(serializers.ModelSerializer):
    """Read-only stock for a size.

    Exposes computed ``available`` (sellable) and the low-stock flag.
    """

    product_id = serializers.IntegerField(read_only=True)
    available = serializers.IntegerField(source="sellable_quantity", read_only=True)
    low_stock = serializers.BooleanField(source="is_low_stock", read_only=True)

    class Meta:
        model = ProductSize
        fields = [
            "id",
            "product_id",
            "sku",
            "size_ml",
            "stock_quantity",
            "reserved_quantity",
            "available",
            "low_stock",
            "is_active",
            "updated_at",
        ]
        read_only_fields = fields


class StockMovementSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockMovement
        fields = [
            "id",
            "size",
            "movement_type",
            "quantity",
            "quantity_after",
            "reason",
            "reference",
            "created_at",
        ]
        read_only_fields = fields


class StockReservationSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockReservation
        fields = [
            "id",
            "size",
            "quantity",
            "reference",
            "state",
            "created_at",
        ]
        read_only_fields = fields


class ApplyMovementSerializer(serializers.Serializer):
    """Signed stock correction: positive restocks, negative removes sellable units."""

    movement_type = serializers.ChoiceField(choices=MovementType.choices, default=MovementType.ADJUST)
    quantity = serializers.IntegerField()
    reason = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    reference = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError("Quantity must be non-zero.")
        return value


# EOF
