"""DRF serializers for Orders.

Totals are the snapshot taken at checkout; nothing is recomputed here.
"""

from common.choices import OrderStatus
from rest_framework import serializers

from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product",
            "size",
            "product_name",
            "brand_name",
            "sku",
            "size_ml",
            "quantity",
            "unit_price",
            "line_total",
            "gift_wrap",
            "sample_included",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """API representation for an order and its immutable line items."""

    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "number",
            "email",
            "currency",
            "status",
            "payment_status",
            "fulfillment_status",
            "subtotal",
            "discount_amount",
            "shipping_cost",
            "tax_amount",
            "total_amount",
            "promotion_code",
            "shipping_method_name",
            "tracking_number",
            "paid_at",
            "shipped_at",
            "delivered_at",
            "cancelled_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class CheckoutSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False, allow_blank=True)


class StatusTransitionSerializer(serializers.Serializer):
    """Fulfillment-side status change."""

    status = serializers.ChoiceField(
        choices=[OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.REFUNDED]
    )
    tracking_number = serializers.CharField(max_length=120, required=False, allow_blank=True)


class PaymentWebhookSerializer(serializers.Serializer):
    SUCCEEDED = {"payment_succeeded", "payment.succeeded"}
    FAILED = {"payment_failed", "payment.failed"}

    order_number = serializers.CharField(max_length=32)
    event = serializers.CharField(max_length=64)
    payment_reference = serializers.CharField(max_length=120, required=False, allow_blank=True)

    def validate_event(self, value):
        value = str(value).lower()
        if value not in self.SUCCEEDED | self.FAILED:
            raise serializers.ValidationError("Unsupported event")
        return value
