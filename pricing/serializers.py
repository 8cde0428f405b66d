"""Serializers for promotions, shipping methods and priced totals."""

from rest_framework import serializers

from .models import Promotion, ShippingMethod


class ShippingMethodSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShippingMethod
        fields = [
            "id",
            "name",
            "code",
            "description",
            "cost",
            "free_threshold",
            "estimated_days_min",
            "estimated_days_max",
            "is_express",
        ]
        read_only_fields = fields


class PromotionPublicSerializer(serializers.ModelSerializer):
    class Meta:
        model = Promotion
        fields = [
            "code",
            "name",
            "description",
            "discount_type",
            "discount_value",
            "min_order_total",
            "maximum_discount",
            "ends_at",
        ]
        read_only_fields = fields


class TotalsSerializer(serializers.Serializer):
    """Read serializer for `pricing.engine.Totals`."""

    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    item_count = serializers.IntegerField()
    promotion_code = serializers.CharField(allow_null=True)
    promotion_issue = serializers.CharField(allow_null=True)
    free_shipping = serializers.BooleanField()


class ValidatePromotionSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=64)
    order_total = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
