"""Cart serializers for read and write operations."""

from rest_framework import serializers

from .models import CartItem
from .selectors import cart_items, cart_totals, empty_totals
from .services import add_item, update_item


class CartItemReadSerializer(serializers.ModelSerializer):
    """Read serializer for a cart item."""

    product_id = serializers.IntegerField(read_only=True)
    size_id = serializers.IntegerField(read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    sku = serializers.CharField(source="size.sku", read_only=True)
    size_ml = serializers.IntegerField(source="size.size_ml", read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    added_at = serializers.DateTimeField(read_only=True)

    class Meta:
        model = CartItem
        fields = [
            "id",
            "product_id",
            "size_id",
            "product_name",
            "sku",
            "size_ml",
            "quantity",
            "unit_price",
            "line_total",
            "gift_wrap",
            "sample_included",
            "added_at",
        ]


class CartReadSerializer(serializers.Serializer):
    """Read serializer for the cart summary, items and freshly priced totals."""

    id = serializers.IntegerField(allow_null=True)
    guest = serializers.BooleanField()
    items = CartItemReadSerializer(many=True)
    promotion_code = serializers.CharField(allow_blank=True)
    shipping_method_id = serializers.IntegerField(allow_null=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    item_count = serializers.IntegerField()
    promotion_issue = serializers.CharField(allow_null=True)

    @classmethod
    def from_cart(cls, *, cart):
        totals = cart_totals(cart=cart)
        return cls(
            {
                "id": cart.id,
                "guest": cart.is_guest,
                "items": list(cart_items(cart=cart)),
                "promotion_code": cart.promotion_code,
                "shipping_method_id": cart.shipping_method_id,
                "subtotal": totals.subtotal,
                "discount_amount": totals.discount_amount,
                "shipping_cost": totals.shipping_cost,
                "tax_amount": totals.tax_amount,
                "total": totals.total,
                "item_count": totals.item_count,
                "promotion_issue": totals.promotion_issue,
            }
        )

    @classmethod
    def empty(cls, *, guest: bool):
        """Body for a caller who has no cart yet."""

        totals = empty_totals()
        return cls(
            {
                "id": None,
                "guest": guest,
                "items": [],
                "promotion_code": "",
                "shipping_method_id": None,
                "subtotal": totals.subtotal,
                "discount_amount": totals.discount_amount,
                "shipping_cost": totals.shipping_cost,
                "tax_amount": totals.tax_amount,
                "total": totals.total,
                "item_count": totals.item_count,
                "promotion_issue": None,
            }
        )


class AddItemSerializer(serializers.Serializer):
    """Write serializer for adding a size to the cart."""

    size_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    gift_wrap = serializers.BooleanField(default=False)
    sample_included = serializers.BooleanField(default=False)

    def create(self, validated_data):  # type: ignore[override]
        return add_item(cart=self.context["cart"], **validated_data)


class UpdateItemSerializer(serializers.Serializer):
    """Write serializer for changing a line's quantity or options."""

    quantity = serializers.IntegerField(min_value=1, required=False)
    gift_wrap = serializers.BooleanField(required=False)
    sample_included = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide quantity, gift_wrap or sample_included.")
        return attrs

    def update(self, instance, validated_data):  # type: ignore[override]
        return update_item(cart=self.context["cart"], item_id=instance.id, **validated_data)


class ApplyPromotionSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=64)


class ShippingSelectionSerializer(serializers.Serializer):
    shipping_method_id = serializers.IntegerField(allow_null=True)


class MergeGuestSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=64, required=False)
