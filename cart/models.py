"""Cart app models.

A cart belongs to exactly one owner: an authenticated user or an anonymous
session. Every line holds a live `inventory.StockReservation` for its
quantity; the line's existence is the record that the reservation is live.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart bound to a user or to a guest session id.

    Carts are deleted on checkout, on merge into a user cart and when the
    idle sweep expires them; there is no status column.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="carts",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )
    session_id = models.CharField(max_length=64, null=True, blank=True)
    promotion_code = models.CharField(max_length=64, blank=True, default="")
    shipping_method = models.ForeignKey(
        "pricing.ShippingMethod",
        related_name="carts",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )

    class Meta:
        ordering = ["-updated_at"]
        constraints = [
            models.CheckConstraint(
                name="cart_single_owner",
                condition=(
                    models.Q(user__isnull=False, session_id__isnull=True)
                    | models.Q(user__isnull=True, session_id__isnull=False)
                ),
            ),
            models.UniqueConstraint(
                fields=["user"], condition=models.Q(user__isnull=False), name="unique_cart_per_user"
            ),
            models.UniqueConstraint(
                fields=["session_id"], condition=models.Q(session_id__isnull=False), name="unique_cart_per_session"
            ),
        ]
        indexes = [
            models.Index(fields=["updated_at"], name="cart_updated_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        owner = f"user={self.user_id}" if self.user_id else f"session={self.session_id}"
        return f"Cart#{self.id} ({owner})"

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


class CartItem(TimeStampedModel):
    """Line item for one size with one set of gift options."""

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="cart_items", on_delete=models.CASCADE)
    size = models.ForeignKey("catalog.ProductSize", related_name="cart_items", on_delete=models.CASCADE)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    gift_wrap = models.BooleanField(default=False)
    sample_included = models.BooleanField(default=False)
    reservation = models.ForeignKey(
        "inventory.StockReservation",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="cart_items",
    )

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "size", "gift_wrap", "sample_included"], name="unique_line_per_cart"
            ),
            models.CheckConstraint(name="cart_item_quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem#{self.id} cart={self.cart_id} size={self.size_id} qty={self.quantity}"

    @property
    def added_at(self):
        return self.created_at

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.quantity))
