"""Pricing app models: promotion rules and shipping methods.

Both are plain rules. Applying them to a cart is done by `pricing.engine`,
which never writes to the database.
"""

from decimal import Decimal

from common.choices import DiscountType
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Promotion(TimeStampedModel):
    """Promotion code with a discount rule and a validity window.

    `discount_value` is a percentage (10 = 10%) for percentage promotions,
    a currency amount for fixed-amount ones, and ignored for free shipping.
    """

    TYPE_PERCENTAGE = DiscountType.PERCENTAGE
    TYPE_FIXED_AMOUNT = DiscountType.FIXED_AMOUNT
    TYPE_FREE_SHIPPING = DiscountType.FREE_SHIPPING
    TYPE_CHOICES = DiscountType.choices

    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    discount_value = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    min_order_total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    maximum_discount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    times_used = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["-starts_at", "code"]
        constraints = [
            models.CheckConstraint(name="promotion_value_non_negative", condition=models.Q(discount_value__gte=0)),
            models.CheckConstraint(name="promotion_window_ordered", condition=models.Q(ends_at__gt=models.F("starts_at"))),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.code

    def save(self, *args, **kwargs):
        if self.code:
            self.code = self.code.strip().upper()
        super().save(*args, **kwargs)


class ShippingMethod(TimeStampedModel):
    """Flat-rate shipping option, free above an optional order threshold."""

    name = models.CharField(max_length=120)
    code = models.SlugField(max_length=64, unique=True)
    description = models.TextField(blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2)
    free_threshold = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    estimated_days_min = models.PositiveIntegerField(default=1)
    estimated_days_max = models.PositiveIntegerField(default=5)
    is_express = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True, db_index=True)
    sort_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "name"]
        constraints = [
            models.CheckConstraint(name="shipping_cost_non_negative", condition=models.Q(cost__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name
