"""Catalog app models.

Brands, products and their sellable sizes. Records are seeded and
maintained by the catalog service; the storefront core only mutates the
stock counters on `ProductSize`, and only through `inventory.services`.
"""

from decimal import Decimal

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Brand(TimeStampedModel):
    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=140, unique=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Product(TimeStampedModel):
    """Core product entity (one fragrance, many sizes)."""

    brand = models.ForeignKey(Brand, related_name="products", on_delete=models.PROTECT)
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class ProductSize(TimeStampedModel):
    """A sellable size of a product and the stock counters behind it.

    `stock_quantity` is physically available, `reserved_quantity` is claimed
    by open carts. The difference is what new reservations may take.
    """

    product = models.ForeignKey(Product, related_name="sizes", on_delete=models.CASCADE)
    size_ml = models.PositiveIntegerField()
    sku = models.CharField(max_length=64, unique=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    sale_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    stock_quantity = models.IntegerField(default=0)
    reserved_quantity = models.IntegerField(default=0)
    low_stock_threshold = models.IntegerField(default=5)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["size_ml", "id"]
        constraints = [
            models.CheckConstraint(name="size_stock_non_negative", condition=models.Q(stock_quantity__gte=0)),
            models.CheckConstraint(name="size_reserved_non_negative", condition=models.Q(reserved_quantity__gte=0)),
            models.CheckConstraint(
                name="size_reserved_le_stock",
                condition=models.Q(reserved_quantity__lte=models.F("stock_quantity")),
            ),
            models.CheckConstraint(name="size_price_non_negative", condition=models.Q(price__gte=0)),
            models.UniqueConstraint(fields=["product", "size_ml"], name="unique_size_per_product"),
        ]
        indexes = [
            models.Index(fields=["product", "is_active"], name="size_product_active_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.sku} ({self.size_ml}ml) q={self.stock_quantity} r={self.reserved_quantity}"

    @property
    def sellable_quantity(self) -> int:
        return int(self.stock_quantity) - int(self.reserved_quantity)

    @property
    def effective_price(self) -> Decimal:
        """Price a new cart line is snapshotted at: the sale price when set."""
        if self.sale_price is not None:
            return self.sale_price
        return self.price

    @property
    def is_low_stock(self) -> bool:
        return self.sellable_quantity <= int(self.low_stock_threshold)
