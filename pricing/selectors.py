"""Selectors for promotions and shipping methods."""

from decimal import Decimal

from django.conf import settings

from .models import Promotion, ShippingMethod


def get_promotion_by_code(code: str | None) -> Promotion | None:
    if not code:
        return None
    return Promotion.objects.filter(code=code.strip().upper()).first()


def list_active_shipping_methods():
    return ShippingMethod.objects.filter(is_active=True).order_by("sort_order", "name")


def get_active_shipping_method(shipping_method_id) -> ShippingMethod | None:
    if not shipping_method_id:
        return None
    return ShippingMethod.objects.filter(id=shipping_method_id, is_active=True).first()


def list_live_promotions(*, now):
    return Promotion.objects.filter(is_active=True, starts_at__lte=now, ends_at__gt=now).order_by("ends_at")


def configured_tax_rate() -> Decimal:
    """Tax rate (fraction) handed to `price_cart`; jurisdiction logic lives elsewhere."""

    return Decimal(str(getattr(settings, "CHECKOUT_TAX_RATE", "0.07")))
