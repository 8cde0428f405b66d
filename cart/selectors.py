"""Selectors for read-only cart queries."""

from django.utils import timezone
from pricing.engine import Totals, price_cart
from pricing.selectors import configured_tax_rate, get_promotion_by_code

from .models import Cart, CartItem


def get_cart_for_user(*, user) -> Cart:
    """Return the user's cart, creating it if missing."""

    cart, _ = Cart.objects.get_or_create(user=user, defaults={"session_id": None})
    return cart


def get_cart_for_session(*, session_id: str) -> Cart:
    """Return the guest session's cart, creating it if missing."""

    cart, _ = Cart.objects.get_or_create(session_id=session_id, user=None)
    return cart


def find_user_cart(*, user) -> Cart | None:
    return Cart.objects.filter(user=user).first()


def find_guest_cart(*, session_id: str) -> Cart | None:
    if not session_id:
        return None
    return Cart.objects.filter(session_id=session_id, user__isnull=True).first()


def cart_items(*, cart: Cart):
    return CartItem.objects.filter(cart=cart).select_related("size", "product", "product__brand").order_by("id")


def empty_totals(*, now=None) -> Totals:
    return price_cart([], now=now or timezone.now(), tax_rate=configured_tax_rate())


def cart_totals(*, cart: Cart, now=None) -> Totals:
    """Price the cart as it stands now. Re-evaluated on every read."""

    code = (cart.promotion_code or "").strip() or None
    shipping = cart.shipping_method if cart.shipping_method_id and cart.shipping_method.is_active else None
    return price_cart(
        list(cart_items(cart=cart)),
        now=now or timezone.now(),
        promotion=get_promotion_by_code(code),
        promotion_code=code,
        shipping=shipping,
        tax_rate=configured_tax_rate(),
    )
