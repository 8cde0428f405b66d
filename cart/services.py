"""Cart services: mutations that keep each line's reservation in step with its quantity.

Every quantity change goes through the inventory ledger (`reserve`,
`adjust`, `release`). Ledger errors propagate unchanged; each service runs
in one transaction so a failed ledger call leaves the cart as it was.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from catalog.models import ProductSize
from django.conf import settings
from django.db import DatabaseError, transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from inventory.models import StockReservation
from inventory.services import InactiveSize, InsufficientStock, MovementError, ReservationInactive, adjust, release, reserve
from pricing.engine import PromotionInapplicable, check_promotion
from pricing.selectors import get_active_shipping_method, get_promotion_by_code

from .models import Cart, CartItem
from .selectors import cart_totals, find_guest_cart, get_cart_for_user

logger = logging.getLogger("nocturne.cart")


class CartError(Exception):
    """Raised for cart misuse that is not a stock failure."""

    code = "cart_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code


@dataclass
class MergeResult:
    cart: Cart
    # One entry per guest line that could not be merged in full
    shortfalls: list = field(default_factory=list)


def _reference(cart: Cart) -> str:
    return f"cart:{cart.id}"


def _touch(cart: Cart) -> None:
    now = timezone.now()
    Cart.objects.filter(id=cart.id).update(updated_at=now)
    cart.updated_at = now


def _sellable_size(size_id: int) -> ProductSize:
    size = ProductSize.objects.select_related("product").filter(id=size_id).first()
    if size is None or not size.is_active or not size.product.is_active:
        raise InactiveSize("Size is not available for sale", size_id=size_id, available=0)
    return size


def _hold(item: CartItem, quantity: int) -> StockReservation:
    """Make the item's reservation cover exactly `quantity` units."""

    if item.reservation_id:
        try:
            return adjust(reservation_id=item.reservation_id, quantity=quantity)
        except ReservationInactive:
            # Token was released underneath us; claim afresh
            pass
    return reserve(size_id=item.size_id, quantity=quantity, reference=_reference(item.cart))


def _find_line(cart: Cart, *, size_id: int, gift_wrap: bool, sample_included: bool, exclude_id=None):
    qs = CartItem.objects.select_for_update().filter(
        cart=cart, size_id=size_id, gift_wrap=gift_wrap, sample_included=sample_included
    )
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return qs.first()


@transaction.atomic
def add_item(
    *, cart: Cart, size_id: int, quantity: int, gift_wrap: bool = False, sample_included: bool = False
) -> CartItem:
    """Add units of a size to the cart.

    A line with the same size and options absorbs the new units through
    `adjust`; otherwise a new line is created holding a fresh reservation
    and the size's current price.
    """

    if quantity <= 0:
        raise CartError("Quantity must be positive", code="invalid_quantity")
    size = _sellable_size(size_id)

    item = _find_line(cart, size_id=size.id, gift_wrap=gift_wrap, sample_included=sample_included)
    if item is not None:
        target = int(item.quantity) + int(quantity)
        reservation = _hold(item, target)
        item.quantity = target
        item.reservation = reservation
        item.save(update_fields=["quantity", "reservation", "updated_at"])
        event = "cart.item_updated"
    else:
        reservation = reserve(size_id=size.id, quantity=quantity, reference=_reference(cart))
        item = CartItem.objects.create(
            cart=cart,
            product_id=size.product_id,
            size=size,
            quantity=quantity,
            unit_price=size.effective_price,
            gift_wrap=gift_wrap,
            sample_included=sample_included,
            reservation=reservation,
        )
        event = "cart.item_added"
    _touch(cart)
    logger.info(
        event,
        extra={
            "event": event,
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "size_id": size.id,
            "quantity": item.quantity,
            "guest": cart.is_guest,
        },
    )
    return item


@transaction.atomic
def update_item(
    *,
    cart: Cart,
    item_id: int,
    quantity: int | None = None,
    gift_wrap: bool | None = None,
    sample_included: bool | None = None,
) -> CartItem:
    """Change a line's quantity and/or gift options.

    If new options collide with another line of the same size, the two are
    folded into that line. On a ledger failure nothing changes.
    """

    item = get_object_or_404(CartItem.objects.select_for_update().select_related("cart"), id=item_id, cart=cart)
    if quantity is not None and quantity <= 0:
        raise CartError("Quantity must be positive", code="invalid_quantity")
    target = int(quantity) if quantity is not None else int(item.quantity)
    wrap = item.gift_wrap if gift_wrap is None else bool(gift_wrap)
    sample = item.sample_included if sample_included is None else bool(sample_included)

    if (wrap, sample) != (item.gift_wrap, item.sample_included):
        other = _find_line(cart, size_id=item.size_id, gift_wrap=wrap, sample_included=sample, exclude_id=item.id)
        if other is not None:
            other.cart = cart
            combined = int(other.quantity) + target
            # Free this line's units first so the fold only needs the net growth
            if item.reservation_id:
                release(reservation_id=item.reservation_id)
            other.reservation = _hold(other, combined)
            other.quantity = combined
            other.save(update_fields=["quantity", "reservation", "updated_at"])
            item.delete()
            _touch(cart)
            logger.info(
                "cart.items_folded",
                extra={
                    "event": "cart.items_folded",
                    "cart_id": cart.id,
                    "from_item_id": item_id,
                    "into_item_id": other.id,
                    "quantity": combined,
                },
            )
            return other

    if target != int(item.quantity) or item.reservation_id is None:
        item.reservation = _hold(item, target)
    item.quantity = target
    item.gift_wrap = wrap
    item.sample_included = sample
    item.save(update_fields=["quantity", "gift_wrap", "sample_included", "reservation", "updated_at"])
    _touch(cart)
    logger.info(
        "cart.item_updated",
        extra={
            "event": "cart.item_updated",
            "cart_id": cart.id,
            "item_id": item.id,
            "size_id": item.size_id,
            "quantity": target,
            "guest": cart.is_guest,
        },
    )
    return item


@transaction.atomic
def remove_item(*, cart: Cart, item_id: int) -> None:
    """Release the line's reservation, then delete the line."""

    try:
        item = CartItem.objects.select_for_update().get(id=item_id, cart=cart)
    except CartItem.DoesNotExist:
        return
    if item.reservation_id:
        release(reservation_id=item.reservation_id)
    item.delete()
    _touch(cart)
    logger.info(
        "cart.item_removed",
        extra={"event": "cart.item_removed", "cart_id": cart.id, "item_id": item_id, "guest": cart.is_guest},
    )


@transaction.atomic
def clear_cart(*, cart: Cart) -> None:
    """Release every reservation and delete all lines; the cart itself stays."""

    for item in CartItem.objects.select_for_update().filter(cart=cart):
        if item.reservation_id:
            release(reservation_id=item.reservation_id)
    CartItem.objects.filter(cart=cart).delete()
    _touch(cart)
    logger.info("cart.cleared", extra={"event": "cart.cleared", "cart_id": cart.id, "guest": cart.is_guest})


def apply_promotion(*, cart: Cart, code: str):
    """Attach a promotion code to the cart and return the re-priced totals.

    Raises PromotionInapplicable (cart untouched) when the code cannot
    apply to the current subtotal.
    """

    code = (code or "").strip().upper()
    promotion = get_promotion_by_code(code)
    subtotal = cart_totals(cart=cart).subtotal
    check_promotion(promotion, subtotal=subtotal, now=timezone.now())
    cart.promotion_code = promotion.code
    cart.save(update_fields=["promotion_code", "updated_at"])
    logger.info(
        "cart.promotion_applied",
        extra={"event": "cart.promotion_applied", "cart_id": cart.id, "promotion_code": promotion.code},
    )
    return cart_totals(cart=cart)


def remove_promotion(*, cart: Cart):
    cart.promotion_code = ""
    cart.save(update_fields=["promotion_code", "updated_at"])
    return cart_totals(cart=cart)


def set_shipping_method(*, cart: Cart, shipping_method_id: int | None):
    """Select a shipping method for the cart; None clears the selection."""

    method = None
    if shipping_method_id is not None:
        method = get_active_shipping_method(shipping_method_id)
        if method is None:
            raise CartError("Shipping method is not available", code="invalid_shipping_method")
    cart.shipping_method = method
    cart.save(update_fields=["shipping_method", "updated_at"])
    return cart_totals(cart=cart)


def _claim_up_to(*, size_id: int, quantity: int, reference: str) -> StockReservation | None:
    """Reserve `quantity` units, or as many as are sellable. None when nothing is left or the size is inactive."""

    try:
        return reserve(size_id=size_id, quantity=quantity, reference=reference)
    except InactiveSize:
        return None
    except InsufficientStock as exc:
        available = int(exc.available or 0)
        if available <= 0:
            return None
        return reserve(size_id=size_id, quantity=min(available, quantity), reference=reference)


@transaction.atomic
def merge_guest_cart(*, session_id: str, user) -> MergeResult:
    """Move a guest cart's lines into the user's cart, then delete the guest cart.

    Lines with no counterpart are moved as-is and keep their reservation.
    Lines matching an existing user line are summed, clamped to what the
    ledger can still give; a size no longer for sale merges nothing. Every
    clamp is reported in `shortfalls`.
    """

    src = find_guest_cart(session_id=session_id)
    if src is None:
        raise CartError("Guest cart not found", code="guest_cart_missing")
    dest = get_cart_for_user(user=user)
    result = MergeResult(cart=dest)

    for item in CartItem.objects.select_for_update().filter(cart=src).order_by("id"):
        match = _find_line(dest, size_id=item.size_id, gift_wrap=item.gift_wrap, sample_included=item.sample_included)
        if match is None and item.reservation_id:
            item.cart = dest
            item.save(update_fields=["cart", "updated_at"])
            StockReservation.objects.filter(id=item.reservation_id).update(reference=_reference(dest))
            continue

        requested = int(item.quantity)
        if item.reservation_id:
            release(reservation_id=item.reservation_id)
        if match is None:
            # Guest line lost its token; claim what is still sellable
            reservation = _claim_up_to(size_id=item.size_id, quantity=requested, reference=_reference(dest))
            merged = int(reservation.quantity) if reservation else 0
            if reservation is not None:
                item.cart = dest
                item.quantity = merged
                item.reservation = reservation
                item.save(update_fields=["cart", "quantity", "reservation", "updated_at"])
            else:
                item.delete()
        else:
            match.cart = dest
            merged = requested
            try:
                match.reservation = _hold(match, int(match.quantity) + requested)
            except InactiveSize:
                # Size left the catalog; the guest units are dropped
                merged = 0
            except InsufficientStock as exc:
                merged = min(requested, max(0, int(exc.available or 0)))
                if merged:
                    match.reservation = _hold(match, int(match.quantity) + merged)
            match.quantity = int(match.quantity) + merged
            match.save(update_fields=["quantity", "reservation", "updated_at"])
            item.delete()
        if merged < requested:
            result.shortfalls.append({"size_id": item.size_id, "requested": requested, "merged": merged})

    src_id = src.id
    src.delete()
    _touch(dest)
    logger.info(
        "cart.merged",
        extra={
            "event": "cart.merged",
            "src_cart_id": src_id,
            "dest_cart_id": dest.id,
            "user_id": getattr(user, "id", None),
            "shortfalls": len(result.shortfalls),
        },
    )
    return result


@transaction.atomic
def _expire_cart(*, cart_id: int, cutoff) -> bool:
    cart = Cart.objects.select_for_update().filter(id=cart_id, updated_at__lt=cutoff).first()
    if cart is None:
        # Touched since the sweep listed it
        return False
    for item in CartItem.objects.select_for_update().filter(cart=cart):
        if item.reservation_id:
            release(reservation_id=item.reservation_id)
    cart.delete()
    return True


def expire_idle_carts(*, now=None, ttl_minutes: int | None = None) -> int:
    """Release and delete carts idle for longer than the TTL.

    Best effort: a cart that fails is logged and left for the next sweep.
    Returns the number of carts expired.
    """

    if ttl_minutes is None:
        ttl_minutes = int(getattr(settings, "CART_IDLE_TTL_MINUTES", 120))
    cutoff = (now or timezone.now()) - timedelta(minutes=int(ttl_minutes))
    expired = 0
    for cart_id in list(Cart.objects.filter(updated_at__lt=cutoff).values_list("id", flat=True)):
        try:
            if _expire_cart(cart_id=cart_id, cutoff=cutoff):
                expired += 1
        except (MovementError, DatabaseError):
            logger.exception("cart.expire_failed", extra={"event": "cart.expire_failed", "cart_id": cart_id})
    logger.info("cart.expired", extra={"event": "cart.expired", "count": expired, "ttl_minutes": ttl_minutes})
    return expired


def release_orphaned_reservations(*, older_than_minutes: int = 30) -> int:
    """Release active reservations that no cart line points at.

    A line's existence is the record of a live reservation; a token left
    behind by an interrupted request has none and would otherwise hold
    stock forever.
    """

    cutoff = timezone.now() - timedelta(minutes=int(older_than_minutes))
    ids = list(
        StockReservation.objects.filter(
            state=StockReservation.STATE_ACTIVE, cart_items__isnull=True, created_at__lt=cutoff
        ).values_list("id", flat=True)
    )
    released = 0
    for reservation_id in ids:
        # A line may have claimed it since the listing
        with transaction.atomic():
            if CartItem.objects.filter(reservation_id=reservation_id).exists():
                continue
            if release(reservation_id=reservation_id):
                released += 1
    if released:
        logger.warning(
            "cart.orphans_released",
            extra={"event": "cart.orphans_released", "count": released},
        )
    return released
