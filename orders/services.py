"""Checkout coordinator and order lifecycle services.

Checkout runs a read-only pre-check over every cart line before the first
ledger commit. A failed pre-check raises `CheckoutFailed` with zero ledger
mutation and leaves the cart and its reservations untouched. Once the
pre-check passes, pricing, commits, order rows and cart deletion happen in
one transaction.
"""

import hashlib
import json
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Optional, Tuple

from cart.models import Cart, CartItem
from common.choices import FulfillmentStatus, MovementType, OrderStatus, PaymentStatus
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone
from inventory.selectors import reservation_problem
from inventory.services import MovementError, apply_movement, commit
from pricing.engine import Totals, price_cart
from pricing.models import Promotion
from pricing.selectors import configured_tax_rate, get_promotion_by_code

from .models import IdempotencyKey, Order, OrderItem

logger = logging.getLogger("nocturne.orders")


class CheckoutFailed(Exception):
    """Checkout aborted before anything was committed; the cart is unchanged."""

    code = "checkout_failed"

    MESSAGES = {
        "empty_cart": "Cart is empty",
        "stock_changed": "Availability changed for some items in your cart",
    }

    def __init__(self, reason: str, lines: Optional[list] = None):
        super().__init__(self.MESSAGES.get(reason, reason))
        self.reason = reason
        self.lines = lines or []


class InvalidStateTransition(Exception):
    code = "invalid_transition"

    def __init__(self, current: str, target: str, message: str | None = None):
        super().__init__(message or f"Cannot move order from {current} to {target}")
        self.current = current
        self.target = target


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def _log_status_change(order: Order, prev: str) -> None:
    logger.info(
        "order_status_changed",
        extra={
            "event": "order_status_changed",
            "order_id": order.id,
            "order_number": order.number,
            "user_id": order.user_id,
            "status_from": prev,
            "status_to": order.status,
        },
    )


# Checkout


def _line_problems(items) -> list:
    problems = []
    for item in items:
        reason = None
        if not item.product.is_active:
            reason = "inactive_size"
        else:
            reservation = item.reservation if item.reservation_id else None
            reason = reservation_problem(reservation, quantity=item.quantity)
        if reason:
            size = item.size
            size.refresh_from_db(fields=["stock_quantity", "reserved_quantity", "is_active"])
            problems.append(
                {
                    "item_id": item.id,
                    "size_id": item.size_id,
                    "sku": size.sku,
                    "quantity": int(item.quantity),
                    "available": max(0, size.sellable_quantity) if size.is_active else 0,
                    "reason": reason,
                }
            )
    return problems


def _price(cart: Cart, items, *, now, promotion) -> Totals:
    code = (cart.promotion_code or "").strip() or None
    shipping = cart.shipping_method if cart.shipping_method_id and cart.shipping_method.is_active else None
    return price_cart(
        items,
        now=now,
        promotion=promotion,
        promotion_code=code if promotion is not None else None,
        shipping=shipping,
        tax_rate=configured_tax_rate(),
    )


def _claim_promotion_use(promotion: Promotion) -> bool:
    rows = Promotion.objects.filter(id=promotion.id).filter(
        Q(usage_limit__isnull=True) | Q(usage_limit__gt=F("times_used"))
    ).update(times_used=F("times_used") + 1)
    return rows == 1


def checkout_cart(*, cart: Cart, email: str = "") -> Order:
    """Turn the cart into a pending order.

    Raises CheckoutFailed("empty_cart") for a cart without lines and
    CheckoutFailed("stock_changed", lines) when any line's reservation or
    size is no longer good; in both cases nothing has been written.
    """

    with transaction.atomic():
        cart = Cart.objects.select_for_update(of=("self",)).select_related("user", "shipping_method").get(id=cart.id)
        items = list(
            CartItem.objects.select_for_update(of=("self",))
            .filter(cart=cart)
            .select_related("size", "product", "product__brand", "reservation")
            .order_by("id")
        )
        if not items:
            raise CheckoutFailed("empty_cart")

        problems = _line_problems(items)
        if problems:
            logger.warning(
                "checkout_failed",
                extra={"event": "checkout_failed", "cart_id": cart.id, "reason": "stock_changed", "lines": problems},
            )
            raise CheckoutFailed("stock_changed", problems)

        now = timezone.now()
        promotion = get_promotion_by_code(cart.promotion_code)
        totals = _price(cart, items, now=now, promotion=promotion)
        if totals.promotion_code and not _claim_promotion_use(promotion):
            # Limit reached by a concurrent checkout; price without it
            logger.info(
                "checkout.promotion_dropped",
                extra={"event": "checkout.promotion_dropped", "cart_id": cart.id, "promotion_code": promotion.code},
            )
            totals = _price(cart, items, now=now, promotion=None)

        order = Order.objects.create(
            user=cart.user,
            email=email or getattr(cart.user, "email", "") or "",
            currency=getattr(settings, "STORE_CURRENCY", "USD"),
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            shipping_cost=totals.shipping_cost,
            tax_amount=totals.tax_amount,
            total_amount=totals.total,
            promotion_code=totals.promotion_code or "",
            shipping_method=cart.shipping_method,
            shipping_method_name=getattr(cart.shipping_method, "name", ""),
        )
        prefix = getattr(settings, "ORDER_NUMBER_PREFIX", "ORD")
        order.number = f"{prefix}-{int(order.id):06d}"
        order.save(update_fields=["number", "updated_at"])

        for item in items:
            try:
                commit(reservation_id=item.reservation_id, reason="checkout", reference=f"order:{order.number}")
            except MovementError as exc:
                # Pre-check passed but the row moved underneath us; the transaction rolls back
                raise CheckoutFailed(
                    "stock_changed",
                    [
                        {
                            "item_id": item.id,
                            "size_id": item.size_id,
                            "sku": item.size.sku,
                            "quantity": int(item.quantity),
                            "available": exc.available,
                            "reason": exc.code,
                        }
                    ],
                ) from exc
            OrderItem.objects.create(
                order=order,
                product=item.product,
                size=item.size,
                product_name=item.product.name,
                brand_name=item.product.brand.name,
                sku=item.size.sku,
                size_ml=item.size.size_ml,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
                gift_wrap=item.gift_wrap,
                sample_included=item.sample_included,
            )

        cart_id = cart.id
        cart.delete()

    logger.info(
        "checkout_completed",
        extra={
            "event": "checkout_completed",
            "cart_id": cart_id,
            "order_id": order.id,
            "order_number": order.number,
            "user_id": order.user_id,
            "total_amount": str(order.total_amount),
        },
    )
    return order


# Lifecycle


def transition_order(*, order: Order, target: str, tracking_number: str = "") -> Order:
    """Move an order along the state machine, stamping the matching timestamp.

    Raises InvalidStateTransition for moves the state machine forbids and
    for refunds of orders that were never paid.
    """

    with transaction.atomic():
        order = Order.objects.select_for_update().get(id=order.id)
        prev = order.status
        if not can_transition(prev, target):
            raise InvalidStateTransition(prev, target)
        if target == OrderStatus.REFUNDED and order.payment_status != PaymentStatus.PAID:
            raise InvalidStateTransition(prev, target, "Only paid orders can be refunded")

        now = timezone.now()
        fields = ["status", "updated_at"]
        order.status = target
        if target == OrderStatus.SHIPPED:
            order.shipped_at = now
            fields.append("shipped_at")
            if tracking_number:
                order.tracking_number = tracking_number
                fields.append("tracking_number")
        elif target == OrderStatus.DELIVERED:
            order.delivered_at = now
            order.fulfillment_status = FulfillmentStatus.FULFILLED
            fields += ["delivered_at", "fulfillment_status"]
        elif target == OrderStatus.CANCELLED:
            order.cancelled_at = now
            fields.append("cancelled_at")
            for item in order.items.all():
                apply_movement(
                    size_id=item.size_id,
                    movement_type=MovementType.INBOUND,
                    quantity=int(item.quantity),
                    reason="order cancelled",
                    reference=f"order:{order.number}",
                )
        elif target == OrderStatus.REFUNDED:
            order.payment_status = PaymentStatus.REFUNDED
            fields.append("payment_status")
        order.save(update_fields=fields)
    _log_status_change(order, prev)
    return order


def cancel_order(*, order: Order) -> Order:
    """Cancel a pending or processing order and return its units to stock."""

    return transition_order(order=order, target=OrderStatus.CANCELLED)


def pay_order(*, order: Order, payment_reference: str = "") -> Order:
    """Record a successful payment and advance a pending order to processing.

    Repeated notifications for an already-paid order are no-ops.
    """

    with transaction.atomic():
        order = Order.objects.select_for_update().get(id=order.id)
        if order.payment_status == PaymentStatus.PAID:
            return order
        if order.status in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            raise InvalidStateTransition(order.status, OrderStatus.PROCESSING, "Cannot pay a closed order")
        order.payment_status = PaymentStatus.PAID
        order.paid_at = timezone.now()
        order.payment_reference = payment_reference or order.payment_reference
        order.save(update_fields=["payment_status", "paid_at", "payment_reference", "updated_at"])
    logger.info(
        "order.paid",
        extra={"event": "order.paid", "order_id": order.id, "order_number": order.number},
    )
    if order.status == OrderStatus.PENDING:
        order = transition_order(order=order, target=OrderStatus.PROCESSING)
    return order


def fail_payment(*, order: Order, payment_reference: str = "") -> Order:
    """Record a failed payment attempt. The order stays pending so the customer can retry."""

    with transaction.atomic():
        order = Order.objects.select_for_update().get(id=order.id)
        if order.payment_status == PaymentStatus.PAID:
            raise InvalidStateTransition(order.status, order.status, "Order is already paid")
        order.payment_status = PaymentStatus.FAILED
        order.payment_reference = payment_reference or order.payment_reference
        order.save(update_fields=["payment_status", "payment_reference", "updated_at"])
    logger.warning(
        "order.payment_failed",
        extra={"event": "order.payment_failed", "order_id": order.id, "order_number": order.number},
    )
    return order


# Idempotency


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def with_idempotency(
    *,
    key: str,
    user,
    path: str,
    method: str,
    handler: Callable[[], Tuple[dict, int]],
    request_hash: Optional[str] = None,
    scope: Optional[str] = None,
) -> Tuple[dict, int]:
    """Run handler idempotently and persist its response for the given key and scope.

    - Scope defaults to "user:<id>" for authenticated callers, otherwise "anon".
    - If a record exists and the stored `request_hash` differs from the provided one, returns 409.
    - If a record exists but response is not yet stored, returns 409 to indicate in-progress.
    - If the handler raises, the key is freed so the client can retry.
    """

    if scope is None:
        scope = f"user:{getattr(user, 'id', None)}" if getattr(user, "id", None) else "anon"
    method = str(method).upper()
    path = str(path)

    try:
        with transaction.atomic():
            idem = IdempotencyKey.objects.create(
                key=key,
                user=user if getattr(user, "id", None) else None,
                scope=scope,
                path=path,
                method=method,
                request_hash=request_hash,
                expires_at=timezone.now() + timedelta(hours=24),
            )
    except IntegrityError:
        idem = IdempotencyKey.objects.get(key=key, scope=scope, path=path, method=method)
        # Guard against key reuse with different fingerprints
        if idem.request_hash and request_hash and idem.request_hash != request_hash:
            return {"detail": "Idempotency key reused with different request payload", "code": "idempotency_conflict"}, 409
        if idem.response_json is not None and idem.response_code is not None:
            return idem.response_json, int(idem.response_code)
        return {"detail": "Request in progress", "code": "idempotency_in_progress"}, 409

    try:
        body, code = handler()
    except Exception:
        IdempotencyKey.objects.filter(id=idem.id).delete()
        raise

    IdempotencyKey.objects.filter(id=idem.id).update(response_json=_json_safe(body), response_code=code)
    return body, code


def compute_request_hash(data: Optional[dict]) -> Optional[str]:
    """Compute a canonical SHA256 hash of the request body.

    Uses sorted keys JSON representation to stabilize the hash across equivalent payloads.
    Returns None when data is falsy.
    """
    if not data:
        return None
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def purge_expired_idempotency_keys(*, now=None) -> int:
    deleted, _ = IdempotencyKey.objects.filter(expires_at__lt=now or timezone.now()).delete()
    return deleted
