"""Inventory ledger services: reservations and stock movements.

Every change to `ProductSize.stock_quantity` / `reserved_quantity` goes
through this module. Counter changes are single conditional UPDATEs on the
size row (the WHERE clause carries the availability check), so two callers
racing for the same size can never both succeed past sellable stock.
Reservation rows are locked with `select_for_update` while their state
changes.
"""

import logging

from catalog.models import ProductSize
from django.db import transaction
from django.db.models import F
from django.db.models.functions import Greatest
from django.utils import timezone

from .models import StockMovement, StockReservation

logger = logging.getLogger("nocturne.inventory")


class MovementError(Exception):
    """Base class for ledger failures."""

    code = "stock_error"

    def __init__(self, message: str = "", *, size_id=None, requested=None, available=None):
        super().__init__(message or self.__class__.__name__)
        self.size_id = size_id
        self.requested = requested
        self.available = available


class InsufficientStock(MovementError):
    """Requested quantity exceeds sellable stock."""

    code = "insufficient_stock"


class InactiveSize(MovementError):
    """Size is missing or no longer sellable."""

    code = "inactive_size"


class StockUnavailable(MovementError):
    """Committing would break `0 <= reserved_quantity <= stock_quantity`."""

    code = "stock_unavailable"


class ReservationInactive(MovementError):
    """Reservation token was already released or converted."""

    code = "reservation_inactive"


def _claim(*, size_id: int, quantity: int) -> bool:
    """Add `quantity` to reserved if the size is active and has that much sellable stock."""

    rows = ProductSize.objects.filter(
        id=size_id,
        is_active=True,
        stock_quantity__gte=F("reserved_quantity") + quantity,
    ).update(reserved_quantity=F("reserved_quantity") + quantity, updated_at=timezone.now())
    return rows == 1


def _unclaim(*, size_id: int, quantity: int) -> None:
    ProductSize.objects.filter(id=size_id).update(
        reserved_quantity=Greatest(F("reserved_quantity") - quantity, 0),
        updated_at=timezone.now(),
    )


def _refuse(*, size_id: int, quantity: int):
    """Explain why a claim was refused. Read-only; raises the matching error."""

    size = ProductSize.objects.filter(id=size_id).only("is_active", "stock_quantity", "reserved_quantity").first()
    if size is None or not size.is_active:
        raise InactiveSize("Size is not available for sale", size_id=size_id, requested=quantity, available=0)
    raise InsufficientStock(
        "Insufficient available quantity to reserve",
        size_id=size_id,
        requested=quantity,
        available=max(0, size.sellable_quantity),
    )


@transaction.atomic
def apply_movement(*, size_id: int, movement_type: str, quantity: int, reason: str = "", reference: str = ""):
    """Apply a signed movement to a size's physical stock.

    quantity: positive for inbound/additions, negative for outbound/deductions.
    Deductions may only consume sellable stock, never units held by carts.
    """
    if quantity == 0:
        return None
    now = timezone.now()
    if quantity < 0:
        rows = ProductSize.objects.filter(
            id=size_id,
            stock_quantity__gte=F("reserved_quantity") - quantity,
        ).update(stock_quantity=F("stock_quantity") + quantity, updated_at=now)
        if rows == 0:
            if not ProductSize.objects.filter(id=size_id).exists():
                raise MovementError("Size not found", size_id=size_id)
            raise InsufficientStock("Insufficient available quantity", size_id=size_id, requested=-quantity)
    else:
        rows = ProductSize.objects.filter(id=size_id).update(stock_quantity=F("stock_quantity") + quantity, updated_at=now)
        if rows == 0:
            raise MovementError("Size not found", size_id=size_id)

    after = ProductSize.objects.values_list("stock_quantity", flat=True).get(id=size_id)
    movement = StockMovement.objects.create(
        size_id=size_id,
        movement_type=movement_type,
        quantity=quantity,
        quantity_after=after,
        reason=reason,
        reference=reference,
    )
    logger.info(
        "inventory.movement_applied",
        extra={
            "event": "inventory.movement_applied",
            "size_id": size_id,
            "quantity": quantity,
            "quantity_after": after,
            "reference": reference,
        },
    )
    return movement


# Reservation services
@transaction.atomic
def reserve(*, size_id: int, quantity: int, reference: str) -> StockReservation:
    """Claim `quantity` units of a size and return the reservation token.

    Raises InsufficientStock or InactiveSize without side effects.
    """

    if quantity <= 0:
        raise MovementError("Reservation quantity must be positive", size_id=size_id, requested=quantity)
    if not _claim(size_id=size_id, quantity=quantity):
        _refuse(size_id=size_id, quantity=quantity)
    reservation = StockReservation.objects.create(
        size_id=size_id,
        quantity=quantity,
        reference=reference,
        state=StockReservation.STATE_ACTIVE,
    )
    logger.info(
        "inventory.reserved",
        extra={
            "event": "inventory.reserved",
            "reservation_id": reservation.id,
            "size_id": size_id,
            "quantity": quantity,
            "reference": reference,
        },
    )
    return reservation


@transaction.atomic
def adjust(*, reservation_id: int, quantity: int) -> StockReservation:
    """Resize an active reservation.

    Growth is validated against sellable stock with the same conditional
    update as `reserve`; shrinking always succeeds. On failure the
    reservation and the size counters are unchanged.
    """

    if quantity <= 0:
        raise MovementError("Reservation quantity must be positive", requested=quantity)
    try:
        res = StockReservation.objects.select_for_update().get(id=reservation_id)
    except StockReservation.DoesNotExist:
        raise ReservationInactive("Reservation not found")
    if res.state != StockReservation.STATE_ACTIVE:
        raise ReservationInactive("Reservation is no longer active", size_id=res.size_id)

    delta = int(quantity) - int(res.quantity)
    if delta == 0:
        return res
    if delta > 0:
        if not _claim(size_id=res.size_id, quantity=delta):
            _refuse(size_id=res.size_id, quantity=delta)
    else:
        _unclaim(size_id=res.size_id, quantity=-delta)

    # Optimistic guard on the token itself: state and previous quantity must be unchanged
    rows = StockReservation.objects.filter(
        id=res.id, state=StockReservation.STATE_ACTIVE, quantity=res.quantity
    ).update(quantity=quantity, updated_at=timezone.now())
    if rows == 0:
        raise ReservationInactive("Reservation changed concurrently", size_id=res.size_id)
    previous = res.quantity
    res.refresh_from_db()
    logger.info(
        "inventory.adjusted",
        extra={
            "event": "inventory.adjusted",
            "reservation_id": res.id,
            "size_id": res.size_id,
            "quantity_from": previous,
            "quantity_to": res.quantity,
        },
    )
    return res


@transaction.atomic
def release(*, reservation_id: int) -> bool:
    """Give a reservation's units back to sellable stock.

    Idempotent: returns False without touching counters when the token is
    missing, already released, or converted.
    """

    try:
        res = StockReservation.objects.select_for_update().get(id=reservation_id)
    except StockReservation.DoesNotExist:
        return False
    if res.state != StockReservation.STATE_ACTIVE:
        return False
    _unclaim(size_id=res.size_id, quantity=res.quantity)
    res.state = StockReservation.STATE_RELEASED
    res.save(update_fields=["state", "updated_at"])
    logger.info(
        "inventory.released",
        extra={
            "event": "inventory.released",
            "reservation_id": res.id,
            "size_id": res.size_id,
            "quantity": res.quantity,
        },
    )
    return True


@transaction.atomic
def commit(*, reservation_id: int, reason: str = "checkout", reference: str = "") -> StockReservation:
    """Turn a reservation into a sale: deduct it from both stock and reserved.

    Irreversible. Raises StockUnavailable if the counters cannot cover the
    reservation, ReservationInactive if the token is not active.
    """

    try:
        res = StockReservation.objects.select_for_update().get(id=reservation_id)
    except StockReservation.DoesNotExist:
        raise ReservationInactive("Reservation not found")
    if res.state != StockReservation.STATE_ACTIVE:
        raise ReservationInactive("Reservation is no longer active", size_id=res.size_id)

    qty = int(res.quantity)
    rows = ProductSize.objects.filter(
        id=res.size_id,
        reserved_quantity__gte=qty,
        stock_quantity__gte=qty,
    ).update(
        stock_quantity=F("stock_quantity") - qty,
        reserved_quantity=F("reserved_quantity") - qty,
        updated_at=timezone.now(),
    )
    if rows == 0:
        raise StockUnavailable("Insufficient stock to fulfill reservation", size_id=res.size_id, requested=qty)

    after = ProductSize.objects.values_list("stock_quantity", flat=True).get(id=res.size_id)
    StockMovement.objects.create(
        size_id=res.size_id,
        movement_type=StockMovement.TYPE_OUTBOUND,
        quantity=-qty,
        quantity_after=after,
        reason=reason,
        reference=reference,
    )
    res.state = StockReservation.STATE_CONVERTED
    res.save(update_fields=["state", "updated_at"])
    return res


# EOF
