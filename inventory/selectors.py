"""Selectors for the inventory ledger (read-only)."""

from catalog.models import ProductSize

from .models import StockReservation


def sellable_quantity(size_id: int) -> int:
    try:
        size = ProductSize.objects.only("stock_quantity", "reserved_quantity").get(id=size_id)
    except ProductSize.DoesNotExist:
        return 0
    return size.sellable_quantity


def list_stock_for_product(product_id: int):
    qs = ProductSize.objects.filter(product_id=product_id).order_by("size_ml")
    return [
        {
            "sku": s.sku,
            "size_ml": s.size_ml,
            "stock_quantity": s.stock_quantity,
            "reserved_quantity": s.reserved_quantity,
            "available": s.sellable_quantity,
            "low_stock": s.is_low_stock,
        }
        for s in qs
    ]


def list_active_reservations_for_size(size_id: int):
    return list(
        StockReservation.objects.filter(size_id=size_id, state=StockReservation.STATE_ACTIVE)
        .order_by("-created_at")
        .values("id", "quantity", "reference")
    )


def reservation_problem(reservation: StockReservation | None, *, quantity: int) -> str | None:
    """Return why a reservation cannot be committed for `quantity` units, or None if it can.

    Reads current state only; used as the checkout pre-check.
    """

    if reservation is None:
        return "reservation_missing"
    fresh = StockReservation.objects.select_related("size").filter(id=reservation.id).first()
    if fresh is None or fresh.state != StockReservation.STATE_ACTIVE:
        return "reservation_inactive"
    if int(fresh.quantity) != int(quantity):
        return "reservation_mismatch"
    size = fresh.size
    if not size.is_active:
        return "inactive_size"
    if int(size.reserved_quantity) < int(quantity) or int(size.stock_quantity) < int(quantity):
        return "stock_unavailable"
    return None
