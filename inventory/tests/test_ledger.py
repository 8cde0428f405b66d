import pytest
from catalog.models import ProductSize
from catalog.tests.factories import ProductSizeFactory
from inventory.models import StockMovement, StockReservation
from inventory.selectors import reservation_problem, sellable_quantity
from inventory.services import (
    InactiveSize,
    InsufficientStock,
    MovementError,
    ReservationInactive,
    StockUnavailable,
    adjust,
    apply_movement,
    commit,
    release,
    reserve,
)


def _counters(size):
    size.refresh_from_db()
    return size.stock_quantity, size.reserved_quantity


@pytest.mark.django_db
def test_reserve_claims_sellable_stock():
    size = ProductSizeFactory(stock_quantity=5)

    res = reserve(size_id=size.id, quantity=2, reference="cart:1")

    assert _counters(size) == (5, 2)
    assert sellable_quantity(size.id) == 3
    assert res.state == StockReservation.STATE_ACTIVE
    assert res.quantity == 2


@pytest.mark.django_db
def test_reserve_beyond_sellable_fails_without_side_effects():
    size = ProductSizeFactory(stock_quantity=5, reserved_quantity=3)

    with pytest.raises(InsufficientStock) as exc:
        reserve(size_id=size.id, quantity=3, reference="cart:2")

    assert exc.value.available == 2
    assert exc.value.requested == 3
    assert _counters(size) == (5, 3)
    assert not StockReservation.objects.exists()


@pytest.mark.django_db
def test_reserve_inactive_size_raises_inactive_size():
    size = ProductSizeFactory(is_active=False)

    with pytest.raises(InactiveSize):
        reserve(size_id=size.id, quantity=1, reference="cart:3")
    assert _counters(size) == (10, 0)


@pytest.mark.django_db
def test_reserve_rejects_non_positive_quantity():
    size = ProductSizeFactory()
    with pytest.raises(MovementError):
        reserve(size_id=size.id, quantity=0, reference="cart:4")


@pytest.mark.django_db
def test_sequential_race_second_reserve_sees_reduced_stock():
    size = ProductSizeFactory(stock_quantity=5)

    reserve(size_id=size.id, quantity=3, reference="cart:a")
    with pytest.raises(InsufficientStock):
        reserve(size_id=size.id, quantity=3, reference="cart:b")

    assert _counters(size) == (5, 3)
    assert StockReservation.objects.filter(state=StockReservation.STATE_ACTIVE).count() == 1


@pytest.mark.django_db
def test_adjust_grows_and_shrinks_reservation():
    size = ProductSizeFactory(stock_quantity=6)
    res = reserve(size_id=size.id, quantity=2, reference="cart:5")

    res = adjust(reservation_id=res.id, quantity=5)
    assert res.quantity == 5
    assert _counters(size) == (6, 5)

    res = adjust(reservation_id=res.id, quantity=1)
    assert res.quantity == 1
    assert _counters(size) == (6, 1)


@pytest.mark.django_db
def test_adjust_growth_beyond_sellable_leaves_token_and_counters_unchanged():
    size = ProductSizeFactory(stock_quantity=4)
    res = reserve(size_id=size.id, quantity=3, reference="cart:6")

    with pytest.raises(InsufficientStock) as exc:
        adjust(reservation_id=res.id, quantity=6)

    assert exc.value.available == 1
    res.refresh_from_db()
    assert res.quantity == 3
    assert _counters(size) == (4, 3)


@pytest.mark.django_db
def test_adjust_released_token_raises_reservation_inactive():
    size = ProductSizeFactory()
    res = reserve(size_id=size.id, quantity=2, reference="cart:7")
    release(reservation_id=res.id)

    with pytest.raises(ReservationInactive):
        adjust(reservation_id=res.id, quantity=3)
    assert _counters(size) == (10, 0)


@pytest.mark.django_db
def test_release_is_idempotent():
    size = ProductSizeFactory(stock_quantity=5)
    res = reserve(size_id=size.id, quantity=2, reference="cart:8")

    assert release(reservation_id=res.id) is True
    after_first = _counters(size)
    assert release(reservation_id=res.id) is False
    assert _counters(size) == after_first == (5, 0)

    res.refresh_from_db()
    assert res.state == StockReservation.STATE_RELEASED


@pytest.mark.django_db
def test_release_unknown_token_is_noop():
    assert release(reservation_id=987654) is False


@pytest.mark.django_db
def test_commit_deducts_stock_and_reserved_and_records_movement():
    size = ProductSizeFactory(stock_quantity=8)
    res = reserve(size_id=size.id, quantity=3, reference="cart:9")

    res = commit(reservation_id=res.id, reference="order:ORD-000001")

    assert res.state == StockReservation.STATE_CONVERTED
    assert _counters(size) == (5, 0)
    movement = StockMovement.objects.get(size=size)
    assert movement.movement_type == StockMovement.TYPE_OUTBOUND
    assert movement.quantity == -3
    assert movement.quantity_after == 5
    assert movement.reference == "order:ORD-000001"


@pytest.mark.django_db
def test_commit_twice_raises_reservation_inactive():
    size = ProductSizeFactory()
    res = reserve(size_id=size.id, quantity=1, reference="cart:10")
    commit(reservation_id=res.id)

    with pytest.raises(ReservationInactive):
        commit(reservation_id=res.id)
    assert _counters(size) == (9, 0)


@pytest.mark.django_db
def test_commit_fails_when_counters_cannot_cover_reservation():
    size = ProductSizeFactory(stock_quantity=5)
    res = reserve(size_id=size.id, quantity=3, reference="cart:11")
    # Simulate a catalog-side correction that bypassed the ledger
    ProductSize.objects.filter(id=size.id).update(reserved_quantity=1, stock_quantity=1)

    with pytest.raises(StockUnavailable):
        commit(reservation_id=res.id)

    res.refresh_from_db()
    assert res.state == StockReservation.STATE_ACTIVE
    assert _counters(size) == (1, 1)


@pytest.mark.django_db
def test_apply_movement_restock_and_correction():
    size = ProductSizeFactory(stock_quantity=10)

    apply_movement(size_id=size.id, movement_type=StockMovement.TYPE_INBOUND, quantity=5, reason="delivery")
    assert _counters(size) == (15, 0)

    movement = apply_movement(size_id=size.id, movement_type=StockMovement.TYPE_ADJUST, quantity=-3, reason="damaged")
    assert movement.quantity_after == 12
    assert _counters(size) == (12, 0)


@pytest.mark.django_db
def test_apply_movement_never_consumes_reserved_units():
    size = ProductSizeFactory(stock_quantity=5)
    reserve(size_id=size.id, quantity=4, reference="cart:12")

    with pytest.raises(InsufficientStock):
        apply_movement(size_id=size.id, movement_type=StockMovement.TYPE_ADJUST, quantity=-2)

    assert _counters(size) == (5, 4)
    assert not StockMovement.objects.exists()


@pytest.mark.django_db
def test_apply_movement_zero_is_noop():
    size = ProductSizeFactory()
    assert apply_movement(size_id=size.id, movement_type=StockMovement.TYPE_ADJUST, quantity=0) is None


@pytest.mark.django_db
def test_invariant_holds_across_mixed_operations():
    size = ProductSizeFactory(stock_quantity=6)
    a = reserve(size_id=size.id, quantity=2, reference="cart:a")
    b = reserve(size_id=size.id, quantity=3, reference="cart:b")
    adjust(reservation_id=a.id, quantity=3)
    commit(reservation_id=b.id)
    release(reservation_id=a.id)
    release(reservation_id=a.id)
    with pytest.raises(InsufficientStock):
        reserve(size_id=size.id, quantity=4, reference="cart:c")

    stock, reserved = _counters(size)
    assert 0 <= reserved <= stock
    assert (stock, reserved) == (3, 0)


@pytest.mark.django_db
def test_reservation_problem_reports_each_failure_mode():
    size = ProductSizeFactory(stock_quantity=5)
    res = reserve(size_id=size.id, quantity=2, reference="cart:13")

    assert reservation_problem(res, quantity=2) is None
    assert reservation_problem(None, quantity=2) == "reservation_missing"
    assert reservation_problem(res, quantity=3) == "reservation_mismatch"

    ProductSize.objects.filter(id=size.id).update(is_active=False)
    assert reservation_problem(res, quantity=2) == "inactive_size"

    ProductSize.objects.filter(id=size.id).update(is_active=True)
    release(reservation_id=res.id)
    assert reservation_problem(res, quantity=2) == "reservation_inactive"
