import threading
from typing import List

import pytest
from catalog.tests.factories import ProductSizeFactory
from django.db import close_old_connections, connection
from inventory.models import StockReservation
from inventory.services import InsufficientStock, reserve


def _reserve_worker(barrier: threading.Barrier, size_id: int, qty: int, successes: List[int], errors: List[Exception]):
    close_old_connections()
    barrier.wait()
    try:
        reserve(size_id=size_id, quantity=qty, reference="race")
        successes.append(qty)
    except InsufficientStock as exc:
        errors.append(exc)
    finally:
        connection.close()


@pytest.mark.django_db(transaction=True)
@pytest.mark.parametrize("workers,qty,stock", [(2, 3, 5), (8, 2, 7), (6, 1, 4)])
def test_threaded_reserves_never_oversell(workers, qty, stock):
    if connection.vendor == "sqlite":
        pytest.skip("SQLite lacks real concurrent transactions; skipping threaded test.")
    size = ProductSizeFactory(stock_quantity=stock)

    barrier = threading.Barrier(workers)
    successes: List[int] = []
    errors: List[Exception] = []
    threads = [
        threading.Thread(target=_reserve_worker, args=(barrier, size.id, qty, successes, errors))
        for _ in range(workers)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    size.refresh_from_db()
    assert sum(successes) <= stock
    assert len(successes) == min(workers, stock // qty)
    assert size.reserved_quantity == sum(successes)
    assert 0 <= size.reserved_quantity <= size.stock_quantity
    active = StockReservation.objects.filter(size=size, state=StockReservation.STATE_ACTIVE).count()
    assert active == len(successes)
