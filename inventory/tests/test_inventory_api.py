import pytest
from cart.tests.factories import UserFactory
from catalog.tests.factories import ProductSizeFactory
from inventory.models import StockMovement
from inventory.services import reserve
from rest_framework.test import APIClient


@pytest.mark.django_db
def test_stock_list_exposes_available_and_low_stock():
    size = ProductSizeFactory(stock_quantity=4, low_stock_threshold=2)
    reserve(size_id=size.id, quantity=3, reference="cart:1")
    ProductSizeFactory()  # another product

    client = APIClient()
    r = client.get("/api/v1/inventory/stock/", {"product_id": size.product_id})
    assert r.status_code == 200
    results = r.json()["results"]
    assert len(results) == 1
    row = results[0]
    assert row["sku"] == size.sku
    assert row["stock_quantity"] == 4
    assert row["reserved_quantity"] == 3
    assert row["available"] == 1
    assert row["low_stock"] is True


@pytest.mark.django_db
def test_stock_list_filters_by_sku_case_insensitive_and_active():
    size = ProductSizeFactory(sku="NOC-OUD-50")
    ProductSizeFactory(is_active=False)

    client = APIClient()
    r = client.get("/api/v1/inventory/stock/", {"sku": "noc-oud-50"})
    assert [row["id"] for row in r.json()["results"]] == [size.id]

    r_inactive = client.get("/api/v1/inventory/stock/", {"active": "false"})
    assert all(row["is_active"] is False for row in r_inactive.json()["results"])


@pytest.mark.django_db
def test_reservations_and_movements_are_staff_only():
    client = APIClient()
    assert client.get("/api/v1/inventory/reservations/").status_code in (401, 403)

    client.force_authenticate(user=UserFactory())
    assert client.get("/api/v1/inventory/movements/").status_code == 403

    size = ProductSizeFactory()
    reserve(size_id=size.id, quantity=2, reference="cart:42")
    client.force_authenticate(user=UserFactory(is_staff=True))
    r = client.get("/api/v1/inventory/reservations/", {"reference": "cart:42"})
    assert r.status_code == 200
    rows = r.json()["results"]
    assert len(rows) == 1
    assert rows[0]["quantity"] == 2
    assert rows[0]["state"] == "active"


@pytest.mark.django_db
def test_staff_restock_creates_movement():
    size = ProductSizeFactory(stock_quantity=1)
    client = APIClient()
    client.force_authenticate(user=UserFactory(is_staff=True))

    r = client.post(
        f"/api/v1/inventory/stock/{size.id}/movements/",
        {"movement_type": "in", "quantity": 12, "reason": "delivery"},
        format="json",
    )
    assert r.status_code == 201
    assert r.json()["quantity_after"] == 13
    size.refresh_from_db()
    assert size.stock_quantity == 13
    assert StockMovement.objects.filter(size=size, movement_type="in").count() == 1


@pytest.mark.django_db
def test_staff_correction_cannot_remove_reserved_units():
    size = ProductSizeFactory(stock_quantity=3)
    reserve(size_id=size.id, quantity=3, reference="cart:7")
    client = APIClient()
    client.force_authenticate(user=UserFactory(is_staff=True))

    r = client.post(f"/api/v1/inventory/stock/{size.id}/movements/", {"quantity": -1}, format="json")
    assert r.status_code == 400
    assert r.json()["code"] == "insufficient_stock"
    size.refresh_from_db()
    assert (size.stock_quantity, size.reserved_quantity) == (3, 3)


@pytest.mark.django_db
def test_zero_quantity_correction_is_rejected():
    size = ProductSizeFactory()
    client = APIClient()
    client.force_authenticate(user=UserFactory(is_staff=True))
    r = client.post(f"/api/v1/inventory/stock/{size.id}/movements/", {"quantity": 0}, format="json")
    assert r.status_code == 400
