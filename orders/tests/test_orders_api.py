from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from cart.models import Cart, CartItem
from cart.services import add_item
from cart.tests.factories import UserCartFactory, UserFactory
from catalog.tests.factories import ProductSizeFactory
from django.core.management import call_command
from django.utils import timezone
from orders.models import IdempotencyKey, Order
from orders.services import checkout_cart
from rest_framework.test import APIClient


def _client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


def _order_for(user, qty=1):
    cart = UserCartFactory(user=user)
    add_item(cart=cart, size_id=ProductSizeFactory(stock_quantity=10).id, quantity=qty)
    return checkout_cart(cart=cart)


@pytest.mark.django_db
def test_checkout_endpoint_creates_order():
    user = UserFactory()
    client = _client(user)
    size = ProductSizeFactory(stock_quantity=5, price=Decimal("50.00"))
    client.post("/api/v1/cart/items/", {"size_id": size.id, "quantity": 2}, format="json")

    r = client.post("/api/v1/cart/checkout/", {}, format="json")

    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["subtotal"] == "100.00"
    assert body["items"][0]["sku"] == size.sku
    assert Order.objects.get().user_id == user.id
    assert not Cart.objects.filter(user=user).exists()


@pytest.mark.django_db
def test_checkout_endpoint_returns_conflict_with_lines_when_stock_changed():
    user = UserFactory()
    client = _client(user)
    size = ProductSizeFactory(stock_quantity=5)
    client.post("/api/v1/cart/items/", {"size_id": size.id, "quantity": 2}, format="json")
    size.is_active = False
    size.save(update_fields=["is_active", "updated_at"])

    r = client.post("/api/v1/cart/checkout/", {}, format="json")

    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "checkout_failed"
    assert body["reason"] == "stock_changed"
    assert body["lines"][0]["size_id"] == size.id
    assert body["lines"][0]["reason"] == "inactive_size"
    assert CartItem.objects.filter(cart__user=user).count() == 1
    size.refresh_from_db()
    assert (size.stock_quantity, size.reserved_quantity) == (5, 2)


@pytest.mark.django_db
def test_checkout_endpoint_empty_cart_conflict():
    r = _client(UserFactory()).post("/api/v1/cart/checkout/", {}, format="json")
    assert r.status_code == 409
    assert r.json()["reason"] == "empty_cart"


@pytest.mark.django_db
def test_guest_checkout_requires_email():
    client = APIClient()
    client.credentials(HTTP_X_SESSION_ID="guest-checkout")
    client.post("/api/v1/cart/items/", {"size_id": ProductSizeFactory().id, "quantity": 1}, format="json")

    r = client.post("/api/v1/cart/checkout/", {}, format="json")
    assert r.status_code == 400
    assert r.json()["code"] == "email_required"

    r = client.post("/api/v1/cart/checkout/", {"email": "guest@example.com"}, format="json")
    assert r.status_code == 201
    assert r.json()["email"] == "guest@example.com"


@pytest.mark.django_db
def test_checkout_idempotency_replays_and_rejects_changed_payload():
    user = UserFactory()
    client = _client(user)
    client.post("/api/v1/cart/items/", {"size_id": ProductSizeFactory().id, "quantity": 1}, format="json")
    headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-1"}

    first = client.post("/api/v1/cart/checkout/", {"email": "a@example.com"}, format="json", **headers)
    replay = client.post("/api/v1/cart/checkout/", {"email": "a@example.com"}, format="json", **headers)
    changed = client.post("/api/v1/cart/checkout/", {"email": "b@example.com"}, format="json", **headers)

    assert first.status_code == 201
    assert replay.status_code == 201
    assert replay.json()["id"] == first.json()["id"]
    assert Order.objects.count() == 1
    assert changed.status_code == 409
    assert changed.json()["code"] == "idempotency_conflict"
    assert IdempotencyKey.objects.get().scope == f"user:{user.id}"


@pytest.mark.django_db
def test_failed_checkout_frees_idempotency_key_for_retry():
    user = UserFactory()
    client = _client(user)
    size = ProductSizeFactory(stock_quantity=5)
    client.post("/api/v1/cart/items/", {"size_id": size.id, "quantity": 1}, format="json")
    size.is_active = False
    size.save(update_fields=["is_active", "updated_at"])
    headers = {"HTTP_IDEMPOTENCY_KEY": "checkout-retry"}

    failed = client.post("/api/v1/cart/checkout/", {"email": "a@example.com"}, format="json", **headers)
    assert failed.status_code == 409
    assert failed.json()["reason"] == "stock_changed"
    assert not IdempotencyKey.objects.exists()

    size.is_active = True
    size.save(update_fields=["is_active", "updated_at"])
    retry = client.post("/api/v1/cart/checkout/", {"email": "a@example.com"}, format="json", **headers)

    assert retry.status_code == 201
    assert Order.objects.get().id == retry.json()["id"]
    assert IdempotencyKey.objects.get().response_code == 201


@pytest.mark.django_db
def test_users_see_only_their_orders_and_staff_see_all():
    alice = UserFactory()
    bob = UserFactory()
    mine = _order_for(alice)
    theirs = _order_for(bob)

    r = _client(alice).get("/api/v1/orders/")
    assert r.status_code == 200
    assert [o["id"] for o in r.json()["results"]] == [mine.id]
    assert _client(alice).get(f"/api/v1/orders/{theirs.id}/").status_code == 404

    staff = UserFactory(is_staff=True)
    ids = {o["id"] for o in _client(staff).get("/api/v1/orders/").json()["results"]}
    assert ids == {mine.id, theirs.id}


@pytest.mark.django_db
def test_orders_list_filters_by_status():
    user = UserFactory()
    pending = _order_for(user)
    cancelled = _order_for(user)
    _client(user).post(f"/api/v1/orders/{cancelled.id}/cancel/")

    r = _client(user).get("/api/v1/orders/", {"status": "pending"})
    assert [o["id"] for o in r.json()["results"]] == [pending.id]


@pytest.mark.django_db
def test_orders_require_authentication():
    assert APIClient().get("/api/v1/orders/").status_code in (401, 403)


@pytest.mark.django_db
def test_cancel_endpoint():
    user = UserFactory()
    order = _order_for(user, qty=2)
    client = _client(user)

    r = client.post(f"/api/v1/orders/{order.id}/cancel/")
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"

    again = client.post(f"/api/v1/orders/{order.id}/cancel/")
    assert again.status_code == 400
    assert again.json()["code"] == "invalid_transition"

    assert _client(UserFactory()).post(f"/api/v1/orders/{order.id}/cancel/").status_code == 404


@pytest.mark.django_db
def test_status_endpoint_is_staff_only_and_enforces_state_machine():
    user = UserFactory()
    order = _order_for(user)
    staff = _client(UserFactory(is_staff=True))

    assert _client(user).post(f"/api/v1/orders/{order.id}/status/", {"status": "processing"}).status_code == 403

    r = staff.post(f"/api/v1/orders/{order.id}/status/", {"status": "delivered"}, format="json")
    assert r.status_code == 400
    assert r.json()["current"] == "pending"

    r = staff.post(f"/api/v1/orders/{order.id}/status/", {"status": "processing"}, format="json")
    assert r.status_code == 200
    r = staff.post(
        f"/api/v1/orders/{order.id}/status/", {"status": "shipped", "tracking_number": "1Z999"}, format="json"
    )
    assert r.json()["status"] == "shipped"
    assert r.json()["tracking_number"] == "1Z999"


@pytest.mark.django_db
def test_payment_webhook_marks_order_paid():
    order = _order_for(UserFactory())
    client = APIClient()
    payload = {"order_number": order.number, "event": "payment_succeeded", "payment_reference": "pi_123"}

    r = client.post("/api/v1/orders/webhooks/payment/", payload, format="json", HTTP_IDEMPOTENCY_KEY="evt_1")
    assert r.status_code == 200
    assert r.json()["status"] == "processing"
    assert r.json()["payment_status"] == "paid"

    replay = client.post("/api/v1/orders/webhooks/payment/", payload, format="json", HTTP_IDEMPOTENCY_KEY="evt_1")
    assert replay.status_code == 200
    assert replay.json() == r.json()


@pytest.mark.django_db
def test_payment_webhook_failed_event_and_unknown_order():
    order = _order_for(UserFactory())
    client = APIClient()

    r = client.post(
        "/api/v1/orders/webhooks/payment/",
        {"order_number": order.number, "event": "payment_failed"},
        format="json",
    )
    assert r.status_code == 200
    assert r.json()["payment_status"] == "failed"
    assert r.json()["status"] == "pending"

    missing = client.post(
        "/api/v1/orders/webhooks/payment/",
        {"order_number": "ORD-999999", "event": "payment_succeeded"},
        format="json",
    )
    assert missing.status_code == 404


@pytest.mark.django_db
def test_cleanup_idempotency_command_purges_expired_keys():
    IdempotencyKey.objects.create(
        key="old", scope="anon", path="/x/", method="POST", expires_at=timezone.now() - timedelta(hours=1)
    )
    IdempotencyKey.objects.create(
        key="new", scope="anon", path="/x/", method="POST", expires_at=timezone.now() + timedelta(hours=1)
    )

    out = StringIO()
    call_command("cleanup_idempotency", stdout=out)

    assert "Deleted 1 expired idempotency keys." in out.getvalue()
    assert list(IdempotencyKey.objects.values_list("key", flat=True)) == ["new"]
