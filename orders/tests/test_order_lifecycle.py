import pytest
from cart.services import add_item
from cart.tests.factories import UserCartFactory
from catalog.tests.factories import ProductSizeFactory
from common.choices import FulfillmentStatus, OrderStatus, PaymentStatus
from inventory.models import StockMovement
from orders.models import ImmutableRecordError, Order, OrderItem
from orders.services import (
    InvalidStateTransition,
    can_transition,
    cancel_order,
    checkout_cart,
    fail_payment,
    pay_order,
    transition_order,
)


def _order(stock=5, qty=2):
    cart = UserCartFactory()
    size = ProductSizeFactory(stock_quantity=stock)
    add_item(cart=cart, size_id=size.id, quantity=qty)
    return checkout_cart(cart=cart), size


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("pending", "processing", True),
        ("pending", "cancelled", True),
        ("pending", "shipped", False),
        ("processing", "shipped", True),
        ("processing", "cancelled", True),
        ("shipped", "delivered", True),
        ("shipped", "cancelled", False),
        ("delivered", "refunded", True),
        ("delivered", "shipped", False),
        ("cancelled", "pending", False),
        ("refunded", "processing", False),
        ("pending", "pending", False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


@pytest.mark.django_db
def test_full_fulfillment_path_stamps_timestamps():
    order, _ = _order()

    order = pay_order(order=order, payment_reference="pi_1")
    assert order.status == OrderStatus.PROCESSING
    assert order.payment_status == PaymentStatus.PAID
    assert order.paid_at is not None

    order = transition_order(order=order, target=OrderStatus.SHIPPED, tracking_number="1Z999")
    assert order.shipped_at is not None
    assert order.tracking_number == "1Z999"

    order = transition_order(order=order, target=OrderStatus.DELIVERED)
    assert order.delivered_at is not None
    assert order.fulfillment_status == FulfillmentStatus.FULFILLED

    order = transition_order(order=order, target=OrderStatus.REFUNDED)
    assert order.payment_status == PaymentStatus.REFUNDED


@pytest.mark.django_db
def test_invalid_transition_is_refused():
    order, _ = _order()
    with pytest.raises(InvalidStateTransition) as exc:
        transition_order(order=order, target=OrderStatus.DELIVERED)
    assert exc.value.current == OrderStatus.PENDING
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


@pytest.mark.django_db
def test_unpaid_order_cannot_be_refunded():
    order, _ = _order()
    order = transition_order(order=order, target=OrderStatus.PROCESSING)
    with pytest.raises(InvalidStateTransition):
        transition_order(order=order, target=OrderStatus.REFUNDED)


@pytest.mark.django_db
def test_cancel_restocks_units():
    order, size = _order(stock=5, qty=2)
    size.refresh_from_db()
    assert size.stock_quantity == 3

    order = cancel_order(order=order)

    assert order.status == OrderStatus.CANCELLED
    assert order.cancelled_at is not None
    size.refresh_from_db()
    assert size.stock_quantity == 5
    restock = StockMovement.objects.filter(size=size, quantity=2).get()
    assert restock.reference == f"order:{order.number}"

    with pytest.raises(InvalidStateTransition):
        cancel_order(order=order)


@pytest.mark.django_db
def test_shipped_order_cannot_be_cancelled():
    order, _ = _order()
    order = pay_order(order=order)
    order = transition_order(order=order, target=OrderStatus.SHIPPED)
    with pytest.raises(InvalidStateTransition):
        cancel_order(order=order)


@pytest.mark.django_db
def test_pay_order_is_idempotent_and_refuses_closed_orders():
    order, _ = _order()
    first = pay_order(order=order, payment_reference="pi_1")
    again = pay_order(order=first, payment_reference="pi_2")
    assert again.status == OrderStatus.PROCESSING
    assert again.payment_reference == "pi_1"

    other, _ = _order()
    cancel_order(order=other)
    with pytest.raises(InvalidStateTransition):
        pay_order(order=other)


@pytest.mark.django_db
def test_failed_payment_keeps_order_pending_and_allows_retry():
    order, _ = _order()
    order = fail_payment(order=order, payment_reference="pi_bad")
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.FAILED

    order = pay_order(order=order, payment_reference="pi_good")
    assert order.payment_status == PaymentStatus.PAID
    with pytest.raises(InvalidStateTransition):
        fail_payment(order=order)


@pytest.mark.django_db
def test_order_records_are_immutable():
    order, _ = _order()
    line = OrderItem.objects.get(order=order)

    line.quantity = 99
    with pytest.raises(ImmutableRecordError):
        line.save()
    with pytest.raises(ImmutableRecordError):
        order.delete()
    with pytest.raises(ImmutableRecordError):
        Order.objects.filter(id=order.id).delete()
    assert OrderItem.objects.get(id=line.id).quantity == 2
