"""Orders API endpoints.

Owners list, read and cancel their orders; staff drive fulfillment
transitions; the payment provider reports outcomes through the webhook.
Mutations are idempotent when an `Idempotency-Key` header is sent.
"""

from django.http import Http404
from django_filters import rest_framework as filters
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import OrderFilterSet
from .models import Order
from .serializers import OrderSerializer, PaymentWebhookSerializer, StatusTransitionSerializer
from .services import (
    InvalidStateTransition,
    cancel_order,
    compute_request_hash,
    fail_payment,
    pay_order,
    transition_order,
    with_idempotency,
)

IDEMPOTENCY_PARAMETER = OpenApiParameter(
    name="Idempotency-Key",
    location=OpenApiParameter.HEADER,
    required=False,
    description="Makes the request idempotent within scope+path+method",
    type=str,
)


def run_idempotent(request, handler, *, scope=None):
    """Run `handler` once per Idempotency-Key when the header is present."""

    idem_key = request.headers.get("Idempotency-Key")
    if idem_key:
        body, code = with_idempotency(
            key=idem_key,
            user=getattr(request, "user", None),
            path=str(request.path),
            method=str(request.method),
            request_hash=compute_request_hash(getattr(request, "data", None)),
            handler=handler,
            scope=scope,
        )
        return Response(body, status=code)
    body, code = handler()
    return Response(body, status=code)


def _transition_body(exc: InvalidStateTransition) -> dict:
    return {"detail": str(exc), "code": exc.code, "current": exc.current, "target": exc.target}


class OrderListView(generics.ListAPIView):
    """List the authenticated user's orders; staff see every order."""

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    throttle_scope = "orders"
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = OrderFilterSet

    def get_queryset(self):
        qs = Order.objects.order_by("-id").prefetch_related("items")
        if not self.request.user.is_staff:
            qs = qs.filter(user_id=self.request.user.id)
        return qs

    @extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="Filters: status, payment_status, number, start / end (ISO created_at bounds).",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderDetailView(generics.RetrieveAPIView):
    permission_classes = [IsAuthenticated]
    throttle_scope = "orders"
    serializer_class = OrderSerializer

    def get_object(self):
        qs = Order.objects.prefetch_related("items")
        if not self.request.user.is_staff:
            qs = qs.filter(user_id=self.request.user.id)
        try:
            return qs.get(id=int(self.kwargs["order_id"]))
        except (Order.DoesNotExist, ValueError):
            raise Http404("Not found.")

    @extend_schema(
        tags=["Orders"],
        summary="Get order detail",
        examples=[
            OpenApiExample(
                "Order",
                value={
                    "id": 123,
                    "number": "ORD-000123",
                    "status": "pending",
                    "payment_status": "pending",
                    "subtotal": "100.00",
                    "discount_amount": "10.00",
                    "shipping_cost": "0.00",
                    "tax_amount": "7.20",
                    "total_amount": "97.20",
                    "items": [
                        {
                            "id": 10,
                            "sku": "NOC-0001-50",
                            "product_name": "Midnight Oud",
                            "size_ml": 50,
                            "quantity": 2,
                            "unit_price": "50.00",
                            "line_total": "100.00",
                        }
                    ],
                },
                response_only=True,
            )
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderCancelView(APIView):
    """Cancel a pending or processing order owned by the caller; units go back to stock."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Cancel order",
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample(
                "Invalid transition",
                value={"detail": "Cannot move order from shipped to cancelled", "code": "invalid_transition"},
                response_only=True,
            )
        ],
    )
    def post(self, request, order_id: int):
        qs = Order.objects.all() if request.user.is_staff else Order.objects.filter(user=request.user)
        try:
            order = qs.get(pk=order_id)
        except Order.DoesNotExist:
            raise Http404

        def _handler():
            try:
                updated = cancel_order(order=order)
            except InvalidStateTransition as exc:
                return _transition_body(exc), status.HTTP_400_BAD_REQUEST
            return OrderSerializer(updated).data, status.HTTP_200_OK

        return run_idempotent(request, _handler)


class OrderStatusView(APIView):
    """Fulfillment transitions (processing, shipped, delivered, refunded). Staff only."""

    permission_classes = [IsAdminUser]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Change order status",
        request=StatusTransitionSerializer,
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[OpenApiExample("Ship", value={"status": "shipped", "tracking_number": "1Z999"}, request_only=True)],
    )
    def post(self, request, order_id: int):
        try:
            order = Order.objects.get(pk=order_id)
        except Order.DoesNotExist:
            raise Http404
        serializer = StatusTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        def _handler():
            try:
                updated = transition_order(
                    order=order,
                    target=serializer.validated_data["status"],
                    tracking_number=serializer.validated_data.get("tracking_number", ""),
                )
            except InvalidStateTransition as exc:
                return _transition_body(exc), status.HTTP_400_BAD_REQUEST
            return OrderSerializer(updated).data, status.HTTP_200_OK

        return run_idempotent(request, _handler)


class OrderPaymentWebhookView(APIView):
    """Payment provider callback.

    `payment_succeeded` marks the order paid and moves it from pending to
    processing; `payment_failed` records the failure. Signature checks belong
    in front of this view.
    """

    permission_classes = [AllowAny]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Payment webhook",
        request=PaymentWebhookSerializer,
        parameters=[IDEMPOTENCY_PARAMETER],
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample(
                "Webhook Success",
                value={"order_number": "ORD-000123", "event": "payment_succeeded", "payment_reference": "pi_123"},
                request_only=True,
            )
        ],
    )
    def post(self, request):
        serializer = PaymentWebhookSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            order = Order.objects.get(number=data["order_number"])
        except Order.DoesNotExist:
            raise Http404

        def _handler():
            reference = data.get("payment_reference", "")
            try:
                if data["event"] in PaymentWebhookSerializer.SUCCEEDED:
                    updated = pay_order(order=order, payment_reference=reference)
                else:
                    updated = fail_payment(order=order, payment_reference=reference)
            except InvalidStateTransition as exc:
                return _transition_body(exc), status.HTTP_400_BAD_REQUEST
            return OrderSerializer(updated).data, status.HTTP_200_OK

        return run_idempotent(request, _handler)
