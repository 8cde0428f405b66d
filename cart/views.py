"""DRF views for cart operations.

One set of endpoints serves both owners: authenticated callers get their
user cart, anonymous callers must send an `X-Session-Id` header and get
that session's guest cart.
"""

from common.responses import error_response
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from inventory.services import MovementError
from orders.serializers import CheckoutSerializer, OrderSerializer
from orders.services import CheckoutFailed, checkout_cart
from orders.views import run_idempotent
from pricing.engine import PromotionInapplicable
from pricing.serializers import TotalsSerializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import CartItem
from .selectors import find_guest_cart, find_user_cart, get_cart_for_session, get_cart_for_user
from .serializers import (
    AddItemSerializer,
    ApplyPromotionSerializer,
    CartReadSerializer,
    MergeGuestSerializer,
    ShippingSelectionSerializer,
    UpdateItemSerializer,
)
from .services import (
    CartError,
    apply_promotion,
    clear_cart,
    merge_guest_cart,
    remove_item,
    remove_promotion,
    set_shipping_method,
)

SESSION_HEADER = OpenApiParameter(
    name="X-Session-Id",
    location=OpenApiParameter.HEADER,
    required=False,
    description="Guest session identifier; required when not authenticated",
    type=str,
)

ERROR_SCHEMA = inline_serializer(
    name="CartMutationError",
    fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
)


def stock_error_response(exc: MovementError) -> Response:
    return error_response(exc, size_id=exc.size_id, available=exc.available)


class CartOwnerMixin:
    """Resolve the cart for the caller, user first, then guest session."""

    permission_classes = [AllowAny]

    def session_key(self, request) -> str:
        return (request.headers.get("X-Session-Id") or "").strip()[:64]

    def is_user(self, request) -> bool:
        user = getattr(request, "user", None)
        return user is not None and user.is_authenticated

    def has_owner(self, request) -> bool:
        return self.is_user(request) or bool(self.session_key(request))

    def resolve_cart(self, request, *, create: bool = True):
        """Return the caller's cart. With `create=False` a missing cart gives None."""

        if self.is_user(request):
            if create:
                return get_cart_for_user(user=request.user)
            return find_user_cart(user=request.user)
        session_id = self.session_key(request)
        if not session_id:
            return None
        if create:
            return get_cart_for_session(session_id=session_id)
        return find_guest_cart(session_id=session_id)

    def empty_body(self, request):
        return Response(CartReadSerializer.empty(guest=not self.is_user(request)).data, status=status.HTTP_200_OK)

    def not_found(self):
        return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)

    def missing_owner(self):
        return Response(
            {"detail": "Missing X-Session-Id.", "code": "session_required"}, status=status.HTTP_400_BAD_REQUEST
        )

    def cart_body(self, cart, code=status.HTTP_200_OK):
        cart.refresh_from_db()
        return Response(CartReadSerializer.from_cart(cart=cart).data, status=code)


class CartDetailView(CartOwnerMixin, APIView):
    throttle_scope = "cart"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get cart",
        description="Returns the caller's cart with items and freshly computed totals.",
        parameters=[SESSION_HEADER],
        responses={200: CartReadSerializer},
        examples=[
            OpenApiExample(
                "Cart",
                value={
                    "id": 1,
                    "guest": False,
                    "items": [
                        {
                            "id": 10,
                            "product_id": 3,
                            "size_id": 7,
                            "product_name": "Midnight Oud",
                            "sku": "NOC-0003-50",
                            "size_ml": 50,
                            "quantity": 2,
                            "unit_price": "50.00",
                            "line_total": "100.00",
                            "gift_wrap": False,
                            "sample_included": False,
                            "added_at": "2025-01-01T12:00:00Z",
                        }
                    ],
                    "promotion_code": "SAVE10",
                    "shipping_method_id": 1,
                    "subtotal": "100.00",
                    "discount_amount": "10.00",
                    "shipping_cost": "0.00",
                    "tax_amount": "7.20",
                    "total": "97.20",
                    "item_count": 2,
                    "promotion_issue": None,
                },
                response_only=True,
            )
        ],
    )
    def get(self, request):
        if not self.has_owner(request):
            return self.missing_owner()
        # Reads never create a cart; the first add does
        cart = self.resolve_cart(request, create=False)
        if cart is None:
            return self.empty_body(request)
        return self.cart_body(cart)


class CartAddItemView(CartOwnerMixin, APIView):
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add item to cart",
        description="Reserves stock for the size and adds it to the cart. Same size and options merge into one line.",
        request=AddItemSerializer,
        parameters=[SESSION_HEADER],
        responses={201: CartReadSerializer, 400: ERROR_SCHEMA},
        examples=[
            OpenApiExample("Add", value={"size_id": 7, "quantity": 2, "gift_wrap": True}, request_only=True),
            OpenApiExample(
                "Insufficient stock",
                value={
                    "detail": "Insufficient available quantity to reserve",
                    "code": "insufficient_stock",
                    "size_id": 7,
                    "available": 1,
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        cart = self.resolve_cart(request)
        if cart is None:
            return self.missing_owner()
        serializer = AddItemSerializer(data=request.data, context={"cart": cart})
        serializer.is_valid(raise_exception=True)
        try:
            serializer.save()
        except MovementError as exc:
            return stock_error_response(exc)
        except CartError as exc:
            return error_response(exc)
        return self.cart_body(cart, status.HTTP_201_CREATED)


class CartItemView(CartOwnerMixin, APIView):
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Update cart item",
        description="Changes quantity and/or gift options; the reservation follows the quantity.",
        request=UpdateItemSerializer,
        parameters=[SESSION_HEADER],
        responses={200: CartReadSerializer, 400: ERROR_SCHEMA},
    )
    def patch(self, request, item_id: int):
        if not self.has_owner(request):
            return self.missing_owner()
        cart = self.resolve_cart(request, create=False)
        if cart is None:
            return self.not_found()
        try:
            item = CartItem.objects.get(id=item_id, cart=cart)
        except CartItem.DoesNotExist:
            return self.not_found()
        serializer = UpdateItemSerializer(instance=item, data=request.data, context={"cart": cart})
        serializer.is_valid(raise_exception=True)
        try:
            serializer.save()
        except MovementError as exc:
            return stock_error_response(exc)
        except CartError as exc:
            return error_response(exc)
        return self.cart_body(cart)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove cart item",
        description="Releases the line's reservation and deletes it.",
        parameters=[SESSION_HEADER],
        responses={204: None},
    )
    def delete(self, request, item_id: int):
        if not self.has_owner(request):
            return self.missing_owner()
        cart = self.resolve_cart(request, create=False)
        if cart is None or not CartItem.objects.filter(id=item_id, cart=cart).exists():
            return self.not_found()
        remove_item(cart=cart, item_id=item_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartClearView(CartOwnerMixin, APIView):
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Clear cart",
        description="Deletes items and releases their reservations.",
        parameters=[SESSION_HEADER],
        responses={200: CartReadSerializer},
    )
    def post(self, request):
        if not self.has_owner(request):
            return self.missing_owner()
        cart = self.resolve_cart(request, create=False)
        if cart is None:
            return self.empty_body(request)
        clear_cart(cart=cart)
        return self.cart_body(cart)


class CartPromotionView(CartOwnerMixin, APIView):
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Apply promotion code",
        request=ApplyPromotionSerializer,
        parameters=[SESSION_HEADER],
        responses={200: TotalsSerializer, 400: ERROR_SCHEMA},
        examples=[
            OpenApiExample("Apply", value={"code": "SAVE10"}, request_only=True),
            OpenApiExample(
                "Expired",
                value={"detail": "Promotion code has expired", "code": "promotion_inapplicable", "reason": "expired"},
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        cart = self.resolve_cart(request)
        if cart is None:
            return self.missing_owner()
        serializer = ApplyPromotionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            totals = apply_promotion(cart=cart, code=serializer.validated_data["code"])
        except PromotionInapplicable as exc:
            return error_response(exc, reason=exc.reason)
        return Response(TotalsSerializer(totals).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Remove promotion code",
        parameters=[SESSION_HEADER],
        responses={200: TotalsSerializer},
    )
    def delete(self, request):
        cart = self.resolve_cart(request)
        if cart is None:
            return self.missing_owner()
        totals = remove_promotion(cart=cart)
        return Response(TotalsSerializer(totals).data, status=status.HTTP_200_OK)


class CartShippingView(CartOwnerMixin, APIView):
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Select shipping method",
        description="Pass null to clear the selection.",
        request=ShippingSelectionSerializer,
        parameters=[SESSION_HEADER],
        responses={200: TotalsSerializer, 400: ERROR_SCHEMA},
    )
    def put(self, request):
        cart = self.resolve_cart(request)
        if cart is None:
            return self.missing_owner()
        serializer = ShippingSelectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            totals = set_shipping_method(cart=cart, shipping_method_id=serializer.validated_data["shipping_method_id"])
        except CartError as exc:
            return error_response(exc)
        return Response(TotalsSerializer(totals).data, status=status.HTTP_200_OK)


class MergeGuestCartView(APIView):
    """Fold a guest session cart into the authenticated user's cart."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Merge guest cart",
        description=(
            "Moves the guest cart's lines into the user's cart. Lines already present are summed, "
            "clamped to sellable stock; clamped lines are listed in `shortfalls`."
        ),
        request=MergeGuestSerializer,
        parameters=[SESSION_HEADER],
        responses={
            200: inline_serializer(
                name="CartMergeResult",
                fields={
                    "cart": CartReadSerializer(),
                    "shortfalls": rf_serializers.ListField(child=rf_serializers.DictField()),
                },
            ),
            404: ERROR_SCHEMA,
        },
    )
    def post(self, request):
        serializer = MergeGuestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session_id = serializer.validated_data.get("session_id") or request.headers.get("X-Session-Id")
        if not session_id:
            return Response(
                {"detail": "Missing X-Session-Id.", "code": "session_required"}, status=status.HTTP_400_BAD_REQUEST
            )
        try:
            result = merge_guest_cart(session_id=session_id, user=request.user)
        except CartError as exc:
            return error_response(exc, status.HTTP_404_NOT_FOUND)
        except MovementError as exc:
            return stock_error_response(exc)
        body = {
            "cart": CartReadSerializer.from_cart(cart=result.cart).data,
            "shortfalls": result.shortfalls,
        }
        return Response(body, status=status.HTTP_200_OK)


class CartCheckoutView(CartOwnerMixin, APIView):
    """Checkout the caller's cart into a pending order."""

    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Checkout cart",
        description=(
            "Re-validates every reservation, prices the cart and commits stock. On a stock change the "
            "response is 409 with the affected `lines` and the cart is left as it was."
        ),
        request=CheckoutSerializer,
        parameters=[
            SESSION_HEADER,
            OpenApiParameter(
                name="Idempotency-Key",
                location=OpenApiParameter.HEADER,
                required=False,
                description="When provided, checkout becomes idempotent for this caller+path+method",
                type=str,
            ),
        ],
        responses={
            201: OrderSerializer,
            409: inline_serializer(
                name="CheckoutFailedResponse",
                fields={
                    "detail": rf_serializers.CharField(),
                    "code": rf_serializers.CharField(),
                    "reason": rf_serializers.CharField(),
                    "lines": rf_serializers.ListField(child=rf_serializers.DictField()),
                },
            ),
        },
        examples=[
            OpenApiExample(
                "Stock changed",
                value={
                    "detail": "Availability changed for some items in your cart",
                    "code": "checkout_failed",
                    "reason": "stock_changed",
                    "lines": [
                        {
                            "item_id": 10,
                            "size_id": 7,
                            "sku": "NOC-0003-50",
                            "quantity": 2,
                            "available": 0,
                            "reason": "inactive_size",
                        }
                    ],
                },
                response_only=True,
            )
        ],
    )
    def post(self, request):
        cart = self.resolve_cart(request)
        if cart is None:
            return self.missing_owner()
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data.get("email", "")
        if cart.is_guest and not email:
            return Response(
                {"detail": "Email is required for guest checkout.", "code": "email_required"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        def _handler():
            # CheckoutFailed propagates so the idempotency key is freed for a retry
            order = checkout_cart(cart=cart, email=email)
            return OrderSerializer(order).data, status.HTTP_201_CREATED

        scope = f"session:{cart.session_id}" if cart.is_guest else None
        try:
            return run_idempotent(request, _handler, scope=scope)
        except CheckoutFailed as exc:
            body = {"detail": str(exc), "code": exc.code, "reason": exc.reason, "lines": exc.lines}
            return Response(body, status=status.HTTP_409_CONFLICT)
