"""Pricing endpoints: shipping methods, live promotions and code validation."""

from django.utils import timezone
from drf_spectacular.utils import OpenApiExample, extend_schema, inline_serializer
from rest_framework import generics, status
from rest_framework import serializers as rf_serializers
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .engine import PromotionInapplicable, check_promotion, compute_discount
from .selectors import get_promotion_by_code, list_active_shipping_methods, list_live_promotions
from .serializers import PromotionPublicSerializer, ShippingMethodSerializer, ValidatePromotionSerializer


class ShippingMethodListView(generics.ListAPIView):
    permission_classes = [AllowAny]
    throttle_scope = "pricing"
    serializer_class = ShippingMethodSerializer
    pagination_class = None

    @extend_schema(tags=["Pricing Endpoints"], summary="List active shipping methods")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return list_active_shipping_methods()


class LivePromotionListView(generics.ListAPIView):
    permission_classes = [AllowAny]
    throttle_scope = "pricing"
    serializer_class = PromotionPublicSerializer
    pagination_class = None

    @extend_schema(tags=["Pricing Endpoints"], summary="List promotions live right now")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return list_live_promotions(now=timezone.now())


class ValidatePromotionView(APIView):
    """Check a promotion code against an order total without touching any cart."""

    permission_classes = [AllowAny]
    throttle_scope = "pricing"

    @extend_schema(
        tags=["Pricing Endpoints"],
        summary="Validate promotion code",
        request=ValidatePromotionSerializer,
        responses={
            200: inline_serializer(
                name="PromotionValidation",
                fields={
                    "is_valid": rf_serializers.BooleanField(),
                    "code": rf_serializers.CharField(),
                    "discount_type": rf_serializers.CharField(allow_null=True),
                    "discount_amount": rf_serializers.DecimalField(max_digits=12, decimal_places=2),
                    "reason": rf_serializers.CharField(allow_null=True),
                    "detail": rf_serializers.CharField(allow_null=True),
                },
            )
        },
        examples=[
            OpenApiExample("Valid", value={"code": "SAVE10", "order_total": "100.00"}, request_only=True),
            OpenApiExample(
                "Result",
                value={
                    "is_valid": True,
                    "code": "SAVE10",
                    "discount_type": "percentage",
                    "discount_amount": "10.00",
                    "reason": None,
                    "detail": None,
                },
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        serializer = ValidatePromotionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data["code"].strip().upper()
        order_total = serializer.validated_data["order_total"]
        promotion = get_promotion_by_code(code)
        try:
            check_promotion(promotion, subtotal=order_total, now=timezone.now())
        except PromotionInapplicable as exc:
            body = {
                "is_valid": False,
                "code": code,
                "discount_type": getattr(promotion, "discount_type", None),
                "discount_amount": "0.00",
                "reason": exc.reason,
                "detail": str(exc),
            }
            return Response(body, status=status.HTTP_200_OK)
        body = {
            "is_valid": True,
            "code": promotion.code,
            "discount_type": promotion.discount_type,
            "discount_amount": str(compute_discount(promotion, order_total)),
            "reason": None,
            "detail": None,
        }
        return Response(body, status=status.HTTP_200_OK)
