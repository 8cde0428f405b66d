"""Inventory read-only list views and the staff stock-correction endpoint."""

from catalog.models import ProductSize
from common.responses import error_response
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_datetime
from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import generics, status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import StockMovement, StockReservation
from .serializers import (
    ApplyMovementSerializer,
    SizeStockSerializer,
    StockMovementSerializer,
    StockReservationSerializer,
)
from .services import MovementError, apply_movement


class SizeStockListView(generics.ListAPIView):
    throttle_classes = []
    serializer_class = SizeStockSerializer

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="List stock per size",
        description="List stock per size. Filters: product_id, sku, active, updated_after (ISO).",
        examples=[
            OpenApiExample(
                "Stock",
                value={
                    "results": [
                        {
                            "id": 1,
                            "product_id": 10,
                            "sku": "NOC-0001-50",
                            "size_ml": 50,
                            "stock_quantity": 5,
                            "reserved_quantity": 2,
                            "available": 3,
                            "low_stock": True,
                            "is_active": True,
                            "updated_at": "2025-01-01T12:00:00Z",
                        }
                    ]
                },
            )
        ],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        qs = ProductSize.objects.order_by("-updated_at", "id")
        product_id = self.request.query_params.get("product_id")
        sku = self.request.query_params.get("sku")
        active = self.request.query_params.get("active")
        updated_after = self.request.query_params.get("updated_after")

        if product_id:
            qs = qs.filter(product_id=product_id)
        if sku:
            qs = qs.filter(sku__iexact=sku)
        if active in {"true", "false"}:
            qs = qs.filter(is_active=active == "true")
        if updated_after:
            dt = parse_datetime(updated_after)
            if dt:
                qs = qs.filter(updated_at__gte=dt)
        return qs


class MovementListView(generics.ListAPIView):
    throttle_classes = []
    permission_classes = [IsAdminUser]
    serializer_class = StockMovementSerializer

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="List stock movements",
        description="List movements (inbound/outbound/adjust). Filters: size, movement_type, created_after (ISO).",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        qs = StockMovement.objects.order_by("-created_at", "id")
        size = self.request.query_params.get("size")
        movement_type = self.request.query_params.get("movement_type")
        created_after = self.request.query_params.get("created_after")

        if size:
            qs = qs.filter(size_id=size)
        if movement_type:
            qs = qs.filter(movement_type=movement_type)
        if created_after:
            dt = parse_datetime(created_after)
            if dt:
                qs = qs.filter(created_at__gte=dt)
        return qs


class ReservationListView(generics.ListAPIView):
    throttle_classes = []
    permission_classes = [IsAdminUser]
    serializer_class = StockReservationSerializer

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="List stock reservations",
        description="List reservations. Filters: size, state (active/released/converted), reference.",
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        qs = StockReservation.objects.order_by("-created_at", "id")
        size = self.request.query_params.get("size")
        state = self.request.query_params.get("state")
        reference = self.request.query_params.get("reference")

        if size:
            qs = qs.filter(size_id=size)
        if state:
            qs = qs.filter(state=state)
        if reference:
            qs = qs.filter(reference=reference)
        return qs


class ApplyMovementView(APIView):
    """Staff endpoint for restocks and manual stock corrections."""

    permission_classes = [IsAdminUser]

    @extend_schema(
        tags=["Inventory Endpoints"],
        summary="Apply stock movement",
        description="Positive quantity restocks; negative removes sellable (unreserved) units only.",
        request=ApplyMovementSerializer,
        responses={201: StockMovementSerializer},
        examples=[OpenApiExample("Restock", value={"movement_type": "in", "quantity": 12, "reason": "delivery"})],
    )
    def post(self, request, size_id: int):
        size = get_object_or_404(ProductSize, id=size_id)
        serializer = ApplyMovementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            movement = apply_movement(size_id=size.id, **serializer.validated_data)
        except MovementError as exc:
            return error_response(exc)
        return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)


# EOF
