from django.urls import path

from .views import ApplyMovementView, MovementListView, ReservationListView, SizeStockListView

app_name = "inventory"

urlpatterns = [
    path("stock/", SizeStockListView.as_view(), name="size-stock-list"),
    path("stock/<int:size_id>/movements/", ApplyMovementView.as_view(), name="size-apply-movement"),
    path("movements/", MovementListView.as_view(), name="movement-list"),
    path("reservations/", ReservationListView.as_view(), name="reservation-list"),
]

# EOF
