"""Cart URL routes (v1)."""

from django.urls import path

from .views import (
    CartAddItemView,
    CartCheckoutView,
    CartClearView,
    CartDetailView,
    CartItemView,
    CartPromotionView,
    CartShippingView,
    MergeGuestCartView,
)

app_name = "cart"

urlpatterns = [
    path("", CartDetailView.as_view(), name="cart-detail"),
    path("items/", CartAddItemView.as_view(), name="cart-add-item"),
    path("items/<int:item_id>/", CartItemView.as_view(), name="cart-item"),
    path("clear/", CartClearView.as_view(), name="cart-clear"),
    path("promotion/", CartPromotionView.as_view(), name="cart-promotion"),
    path("shipping/", CartShippingView.as_view(), name="cart-shipping"),
    path("merge-guest/", MergeGuestCartView.as_view(), name="cart-merge-guest"),
    path("checkout/", CartCheckoutView.as_view(), name="cart-checkout"),
]
