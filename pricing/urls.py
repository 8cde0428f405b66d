"""Pricing URL routes (v1)."""

from django.urls import path

from .views import LivePromotionListView, ShippingMethodListView, ValidatePromotionView

app_name = "pricing"

urlpatterns = [
    path("shipping-methods/", ShippingMethodListView.as_view(), name="shipping-method-list"),
    path("promotions/", LivePromotionListView.as_view(), name="promotion-list"),
    path("promotions/validate/", ValidatePromotionView.as_view(), name="promotion-validate"),
]
