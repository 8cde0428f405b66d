from datetime import timedelta
from decimal import Decimal

import factory
from django.utils import timezone
from factory.django import DjangoModelFactory
from pricing.models import Promotion, ShippingMethod


class PromotionFactory(DjangoModelFactory):
    class Meta:
        model = Promotion

    code = factory.Sequence(lambda n: f"PROMO{n}")
    name = factory.LazyAttribute(lambda o: f"{o.code} promotion")
    discount_type = Promotion.TYPE_PERCENTAGE
    discount_value = Decimal("10.00")
    min_order_total = Decimal("0.00")
    starts_at = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    ends_at = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))
    is_active = True


class ShippingMethodFactory(DjangoModelFactory):
    class Meta:
        model = ShippingMethod

    name = factory.Sequence(lambda n: f"Standard {n}")
    code = factory.Sequence(lambda n: f"standard-{n}")
    cost = Decimal("5.00")
    free_threshold = Decimal("75.00")
    is_active = True
