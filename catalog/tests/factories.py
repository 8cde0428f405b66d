from decimal import Decimal

import factory
from catalog.models import Brand, Product, ProductSize
from factory import Faker
from factory.django import DjangoModelFactory


class BrandFactory(DjangoModelFactory):
    class Meta:
        model = Brand

    name = Faker("company")
    slug = factory.Sequence(lambda n: f"brand-{n}")
    is_active = True


class ProductFactory(DjangoModelFactory):
    class Meta:
        model = Product

    brand = factory.SubFactory(BrandFactory)
    name = Faker("sentence", nb_words=2)
    slug = factory.Sequence(lambda n: f"fragrance-{n}")
    description = Faker("paragraph")
    is_active = True


class ProductSizeFactory(DjangoModelFactory):
    class Meta:
        model = ProductSize

    product = factory.SubFactory(ProductFactory)
    size_ml = factory.Sequence(lambda n: 30 + n)
    sku = factory.Sequence(lambda n: f"NOC-{n:04d}")
    price = Decimal("50.00")
    sale_price = None
    stock_quantity = 10
    reserved_quantity = 0
    low_stock_threshold = 2
    is_active = True
