import factory
from cart.models import Cart
from django.contrib.auth import get_user_model
from factory.django import DjangoModelFactory


class UserFactory(DjangoModelFactory):
    class Meta:
        model = get_user_model()

    username = factory.Sequence(lambda n: f"shopper{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "pass")


class UserCartFactory(DjangoModelFactory):
    class Meta:
        model = Cart

    user = factory.SubFactory(UserFactory)
    session_id = None


class GuestCartFactory(DjangoModelFactory):
    class Meta:
        model = Cart

    user = None
    session_id = factory.Sequence(lambda n: f"sess-{n:06d}")
