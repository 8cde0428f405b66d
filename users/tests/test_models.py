import pytest
from cart.tests.factories import UserFactory
from django.db import IntegrityError


@pytest.mark.django_db
def test_email_is_normalized_on_save():
    user = UserFactory(email="  Shopper@Example.COM ")
    user.refresh_from_db()
    assert user.email == "shopper@example.com"


@pytest.mark.django_db
def test_email_is_unique_after_normalization():
    UserFactory(email="dup@example.com")
    with pytest.raises(IntegrityError):
        UserFactory(email="DUP@example.com")
