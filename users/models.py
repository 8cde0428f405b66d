"""User model for the storefront.

Credentials are issued by the authentication service; this model only
anchors carts and orders to a stable identity.
"""

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Custom user with a unique, normalized email."""

    email = models.EmailField(unique=True)

    def save(self, *args, **kwargs):
        """Store the email lowercase without surrounding whitespace so uniqueness checks are reliable."""
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)
