from cart.services import expire_idle_carts
from django.conf import settings
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Release reservations of idle carts and delete them"

    def add_arguments(self, parser):
        parser.add_argument(
            "--ttl-minutes",
            type=int,
            default=None,
            help="Idle TTL in minutes (defaults to CART_IDLE_TTL_MINUTES)",
        )

    def handle(self, *args, **options):
        ttl = options.get("ttl_minutes")
        if ttl is None:
            ttl = int(getattr(settings, "CART_IDLE_TTL_MINUTES", 120))
        count = expire_idle_carts(ttl_minutes=ttl)
        self.stdout.write(self.style.SUCCESS(f"Expired {count} idle carts."))
