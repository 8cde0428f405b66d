from cart.services import release_orphaned_reservations
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = "Release active stock reservations that no cart line holds."

    def add_arguments(self, parser):
        parser.add_argument("--older-than", type=int, default=30, help="Minimum reservation age in minutes")

    def handle(self, *args, **options):
        count = release_orphaned_reservations(older_than_minutes=options["older_than"])
        self.stdout.write(self.style.SUCCESS(f"Orphaned reservations released: {count}"))
