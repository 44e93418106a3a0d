from django.core.management.base import BaseCommand
from services.dispatch import expire_stale_bookings


class Command(BaseCommand):
    help = "Expire bookings that nobody accepted within their pending window."

    def add_arguments(self, parser):
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Maximum number of bookings to process (default: BOOKING_SWEEP_BATCH_SIZE).",
        )

    def handle(self, *args, **options):
        expired = expire_stale_bookings(batch_size=options["batch_size"])
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} pending booking(s)."))
