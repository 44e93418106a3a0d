from django.core.management.base import BaseCommand
from services.dispatch import process_offer_timeouts


class Command(BaseCommand):
    help = "Expire booking offers whose response window has passed and offer the booking to the next provider."

    def add_arguments(self, parser):
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Maximum number of bookings to process (default: BOOKING_SWEEP_BATCH_SIZE).",
        )

    def handle(self, *args, **options):
        expired_count, advanced_count = process_offer_timeouts(batch_size=options["batch_size"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {expired_count} offer(s); offered {advanced_count} booking(s) to the next provider."
            )
        )
