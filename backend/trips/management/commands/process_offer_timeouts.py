from django.core.management.base import BaseCommand
from django.db import close_old_connections

from services.matching import expire_stale_offers


class Command(BaseCommand):
    help = "Expire trip offers past their TTL and re-offer trips that have no live offers left."

    def add_arguments(self, parser):
        parser.add_argument(
            "--no-redispatch",
            action="store_true",
            help="Only mark overdue offers as expired, do not offer trips to new drivers.",
        )

    def handle(self, *args, **options):
        expired_count, dispatched_count = expire_stale_offers(redispatch=not options["no_redispatch"])
        close_old_connections()

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {expired_count} offer(s); re-dispatched {dispatched_count} trip(s)."
            )
        )
