from django.core.management.base import BaseCommand

from Vaccination.services.stock_ledger import refresh_expired_lots
from Vaccination.services.vaccine_buckets import rebuild_all_vaccination_buckets


class Command(BaseCommand):
    help = "Flag expired stock lots and rebuild every child's due and late doses"

    def add_arguments(self, parser):
        parser.add_argument('--skip-lots', action='store_true', help="Do not touch stock lot statuses")
        parser.add_argument('--skip-buckets', action='store_true', help="Do not rebuild due / late doses")

    def handle(self, *args, **options):
        if not options['skip_lots']:
            expired = refresh_expired_lots()
            self.stdout.write(f"{len(expired)} lot(s) marked as expired")

        if not options['skip_buckets']:
            children = rebuild_all_vaccination_buckets()
            self.stdout.write(f"Vaccination buckets rebuilt for {children} child(ren)")

        self.stdout.write(self.style.SUCCESS("Vaccination state refreshed"))
