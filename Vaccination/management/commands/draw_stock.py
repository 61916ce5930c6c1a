from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from Vaccination.exceptions import VaccinationError
from Vaccination.models import StockLot
from Vaccination.services.stock_ledger import OWNER_TYPES, available_quantity, consume_lots


class Command(BaseCommand):
    help = "Take doses out of an owner's valid lots, earliest expiration first (breakage, losses, campaigns)"

    def add_arguments(self, parser):
        parser.add_argument('--vaccine', type=int, required=True, help="Vaccine id")
        parser.add_argument('--owner-type', choices=sorted(OWNER_TYPES), default=StockLot.OWNER_HEALTHCENTER)
        parser.add_argument('--owner-id', type=int, help="Owning entity id (ignored for NATIONAL)")
        parser.add_argument('--quantity', type=int, required=True)

    def handle(self, *args, **options):
        vaccine_id = options['vaccine']
        owner_type = OWNER_TYPES[options['owner_type']]
        owner_id = options.get('owner_id')
        if owner_type != StockLot.OWNER_NATIONAL and not owner_id:
            raise CommandError("--owner-id is required for this owner type")

        try:
            with transaction.atomic():
                allocations = consume_lots(vaccine_id, owner_type, owner_id, options['quantity'])
        except VaccinationError as e:
            raise CommandError(e.message)

        for allocation in allocations:
            self.stdout.write(f"lot {allocation['lot_id']}: -{allocation['quantity']} (exp {allocation['expiration']})")

        left = available_quantity(vaccine_id, owner_type, owner_id)
        self.stdout.write(self.style.SUCCESS(f"{options['quantity']} dose(s) drawn, {left} left"))
