from django.core.management.base import BaseCommand, CommandError

from Vaccination.models import Account, HealthCenter, ScheduledAppointment
from Vaccination.services.appointments import (
    lapse_cutoff,
    sweep_lapsed_for_health_center,
    sweep_lapsed_for_planner,
)


class Command(BaseCommand):
    help = "Move appointments whose date has lapsed past the grace period to overdue"

    def add_arguments(self, parser):
        group = parser.add_mutually_exclusive_group()
        group.add_argument('--planner', type=int, help="Only sweep the appointments planned by this account")
        group.add_argument('--health-center', type=int, help="Only sweep the appointments of this health center")

    def handle(self, *args, **options):
        planner_id = options.get('planner')
        health_center_id = options.get('health_center')

        if planner_id:
            if not Account.objects.filter(pk=planner_id).exists():
                raise CommandError(f"Account {planner_id} does not exist")
            overdue = sweep_lapsed_for_planner(planner_id)
        elif health_center_id:
            if not HealthCenter.objects.filter(pk=health_center_id).exists():
                raise CommandError(f"Health center {health_center_id} does not exist")
            overdue = sweep_lapsed_for_health_center(health_center_id)
        else:
            health_center_ids = (
                ScheduledAppointment.objects
                .filter(scheduled_for__lt=lapse_cutoff())
                .values_list('child__health_center_id', flat=True)
                .distinct()
            )
            overdue = []
            for center_id in sorted(set(health_center_ids)):
                overdue.extend(sweep_lapsed_for_health_center(center_id))

        self.stdout.write(self.style.SUCCESS(f"{len(overdue)} appointment(s) moved to overdue"))
