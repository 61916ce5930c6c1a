from django.core.management.base import BaseCommand, CommandError

from Vaccination.services import PushNotificationService


class Command(BaseCommand):
    help = "Check that FCM credentials load and yield an access token"

    def handle(self, *args, **options):
        ok, reason = PushNotificationService.is_configured()
        if not ok:
            raise CommandError(reason)
        self.stdout.write(self.style.SUCCESS(reason))
