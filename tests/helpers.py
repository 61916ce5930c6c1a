from datetime import timedelta

from django.utils import timezone


def in_days(days, hours=0):
    return timezone.now() + timedelta(days=days, hours=hours)
