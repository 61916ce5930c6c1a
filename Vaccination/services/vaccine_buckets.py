"""
Due / late bookkeeping derived from the vaccination calendar and a child's age.

This is housekeeping: it is rebuilt after commit and never consulted by the
scheduling engine.
"""
import logging
from datetime import datetime, time

from dateutil.relativedelta import relativedelta
from django.db import transaction
from django.utils import timezone

from ..models import (
    Child,
    CompletedVaccination,
    DueEntry,
    LateEntry,
    OverdueEntry,
    ScheduledAppointment,
    VaccineCalendar,
    VaccineCalendarDose,
)

logger = logging.getLogger(__name__)

UNIT_IN_DAYS = {
    VaccineCalendar.AGE_UNIT_WEEKS: 7,
    VaccineCalendar.AGE_UNIT_MONTHS: 30.4375,
    VaccineCalendar.AGE_UNIT_YEARS: 365.25,
}


def refresh_child_status(child_id):
    """BEHIND while any late or overdue dose remains, UP_TO_DATE otherwise."""
    behind = (
        LateEntry.objects.filter(child_id=child_id).exists()
        or OverdueEntry.objects.filter(child_id=child_id).exists()
    )
    status = Child.STATUS_BEHIND if behind else Child.STATUS_UP_TO_DATE
    Child.objects.filter(pk=child_id).update(status=status)
    return status


def compute_age_by_unit(birth_date, unit, today=None):
    today = today or timezone.localdate()
    days = max(0, (today - birth_date).days)
    per_unit = UNIT_IN_DAYS.get(unit)
    return int(days // per_unit) if per_unit else days


def compute_target_date(birth_date, calendar):
    """Birth date moved forward by the calendar's specific age (or max age)."""
    value = calendar.specific_age if calendar.specific_age is not None else calendar.max_age
    if value is None:
        return birth_date
    if calendar.age_unit == VaccineCalendar.AGE_UNIT_WEEKS:
        return birth_date + relativedelta(weeks=value)
    if calendar.age_unit == VaccineCalendar.AGE_UNIT_MONTHS:
        return birth_date + relativedelta(months=value)
    if calendar.age_unit == VaccineCalendar.AGE_UNIT_YEARS:
        return birth_date + relativedelta(years=value)
    return birth_date + relativedelta(days=value)


def _dose_key(vaccine_id, calendar_id, dose):
    return (vaccine_id, calendar_id, dose or 1)


def _key_set(queryset):
    return {
        _dose_key(vaccine_id, calendar_id, dose)
        for vaccine_id, calendar_id, dose in queryset.values_list('vaccine_id', 'calendar_id', 'dose')
    }


def _load_assignments():
    return list(
        VaccineCalendarDose.objects
        .select_related('calendar', 'vaccine')
        .order_by('vaccine_id', 'dose_number')
    )


def rebuild_child_vaccination_buckets(child_id, assignments=None, today=None):
    """Recompute a child's due and late doses, then the child's status."""
    today = today or timezone.localdate()

    with transaction.atomic():
        child = Child.objects.filter(pk=child_id).first()
        if child is None:
            logger.warning(f"Bucket rebuild skipped: child {child_id} not found")
            return None

        if assignments is None:
            assignments = _load_assignments()

        DueEntry.objects.filter(child=child).delete()
        LateEntry.objects.filter(child=child).delete()

        taken = (
            _key_set(CompletedVaccination.objects.filter(child=child))
            | _key_set(ScheduledAppointment.objects.filter(child=child))
            | _key_set(OverdueEntry.objects.filter(child=child))
        )

        due_rows = []
        late_rows = []
        for assignment in assignments:
            vaccine = assignment.vaccine
            calendar = assignment.calendar
            if not vaccine.is_suitable_for(child.gender):
                continue
            if _dose_key(vaccine.id, calendar.id, assignment.dose_number) in taken:
                continue

            age = compute_age_by_unit(child.birth_date, calendar.age_unit, today)
            min_age = calendar.min_age or 0
            max_age = calendar.max_age
            target = compute_target_date(child.birth_date, calendar)
            target_at = timezone.make_aware(datetime.combine(target, time.min))

            if age >= min_age and (max_age is None or age <= max_age):
                due_rows.append(DueEntry(
                    child=child, calendar=calendar, vaccine=vaccine,
                    dose=assignment.dose_number, scheduled_for=target_at,
                ))
            elif max_age is not None and age > max_age and target < today:
                late_rows.append(LateEntry(
                    child=child, calendar=calendar, vaccine=vaccine,
                    dose=assignment.dose_number, due_date=target_at,
                ))

        DueEntry.objects.bulk_create(due_rows, ignore_conflicts=True)
        LateEntry.objects.bulk_create(late_rows, ignore_conflicts=True)

        status = refresh_child_status(child.id)

    logger.debug(f"Buckets rebuilt for child {child_id}: {len(due_rows)} due, {len(late_rows)} late, {status}")
    return {'due': len(due_rows), 'late': len(late_rows), 'status': status}


def rebuild_vaccination_buckets_for(child_ids, today=None):
    """Rebuild the buckets of several children, sharing one load of the calendar."""
    child_ids = sorted(set(child_ids))
    if not child_ids:
        return 0
    assignments = _load_assignments()
    for child_id in child_ids:
        rebuild_child_vaccination_buckets(child_id, assignments=assignments, today=today)
    logger.info(f"Vaccination buckets rebuilt for {len(child_ids)} child(ren)")
    return len(child_ids)


def rebuild_all_vaccination_buckets(today=None):
    return rebuild_vaccination_buckets_for(Child.objects.values_list('id', flat=True), today=today)
