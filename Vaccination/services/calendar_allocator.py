"""
Vaccination calendar management.

Every vaccine's calendar dose assignments are kept dense (1..N) across all
calendars, ordered by the calendar's target age.
"""
import logging
from collections import OrderedDict

from django.db import IntegrityError, transaction
from django.db.models import Count, Max

from ..exceptions import Conflict, Forbidden, NotFound, ValidationFailed
from ..models import (
    CompletedVaccination,
    DueEntry,
    LateEntry,
    OverdueEntry,
    ScheduledAppointment,
    Vaccine,
    VaccineCalendar,
    VaccineCalendarDose,
)
from .event_log import log_event
from .notifications import run_after_commit
from .renumbering import renumber_in_two_passes
from .vaccine_buckets import rebuild_vaccination_buckets_for

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30.4375
DAYS_PER_YEAR = 365.25

AGE_UNITS = [unit for unit, _label in VaccineCalendar.AGE_UNIT_CHOICES]
AGE_UNIT_ORDER = {VaccineCalendar.AGE_UNIT_WEEKS: 0, VaccineCalendar.AGE_UNIT_MONTHS: 1, VaccineCalendar.AGE_UNIT_YEARS: 2}


# ==============================
# AGE HELPERS
# ==============================
def normalize_age_to_days(value, unit):
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None

    if unit == VaccineCalendar.AGE_UNIT_WEEKS:
        return numeric * DAYS_PER_WEEK
    if unit == VaccineCalendar.AGE_UNIT_MONTHS:
        return numeric * DAYS_PER_MONTH
    if unit == VaccineCalendar.AGE_UNIT_YEARS:
        return numeric * DAYS_PER_YEAR
    return numeric


def compute_calendar_age_weight(calendar):
    """Sort key in days: specific age, else min age, else max age, else 0."""
    if calendar is None:
        return 0
    for value in (calendar.specific_age, calendar.min_age, calendar.max_age):
        days = normalize_age_to_days(value, calendar.age_unit)
        if days is not None:
            return days
    return 0


def format_days_label(days):
    if days is None:
        return None

    remaining = max(0, round(days))
    years = int(remaining // DAYS_PER_YEAR)
    remaining -= years * DAYS_PER_YEAR
    months = int(remaining // DAYS_PER_MONTH)
    remaining -= months * DAYS_PER_MONTH
    weeks = int(remaining // DAYS_PER_WEEK)

    parts = []
    if years:
        parts.append(f"{years} year{'s' if years > 1 else ''}")
    if months:
        parts.append(f"{months} month{'s' if months > 1 else ''}")
    if weeks:
        parts.append(f"{weeks} week{'s' if weeks > 1 else ''}")
    return " ".join(parts) if parts else "0 weeks"


def build_target_label(calendar):
    return format_days_label(normalize_age_to_days(calendar.specific_age, calendar.age_unit))


def build_range_label(calendar):
    min_label = format_days_label(normalize_age_to_days(calendar.min_age, calendar.age_unit))
    max_label = format_days_label(normalize_age_to_days(calendar.max_age, calendar.age_unit))
    if min_label and max_label:
        return f"{min_label} - {max_label}"
    if min_label:
        return f"From {min_label}"
    if max_label:
        return f"Up to {max_label}"
    return None


# ==============================
# DOSE NUMBER ALLOCATION
# ==============================
def reassign_vaccine_dose_numbers(vaccine_ids):
    """
    Renumber the calendar assignments of each vaccine to 1..N ordered by
    (calendar age weight, calendar id, assignment id). Rows already holding
    their number are left alone.

    Must run inside the caller's transaction.
    """
    unique_ids = list(OrderedDict.fromkeys(vid for vid in vaccine_ids if vid))
    if not unique_ids:
        return 0

    changed = 0
    for vaccine_id in unique_ids:
        assignments = list(
            VaccineCalendarDose.objects
            .select_related('calendar')
            .filter(vaccine_id=vaccine_id)
        )
        if not assignments:
            continue

        assignments.sort(key=lambda a: (compute_calendar_age_weight(a.calendar), a.calendar_id or 0, a.id))

        count = len(assignments)
        highest = max(a.dose_number for a in assignments)
        temp_base = max(count + 10, highest + 1)

        changed += renumber_in_two_passes(
            VaccineCalendarDose,
            'dose_number',
            assignments,
            range(1, count + 1),
            temp_base,
            skip_unchanged=True,
        )

    if changed:
        logger.info(f"Calendar dose numbers reassigned for vaccines {unique_ids} ({changed} row(s) moved)")
    return changed


def normalize_calendar_assignments(vaccine_dose_counts, exclude_calendar_id=None):
    """
    Merge the requested ``[{'vaccine_id', 'count'}]`` entries per vaccine and
    check the vaccine's declared total is not exceeded. Entries with a
    non-positive count are ignored.

    Returns ``[(vaccine, count)]`` in request order.
    """
    counts = OrderedDict()
    for entry in vaccine_dose_counts or []:
        if not entry:
            continue
        vaccine_id = entry.get('vaccine_id')
        try:
            count = int(entry.get('count') or 0)
        except (TypeError, ValueError):
            count = 0
        if vaccine_id and count > 0:
            counts[vaccine_id] = counts.get(vaccine_id, 0) + count

    if not counts:
        return []

    vaccines = Vaccine.objects.in_bulk(list(counts.keys()))
    if len(vaccines) != len(counts):
        raise ValidationFailed("Some of the selected vaccines could not be found")

    existing = VaccineCalendarDose.objects.filter(vaccine_id__in=list(counts.keys()))
    if exclude_calendar_id:
        existing = existing.exclude(calendar_id=exclude_calendar_id)
    existing_counts = dict(
        existing.values('vaccine_id').annotate(total=Count('id')).values_list('vaccine_id', 'total')
    )

    normalized = []
    for vaccine_id, count in counts.items():
        vaccine = vaccines[vaccine_id]
        limit = vaccine.total_doses
        already_used = existing_counts.get(vaccine_id, 0)
        if already_used + count > limit:
            raise ValidationFailed(
                f"Cannot assign {count} more dose(s) of {vaccine.name}: "
                f"this vaccine only has {limit} dose(s) in total"
            )
        normalized.append((vaccine, count))
    return normalized


def _insert_assignments(calendar, assignments):
    """Create assignment rows on provisional numbers above every existing one."""
    vaccine_ids = [vaccine.id for vaccine, _count in assignments]
    highest = dict(
        VaccineCalendarDose.objects
        .filter(vaccine_id__in=vaccine_ids)
        .values('vaccine_id')
        .annotate(top=Max('dose_number'))
        .values_list('vaccine_id', 'top')
    )

    rows = []
    for vaccine, count in assignments:
        start = (highest.get(vaccine.id) or 0) + 1
        for offset in range(count):
            rows.append(VaccineCalendarDose(calendar=calendar, vaccine=vaccine, dose_number=start + offset))
    VaccineCalendarDose.objects.bulk_create(rows)
    return rows


# ==============================
# CALENDAR OPERATIONS
# ==============================
def require_national(caller):
    if caller is None or not caller.is_national:
        raise Forbidden()


def _parse_age(value, message):
    if value is None or value == '':
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(message)
    if parsed < 0:
        raise ValidationFailed(message)
    return parsed


def validate_calendar_fields(description, age_unit, specific_age=None, min_age=None, max_age=None):
    """Check calendar attributes. Returns the cleaned values as a dict."""
    if not description or not str(description).strip():
        raise ValidationFailed("A description is required")
    if age_unit not in AGE_UNITS:
        raise ValidationFailed("Invalid age unit")

    specific = _parse_age(specific_age, "The target age must be a valid number")
    minimum = _parse_age(min_age, "Minimum and maximum ages must be valid numbers")
    maximum = _parse_age(max_age, "Minimum and maximum ages must be valid numbers")

    if minimum is not None and maximum is not None and minimum > maximum:
        raise ValidationFailed("The minimum age must be lower than or equal to the maximum age")

    return {
        'description': str(description).strip(),
        'age_unit': age_unit,
        'specific_age': specific,
        'min_age': minimum,
        'max_age': maximum,
    }


def create_calendar(caller, description, age_unit, specific_age=None, min_age=None, max_age=None,
                    vaccine_dose_counts=None):
    """Create a calendar entry and place its doses in every vaccine's sequence."""
    require_national(caller)
    fields = validate_calendar_fields(description, age_unit, specific_age, min_age, max_age)

    try:
        with transaction.atomic():
            assignments = normalize_calendar_assignments(vaccine_dose_counts)
            if not assignments:
                raise ValidationFailed("Select at least one vaccine with a valid dose count")

            calendar = VaccineCalendar.objects.create(**fields)
            _insert_assignments(calendar, assignments)

            vaccine_ids = [vaccine.id for vaccine, _count in assignments]
            reassign_vaccine_dose_numbers(vaccine_ids)

            log_event(
                'VACCINE_CALENDAR', 'CREATE',
                account=caller,
                entity_id=calendar.id,
                entity_name=calendar.description,
                details={**fields, 'vaccine_ids': vaccine_ids},
            )
    except IntegrityError as e:
        logger.error(f"Calendar creation conflict: {e}")
        raise Conflict("Calendar dose numbering conflict, please retry")

    logger.info(f"Calendar {calendar.id} created by {caller.email}")
    return calendar


def update_calendar(caller, calendar_id, description, age_unit, specific_age=None, min_age=None, max_age=None,
                    vaccine_dose_counts=None):
    """Update a calendar entry and replace its dose assignments."""
    require_national(caller)
    fields = validate_calendar_fields(description, age_unit, specific_age, min_age, max_age)

    try:
        with transaction.atomic():
            calendar = VaccineCalendar.objects.select_for_update().filter(pk=calendar_id).first()
            if calendar is None:
                raise NotFound("Vaccination calendar not found")

            previous_ids = list(
                VaccineCalendarDose.objects.filter(calendar=calendar).values_list('vaccine_id', flat=True)
            )

            assignments = normalize_calendar_assignments(vaccine_dose_counts, exclude_calendar_id=calendar.id)
            if not assignments:
                raise ValidationFailed("Select at least one vaccine with a valid dose count")

            for name, value in fields.items():
                setattr(calendar, name, value)
            calendar.save()

            VaccineCalendarDose.objects.filter(calendar=calendar).delete()
            _insert_assignments(calendar, assignments)

            affected = previous_ids + [vaccine.id for vaccine, _count in assignments]
            reassign_vaccine_dose_numbers(affected)

            log_event(
                'VACCINE_CALENDAR', 'UPDATE',
                account=caller,
                entity_id=calendar.id,
                entity_name=calendar.description,
                details={**fields, 'vaccine_ids': sorted(set(affected))},
            )
    except IntegrityError as e:
        logger.error(f"Calendar {calendar_id} update conflict: {e}")
        raise Conflict("Calendar dose numbering conflict, please retry")

    return calendar


def delete_calendar(caller, calendar_id):
    """
    Remove a calendar entry. Scheduled and completed doses stay but lose
    their calendar, trackers tied to it are dropped, and the remaining
    assignments of its vaccines are renumbered.
    """
    require_national(caller)

    with transaction.atomic():
        calendar = VaccineCalendar.objects.select_for_update().filter(pk=calendar_id).first()
        if calendar is None:
            raise NotFound("Vaccination calendar not found")

        vaccine_ids = list(
            VaccineCalendarDose.objects.filter(calendar=calendar).values_list('vaccine_id', flat=True).distinct()
        )

        child_ids = set()
        for model in (DueEntry, LateEntry, OverdueEntry, ScheduledAppointment, CompletedVaccination):
            child_ids.update(model.objects.filter(calendar=calendar).values_list('child_id', flat=True))

        for model in (DueEntry, LateEntry, OverdueEntry):
            model.objects.filter(calendar=calendar).delete()

        ScheduledAppointment.objects.filter(calendar=calendar).update(calendar=None)
        CompletedVaccination.objects.filter(calendar=calendar).update(calendar=None)

        description = calendar.description
        calendar.delete()

        reassign_vaccine_dose_numbers(vaccine_ids)

        log_event(
            'VACCINE_CALENDAR', 'DELETE',
            account=caller,
            entity_id=calendar_id,
            entity_name=description,
            details={'affected_children': len(child_ids), 'affected_vaccines': len(vaccine_ids)},
        )

        if child_ids:
            run_after_commit(rebuild_vaccination_buckets_for, sorted(child_ids))

    logger.info(f"Calendar {calendar_id} deleted by {caller.email} ({len(child_ids)} child(ren) affected)")
    return {'affected_child_ids': sorted(child_ids), 'affected_vaccine_ids': vaccine_ids}


def list_calendars():
    """All calendars ordered by age unit then target age."""
    calendars = list(VaccineCalendar.objects.prefetch_related('dose_assignments__vaccine'))
    calendars.sort(key=lambda c: (
        AGE_UNIT_ORDER.get(c.age_unit, 99),
        c.specific_age if c.specific_age is not None else (c.min_age or 0),
    ))
    return calendars


def summarize_calendar_vaccines(calendar):
    """Per-vaccine dose count and dose numbers held by one calendar."""
    summary = OrderedDict()
    for assignment in sorted(calendar.dose_assignments.all(), key=lambda a: a.dose_number):
        vaccine = assignment.vaccine
        entry = summary.setdefault(vaccine.id, {
            'id': vaccine.id,
            'name': vaccine.name,
            'doses_required': vaccine.doses_required,
            'gender': vaccine.gender,
            'dose_numbers': [],
        })
        entry['dose_numbers'].append(assignment.dose_number)

    for entry in summary.values():
        entry['dose_count'] = len(entry['dose_numbers'])
        entry['first_dose_number'] = entry['dose_numbers'][0]
        entry['last_dose_number'] = entry['dose_numbers'][-1]
    return list(summary.values())


def list_dose_warnings():
    """Vaccines whose calendar plans fewer doses than they declare."""
    planned = dict(
        VaccineCalendarDose.objects.values('vaccine_id').annotate(total=Count('id')).values_list('vaccine_id', 'total')
    )

    warnings = []
    for vaccine in Vaccine.objects.all():
        declared = vaccine.doses_required or 0
        if declared <= 0:
            continue
        planned_doses = planned.get(vaccine.id, 0)
        if planned_doses < declared:
            warnings.append({
                'vaccine_id': vaccine.id,
                'name': vaccine.name,
                'required_doses': declared,
                'planned_doses': planned_doses,
                'missing_doses': declared - planned_doses,
            })

    warnings.sort(key=lambda w: (-w['missing_doses'], w['name'].lower()))
    return warnings
