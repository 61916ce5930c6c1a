"""
Appointment lifecycle: schedule, reschedule, cancel, complete and lapse.

Every operation runs in one transaction. Stock reservations, dose
sequencing and the child's next-appointment pointer are all updated inside
it, notifications are only sent once it has committed.
"""
import logging
from datetime import datetime, timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..exceptions import Conflict, Forbidden, NotFound, PreconditionFailed, ValidationFailed
from ..models import (
    Account,
    Child,
    CompletedVaccination,
    DueEntry,
    LateEntry,
    OverdueEntry,
    ScheduledAppointment,
    StockReservation,
    Vaccine,
    VaccineCalendar,
)
from .dose_sequencer import reassign_doses_for_vaccine
from .event_log import log_event
from .notifications import (
    notify_appointment_cancelled,
    notify_appointment_updated,
    notify_health_center_agents,
    notify_vaccine_completed,
    notify_vaccine_missed,
    notify_vaccine_scheduled,
    run_after_commit,
)
from .stock_ledger import release_reservation_for_appointment, reserve_for_appointment
from .vaccine_buckets import refresh_child_status

logger = logging.getLogger(__name__)

# Marks an argument the caller did not supply, as opposed to an explicit None
UNSET = object()

GENDER_WARNING = (
    "This vaccine is not suited to the child's gender according to the vaccination "
    "calendar, but the appointment was created."
)


# ==============================
# HELPERS
# ==============================
def require_agent(caller):
    if caller is None or not caller.is_agent or not caller.health_center_id:
        raise Forbidden()


def _as_aware(value):
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValidationFailed("Invalid appointment date")
        value = parsed
    if not isinstance(value, datetime):
        raise ValidationFailed("Invalid appointment date")
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def _lock_child(child_id):
    child = Child.objects.select_for_update().filter(pk=child_id).first()
    if child is None:
        raise NotFound("Child not found")
    return child


def _get_appointment(appointment_id):
    appointment = (
        ScheduledAppointment.objects
        .select_related('vaccine', 'child')
        .filter(pk=appointment_id)
        .first()
    )
    if appointment is None:
        raise NotFound("Appointment not found")
    return appointment


def _check_scope(caller, child):
    if child.health_center_id != caller.health_center_id:
        raise Forbidden()


def _get_vaccine(vaccine_id):
    vaccine = Vaccine.objects.filter(pk=vaccine_id).first()
    if vaccine is None:
        raise NotFound("Vaccine not found")
    return vaccine


def _check_calendar(calendar_id):
    if calendar_id and not VaccineCalendar.objects.filter(pk=calendar_id).exists():
        raise NotFound("Vaccination calendar not found")


def _initial_dose(child_id, vaccine_id):
    """Provisional dose number above every one in use; the sequencer fixes it."""
    completed = CompletedVaccination.objects.filter(child_id=child_id, vaccine_id=vaccine_id).count()
    scheduled = ScheduledAppointment.objects.filter(child_id=child_id, vaccine_id=vaccine_id).count()
    return completed + scheduled + 1


def validate_agent_belongs_to_health_center(agent_id, health_center_id):
    """The account that will administer the dose must be an active agent of the child's health center."""
    if not agent_id:
        return None

    agent = Account.objects.filter(pk=agent_id).first()
    if agent is None:
        raise NotFound("Agent not found")
    if agent.role != Account.ROLE_AGENT:
        raise ValidationFailed("The selected user is not an agent")
    if not agent.is_active:
        raise ValidationFailed("The selected agent is not active")
    if agent.health_center_id != health_center_id:
        raise Forbidden("The selected agent does not belong to the child's health center")
    return agent


def update_next_appointment(child_id):
    """Point the child at its earliest scheduled appointment, or at nothing."""
    upcoming = (
        ScheduledAppointment.objects
        .filter(child_id=child_id)
        .order_by('scheduled_for', 'id')
        .first()
    )
    Child.objects.filter(pk=child_id).update(
        next_appointment=upcoming.scheduled_for if upcoming else None,
        next_vaccine_id=upcoming.vaccine_id if upcoming else None,
        next_agent_id=upcoming.planner_id if upcoming else None,
    )
    return upcoming


# ==============================
# SCHEDULE
# ==============================
def schedule_appointment(caller, child_id, vaccine_id, scheduled_for, calendar_id=None, administered_by_id=None):
    """
    Book a dose for a child and reserve one unit of stock for it.

    Returns ``(appointment, warning)``; ``warning`` is set when an ad-hoc
    appointment ignores the vaccine's gender restriction.
    """
    require_agent(caller)
    scheduled_for = _as_aware(scheduled_for)

    try:
        with transaction.atomic():
            child = _lock_child(child_id)
            _check_scope(caller, child)

            if administered_by_id:
                validate_agent_belongs_to_health_center(administered_by_id, child.health_center_id)

            vaccine = _get_vaccine(vaccine_id)
            _check_calendar(calendar_id)

            warning = None
            if not vaccine.is_suitable_for(child.gender):
                if calendar_id:
                    raise ValidationFailed("This vaccine is not suited to the child's gender")
                warning = GENDER_WARNING

            appointment = ScheduledAppointment.objects.create(
                child=child,
                vaccine=vaccine,
                calendar_id=calendar_id,
                scheduled_for=scheduled_for,
                planner=caller,
                administered_by_id=administered_by_id or None,
                dose=_initial_dose(child.id, vaccine.id),
            )
            reserve_for_appointment(appointment, child.health_center_id)

            reassign_doses_for_vaccine(child.id, vaccine.id)
            appointment.refresh_from_db()
            update_next_appointment(child.id)

            log_event(
                'APPOINTMENT', 'CREATE',
                account=caller,
                entity_id=appointment.id,
                entity_name=vaccine.name,
                details={
                    'child_id': child.id,
                    'vaccine_id': vaccine.id,
                    'scheduled_for': appointment.scheduled_for,
                    'dose': appointment.dose,
                    'calendar_id': appointment.calendar_id,
                },
            )
            run_after_commit(notify_vaccine_scheduled, child.id, vaccine.name, appointment.scheduled_for)
    except IntegrityError as e:
        logger.warning(f"Scheduling conflict for child {child_id} / vaccine {vaccine_id}: {e}")
        raise Conflict()

    logger.info(
        f"Appointment {appointment.id} scheduled: {vaccine.name} dose {appointment.dose} "
        f"for child {child.id} on {appointment.scheduled_for}"
    )
    return appointment, warning


# ==============================
# RESCHEDULE
# ==============================
def _describe_changes(before, after, vaccine_name, old_vaccine_name):
    updates = []
    if before['scheduled_for'] != after.scheduled_for:
        updates.append((
            "Appointment date changed",
            f"The appointment for the {vaccine_name} vaccine is now on "
            f"{timezone.localtime(after.scheduled_for):%d/%m/%Y %H:%M} "
            f"(instead of {timezone.localtime(before['scheduled_for']):%d/%m/%Y %H:%M}).",
        ))
    if before['vaccine_id'] != after.vaccine_id:
        updates.append((
            "Vaccine changed",
            f"The appointment is now for {vaccine_name} (instead of {old_vaccine_name}).",
        ))
    if before['dose'] != after.dose:
        updates.append((
            "Dose updated",
            f"The appointment for the {vaccine_name} vaccine is now for dose {after.dose}.",
        ))
    if before['administered_by_id'] != after.administered_by_id:
        if after.administered_by_id:
            updates.append((
                "Agent changed",
                f"{after.administered_by.full_name} will now administer the {vaccine_name} vaccine.",
            ))
        else:
            updates.append((
                "Agent removed",
                f"The agent assigned to the {vaccine_name} appointment was removed.",
            ))
    return updates


def reschedule_appointment(caller, appointment_id, scheduled_for, vaccine_id=None, calendar_id=UNSET,
                           administered_by_id=UNSET):
    """
    Move an appointment to a new date, and optionally to another vaccine,
    calendar entry or administering agent.

    ``calendar_id`` and ``administered_by_id`` left UNSET keep their current
    values; an explicit None clears them.
    """
    require_agent(caller)
    scheduled_for = _as_aware(scheduled_for)

    try:
        with transaction.atomic():
            appointment = _get_appointment(appointment_id)
            child = _lock_child(appointment.child_id)
            _check_scope(caller, child)

            if administered_by_id is UNSET:
                administerer_id = appointment.administered_by_id
            elif administered_by_id:
                validate_agent_belongs_to_health_center(administered_by_id, child.health_center_id)
                administerer_id = administered_by_id
            else:
                administerer_id = None

            if calendar_id is not UNSET:
                _check_calendar(calendar_id)

            before = {
                'scheduled_for': appointment.scheduled_for,
                'vaccine_id': appointment.vaccine_id,
                'dose': appointment.dose,
                'administered_by_id': appointment.administered_by_id,
            }
            old_vaccine = appointment.vaccine

            if vaccine_id and vaccine_id != appointment.vaccine_id:
                vaccine = _get_vaccine(vaccine_id)
                target_calendar_id = appointment.calendar_id if calendar_id is UNSET else calendar_id
                if target_calendar_id and not vaccine.is_suitable_for(child.gender):
                    raise ValidationFailed("This vaccine is not suited to the child's gender")

                release_reservation_for_appointment(appointment.id)
                appointment.delete()

                appointment = ScheduledAppointment.objects.create(
                    child=child,
                    vaccine=vaccine,
                    calendar_id=target_calendar_id,
                    scheduled_for=scheduled_for,
                    planner=caller,
                    administered_by_id=administerer_id,
                    dose=_initial_dose(child.id, vaccine.id),
                )
                reserve_for_appointment(appointment, child.health_center_id)

                reassign_doses_for_vaccine(child.id, vaccine.id)
                reassign_doses_for_vaccine(child.id, old_vaccine.id)
            else:
                vaccine = old_vaccine
                appointment.scheduled_for = scheduled_for
                if calendar_id is not UNSET:
                    appointment.calendar_id = calendar_id
                appointment.administered_by_id = administerer_id
                appointment.save()

                reassign_doses_for_vaccine(child.id, vaccine.id)

            appointment = ScheduledAppointment.objects.select_related('vaccine', 'administered_by').get(pk=appointment.pk)
            update_next_appointment(child.id)

            log_event(
                'APPOINTMENT', 'UPDATE',
                account=caller,
                entity_id=appointment.id,
                entity_name=vaccine.name,
                details={
                    'child_id': child.id,
                    'previous_vaccine_id': old_vaccine.id,
                    'vaccine_id': vaccine.id,
                    'previous_scheduled_for': before['scheduled_for'],
                    'scheduled_for': appointment.scheduled_for,
                    'dose': appointment.dose,
                },
            )

            updates = _describe_changes(before, appointment, vaccine.name, old_vaccine.name)
            if updates:
                run_after_commit(notify_appointment_updated, child.id, updates)
            run_after_commit(
                notify_health_center_agents,
                child.health_center_id,
                "Appointment updated",
                f"{caller.full_name} updated an appointment for {child.full_name} - "
                f"{vaccine.name} (dose {appointment.dose}) on "
                f"{timezone.localtime(appointment.scheduled_for):%d/%m/%Y %H:%M}",
                'APPOINTMENT_UPDATED',
                exclude_account_id=caller.id,
            )
    except IntegrityError as e:
        logger.warning(f"Rescheduling conflict for appointment {appointment_id}: {e}")
        raise Conflict()

    return appointment


# ==============================
# CANCEL
# ==============================
def cancel_appointment(caller, appointment_id):
    """Drop an appointment and give its reserved dose back to the lot."""
    require_agent(caller)

    with transaction.atomic():
        appointment = _get_appointment(appointment_id)
        child = _lock_child(appointment.child_id)
        _check_scope(caller, child)

        vaccine = appointment.vaccine
        scheduled_for = appointment.scheduled_for

        release_reservation_for_appointment(appointment.id)
        appointment.delete()

        reassign_doses_for_vaccine(child.id, vaccine.id)
        update_next_appointment(child.id)

        log_event(
            'APPOINTMENT', 'DELETE',
            account=caller,
            entity_id=appointment_id,
            entity_name=vaccine.name,
            details={'child_id': child.id, 'scheduled_for': scheduled_for},
        )

        run_after_commit(notify_appointment_cancelled, child.id, vaccine.name, scheduled_for)
        run_after_commit(
            notify_health_center_agents,
            child.health_center_id,
            "Appointment cancelled",
            f"{caller.full_name} cancelled an appointment for {child.full_name} - "
            f"{vaccine.name} on {timezone.localtime(scheduled_for):%d/%m/%Y %H:%M}",
            'APPOINTMENT_DELETED',
            exclude_account_id=caller.id,
        )

    logger.info(f"Appointment {appointment_id} cancelled by {caller.email}")
    return True


# ==============================
# COMPLETE
# ==============================
def _clear_trackers_for_dose(child_id, vaccine_id, calendar_id, dose):
    if calendar_id:
        scope = {'child_id': child_id, 'vaccine_id': vaccine_id, 'calendar_id': calendar_id, 'dose': dose}
        DueEntry.objects.filter(**scope).delete()
        LateEntry.objects.filter(**scope).delete()
        OverdueEntry.objects.filter(**scope).delete()
    else:
        # Ad-hoc doses settle the matching late and overdue doses of any calendar
        scope = {'child_id': child_id, 'vaccine_id': vaccine_id, 'dose': dose}
        LateEntry.objects.filter(**scope).delete()
        OverdueEntry.objects.filter(**scope).delete()


def complete_appointment(caller, appointment_id, notes=None, now=None):
    """Record the dose as administered and consume its reserved stock."""
    require_agent(caller)
    now = now or timezone.now()

    with transaction.atomic():
        appointment = _get_appointment(appointment_id)
        child = _lock_child(appointment.child_id)
        _check_scope(caller, child)

        if appointment.scheduled_for > now:
            raise PreconditionFailed()

        vaccine = appointment.vaccine
        dose = appointment.dose or 1

        completed = CompletedVaccination.objects.create(
            child=child,
            vaccine=vaccine,
            calendar_id=appointment.calendar_id,
            dose=dose,
            administered_by_id=appointment.administered_by_id or appointment.planner_id,
            notes=notes,
        )

        release_reservation_for_appointment(appointment.id, consume=True)
        appointment.delete()

        reassign_doses_for_vaccine(child.id, vaccine.id)
        update_next_appointment(child.id)

        _clear_trackers_for_dose(child.id, vaccine.id, appointment.calendar_id, dose)

        completed_count = CompletedVaccination.objects.filter(child=child, vaccine=vaccine).count()
        if completed_count >= vaccine.total_doses:
            for model in (DueEntry, LateEntry, OverdueEntry):
                model.objects.filter(child=child, vaccine=vaccine).delete()

        status = refresh_child_status(child.id)

        log_event(
            'APPOINTMENT', 'COMPLETE',
            account=caller,
            entity_id=appointment_id,
            entity_name=vaccine.name,
            details={'child_id': child.id, 'dose': dose, 'completed_id': completed.id, 'child_status': status},
        )

        run_after_commit(notify_vaccine_completed, child.id, vaccine.name, dose, completed.completed_at)
        run_after_commit(
            notify_health_center_agents,
            child.health_center_id,
            "Vaccine administered",
            f"{caller.full_name} administered {vaccine.name} (dose {dose}) to {child.full_name}",
            'APPOINTMENT_COMPLETED',
            exclude_account_id=caller.id,
        )

    logger.info(f"Appointment {appointment_id} completed: {vaccine.name} dose {dose} for child {child.id}")
    return completed


# ==============================
# LAPSE
# ==============================
def move_to_overdue(appointment):
    """
    Turn a scheduled appointment into an overdue dose escalated to its
    planner. Due and late trackers are kept. Runs inside the caller's
    transaction.
    """
    child = _lock_child(appointment.child_id)
    appointment_id = appointment.pk
    dose = appointment.dose or 1

    overdue, _created = OverdueEntry.objects.update_or_create(
        child_id=child.id,
        calendar_id=appointment.calendar_id,
        vaccine_id=appointment.vaccine_id,
        dose=dose,
        defaults={
            'due_date': appointment.scheduled_for,
            'escalated_to_id': appointment.planner_id,
        },
    )

    release_reservation_for_appointment(appointment.id)
    appointment.delete()

    reassign_doses_for_vaccine(child.id, appointment.vaccine_id)
    update_next_appointment(child.id)
    refresh_child_status(child.id)

    run_after_commit(notify_vaccine_missed, child.id, appointment.vaccine.name, appointment.scheduled_for)
    logger.info(f"Appointment {appointment_id} of child {child.id} moved to overdue (dose {dose})")
    return overdue


def mark_appointment_missed(caller, appointment_id):
    require_agent(caller)

    with transaction.atomic():
        appointment = _get_appointment(appointment_id)
        _check_scope(caller, appointment.child)
        overdue = move_to_overdue(appointment)

        log_event(
            'APPOINTMENT', 'MISSED',
            account=caller,
            entity_id=appointment_id,
            entity_name=appointment.vaccine.name,
            details={'child_id': appointment.child_id, 'due_date': overdue.due_date, 'dose': overdue.dose},
        )
    return overdue


def lapse_cutoff(now=None):
    """Appointments scheduled before this instant have lapsed."""
    grace = getattr(settings, 'VACCINATION_LAPSE_GRACE_HOURS', 24)
    return (now or timezone.now()) - timedelta(hours=grace)


def _sweep(filters, now=None):
    cutoff = lapse_cutoff(now)
    with transaction.atomic():
        lapsed = list(
            ScheduledAppointment.objects
            .select_related('vaccine')
            .filter(scheduled_for__lt=cutoff, **filters)
            .order_by('scheduled_for', 'id')
        )
        results = [move_to_overdue(appointment) for appointment in lapsed]

    if results:
        logger.info(f"Lapse sweep {filters}: {len(results)} appointment(s) moved to overdue")
    return results


def sweep_lapsed_for_planner(planner_id, now=None):
    if not planner_id:
        return []
    return _sweep({'planner_id': planner_id}, now=now)


def sweep_lapsed_for_health_center(health_center_id, now=None):
    if not health_center_id:
        return []
    return _sweep({'child__health_center_id': health_center_id}, now=now)


# ==============================
# LISTING & VACCINE REMOVAL
# ==============================
def list_appointments_for(caller):
    """Scheduled appointments visible to the caller's tier, soonest first."""
    appointments = (
        ScheduledAppointment.objects
        .select_related('child', 'child__health_center', 'vaccine', 'calendar', 'planner', 'administered_by')
        .order_by('scheduled_for', 'id')
    )
    if caller is None:
        return appointments.none()
    if caller.is_national:
        return appointments
    if caller.role == Account.ROLE_REGIONAL:
        return appointments.filter(child__health_center__district__region_id=caller.region_id) \
            if caller.region_id else appointments.none()
    if caller.role == Account.ROLE_DISTRICT:
        return appointments.filter(child__health_center__district_id=caller.district_id) \
            if caller.district_id else appointments.none()
    if caller.health_center_id:
        return appointments.filter(child__health_center_id=caller.health_center_id)
    return appointments.none()


def delete_vaccine(caller, vaccine_id):
    """
    Remove a vaccine with everything that depends on it, then repoint the
    affected children. Parents of cancelled appointments are told after
    commit.
    """
    if caller is None or not caller.is_national:
        raise Forbidden()

    with transaction.atomic():
        vaccine = Vaccine.objects.select_for_update().filter(pk=vaccine_id).first()
        if vaccine is None:
            raise NotFound("Vaccine not found")

        cancelled = list(vaccine.scheduled_appointments.values('child_id', 'scheduled_for'))
        child_ids = {entry['child_id'] for entry in cancelled}
        child_ids.update(Child.objects.filter(next_vaccine=vaccine).values_list('id', flat=True))
        for model in (LateEntry, OverdueEntry):
            child_ids.update(model.objects.filter(vaccine=vaccine).values_list('child_id', flat=True))

        # Lots go with the vaccine, nothing to give back
        StockReservation.objects.filter(appointment__vaccine=vaccine).delete()

        name = vaccine.name
        details = {
            'name': name,
            'description': vaccine.description,
            'doses_required': vaccine.doses_required,
            'gender': vaccine.gender,
            'cancelled_appointments': len(cancelled),
        }
        vaccine.delete()

        for child_id in sorted(child_ids):
            update_next_appointment(child_id)
            refresh_child_status(child_id)

        log_event('VACCINE', 'DELETE', account=caller, entity_id=vaccine_id, entity_name=name, details=details)

        for entry in cancelled:
            run_after_commit(notify_appointment_cancelled, entry['child_id'], name, entry['scheduled_for'])

    logger.info(f"Vaccine {vaccine_id} ({name}) deleted by {caller.email}, {len(cancelled)} appointment(s) cancelled")
    return details
