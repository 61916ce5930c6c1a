import logging

from ..models import CompletedVaccination, ScheduledAppointment
from .renumbering import renumber_in_two_passes

logger = logging.getLogger(__name__)


def plan_dose_numbers(scheduled_count, completed_doses):
    """
    Final dose numbers for ``scheduled_count`` chronologically ordered
    appointments: the smallest numbers not already taken by a completed dose.
    """
    taken = set(completed_doses)
    numbers = []
    cursor = 1
    for _ in range(scheduled_count):
        while cursor in taken:
            cursor += 1
        numbers.append(cursor)
        cursor += 1
    return numbers


def reassign_doses_for_vaccine(child_id, vaccine_id):
    """
    Renumber every scheduled appointment of a child for one vaccine so the
    earliest appointment holds the smallest dose number left free by completed
    vaccinations. Completed doses are never touched.

    Must run inside the caller's transaction.
    """
    scheduled = list(
        ScheduledAppointment.objects
        .filter(child_id=child_id, vaccine_id=vaccine_id)
        .order_by('scheduled_for', 'id')
    )
    if not scheduled:
        return []

    completed_doses = list(
        CompletedVaccination.objects
        .filter(child_id=child_id, vaccine_id=vaccine_id)
        .values_list('dose', flat=True)
    )

    in_play = [dose for dose in completed_doses if dose is not None]
    in_play += [appointment.dose for appointment in scheduled if appointment.dose is not None]
    temp_base = max(in_play, default=0) + 1

    final_doses = plan_dose_numbers(len(scheduled), completed_doses)
    changed = renumber_in_two_passes(ScheduledAppointment, 'dose', scheduled, final_doses, temp_base)

    if changed:
        logger.info(
            f"Dose sequence for child {child_id} / vaccine {vaccine_id}: "
            f"{[(a.id, a.dose) for a in scheduled]}"
        )
    return scheduled
