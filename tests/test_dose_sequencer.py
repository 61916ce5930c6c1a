import pytest

from Vaccination.models import CompletedVaccination, ScheduledAppointment
from Vaccination.services.dose_sequencer import plan_dose_numbers, reassign_doses_for_vaccine

from .helpers import in_days


@pytest.mark.parametrize("count, completed, expected", [
    (0, [], []),
    (3, [], [1, 2, 3]),
    (2, [1], [2, 3]),
    (2, [1, 3], [2, 4]),
    (1, [2], [1]),
])
def test_plan_dose_numbers_skips_completed_doses(count, completed, expected):
    assert plan_dose_numbers(count, completed) == expected


@pytest.mark.django_db
def test_no_scheduled_appointments_is_a_noop(child, vaccine):
    assert reassign_doses_for_vaccine(child.id, vaccine.id) == []


@pytest.mark.django_db
def test_doses_follow_chronological_order(child, vaccine, agent):
    late = ScheduledAppointment.objects.create(child=child, vaccine=vaccine, scheduled_for=in_days(20), dose=1, planner=agent)
    early = ScheduledAppointment.objects.create(child=child, vaccine=vaccine, scheduled_for=in_days(5), dose=2, planner=agent)
    middle = ScheduledAppointment.objects.create(child=child, vaccine=vaccine, scheduled_for=in_days(10), dose=3, planner=agent)

    reassign_doses_for_vaccine(child.id, vaccine.id)

    for appointment in (late, early, middle):
        appointment.refresh_from_db()
    assert (early.dose, middle.dose, late.dose) == (1, 2, 3)


@pytest.mark.django_db
def test_completed_doses_are_never_reused(child, vaccine, agent):
    CompletedVaccination.objects.create(child=child, vaccine=vaccine, dose=2, administered_by=agent)
    first = ScheduledAppointment.objects.create(child=child, vaccine=vaccine, scheduled_for=in_days(3), dose=7, planner=agent)
    second = ScheduledAppointment.objects.create(child=child, vaccine=vaccine, scheduled_for=in_days(9), dose=5, planner=agent)

    scheduled = reassign_doses_for_vaccine(child.id, vaccine.id)

    assert [a.id for a in scheduled] == [first.id, second.id]
    assert [a.dose for a in scheduled] == [1, 3]
    first.refresh_from_db()
    second.refresh_from_db()
    assert (first.dose, second.dose) == (1, 3)


@pytest.mark.django_db
def test_doses_past_the_declared_total_stay_schedulable(child, vaccine, agent):
    for day in range(1, 6):
        ScheduledAppointment.objects.create(child=child, vaccine=vaccine, scheduled_for=in_days(day), dose=day + 10, planner=agent)

    scheduled = reassign_doses_for_vaccine(child.id, vaccine.id)

    assert [a.dose for a in scheduled] == [1, 2, 3, 4, 5]
