import pytest

from Vaccination.exceptions import Forbidden, NotFound, ValidationFailed
from Vaccination.models import (
    Child,
    CompletedVaccination,
    DueEntry,
    ScheduledAppointment,
    Vaccine,
    VaccineCalendar,
    VaccineCalendarDose,
)
from Vaccination.services import calendar_allocator

from .helpers import in_days


def dose_layout(vaccine):
    """(calendar description, dose number) pairs of a vaccine, by dose number."""
    return list(
        VaccineCalendarDose.objects
        .filter(vaccine=vaccine)
        .order_by('dose_number')
        .values_list('calendar__description', 'dose_number')
    )


# ==============================
# AGE HELPERS
# ==============================
def test_age_weight_prefers_specific_then_min_then_max():
    weeks = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_WEEKS, specific_age=6, min_age=1, max_age=9)
    months = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_MONTHS, min_age=9, max_age=12)
    years = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_YEARS, max_age=2)
    empty = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_YEARS)

    assert calendar_allocator.compute_calendar_age_weight(weeks) == 42
    assert calendar_allocator.compute_calendar_age_weight(months) == pytest.approx(9 * 30.4375)
    assert calendar_allocator.compute_calendar_age_weight(years) == pytest.approx(730.5)
    assert calendar_allocator.compute_calendar_age_weight(empty) == 0
    assert calendar_allocator.compute_calendar_age_weight(None) == 0


def test_age_labels():
    months = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_MONTHS, specific_age=18)
    weeks = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_WEEKS, min_age=1, max_age=3)
    open_ended = VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_WEEKS, min_age=2)

    assert calendar_allocator.build_target_label(months) == "1 year 6 months"
    assert calendar_allocator.build_range_label(weeks) == "1 week - 3 weeks"
    assert calendar_allocator.build_range_label(open_ended) == "From 2 weeks"
    assert calendar_allocator.build_range_label(months) is None
    assert calendar_allocator.format_days_label(0) == "0 weeks"


def test_calendar_fields_are_validated():
    with pytest.raises(ValidationFailed):
        calendar_allocator.validate_calendar_fields("  ", VaccineCalendar.AGE_UNIT_WEEKS)
    with pytest.raises(ValidationFailed):
        calendar_allocator.validate_calendar_fields("Birth", "DAYS")
    with pytest.raises(ValidationFailed):
        calendar_allocator.validate_calendar_fields("Birth", VaccineCalendar.AGE_UNIT_WEEKS, min_age=5, max_age=2)
    with pytest.raises(ValidationFailed):
        calendar_allocator.validate_calendar_fields("Birth", VaccineCalendar.AGE_UNIT_WEEKS, specific_age="soon")

    cleaned = calendar_allocator.validate_calendar_fields(" Birth ", VaccineCalendar.AGE_UNIT_WEEKS, specific_age="0")
    assert cleaned['description'] == "Birth"
    assert cleaned['specific_age'] == 0


# ==============================
# DOSE NUMBER ALLOCATION
# ==============================
@pytest.mark.django_db
def test_reassign_orders_by_age_weight(vaccine, make_calendar):
    make_calendar([vaccine], specific_age=14, description="14 weeks")
    make_calendar([vaccine], specific_age=6, description="6 weeks")
    make_calendar([vaccine], age_unit=VaccineCalendar.AGE_UNIT_MONTHS, min_age=2, max_age=3, description="2-3 months")

    calendar_allocator.reassign_vaccine_dose_numbers([vaccine.id])

    assert dose_layout(vaccine) == [("6 weeks", 1), ("2-3 months", 2), ("14 weeks", 3)]


@pytest.mark.django_db
def test_reassign_breaks_ties_by_calendar_id(vaccine, make_calendar):
    make_calendar([vaccine], specific_age=6, description="first")
    make_calendar([vaccine], specific_age=6, description="second")

    calendar_allocator.reassign_vaccine_dose_numbers([vaccine.id, vaccine.id, None])

    assert dose_layout(vaccine) == [("first", 1), ("second", 2)]


@pytest.mark.django_db
def test_create_calendar_slots_doses_into_sequence(national, vaccine, make_calendar):
    make_calendar([vaccine], specific_age=10, description="10 weeks")

    calendar = calendar_allocator.create_calendar(
        national, "Birth", VaccineCalendar.AGE_UNIT_WEEKS, specific_age=0,
        vaccine_dose_counts=[{'vaccine_id': vaccine.id, 'count': 1}],
    )

    assert calendar.pk
    assert dose_layout(vaccine) == [("Birth", 1), ("10 weeks", 2)]


@pytest.mark.django_db
def test_create_calendar_refuses_more_doses_than_declared(national, vaccine, make_calendar):
    make_calendar([vaccine], doses=2, specific_age=6)

    with pytest.raises(ValidationFailed) as excinfo:
        calendar_allocator.create_calendar(
            national, "Extra", VaccineCalendar.AGE_UNIT_WEEKS, specific_age=20,
            vaccine_dose_counts=[{'vaccine_id': vaccine.id, 'count': 2}],
        )

    assert "only has 3 dose(s)" in excinfo.value.message
    assert not VaccineCalendar.objects.filter(description="Extra").exists()


@pytest.mark.django_db
def test_create_calendar_requires_known_vaccines_and_a_dose(national):
    with pytest.raises(ValidationFailed):
        calendar_allocator.create_calendar(national, "Birth", VaccineCalendar.AGE_UNIT_WEEKS, vaccine_dose_counts=[])
    with pytest.raises(ValidationFailed):
        calendar_allocator.create_calendar(
            national, "Birth", VaccineCalendar.AGE_UNIT_WEEKS,
            vaccine_dose_counts=[{'vaccine_id': 4242, 'count': 1}],
        )


@pytest.mark.django_db
def test_only_national_staff_manage_calendars(agent, vaccine):
    with pytest.raises(Forbidden):
        calendar_allocator.create_calendar(
            agent, "Birth", VaccineCalendar.AGE_UNIT_WEEKS,
            vaccine_dose_counts=[{'vaccine_id': vaccine.id, 'count': 1}],
        )


@pytest.mark.django_db
def test_update_calendar_replaces_assignments_and_renumbers(national, vaccine, make_calendar):
    polio = Vaccine.objects.create(name="Polio", doses_required=2)
    early = make_calendar([vaccine], specific_age=6, description="6 weeks")
    make_calendar([vaccine], specific_age=10, description="10 weeks")

    calendar_allocator.update_calendar(
        national, early.id, "16 weeks", VaccineCalendar.AGE_UNIT_WEEKS, specific_age=16,
        vaccine_dose_counts=[{'vaccine_id': vaccine.id, 'count': 1}, {'vaccine_id': polio.id, 'count': 1}],
    )

    assert dose_layout(vaccine) == [("10 weeks", 1), ("16 weeks", 2)]
    assert dose_layout(polio) == [("16 weeks", 1)]


@pytest.mark.django_db
def test_update_missing_calendar(national, vaccine):
    with pytest.raises(NotFound):
        calendar_allocator.update_calendar(
            national, 999, "Gone", VaccineCalendar.AGE_UNIT_WEEKS,
            vaccine_dose_counts=[{'vaccine_id': vaccine.id, 'count': 1}],
        )


@pytest.mark.django_db
def test_delete_calendar_detaches_history_and_closes_gaps(national, agent, child, vaccine, make_calendar):
    first = make_calendar([vaccine], specific_age=6, description="6 weeks")
    make_calendar([vaccine], specific_age=10, description="10 weeks")
    scheduled = ScheduledAppointment.objects.create(
        child=child, vaccine=vaccine, calendar=first, scheduled_for=in_days(3), planner=agent,
    )
    completed = CompletedVaccination.objects.create(child=child, vaccine=vaccine, calendar=first, dose=1)
    DueEntry.objects.create(child=child, vaccine=vaccine, calendar=first, dose=1, scheduled_for=in_days(3))

    result = calendar_allocator.delete_calendar(national, first.id)

    assert result['affected_child_ids'] == [child.id]
    assert not VaccineCalendar.objects.filter(pk=first.id).exists()
    scheduled.refresh_from_db()
    completed.refresh_from_db()
    assert scheduled.calendar_id is None
    assert completed.calendar_id is None
    assert not DueEntry.objects.filter(child=child, calendar_id=first.id).exists()
    assert dose_layout(vaccine) == [("10 weeks", 1)]


@pytest.mark.django_db
def test_dose_warnings_list_underplanned_vaccines(vaccine, make_calendar):
    measles = Vaccine.objects.create(name="Measles", doses_required=2)
    bcg = Vaccine.objects.create(name="BCG", doses_required=1)
    make_calendar([vaccine, bcg], specific_age=0)

    warnings = calendar_allocator.list_dose_warnings()

    assert [(w['name'], w['missing_doses']) for w in warnings] == [("Measles", 2), ("Penta", 2)]
    assert warnings[0]['vaccine_id'] == measles.id


@pytest.mark.django_db
def test_delete_calendar_rebuilds_all_children_in_one_job(national, child, health_center, vaccine,
                                                          make_calendar, django_capture_on_commit_callbacks):
    sibling = Child.objects.create(
        first_name="Ibrahima", last_name="Diop", gender='M',
        birth_date=child.birth_date, health_center=health_center,
    )
    doomed = make_calendar([vaccine], specific_age=6, description="6 weeks")
    kept = make_calendar([vaccine], min_age=0, description="From birth")
    for kid in (child, sibling):
        DueEntry.objects.create(child=kid, vaccine=vaccine, calendar=doomed, dose=1, scheduled_for=in_days(3))

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        calendar_allocator.delete_calendar(national, doomed.id)

    assert len(callbacks) == 1
    assert DueEntry.objects.filter(calendar=kept).count() == 2
