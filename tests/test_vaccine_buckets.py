from datetime import date, timedelta

import pytest
from django.utils import timezone

from Vaccination.models import (
    Child,
    CompletedVaccination,
    DueEntry,
    LateEntry,
    OverdueEntry,
    ScheduledAppointment,
    VaccineCalendar,
)
from Vaccination.services.vaccine_buckets import (
    compute_age_by_unit,
    compute_target_date,
    rebuild_all_vaccination_buckets,
    rebuild_child_vaccination_buckets,
    refresh_child_status,
)

from .helpers import in_days

pytestmark = pytest.mark.django_db


@pytest.fixture
def today(child):
    """The child is exactly ten weeks old."""
    return child.birth_date + timedelta(days=70)


def test_age_by_unit():
    birth = date(2024, 1, 1)

    assert compute_age_by_unit(birth, VaccineCalendar.AGE_UNIT_WEEKS, date(2024, 1, 15)) == 2
    assert compute_age_by_unit(birth, VaccineCalendar.AGE_UNIT_MONTHS, date(2024, 3, 5)) == 2
    assert compute_age_by_unit(birth, VaccineCalendar.AGE_UNIT_YEARS, date(2023, 6, 1)) == 0


def test_target_date_uses_calendar_months():
    birth = date(2024, 1, 31)

    assert compute_target_date(birth, VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_MONTHS, specific_age=1)) \
        == date(2024, 2, 29)
    assert compute_target_date(birth, VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_WEEKS, max_age=2)) \
        == date(2024, 2, 14)
    assert compute_target_date(birth, VaccineCalendar(age_unit=VaccineCalendar.AGE_UNIT_YEARS)) == birth


def test_rebuild_sorts_doses_into_due_and_late(child, vaccine, make_calendar, today):
    make_calendar([vaccine], specific_age=6, min_age=4, max_age=6, description="6 weeks")
    make_calendar([vaccine], min_age=8, max_age=12, description="8-12 weeks")
    make_calendar([vaccine], age_unit=VaccineCalendar.AGE_UNIT_MONTHS, min_age=3, description="3 months")

    result = rebuild_child_vaccination_buckets(child.id, today=today)

    assert result == {'due': 1, 'late': 1, 'status': Child.STATUS_BEHIND}
    assert DueEntry.objects.get(child=child).calendar.description == "8-12 weeks"
    late = LateEntry.objects.get(child=child)
    assert late.dose == 1
    assert timezone.localtime(late.due_date).date() == child.birth_date + timedelta(weeks=6)


def test_rebuild_skips_doses_already_handled(child, vaccine, agent, make_calendar, today):
    six_weeks = make_calendar([vaccine], max_age=6, description="6 weeks")
    ten_weeks = make_calendar([vaccine], min_age=8, max_age=12, description="10 weeks")
    fourteen = make_calendar([vaccine], min_age=9, max_age=14, description="14 weeks")
    CompletedVaccination.objects.create(child=child, vaccine=vaccine, calendar=six_weeks, dose=1)
    ScheduledAppointment.objects.create(
        child=child, vaccine=vaccine, calendar=ten_weeks, dose=2, scheduled_for=in_days(2), planner=agent,
    )
    OverdueEntry.objects.create(child=child, vaccine=vaccine, calendar=fourteen, dose=3, due_date=in_days(-2))

    result = rebuild_child_vaccination_buckets(child.id, today=today)

    assert (result['due'], result['late']) == (0, 0)
    assert result['status'] == Child.STATUS_BEHIND


def test_rebuild_ignores_vaccines_for_the_other_gender(child, boys_vaccine, make_calendar, today):
    make_calendar([boys_vaccine], min_age=8, max_age=12)

    result = rebuild_child_vaccination_buckets(child.id, today=today)

    assert result == {'due': 0, 'late': 0, 'status': Child.STATUS_UP_TO_DATE}


def test_rebuild_replaces_stale_entries(child, vaccine, make_calendar, today):
    calendar = make_calendar([vaccine], min_age=8, max_age=12)
    LateEntry.objects.create(child=child, vaccine=vaccine, calendar=calendar, dose=1, due_date=in_days(-30))

    rebuild_child_vaccination_buckets(child.id, today=today)

    assert not LateEntry.objects.filter(child=child).exists()
    assert DueEntry.objects.filter(child=child, calendar=calendar).exists()


def test_rebuild_unknown_child():
    assert rebuild_child_vaccination_buckets(4242) is None


def test_rebuild_all(child, health_center, vaccine, make_calendar):
    Child.objects.create(
        first_name="Ibrahima", last_name="Fall", gender='M',
        birth_date=child.birth_date, health_center=health_center,
    )
    make_calendar([vaccine], min_age=0)

    assert rebuild_all_vaccination_buckets(today=child.birth_date + timedelta(days=70)) == 2
    assert DueEntry.objects.count() == 2


def test_status_follows_late_and_overdue(child, vaccine):
    OverdueEntry.objects.create(child=child, vaccine=vaccine, dose=1, due_date=in_days(-2))
    assert refresh_child_status(child.id) == Child.STATUS_BEHIND

    OverdueEntry.objects.all().delete()
    assert refresh_child_status(child.id) == Child.STATUS_UP_TO_DATE
    child.refresh_from_db()
    assert child.status == Child.STATUS_UP_TO_DATE
