"""
Shared pytest fixtures: an administrative hierarchy, staff accounts, a child,
vaccines, calendars and stock lots.
"""
from datetime import date, timedelta

import pytest
from django.utils import timezone

from Vaccination.models import (
    Account,
    Child,
    District,
    HealthCenter,
    Region,
    StockLot,
    Vaccine,
    VaccineCalendar,
    VaccineCalendarDose,
)


@pytest.fixture(autouse=True)
def sync_notifications(settings):
    """Run after-commit work inline so tests never race a thread."""
    settings.VACCINATION_ASYNC_NOTIFICATIONS = False
    settings.VACCINATION_LAPSE_GRACE_HOURS = 24
    settings.FIREBASE_KEY_PATH = None


# ============================================================================
# HIERARCHY & ACCOUNTS
# ============================================================================


@pytest.fixture
def region(db):
    return Region.objects.create(name="Dakar")


@pytest.fixture
def district(region):
    return District.objects.create(name="Pikine", region=region)


@pytest.fixture
def health_center(district):
    return HealthCenter.objects.create(name="Centre de santé Thiaroye", district=district)


@pytest.fixture
def other_health_center(district):
    return HealthCenter.objects.create(name="Centre de santé Guédiawaye", district=district)


@pytest.fixture
def agent(health_center):
    return Account.objects.create(
        email="agent@vms.test",
        first_name="Fatou",
        last_name="Ndiaye",
        role=Account.ROLE_AGENT,
        health_center=health_center,
    )


@pytest.fixture
def colleague(health_center):
    return Account.objects.create(
        email="colleague@vms.test",
        first_name="Moussa",
        last_name="Sarr",
        role=Account.ROLE_AGENT,
        health_center=health_center,
        fcm_token="colleague-device-token",
    )


@pytest.fixture
def foreign_agent(other_health_center):
    return Account.objects.create(
        email="foreign@vms.test",
        role=Account.ROLE_AGENT,
        health_center=other_health_center,
    )


@pytest.fixture
def national(db):
    return Account.objects.create(email="national@vms.test", role=Account.ROLE_NATIONAL)


# ============================================================================
# CHILD & VACCINES
# ============================================================================


@pytest.fixture
def child(health_center):
    return Child.objects.create(
        first_name="Awa",
        last_name="Diop",
        gender='F',
        birth_date=date.today() - timedelta(days=70),
        health_center=health_center,
        parent_name="Mariama Diop",
        parent_email="parent@vms.test",
    )


@pytest.fixture
def vaccine(db):
    return Vaccine.objects.create(name="Penta", doses_required=3)


@pytest.fixture
def boys_vaccine(db):
    return Vaccine.objects.create(name="Boys only", doses_required=1, gender='M')


@pytest.fixture
def make_calendar(db):
    """Create a calendar holding ``doses`` assignments of each given vaccine."""
    def _make(vaccines, doses=1, age_unit=VaccineCalendar.AGE_UNIT_WEEKS, specific_age=None,
              min_age=None, max_age=None, description="Calendar entry"):
        calendar = VaccineCalendar.objects.create(
            description=description,
            age_unit=age_unit,
            specific_age=specific_age,
            min_age=min_age,
            max_age=max_age,
        )
        for vaccine in vaccines:
            taken = VaccineCalendarDose.objects.filter(vaccine=vaccine).count()
            for offset in range(doses):
                VaccineCalendarDose.objects.create(calendar=calendar, vaccine=vaccine, dose_number=taken + offset + 1)
        return calendar

    return _make


# ============================================================================
# STOCK
# ============================================================================


@pytest.fixture
def make_lot(health_center):
    """Create a health center lot expiring ``expires_in`` days from today."""
    def _make(vaccine, quantity=10, expires_in=365, status=StockLot.STATUS_VALID,
              owner_type=StockLot.OWNER_HEALTHCENTER, owner_id=None):
        return StockLot.objects.create(
            vaccine=vaccine,
            owner_type=owner_type,
            owner_id=owner_id if owner_id is not None else health_center.id,
            quantity=quantity,
            remaining_quantity=quantity,
            expiration=timezone.localdate() + timedelta(days=expires_in),
            status=status,
        )

    return _make


@pytest.fixture
def stocked_vaccine(vaccine, make_lot):
    make_lot(vaccine, quantity=10)
    return vaccine