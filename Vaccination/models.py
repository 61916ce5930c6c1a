from django.db import models
from django.utils import timezone


# ==============================
# ADMINISTRATIVE HIERARCHY
# ==============================
class Region(models.Model):
    name = models.CharField(max_length=150, unique=True)

    def __str__(self):
        return self.name


class District(models.Model):
    name = models.CharField(max_length=150)
    region = models.ForeignKey(Region, on_delete=models.CASCADE, related_name='districts')

    def __str__(self):
        return f"{self.name} ({self.region.name})"


class HealthCenter(models.Model):
    name = models.CharField(max_length=150)
    address = models.CharField(max_length=255, blank=True, null=True)
    district = models.ForeignKey(District, on_delete=models.CASCADE, related_name='health_centers')

    def __str__(self):
        return self.name


class Account(models.Model):
    """Staff member of one tier. Matched to the Django auth user by email."""

    ROLE_SUPERADMIN = 'SUPERADMIN'
    ROLE_NATIONAL = 'NATIONAL'
    ROLE_REGIONAL = 'REGIONAL'
    ROLE_DISTRICT = 'DISTRICT'
    ROLE_AGENT = 'AGENT'
    ROLE_CHOICES = [
        (ROLE_SUPERADMIN, 'Super administrator'),
        (ROLE_NATIONAL, 'National'),
        (ROLE_REGIONAL, 'Regional'),
        (ROLE_DISTRICT, 'District'),
        (ROLE_AGENT, 'Agent'),
    ]

    email = models.EmailField(max_length=254, unique=True)
    first_name = models.CharField(max_length=100, blank=True, default='')
    last_name = models.CharField(max_length=100, blank=True, default='')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_AGENT)

    region = models.ForeignKey(Region, on_delete=models.SET_NULL, blank=True, null=True, related_name='accounts')
    district = models.ForeignKey(District, on_delete=models.SET_NULL, blank=True, null=True, related_name='accounts')
    health_center = models.ForeignKey(
        HealthCenter, on_delete=models.SET_NULL, blank=True, null=True, related_name='accounts'
    )

    is_active = models.BooleanField(default=True)
    fcm_token = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip() or self.email

    @property
    def is_agent(self):
        return self.role == self.ROLE_AGENT

    @property
    def is_national(self):
        return self.role in (self.ROLE_SUPERADMIN, self.ROLE_NATIONAL)

    def __str__(self):
        return f"{self.full_name} ({self.role})"


class Child(models.Model):
    GENDER_CHOICES = [
        ('M', 'Male'),
        ('F', 'Female'),
    ]

    STATUS_UP_TO_DATE = 'UP_TO_DATE'
    STATUS_BEHIND = 'BEHIND'
    STATUS_CHOICES = [
        (STATUS_UP_TO_DATE, 'Up to date'),
        (STATUS_BEHIND, 'Behind schedule'),
    ]

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    gender = models.CharField(max_length=1, choices=GENDER_CHOICES)
    birth_date = models.DateField()
    health_center = models.ForeignKey(HealthCenter, on_delete=models.CASCADE, related_name='children')

    # Parent contact
    parent_name = models.CharField(max_length=200, blank=True, null=True)
    parent_email = models.EmailField(max_length=254, blank=True, null=True)
    parent_phone = models.CharField(max_length=20, blank=True, null=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_UP_TO_DATE)

    # Nearest scheduled appointment, recomputed after every appointment mutation
    next_appointment = models.DateTimeField(blank=True, null=True)
    next_vaccine = models.ForeignKey(
        'Vaccine', on_delete=models.SET_NULL, blank=True, null=True, related_name='+'
    )
    next_agent = models.ForeignKey(
        Account, on_delete=models.SET_NULL, blank=True, null=True, related_name='+'
    )

    date_registered = models.DateTimeField(default=timezone.now)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return f"{self.full_name} ({self.pk})"

    class Meta:
        verbose_name_plural = "Children"
        ordering = ['-date_registered']


# ==============================
# VACCINES & CALENDAR
# ==============================
class Vaccine(models.Model):
    name = models.CharField(max_length=150, unique=True)
    description = models.TextField(blank=True, default='')
    # Declared total; extra doses past this remain schedulable
    doses_required = models.PositiveIntegerField(default=1)
    gender = models.CharField(max_length=1, choices=Child.GENDER_CHOICES, blank=True, null=True)

    @property
    def total_doses(self):
        return self.doses_required if self.doses_required and self.doses_required > 0 else 1

    def is_suitable_for(self, gender):
        return not self.gender or self.gender == gender

    def __str__(self):
        return self.name


class VaccineCalendar(models.Model):
    AGE_UNIT_WEEKS = 'WEEKS'
    AGE_UNIT_MONTHS = 'MONTHS'
    AGE_UNIT_YEARS = 'YEARS'
    AGE_UNIT_CHOICES = [
        (AGE_UNIT_WEEKS, 'Weeks'),
        (AGE_UNIT_MONTHS, 'Months'),
        (AGE_UNIT_YEARS, 'Years'),
    ]

    description = models.TextField()
    age_unit = models.CharField(max_length=10, choices=AGE_UNIT_CHOICES)
    specific_age = models.PositiveIntegerField(blank=True, null=True)
    min_age = models.PositiveIntegerField(blank=True, null=True)
    max_age = models.PositiveIntegerField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.description


class VaccineCalendarDose(models.Model):
    calendar = models.ForeignKey(VaccineCalendar, on_delete=models.CASCADE, related_name='dose_assignments')
    vaccine = models.ForeignKey(Vaccine, on_delete=models.CASCADE, related_name='calendar_doses')
    dose_number = models.PositiveIntegerField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['vaccine', 'dose_number'], name='unique_calendar_dose_per_vaccine'),
        ]

    def __str__(self):
        return f"{self.vaccine.name} dose {self.dose_number} @ {self.calendar_id}"


# ==============================
# APPOINTMENTS & TRACKERS
# ==============================
class ScheduledAppointment(models.Model):
    child = models.ForeignKey(Child, on_delete=models.CASCADE, related_name='scheduled_appointments')
    vaccine = models.ForeignKey(Vaccine, on_delete=models.CASCADE, related_name='scheduled_appointments')
    calendar = models.ForeignKey(
        VaccineCalendar, on_delete=models.SET_NULL, blank=True, null=True, related_name='scheduled_appointments'
    )
    scheduled_for = models.DateTimeField()
    dose = models.PositiveIntegerField(default=1)

    planner = models.ForeignKey(
        Account, on_delete=models.SET_NULL, blank=True, null=True, related_name='planned_appointments'
    )
    administered_by = models.ForeignKey(
        Account, on_delete=models.SET_NULL, blank=True, null=True, related_name='assigned_appointments'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['child', 'calendar', 'vaccine', 'dose'], name='unique_scheduled_dose'
            ),
        ]

    def __str__(self):
        return f"{self.vaccine.name} dose {self.dose} for {self.child.full_name} on {self.scheduled_for:%Y-%m-%d %H:%M}"


class CompletedVaccination(models.Model):
    child = models.ForeignKey(Child, on_delete=models.CASCADE, related_name='completed_vaccinations')
    vaccine = models.ForeignKey(Vaccine, on_delete=models.CASCADE, related_name='completed_vaccinations')
    calendar = models.ForeignKey(
        VaccineCalendar, on_delete=models.SET_NULL, blank=True, null=True, related_name='completed_vaccinations'
    )
    dose = models.PositiveIntegerField(default=1)
    administered_by = models.ForeignKey(
        Account, on_delete=models.SET_NULL, blank=True, null=True, related_name='administered_vaccinations'
    )
    notes = models.TextField(blank=True, null=True)
    completed_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return f"{self.vaccine.name} dose {self.dose} given to {self.child.full_name}"


class DoseTracker(models.Model):
    """A dose not yet administered, keyed by (child, calendar, vaccine, dose)."""

    child = models.ForeignKey(Child, on_delete=models.CASCADE)
    calendar = models.ForeignKey(VaccineCalendar, on_delete=models.SET_NULL, blank=True, null=True)
    vaccine = models.ForeignKey(Vaccine, on_delete=models.CASCADE)
    dose = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        abstract = True
        constraints = [
            models.UniqueConstraint(
                fields=['child', 'calendar', 'vaccine', 'dose'], name='unique_%(class)s_dose'
            ),
        ]


class DueEntry(DoseTracker):
    scheduled_for = models.DateTimeField()

    class Meta(DoseTracker.Meta):
        verbose_name_plural = "Due entries"


class LateEntry(DoseTracker):
    due_date = models.DateTimeField()

    class Meta(DoseTracker.Meta):
        verbose_name_plural = "Late entries"


class OverdueEntry(DoseTracker):
    due_date = models.DateTimeField()
    escalated_to = models.ForeignKey(
        Account, on_delete=models.SET_NULL, blank=True, null=True, related_name='escalated_overdues'
    )

    class Meta(DoseTracker.Meta):
        verbose_name_plural = "Overdue entries"


# ==============================
# STOCK
# ==============================
class StockLot(models.Model):
    OWNER_NATIONAL = 'NATIONAL'
    OWNER_REGIONAL = 'REGIONAL'
    OWNER_DISTRICT = 'DISTRICT'
    OWNER_HEALTHCENTER = 'HEALTHCENTER'
    OWNER_CHOICES = [
        (OWNER_NATIONAL, 'National'),
        (OWNER_REGIONAL, 'Regional'),
        (OWNER_DISTRICT, 'District'),
        (OWNER_HEALTHCENTER, 'Health center'),
    ]

    STATUS_VALID = 'VALID'
    STATUS_EXPIRED = 'EXPIRED'
    STATUS_PENDING = 'PENDING'
    STATUS_CHOICES = [
        (STATUS_VALID, 'Valid'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_PENDING, 'Pending'),
    ]

    vaccine = models.ForeignKey(Vaccine, on_delete=models.CASCADE, related_name='lots')
    owner_type = models.CharField(max_length=20, choices=OWNER_CHOICES)
    # NULL for the national tier
    owner_id = models.PositiveBigIntegerField(blank=True, null=True)
    quantity = models.PositiveIntegerField()
    remaining_quantity = models.PositiveIntegerField()
    expiration = models.DateField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_VALID)
    source_lot = models.ForeignKey(
        'self', on_delete=models.SET_NULL, blank=True, null=True, related_name='derived_lots'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['vaccine', 'owner_type', 'owner_id', 'expiration'], name='stocklot_owner_expiry_idx'),
        ]

    def __str__(self):
        return f"Lot {self.pk} {self.vaccine.name} ({self.remaining_quantity}/{self.quantity}, exp {self.expiration})"


class StockReservation(models.Model):
    appointment = models.OneToOneField(
        ScheduledAppointment, on_delete=models.CASCADE, related_name='reservation'
    )
    lot = models.ForeignKey(StockLot, on_delete=models.CASCADE, related_name='reservations')
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.quantity} from lot {self.lot_id} for appointment {self.appointment_id}"


# ==============================
# NOTIFICATIONS & AUDIT
# ==============================
class Notification(models.Model):
    child = models.ForeignKey(Child, on_delete=models.CASCADE, related_name='notifications')
    title = models.CharField(max_length=200)
    message = models.TextField()
    type = models.CharField(max_length=40, default='system')
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.child_id} - {self.title}"


class EventLog(models.Model):
    type = models.CharField(max_length=40)
    action = models.CharField(max_length=40)
    account = models.ForeignKey(Account, on_delete=models.SET_NULL, blank=True, null=True, related_name='events')
    performed_by = models.CharField(max_length=255, default='System')
    entity_type = models.CharField(max_length=40)
    entity_id = models.CharField(max_length=64, blank=True, null=True)
    entity_name = models.CharField(max_length=255, blank=True, null=True)
    details = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.type} {self.action} {self.entity_name or self.entity_id}"
