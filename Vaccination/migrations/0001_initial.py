import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


def tracker_fields():
    return [
        ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
        ('dose', models.PositiveIntegerField(default=1)),
        ('created_at', models.DateTimeField(auto_now_add=True)),
        ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='Vaccination.child')),
        ('calendar', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to='Vaccination.vaccinecalendar')),
        ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to='Vaccination.vaccine')),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Region',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150, unique=True)),
            ],
        ),
        migrations.CreateModel(
            name='District',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('region', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='districts', to='Vaccination.region')),
            ],
        ),
        migrations.CreateModel(
            name='HealthCenter',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150)),
                ('address', models.CharField(blank=True, max_length=255, null=True)),
                ('district', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='health_centers', to='Vaccination.district')),
            ],
        ),
        migrations.CreateModel(
            name='Account',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('email', models.EmailField(max_length=254, unique=True)),
                ('first_name', models.CharField(blank=True, default='', max_length=100)),
                ('last_name', models.CharField(blank=True, default='', max_length=100)),
                ('role', models.CharField(choices=[('SUPERADMIN', 'Super administrator'), ('NATIONAL', 'National'), ('REGIONAL', 'Regional'), ('DISTRICT', 'District'), ('AGENT', 'Agent')], default='AGENT', max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('fcm_token', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('region', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='accounts', to='Vaccination.region')),
                ('district', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='accounts', to='Vaccination.district')),
                ('health_center', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='accounts', to='Vaccination.healthcenter')),
            ],
        ),
        migrations.CreateModel(
            name='Vaccine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=150, unique=True)),
                ('description', models.TextField(blank=True, default='')),
                ('doses_required', models.PositiveIntegerField(default=1)),
                ('gender', models.CharField(blank=True, choices=[('M', 'Male'), ('F', 'Female')], max_length=1, null=True)),
            ],
        ),
        migrations.CreateModel(
            name='Child',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('gender', models.CharField(choices=[('M', 'Male'), ('F', 'Female')], max_length=1)),
                ('birth_date', models.DateField()),
                ('parent_name', models.CharField(blank=True, max_length=200, null=True)),
                ('parent_email', models.EmailField(blank=True, max_length=254, null=True)),
                ('parent_phone', models.CharField(blank=True, max_length=20, null=True)),
                ('status', models.CharField(choices=[('UP_TO_DATE', 'Up to date'), ('BEHIND', 'Behind schedule')], default='UP_TO_DATE', max_length=20)),
                ('next_appointment', models.DateTimeField(blank=True, null=True)),
                ('date_registered', models.DateTimeField(default=django.utils.timezone.now)),
                ('health_center', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='children', to='Vaccination.healthcenter')),
                ('next_vaccine', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='Vaccination.vaccine')),
                ('next_agent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='Vaccination.account')),
            ],
            options={
                'verbose_name_plural': 'Children',
                'ordering': ['-date_registered'],
            },
        ),
        migrations.CreateModel(
            name='VaccineCalendar',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('description', models.TextField()),
                ('age_unit', models.CharField(choices=[('WEEKS', 'Weeks'), ('MONTHS', 'Months'), ('YEARS', 'Years')], max_length=10)),
                ('specific_age', models.PositiveIntegerField(blank=True, null=True)),
                ('min_age', models.PositiveIntegerField(blank=True, null=True)),
                ('max_age', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='VaccineCalendarDose',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('dose_number', models.PositiveIntegerField()),
                ('calendar', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='dose_assignments', to='Vaccination.vaccinecalendar')),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='calendar_doses', to='Vaccination.vaccine')),
            ],
            options={
                'constraints': [models.UniqueConstraint(fields=('vaccine', 'dose_number'), name='unique_calendar_dose_per_vaccine')],
            },
        ),
        migrations.CreateModel(
            name='ScheduledAppointment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('scheduled_for', models.DateTimeField()),
                ('dose', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='scheduled_appointments', to='Vaccination.child')),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='scheduled_appointments', to='Vaccination.vaccine')),
                ('calendar', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='scheduled_appointments', to='Vaccination.vaccinecalendar')),
                ('planner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='planned_appointments', to='Vaccination.account')),
                ('administered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assigned_appointments', to='Vaccination.account')),
            ],
            options={
                'constraints': [models.UniqueConstraint(fields=('child', 'calendar', 'vaccine', 'dose'), name='unique_scheduled_dose')],
            },
        ),
        migrations.CreateModel(
            name='CompletedVaccination',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('dose', models.PositiveIntegerField(default=1)),
                ('notes', models.TextField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='completed_vaccinations', to='Vaccination.child')),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='completed_vaccinations', to='Vaccination.vaccine')),
                ('calendar', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='completed_vaccinations', to='Vaccination.vaccinecalendar')),
                ('administered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='administered_vaccinations', to='Vaccination.account')),
            ],
        ),
        migrations.CreateModel(
            name='DueEntry',
            fields=tracker_fields() + [
                ('scheduled_for', models.DateTimeField()),
            ],
            options={
                'verbose_name_plural': 'Due entries',
                'abstract': False,
                'constraints': [models.UniqueConstraint(fields=('child', 'calendar', 'vaccine', 'dose'), name='unique_dueentry_dose')],
            },
        ),
        migrations.CreateModel(
            name='LateEntry',
            fields=tracker_fields() + [
                ('due_date', models.DateTimeField()),
            ],
            options={
                'verbose_name_plural': 'Late entries',
                'abstract': False,
                'constraints': [models.UniqueConstraint(fields=('child', 'calendar', 'vaccine', 'dose'), name='unique_lateentry_dose')],
            },
        ),
        migrations.CreateModel(
            name='OverdueEntry',
            fields=tracker_fields() + [
                ('due_date', models.DateTimeField()),
                ('escalated_to', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='escalated_overdues', to='Vaccination.account')),
            ],
            options={
                'verbose_name_plural': 'Overdue entries',
                'abstract': False,
                'constraints': [models.UniqueConstraint(fields=('child', 'calendar', 'vaccine', 'dose'), name='unique_overdueentry_dose')],
            },
        ),
        migrations.CreateModel(
            name='StockLot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('owner_type', models.CharField(choices=[('NATIONAL', 'National'), ('REGIONAL', 'Regional'), ('DISTRICT', 'District'), ('HEALTHCENTER', 'Health center')], max_length=20)),
                ('owner_id', models.PositiveBigIntegerField(blank=True, null=True)),
                ('quantity', models.PositiveIntegerField()),
                ('remaining_quantity', models.PositiveIntegerField()),
                ('expiration', models.DateField()),
                ('status', models.CharField(choices=[('VALID', 'Valid'), ('EXPIRED', 'Expired'), ('PENDING', 'Pending')], default='VALID', max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lots', to='Vaccination.vaccine')),
                ('source_lot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='derived_lots', to='Vaccination.stocklot')),
            ],
            options={
                'indexes': [models.Index(fields=['vaccine', 'owner_type', 'owner_id', 'expiration'], name='stocklot_owner_expiry_idx')],
            },
        ),
        migrations.CreateModel(
            name='StockReservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('appointment', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='reservation', to='Vaccination.scheduledappointment')),
                ('lot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='Vaccination.stocklot')),
            ],
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=200)),
                ('message', models.TextField()),
                ('type', models.CharField(default='system', max_length=40)),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to='Vaccination.child')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='EventLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(max_length=40)),
                ('action', models.CharField(max_length=40)),
                ('performed_by', models.CharField(default='System', max_length=255)),
                ('entity_type', models.CharField(max_length=40)),
                ('entity_id', models.CharField(blank=True, max_length=64, null=True)),
                ('entity_name', models.CharField(blank=True, max_length=255, null=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
                ('account', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='events', to='Vaccination.account')),
            ],
            options={
                'ordering': ['-timestamp'],
            },
        ),
    ]
