# Generated migration for clinical app - patients and appointments

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('first_name', models.CharField(max_length=150, verbose_name='First Name')),
                ('last_name', models.CharField(max_length=150, verbose_name='Last Name')),
                ('document_number', models.CharField(blank=True, max_length=30, null=True, unique=True, verbose_name='Document Number')),
                ('phone', models.CharField(blank=True, default='', max_length=30, verbose_name='Phone')),
                ('email', models.EmailField(blank=True, default='', max_length=254, verbose_name='Email')),
                ('date_of_birth', models.DateField(blank=True, null=True, verbose_name='Date of Birth')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patients',
                'ordering': ['last_name', 'first_name'],
                'indexes': [models.Index(fields=['last_name', 'first_name'], name='idx_patient_name')],
            },
        ),
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('scheduled_date', models.DateTimeField(verbose_name='Scheduled Date')),
                ('duration_minutes', models.PositiveIntegerField(default=60, verbose_name='Duration (minutes)')),
                ('reservation_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Deposit collected at booking time', max_digits=10, null=True, verbose_name='Reservation Amount')),
                ('reservation_receipt_url', models.CharField(blank=True, max_length=500, null=True, verbose_name='Reservation Receipt URL')),
                ('status', models.CharField(choices=[('reserved', 'Reserved'), ('in_progress', 'In Progress'), ('attended', 'Attended'), ('cancelled', 'Cancelled'), ('no_show', 'No Show')], default='reserved', max_length=20, verbose_name='Status')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('cancellation_reason', models.TextField(blank=True, default='', verbose_name='Cancellation Reason')),
                ('attended_at', models.DateTimeField(blank=True, null=True, verbose_name='Attended At')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('attended_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments_attended', to=settings.AUTH_USER_MODEL, verbose_name='Attended By')),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments_created', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='clinical.patient', verbose_name='Patient')),
            ],
            options={
                'verbose_name': 'Appointment',
                'verbose_name_plural': 'Appointments',
                'db_table': 'appointments',
                'ordering': ['-scheduled_date'],
                'indexes': [
                    models.Index(fields=['patient', '-scheduled_date'], name='idx_appt_patient_date'),
                    models.Index(fields=['status', 'scheduled_date'], name='idx_appt_status_date'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(duration_minutes__gte=1), name='appointment_duration_positive'),
                    models.CheckConstraint(condition=models.Q(reservation_amount__isnull=True) | models.Q(reservation_amount__gte=0), name='appointment_reservation_non_negative'),
                ],
            },
        ),
    ]
