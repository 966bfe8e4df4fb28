# Session records link appointments to orders (sales app)

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('clinical', '0001_initial'),
        ('sales', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='AppointmentService',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('session_number', models.PositiveIntegerField(verbose_name='Session Number')),
                ('deleted_at', models.DateTimeField(blank=True, null=True, verbose_name='Deleted At')),
                ('delete_reason', models.TextField(blank=True, default='', verbose_name='Delete Reason')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('appointment', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sessions', to='clinical.appointment', verbose_name='Appointment')),
                ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Deleted By')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='sessions', to='sales.order', verbose_name='Order')),
            ],
            options={
                'verbose_name': 'Appointment Session',
                'verbose_name_plural': 'Appointment Sessions',
                'db_table': 'appointment_services',
                'ordering': ['created_at'],
                'indexes': [models.Index(fields=['appointment', 'deleted_at'], name='idx_session_appt_deleted')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(session_number__gte=1), name='session_number_positive'),
                    models.UniqueConstraint(condition=models.Q(deleted_at__isnull=True), fields=('order', 'session_number'), name='uniq_active_session_number_per_order'),
                ],
            },
        ),
    ]
