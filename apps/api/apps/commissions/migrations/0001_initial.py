# Generated migration for commissions app

import uuid
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('clinical', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Commission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('commission_rate', models.DecimalField(decimal_places=4, max_digits=5, verbose_name='Commission Rate')),
                ('commission_amount', models.DecimalField(decimal_places=2, max_digits=10, verbose_name='Commission Amount')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('paid', 'Paid'), ('cancelled', 'Cancelled')], default='pending', max_length=20, verbose_name='Status')),
                ('approved_at', models.DateTimeField(blank=True, null=True, verbose_name='Approved At')),
                ('paid_at', models.DateTimeField(blank=True, null=True, verbose_name='Paid At')),
                ('payment_method', models.CharField(blank=True, choices=[('cash', 'Cash'), ('card', 'Card'), ('transfer', 'Bank Transfer'), ('yape', 'Yape'), ('plin', 'Plin')], max_length=20, null=True, verbose_name='Payment Method')),
                ('payment_reference', models.CharField(blank=True, default='', max_length=100, verbose_name='Payment Reference')),
                ('rejection_reason', models.TextField(blank=True, default='', verbose_name='Rejection Reason')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('appointment', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='commissions', to='clinical.appointment', verbose_name='Appointment')),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Approved By')),
                ('paid_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Paid By')),
                ('sales_person', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='commissions', to=settings.AUTH_USER_MODEL, verbose_name='Sales Person')),
            ],
            options={
                'verbose_name': 'Commission',
                'verbose_name_plural': 'Commissions',
                'db_table': 'commissions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['sales_person', 'status'], name='idx_commission_seller_status'),
                    models.Index(fields=['status', '-created_at'], name='idx_commission_status_created'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(commission_amount__gte=0), name='commission_amount_non_negative'),
                    models.CheckConstraint(condition=models.Q(commission_rate__gte=0) & models.Q(commission_rate__lte=1), name='commission_rate_between_0_and_1'),
                ],
            },
        ),
    ]
