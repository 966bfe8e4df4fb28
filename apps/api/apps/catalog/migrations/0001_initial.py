# Generated migration for catalog app - services

import uuid
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Service',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200, verbose_name='Name')),
                ('description', models.TextField(blank=True, default='', verbose_name='Description')),
                ('base_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='Base Price')),
                ('default_sessions', models.PositiveIntegerField(default=1, help_text='Sessions included in a package of this service', verbose_name='Default Sessions')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
            ],
            options={
                'verbose_name': 'Service',
                'verbose_name_plural': 'Services',
                'db_table': 'services',
                'ordering': ['name'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(base_price__gte=0), name='service_base_price_non_negative'),
                    models.CheckConstraint(condition=models.Q(default_sessions__gte=1), name='service_default_sessions_positive'),
                ],
            },
        ),
    ]
