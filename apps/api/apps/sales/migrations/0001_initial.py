# Generated migration for sales app - treatment packages (orders)

import uuid
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('catalog', '0001_initial'),
        ('clinical', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('total_sessions', models.PositiveIntegerField(default=1, verbose_name='Total Sessions')),
                ('original_price', models.DecimalField(decimal_places=2, help_text='Service list price at the time of purchase', max_digits=10, verbose_name='Original Price')),
                ('discount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, verbose_name='Discount')),
                ('final_price', models.DecimalField(decimal_places=2, help_text='original_price - discount', max_digits=10, verbose_name='Final Price')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders_created', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='clinical.patient', verbose_name='Patient')),
                ('service', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='orders', to='catalog.service', verbose_name='Service')),
            ],
            options={
                'verbose_name': 'Order',
                'verbose_name_plural': 'Orders',
                'db_table': 'orders',
                'ordering': ['-created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(discount__gte=0), name='order_discount_non_negative'),
                    models.CheckConstraint(condition=models.Q(final_price__gte=0), name='order_final_price_non_negative'),
                    models.CheckConstraint(condition=models.Q(total_sessions__gte=1), name='order_total_sessions_positive'),
                ],
            },
        ),
    ]
