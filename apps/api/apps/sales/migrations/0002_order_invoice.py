# Orders reference invoices; billing depends on clinical, so the FK is added
# once the invoices table exists.

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    dependencies = [
        ('sales', '0001_initial'),
        ('billing', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='order',
            name='invoice',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='orders', to='billing.invoice', verbose_name='Invoice'),
        ),
        migrations.AddIndex(
            model_name='order',
            index=models.Index(fields=['patient', 'invoice'], name='idx_order_patient_invoice'),
        ),
    ]
