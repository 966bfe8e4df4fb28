"""Billing models - invoices and payments."""
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from decimal import Decimal
import uuid


class InvoiceStatus(models.TextChoices):
    """
    Invoice status, derived from payments:
    - total_paid == 0 -> pending
    - 0 < total_paid < total_amount -> partial
    - total_paid >= total_amount -> paid
    cancelled is the only status set explicitly, and only without payments.
    """
    PENDING = 'pending', _('Pending')
    PARTIAL = 'partial', _('Partially Paid')
    PAID = 'paid', _('Paid')
    CANCELLED = 'cancelled', _('Cancelled')


class PaymentMethod(models.TextChoices):
    CASH = 'cash', _('Cash')
    CARD = 'card', _('Card')
    TRANSFER = 'transfer', _('Bank Transfer')
    YAPE = 'yape', _('Yape')
    PLIN = 'plin', _('Plin')


class PaymentType(models.TextChoices):
    """
    What the money is for:
    - invoice_payment: settles an invoice (invoice required)
    - reservation: booking deposit (appointment required)
    - service_payment: paid at the visit (appointment required)
    """
    INVOICE_PAYMENT = 'invoice_payment', _('Invoice Payment')
    RESERVATION = 'reservation', _('Reservation')
    SERVICE_PAYMENT = 'service_payment', _('Service Payment')


class Invoice(models.Model):
    """
    Billing document grouping one or more orders of one patient.

    total_amount is fixed at creation (sum of the orders' final prices).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='invoices',
        verbose_name=_('Patient')
    )
    total_amount = models.DecimalField(
        _('Total Amount'),
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00')
    )
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.PENDING
    )
    due_date = models.DateField(_('Due Date'), null=True, blank=True)
    notes = models.TextField(_('Notes'), blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='invoices_created',
        verbose_name=_('Created By')
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)
    cancelled_at = models.DateTimeField(_('Cancelled At'), null=True, blank=True)

    class Meta:
        db_table = 'invoices'
        ordering = ['-created_at']
        verbose_name = _('Invoice')
        verbose_name_plural = _('Invoices')
        indexes = [
            models.Index(fields=['patient', '-created_at'], name='idx_invoice_patient_created'),
            models.Index(fields=['status'], name='idx_invoice_status'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name='invoice_total_non_negative'
            ),
        ]

    def __str__(self):
        return f'Invoice {self.id} - {self.get_status_display()} - {self.total_amount}'

    @staticmethod
    def derive_status(total_paid, total_amount):
        """Status implied by the amount paid against the invoice total."""
        if total_paid <= 0:
            return InvoiceStatus.PENDING
        if total_paid >= total_amount:
            return InvoiceStatus.PAID
        return InvoiceStatus.PARTIAL

    @property
    def is_cancelled(self):
        return self.status == InvoiceStatus.CANCELLED

    def mark_cancelled(self):
        self.status = InvoiceStatus.CANCELLED
        self.cancelled_at = timezone.now()
        return self


class Payment(models.Model):
    """
    Money received from a patient.

    Payments are hard-deleted when voided; the invoice status is recomputed
    in the same transaction as the create/delete.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='payments',
        verbose_name=_('Patient')
    )
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments',
        verbose_name=_('Invoice')
    )
    appointment = models.ForeignKey(
        'clinical.Appointment',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments',
        verbose_name=_('Appointment')
    )
    amount_paid = models.DecimalField(_('Amount Paid'), max_digits=10, decimal_places=2)
    payment_method = models.CharField(
        _('Payment Method'),
        max_length=20,
        choices=PaymentMethod.choices
    )
    payment_type = models.CharField(
        _('Payment Type'),
        max_length=20,
        choices=PaymentType.choices
    )
    payment_date = models.DateTimeField(_('Payment Date'), default=timezone.now)
    receipt_url = models.CharField(_('Receipt URL'), max_length=500, null=True, blank=True)
    notes = models.TextField(_('Notes'), blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payments_recorded',
        verbose_name=_('Created By')
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-payment_date']
        verbose_name = _('Payment')
        verbose_name_plural = _('Payments')
        indexes = [
            models.Index(fields=['invoice'], name='idx_payment_invoice'),
            models.Index(fields=['patient', '-payment_date'], name='idx_payment_patient_date'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_paid__gt=0),
                name='payment_amount_positive'
            ),
        ]

    def __str__(self):
        return f'Payment {self.amount_paid} ({self.get_payment_type_display()})'

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()
        errors = {}

        if self.amount_paid is not None and self.amount_paid <= 0:
            errors['amount_paid'] = 'Amount paid must be greater than 0'

        # INVARIANT: payment type determines the required reference
        if self.payment_type == PaymentType.INVOICE_PAYMENT and not self.invoice_id:
            errors['invoice'] = 'Invoice payments require an invoice'
        if self.payment_type in (PaymentType.RESERVATION, PaymentType.SERVICE_PAYMENT) and not self.appointment_id:
            errors['appointment'] = f'{self.get_payment_type_display()} payments require an appointment'

        if errors:
            raise ValidationError(errors)
