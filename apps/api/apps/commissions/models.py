"""Commission models - sales commissions on reservation deposits."""
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
import uuid


class CommissionStatus(models.TextChoices):
    """
    Commission status with state machine.

    Transitions:
    - pending -> approved, rejected, cancelled
    - approved -> paid, cancelled
    - rejected -> cancelled
    - paid -> (terminal)
    - cancelled -> (terminal)
    """
    PENDING = 'pending', _('Pending')
    APPROVED = 'approved', _('Approved')
    REJECTED = 'rejected', _('Rejected')
    PAID = 'paid', _('Paid')
    CANCELLED = 'cancelled', _('Cancelled')


class CommissionPaymentMethod(models.TextChoices):
    CASH = 'cash', _('Cash')
    CARD = 'card', _('Card')
    TRANSFER = 'transfer', _('Bank Transfer')
    YAPE = 'yape', _('Yape')
    PLIN = 'plin', _('Plin')


class Commission(models.Model):
    """
    Commission accrued by a sales person on an appointment's reservation deposit.

    commission_rate is frozen at accrual time; later rate changes do not
    touch existing commissions.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sales_person = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='commissions',
        verbose_name=_('Sales Person')
    )
    appointment = models.ForeignKey(
        'clinical.Appointment',
        on_delete=models.PROTECT,
        related_name='commissions',
        verbose_name=_('Appointment')
    )

    commission_rate = models.DecimalField(_('Commission Rate'), max_digits=5, decimal_places=4)
    commission_amount = models.DecimalField(_('Commission Amount'), max_digits=10, decimal_places=2)
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=CommissionStatus.choices,
        default=CommissionStatus.PENDING
    )

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Approved By')
    )
    approved_at = models.DateTimeField(_('Approved At'), null=True, blank=True)
    paid_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Paid By')
    )
    paid_at = models.DateTimeField(_('Paid At'), null=True, blank=True)
    payment_method = models.CharField(
        _('Payment Method'),
        max_length=20,
        choices=CommissionPaymentMethod.choices,
        null=True,
        blank=True
    )
    payment_reference = models.CharField(_('Payment Reference'), max_length=100, blank=True, default='')
    rejection_reason = models.TextField(_('Rejection Reason'), blank=True, default='')
    notes = models.TextField(_('Notes'), blank=True, default='')

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'commissions'
        ordering = ['-created_at']
        verbose_name = _('Commission')
        verbose_name_plural = _('Commissions')
        indexes = [
            models.Index(fields=['sales_person', 'status'], name='idx_commission_seller_status'),
            models.Index(fields=['status', '-created_at'], name='idx_commission_status_created'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(commission_amount__gte=0),
                name='commission_amount_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(commission_rate__gte=0) & models.Q(commission_rate__lte=1),
                name='commission_rate_between_0_and_1'
            ),
        ]

    def __str__(self):
        return f'Commission {self.commission_amount} - {self.get_status_display()}'

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @classmethod
    def get_valid_transitions(cls):
        """
        Get valid status transitions.

        Returns dict: {current_status: [allowed_next_statuses]}
        """
        return {
            CommissionStatus.PENDING: [
                CommissionStatus.APPROVED,
                CommissionStatus.REJECTED,
                CommissionStatus.CANCELLED,
            ],
            CommissionStatus.APPROVED: [CommissionStatus.PAID, CommissionStatus.CANCELLED],
            CommissionStatus.REJECTED: [CommissionStatus.CANCELLED],
            CommissionStatus.PAID: [],       # Terminal
            CommissionStatus.CANCELLED: [],  # Terminal
        }

    def can_transition_to(self, new_status):
        return new_status in self.get_valid_transitions().get(self.status, [])

    def transition_to(self, new_status, user=None, **fields):
        """
        Transition commission to new status with validation.

        Args:
            new_status: Target status (CommissionStatus)
            user: Staff member performing the transition
            **fields: approval/payment/rejection details for the target status

        Raises:
            ValidationError: If the transition is invalid or a precondition fails
        """
        if not self.can_transition_to(new_status):
            valid = self.get_valid_transitions().get(self.status, [])
            raise ValidationError(
                f'Invalid commission transition from {self.status} to {new_status}. '
                f'Valid transitions: {", ".join(valid) if valid else "none (terminal state)"}'
            )

        now = timezone.now()

        if new_status == CommissionStatus.APPROVED:
            # INVARIANT: commissions are earned only on attended appointments
            if not self.appointment.is_attended:
                raise ValidationError(
                    f'Cannot approve commission: appointment is {self.appointment.status}, '
                    f'it must be attended'
                )
            self.approved_by = user
            self.approved_at = now
        elif new_status == CommissionStatus.REJECTED:
            reason = (fields.get('rejection_reason') or '').strip()
            if not reason:
                raise ValidationError('Rejection reason is required')
            self.rejection_reason = reason
            self.approved_by = user
            self.approved_at = now
        elif new_status == CommissionStatus.PAID:
            self.paid_by = user
            self.paid_at = now
            self.payment_method = fields.get('payment_method') or CommissionPaymentMethod.CASH
            self.payment_reference = fields.get('payment_reference') or ''

        if fields.get('notes') is not None:
            self.notes = fields['notes']

        self.status = new_status
        return self
