"""
Clinical models: patients, appointments and appointment session records.
"""
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Patient(models.Model):
    """
    Clinic patient.

    Referenced by appointments, orders, invoices and payments with PROTECT,
    so a patient with ledger history cannot be hard-deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    first_name = models.CharField(_('First Name'), max_length=150)
    last_name = models.CharField(_('Last Name'), max_length=150)
    document_number = models.CharField(
        _('Document Number'),
        max_length=30,
        unique=True,
        null=True,
        blank=True
    )
    phone = models.CharField(_('Phone'), max_length=30, blank=True, default='')
    email = models.EmailField(_('Email'), blank=True, default='')
    date_of_birth = models.DateField(_('Date of Birth'), null=True, blank=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'patients'
        ordering = ['last_name', 'first_name']
        verbose_name = _('Patient')
        verbose_name_plural = _('Patients')
        indexes = [
            models.Index(fields=['last_name', 'first_name'], name='idx_patient_name'),
        ]

    def __str__(self):
        return f'{self.first_name} {self.last_name}'


class AppointmentStatus(models.TextChoices):
    """
    Appointment status with allowed transitions:
    - reserved -> in_progress | cancelled | no_show
    - in_progress -> attended | reserved | cancelled
    - attended -> in_progress (undo)
    - cancelled -> reserved (rebook)
    - no_show -> reserved | in_progress (late arrival)
    """
    RESERVED = 'reserved', _('Reserved')
    IN_PROGRESS = 'in_progress', _('In Progress')
    ATTENDED = 'attended', _('Attended')
    CANCELLED = 'cancelled', _('Cancelled')
    NO_SHOW = 'no_show', _('No Show')


class Appointment(models.Model):
    """
    Scheduled visit.

    Cancellation is a status change, never a delete; sessions and commissions
    of a cancelled appointment stay for audit.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(
        Patient,
        on_delete=models.PROTECT,
        related_name='appointments',
        verbose_name=_('Patient')
    )
    scheduled_date = models.DateTimeField(_('Scheduled Date'))
    duration_minutes = models.PositiveIntegerField(_('Duration (minutes)'), default=60)
    reservation_amount = models.DecimalField(
        _('Reservation Amount'),
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_('Deposit collected at booking time')
    )
    reservation_receipt_url = models.CharField(
        _('Reservation Receipt URL'),
        max_length=500,
        null=True,
        blank=True
    )
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=AppointmentStatus.choices,
        default=AppointmentStatus.RESERVED
    )
    notes = models.TextField(_('Notes'), blank=True, default='')
    cancellation_reason = models.TextField(_('Cancellation Reason'), blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='appointments_created',
        verbose_name=_('Created By')
    )
    attended_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments_attended',
        verbose_name=_('Attended By')
    )
    attended_at = models.DateTimeField(_('Attended At'), null=True, blank=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    _ALLOWED_TRANSITIONS = {
        AppointmentStatus.RESERVED: [
            AppointmentStatus.IN_PROGRESS,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        ],
        AppointmentStatus.IN_PROGRESS: [
            AppointmentStatus.ATTENDED,
            AppointmentStatus.RESERVED,
            AppointmentStatus.CANCELLED,
        ],
        AppointmentStatus.ATTENDED: [AppointmentStatus.IN_PROGRESS],
        AppointmentStatus.CANCELLED: [AppointmentStatus.RESERVED],
        AppointmentStatus.NO_SHOW: [AppointmentStatus.RESERVED, AppointmentStatus.IN_PROGRESS],
    }

    # Statuses from which the front desk may close the visit in one step
    _ATTENDABLE_STATUSES = [AppointmentStatus.RESERVED, AppointmentStatus.IN_PROGRESS]

    class Meta:
        db_table = 'appointments'
        ordering = ['-scheduled_date']
        verbose_name = _('Appointment')
        verbose_name_plural = _('Appointments')
        indexes = [
            models.Index(fields=['patient', '-scheduled_date'], name='idx_appt_patient_date'),
            models.Index(fields=['status', 'scheduled_date'], name='idx_appt_status_date'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(duration_minutes__gte=1),
                name='appointment_duration_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(reservation_amount__isnull=True) | models.Q(reservation_amount__gte=0),
                name='appointment_reservation_non_negative'
            ),
        ]

    def __str__(self):
        return f'Appointment {self.scheduled_date:%Y-%m-%d %H:%M} - {self.get_status_display()}'

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()
        errors = {}

        if self.duration_minutes is not None and self.duration_minutes <= 0:
            errors['duration_minutes'] = 'Duration must be a positive number of minutes'

        if self.reservation_amount is not None and self.reservation_amount < 0:
            errors['reservation_amount'] = 'Reservation amount cannot be negative'

        # INVARIANT: attended appointments carry attendance stamps
        if self.status == AppointmentStatus.ATTENDED and not self.attended_at:
            errors['attended_at'] = 'Attended appointments must record attended_at'

        if errors:
            raise ValidationError(errors)

    @classmethod
    def get_valid_transitions(cls):
        return cls._ALLOWED_TRANSITIONS

    def can_transition_to(self, new_status):
        return new_status in self._ALLOWED_TRANSITIONS.get(self.status, [])

    def transition_to(self, new_status, user=None):
        """
        Move to new_status following the transition table.

        Entering ATTENDED stamps attended_by/attended_at; leaving it clears them.

        Raises:
            ValidationError: If the transition is not allowed
        """
        if new_status == self.status:
            return self
        if not self.can_transition_to(new_status):
            allowed = self._ALLOWED_TRANSITIONS.get(self.status, [])
            raise ValidationError(
                f'Invalid appointment transition from {self.status} to {new_status}. '
                f'Valid transitions: {", ".join(allowed) if allowed else "none"}'
            )

        if new_status == AppointmentStatus.ATTENDED:
            self._stamp_attended(user)
        elif self.status == AppointmentStatus.ATTENDED:
            self.attended_by = None
            self.attended_at = None

        self.status = new_status
        return self

    def mark_attended(self, user):
        """
        Close the visit as attended.

        Allowed from reserved or in_progress; never from cancelled or no_show.
        """
        if self.status not in self._ATTENDABLE_STATUSES:
            raise ValidationError(
                f'Cannot mark appointment as attended from status {self.status}'
            )
        self._stamp_attended(user)
        self.status = AppointmentStatus.ATTENDED
        return self

    def _stamp_attended(self, user):
        self.attended_by = user
        self.attended_at = timezone.now()

    @property
    def is_attended(self):
        return self.status == AppointmentStatus.ATTENDED


class AppointmentServiceQuerySet(models.QuerySet):
    """Single place where session soft-delete state is filtered."""

    def active(self):
        return self.filter(deleted_at__isnull=True)

    def deleted(self):
        return self.filter(deleted_at__isnull=False)


class AppointmentService(models.Model):
    """
    Session record: one appointment consuming one session of one order.

    session_number is assigned by the caller. Soft-deleted rows keep
    deleted_at/deleted_by/delete_reason for audit and do not count as
    active sessions.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    appointment = models.ForeignKey(
        Appointment,
        on_delete=models.PROTECT,
        related_name='sessions',
        verbose_name=_('Appointment')
    )
    order = models.ForeignKey(
        'sales.Order',
        on_delete=models.PROTECT,
        related_name='sessions',
        verbose_name=_('Order')
    )
    session_number = models.PositiveIntegerField(_('Session Number'))

    deleted_at = models.DateTimeField(_('Deleted At'), null=True, blank=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Deleted By')
    )
    delete_reason = models.TextField(_('Delete Reason'), blank=True, default='')

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    objects = AppointmentServiceQuerySet.as_manager()

    class Meta:
        db_table = 'appointment_services'
        ordering = ['created_at']
        verbose_name = _('Appointment Session')
        verbose_name_plural = _('Appointment Sessions')
        indexes = [
            models.Index(fields=['appointment', 'deleted_at'], name='idx_session_appt_deleted'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(session_number__gte=1),
                name='session_number_positive'
            ),
            models.UniqueConstraint(
                fields=['order', 'session_number'],
                condition=models.Q(deleted_at__isnull=True),
                name='uniq_active_session_number_per_order'
            ),
        ]

    def __str__(self):
        return f'Session {self.session_number} of order {self.order_id}'

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, user=None, reason=''):
        self.deleted_at = timezone.now()
        self.deleted_by = user
        self.delete_reason = reason or ''
        return self
