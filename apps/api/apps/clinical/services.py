"""
Appointment service layer.

Every public operation runs in one ledger transaction:
- create: appointment + new packages (orders) + sessions + commission
- update: soft-delete sessions, new packages, new sessions, order repricing,
  appointment fields
- mark attended / cancel: status changes only, nothing is deleted

A failure at any step rolls back every write made by the call.
"""
from typing import Iterable, List, Optional
import time

from django.conf import settings
from django.db.models import Prefetch

from apps.commissions.services import CommissionAccrualRule
from apps.core.dates import parse_datetime_value
from apps.core.db import LedgerStore
from apps.core.exceptions import LedgerError, NotFound, ValidationError
from apps.core.money import to_optional_money
from apps.core.observability import metrics, get_sanitized_logger
from apps.core.observability.events import log_appointment_event
from apps.core.observability.tracing import trace_span
from apps.core.validators import check_choice, require, to_positive_int, to_uuid
from apps.sales.services import TreatmentPackageResolver, reprice_orders

from .models import Appointment, AppointmentService, AppointmentStatus, Patient
from .sessions import SessionLinker

logger = get_sanitized_logger(__name__)

UPDATABLE_FIELDS = ('scheduled_date', 'duration_minutes', 'status', 'notes', 'reservation_receipt_url')

SESSION_OPERATION_KEYS = ('to_delete', 'new_orders', 'to_create', 'order_price_updates')


def default_duration_minutes():
    return getattr(settings, 'DEFAULT_APPOINTMENT_DURATION_MINUTES', 60)


def group_sessions_by_package(sessions: Iterable[dict]) -> List[dict]:
    """
    Package requests implied by session requests carrying a temp_package_id.

    All sessions of one temp id collapse into one request: the service comes
    from the first session, the negotiated price and session count from the
    first session that gives them.
    """
    return [
        {
            'temp_package_id': s['temp_package_id'],
            'service_id': s.get('service_id'),
            'final_price': s.get('final_price'),
            'total_sessions': s.get('total_sessions'),
        }
        for s in sessions
        if s.get('temp_package_id')
    ]


def normalize_session_operations(operations) -> dict:
    if operations is None:
        operations = {}
    if not isinstance(operations, dict):
        raise ValidationError('session_operations must be an object')
    unknown = set(operations) - set(SESSION_OPERATION_KEYS) - {'delete_reason'}
    if unknown:
        raise ValidationError(
            f'Unknown session operations: {", ".join(sorted(unknown))}',
            items=sorted(unknown)
        )
    normalized = {}
    for key in SESSION_OPERATION_KEYS:
        value = operations.get(key) or []
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f'session_operations.{key} must be a list')
        normalized[key] = list(value)
    normalized['delete_reason'] = operations.get('delete_reason') or ''
    return normalized


def hydrate_appointment(store: LedgerStore, appointment_id) -> Appointment:
    """
    Reload an appointment with patient, active sessions, their orders and
    services, and commissions.

    Active sessions are exposed as appointment.active_sessions.
    """
    active_sessions = store.query(AppointmentService).active().select_related(
        'order', 'order__service'
    ).order_by('created_at')
    try:
        return store.query(Appointment).select_related(
            'patient', 'created_by', 'attended_by'
        ).prefetch_related(
            Prefetch('sessions', queryset=active_sessions, to_attr='active_sessions'),
            'commissions',
        ).get(pk=appointment_id)
    except Appointment.DoesNotExist:
        raise NotFound(f'Appointment {appointment_id} not found', items=[appointment_id])


class AppointmentOrchestrator:
    """
    Sequences package resolution, session linking and commission accrual
    inside one transaction of the injected store.
    """

    def __init__(self, store: Optional[LedgerStore] = None, commission_rate=None):
        self.store = store or LedgerStore()
        self.packages = TreatmentPackageResolver(self.store)
        self.sessions = SessionLinker(self.store)
        self.commissions = CommissionAccrualRule(self.store, rate=commission_rate)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        patient_id,
        scheduled_date,
        sessions,
        actor,
        duration_minutes=None,
        reservation_amount=None,
        notes=None,
        reservation_receipt_url=None,
    ) -> Appointment:
        """
        Book an appointment with its sessions.

        Steps (one transaction):
            1. insert the appointment as reserved
            2. create one order per temp_package_id group
            3. create one session record per session request
            4. accrue the pending commission on the reservation deposit
            5. reload the hydrated appointment

        Raises:
            ValidationError: missing patient/date/sessions, a session without
                service_id or session_number, malformed values
            NotFound: patient, service or order does not exist
            ConflictError: session number already taken on an order
        """
        patient_id = to_uuid(patient_id, 'patient_id')
        scheduled_at = parse_datetime_value(require(scheduled_date, 'scheduled_date'), 'scheduled_date')
        if not isinstance(sessions, (list, tuple)) or not sessions:
            raise ValidationError('At least one session is required')
        for index, session in enumerate(sessions):
            if not session.get('service_id'):
                raise ValidationError(f'Session {index + 1}: service_id is required')
            if session.get('session_number') is None:
                raise ValidationError(f'Session {index + 1}: session_number is required')
        duration = to_positive_int(
            default_duration_minutes() if duration_minutes is None else duration_minutes,
            'duration_minutes'
        )
        deposit = to_optional_money(reservation_amount, 'reservation_amount')
        if deposit is not None and deposit < 0:
            raise ValidationError('reservation_amount cannot be negative')

        start_time = time.time()
        with trace_span('appointment.create', attributes={
            'patient_id': str(patient_id),
            'session_count': len(sessions),
        }):
            try:
                with self.store.transaction('appointment.create'):
                    patient = self._get_patient(patient_id)

                    appointment = Appointment(
                        patient=patient,
                        scheduled_date=scheduled_at,
                        duration_minutes=duration,
                        reservation_amount=deposit,
                        reservation_receipt_url=reservation_receipt_url,
                        status=AppointmentStatus.RESERVED,
                        notes=notes or '',
                        created_by=actor,
                    )
                    self.store.save(appointment)

                    resolved = self.packages.resolve(patient, group_sessions_by_package(sessions), actor)
                    self.sessions.link(appointment, sessions, resolved)
                    self.commissions.accrue(appointment, actor, deposit)

                    hydrated = hydrate_appointment(self.store, appointment.id)
            except LedgerError as e:
                self._record_failure('create', e, patient_id=str(patient_id))
                raise

        metrics.appointment_operations_total.labels(operation='create', result='success').inc()
        metrics.ledger_operation_duration_seconds.labels(operation='appointment.create').observe(
            time.time() - start_time
        )
        log_appointment_event(
            'appointment.created',
            hydrated,
            session_count=len(hydrated.active_sessions),
            new_order_count=len(resolved),
            commission_accrued=bool(deposit and deposit > 0),
        )
        return hydrated

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, appointment_id, actor, fields=None, session_operations=None) -> Appointment:
        """
        Edit an appointment and its sessions.

        Steps (one transaction):
            1. soft-delete sessions in to_delete (scoped to this appointment)
            2. create orders for new_orders, for the appointment's patient
            3. create sessions in to_create, resolving temp ids from step 2
            4. apply order_price_updates
            5. update appointment fields (status follows the transition table)
            6. reload the hydrated appointment (active sessions only)

        The appointment must keep at least one active session.
        """
        appointment_id = to_uuid(appointment_id, 'appointment_id')
        fields = dict(fields or {})
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f'Fields cannot be updated: {", ".join(sorted(unknown))}',
                items=sorted(unknown)
            )
        touches_sessions = session_operations is not None
        operations = normalize_session_operations(session_operations)

        start_time = time.time()
        with trace_span('appointment.update', attributes={'appointment_id': str(appointment_id)}):
            try:
                with self.store.transaction('appointment.update'):
                    appointment = self._get_locked(appointment_id)

                    deleted = self.sessions.soft_delete(
                        appointment, operations['to_delete'], actor=actor,
                        reason=operations['delete_reason']
                    )
                    resolved = self.packages.resolve(
                        appointment.patient, operations['new_orders'], actor
                    )
                    created = self.sessions.link(appointment, operations['to_create'], resolved)
                    repriced = reprice_orders(
                        self.store, appointment.patient, operations['order_price_updates']
                    )

                    if touches_sessions and not self.store.query(AppointmentService).active().filter(
                        appointment=appointment
                    ).exists():
                        raise ValidationError('An appointment must keep at least one active session')

                    self._apply_fields(appointment, fields, actor)

                    hydrated = hydrate_appointment(self.store, appointment.id)
            except LedgerError as e:
                self._record_failure('update', e, appointment_id=str(appointment_id))
                raise

        metrics.appointment_operations_total.labels(operation='update', result='success').inc()
        metrics.ledger_operation_duration_seconds.labels(operation='appointment.update').observe(
            time.time() - start_time
        )
        log_appointment_event(
            'appointment.updated',
            hydrated,
            changed_fields=sorted(fields),
            sessions_deleted=deleted,
            sessions_created=len(created),
            orders_created=len(resolved),
            orders_repriced=len(repriced),
        )
        return hydrated

    def _apply_fields(self, appointment, fields, actor):
        if not fields:
            return
        if 'scheduled_date' in fields:
            appointment.scheduled_date = parse_datetime_value(
                require(fields['scheduled_date'], 'scheduled_date'), 'scheduled_date'
            )
        if 'duration_minutes' in fields:
            appointment.duration_minutes = to_positive_int(fields['duration_minutes'], 'duration_minutes')
        if 'notes' in fields:
            appointment.notes = fields['notes'] or ''
        if 'reservation_receipt_url' in fields:
            appointment.reservation_receipt_url = fields['reservation_receipt_url'] or None
        if 'status' in fields:
            new_status = check_choice(fields['status'], AppointmentStatus, 'status')
            appointment.transition_to(new_status, user=actor)
        self.store.save(appointment)

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def mark_attended(self, appointment_id, actor, notes=None) -> Appointment:
        """
        Close the visit, stamping attended_by/attended_at.

        Commissions are not touched; approving them is a separate step.
        """
        appointment_id = to_uuid(appointment_id, 'appointment_id')
        with trace_span('appointment.attend', attributes={'appointment_id': str(appointment_id)}):
            try:
                with self.store.transaction('appointment.attend'):
                    appointment = self._get_locked(appointment_id)
                    from_status = appointment.status
                    appointment.mark_attended(actor)
                    if notes is not None:
                        appointment.notes = notes
                    self.store.save(appointment)
                    hydrated = hydrate_appointment(self.store, appointment.id)
            except LedgerError as e:
                self._record_failure('attend', e, appointment_id=str(appointment_id))
                raise

        metrics.appointment_operations_total.labels(operation='attend', result='success').inc()
        log_appointment_event('appointment.attended', hydrated, from_status=from_status)
        return hydrated

    def cancel(self, appointment_id, actor=None, reason=None) -> Appointment:
        """
        Soft-cancel: status becomes cancelled, sessions and commissions stay.

        Cancelling a cancelled appointment is a no-op.
        """
        appointment_id = to_uuid(appointment_id, 'appointment_id')
        with trace_span('appointment.cancel', attributes={'appointment_id': str(appointment_id)}):
            try:
                with self.store.transaction('appointment.cancel'):
                    appointment = self._get_locked(appointment_id)
                    if appointment.status == AppointmentStatus.CANCELLED:
                        return appointment
                    from_status = appointment.status
                    appointment.transition_to(AppointmentStatus.CANCELLED, user=actor)
                    if reason:
                        appointment.cancellation_reason = reason
                    self.store.save(appointment)
            except LedgerError as e:
                self._record_failure('cancel', e, appointment_id=str(appointment_id))
                raise

        metrics.appointment_operations_total.labels(operation='cancel', result='success').inc()
        log_appointment_event('appointment.cancelled', appointment, from_status=from_status, reason=reason)
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_patient(self, patient_id) -> Patient:
        try:
            return self.store.query(Patient).get(pk=patient_id)
        except Patient.DoesNotExist:
            raise NotFound(f'Patient {patient_id} not found', items=[patient_id])

    def _get_locked(self, appointment_id) -> Appointment:
        try:
            return self.store.locked(Appointment).select_related('patient').get(pk=appointment_id)
        except Appointment.DoesNotExist:
            raise NotFound(f'Appointment {appointment_id} not found', items=[appointment_id])

    def _record_failure(self, operation, error, **context):
        metrics.appointment_operations_total.labels(operation=operation, result=error.error_type).inc()
        logger.warning(
            f'Appointment {operation} failed',
            extra={
                'operation': operation,
                'error_type': error.error_type,
                'error': str(error),
                'failing_items': error.items,
                **context,
            }
        )


# Module-level entry points used by views and commands

def create_appointment(patient_id, scheduled_date, sessions, actor, store=None, **options):
    return AppointmentOrchestrator(store).create(patient_id, scheduled_date, sessions, actor, **options)


def update_appointment(appointment_id, actor, fields=None, session_operations=None, store=None):
    return AppointmentOrchestrator(store).update(
        appointment_id, actor, fields=fields, session_operations=session_operations
    )


def mark_attended(appointment_id, actor, notes=None, store=None):
    return AppointmentOrchestrator(store).mark_attended(appointment_id, actor, notes=notes)


def cancel_appointment(appointment_id, actor=None, reason=None, store=None):
    return AppointmentOrchestrator(store).cancel(appointment_id, actor=actor, reason=reason)


def get_hydrated_appointment(appointment_id, store=None):
    return hydrate_appointment(store or LedgerStore(), to_uuid(appointment_id, 'appointment_id'))
