"""
Commission service layer.

- Accrual: a reservation deposit at booking time seeds one pending commission
- Lifecycle: approve / reject / mark paid / cancel, single and batch
- Reporting: totals per sales person and status
"""
from decimal import Decimal
from typing import Optional
import time

from django.conf import settings
from django.db.models import Count, Sum
from django.utils import timezone

from apps.core.dates import prepare_date_range
from apps.core.db import LedgerStore
from apps.core.exceptions import LedgerError, NotFound, ValidationError
from apps.core.money import ZERO, apply_rate
from apps.core.observability import metrics, log_domain_event, get_sanitized_logger
from apps.core.observability.events import log_commission_transition
from apps.core.observability.tracing import trace_span
from apps.core.validators import check_choice, to_uuid, to_uuid_list

from .models import Commission, CommissionPaymentMethod, CommissionStatus

logger = get_sanitized_logger(__name__)


def get_commission_rate() -> Decimal:
    return Decimal(str(getattr(settings, 'COMMISSION_RATE', '0.10')))


class CommissionAccrualRule:
    """Derives a pending commission from a reservation deposit."""

    def __init__(self, store: Optional[LedgerStore] = None, rate: Optional[Decimal] = None):
        self.store = store or LedgerStore()
        self.rate = get_commission_rate() if rate is None else Decimal(str(rate))

    def accrue(self, appointment, sales_person, reservation_amount) -> Optional[Commission]:
        """
        Create the pending commission for a booking, if any.

        No commission is created when reservation_amount is missing or zero.
        """
        if reservation_amount is None or reservation_amount <= 0:
            return None

        commission = Commission(
            sales_person=sales_person,
            appointment=appointment,
            commission_rate=self.rate,
            commission_amount=apply_rate(reservation_amount, self.rate),
            status=CommissionStatus.PENDING,
        )
        self.store.save(commission)

        metrics.commissions_accrued_total.inc()
        log_domain_event(
            'commission.accrued',
            entity_type='Commission',
            entity_id=str(commission.id),
            entity_ids={
                'appointment_id': str(appointment.id),
                'sales_person_id': str(sales_person.pk),
            },
            commission_rate=str(commission.commission_rate),
            commission_amount=str(commission.commission_amount),
        )
        return commission


class CommissionLifecycleManager:
    """Enforces the commission state machine."""

    def __init__(self, store: Optional[LedgerStore] = None):
        self.store = store or LedgerStore()

    # ------------------------------------------------------------------
    # Single transitions
    # ------------------------------------------------------------------

    def approve(self, commission_id, actor, notes=None) -> Commission:
        """Approve a pending commission whose appointment was attended."""
        return self._transition(commission_id, CommissionStatus.APPROVED, actor, notes=notes)

    def reject(self, commission_id, actor, reason, notes=None) -> Commission:
        if not reason or not str(reason).strip():
            raise ValidationError('Rejection reason is required')
        return self._transition(
            commission_id, CommissionStatus.REJECTED, actor,
            rejection_reason=str(reason), notes=notes
        )

    def mark_paid(self, commission_id, actor, method=None, reference=None, notes=None) -> Commission:
        method = check_choice(method or CommissionPaymentMethod.CASH, CommissionPaymentMethod, 'payment_method')
        return self._transition(
            commission_id, CommissionStatus.PAID, actor,
            payment_method=method, payment_reference=reference, notes=notes
        )

    def cancel(self, commission_id, actor=None, notes=None) -> Commission:
        """Cancel from any status except paid. Cancelling twice is a no-op."""
        return self._transition(commission_id, CommissionStatus.CANCELLED, actor, notes=notes)

    def _transition(self, commission_id, new_status, actor, **fields) -> Commission:
        commission_id = to_uuid(commission_id, 'commission_id')
        start_time = time.time()
        from_status = None

        with trace_span('commission.transition', attributes={
            'commission_id': str(commission_id),
            'to_status': new_status,
        }):
            try:
                with self.store.transaction(f'commission.{new_status}'):
                    commission = self._get_locked(commission_id)
                    from_status = commission.status

                    if new_status == CommissionStatus.CANCELLED and from_status == CommissionStatus.CANCELLED:
                        return commission

                    commission.transition_to(new_status, user=actor, **fields)
                    self.store.save(commission)
            except LedgerError as e:
                metrics.commission_transitions_total.labels(
                    from_status=from_status or 'unknown',
                    to_status=new_status,
                    result=e.error_type
                ).inc()
                logger.warning(
                    'Commission transition failed',
                    extra={
                        'commission_id': str(commission_id),
                        'from_status': from_status,
                        'to_status': new_status,
                        'error': str(e),
                    }
                )
                raise

        duration_ms = int((time.time() - start_time) * 1000)
        metrics.commission_transitions_total.labels(
            from_status=from_status,
            to_status=new_status,
            result='success'
        ).inc()
        log_commission_transition(commission, from_status, new_status, duration_ms=duration_ms)
        return commission

    def _get_locked(self, commission_id) -> Commission:
        try:
            return self.store.locked(Commission).select_related('appointment').get(pk=commission_id)
        except Commission.DoesNotExist:
            raise NotFound(f'Commission {commission_id} not found', items=[commission_id])

    # ------------------------------------------------------------------
    # Batch transitions
    # ------------------------------------------------------------------

    def batch_approve(self, commission_ids, actor, notes=None) -> dict:
        """
        Approve a batch of commissions all-or-nothing.

        The whole batch is refused when any commission's appointment is not
        attended. The write only touches rows still pending, so commissions
        moved concurrently by a single-item call are skipped, not overwritten.

        Returns:
            {'requested': n, 'updated': k}
        """
        ids = to_uuid_list(commission_ids, 'commission_ids')

        with trace_span('commission.batch_approve', attributes={'requested': len(ids)}):
            try:
                with self.store.transaction('commission.batch_approve'):
                    candidates = self._load_batch(ids)
                    not_attended = [c.id for c in candidates if not c.appointment.is_attended]
                    if not_attended:
                        raise ValidationError(
                            f'Cannot approve {len(not_attended)} commission(s): '
                            f'appointments have not been attended',
                            items=not_attended
                        )

                    now = timezone.now()
                    changes = {
                        'status': CommissionStatus.APPROVED,
                        'approved_by': actor,
                        'approved_at': now,
                        'updated_at': now,
                    }
                    if notes is not None:
                        changes['notes'] = notes
                    updated = self.store.query(Commission).filter(
                        pk__in=ids, status=CommissionStatus.PENDING
                    ).update(**changes)
            except LedgerError as e:
                metrics.commission_batch_total.labels(operation='approve', result=e.error_type).inc()
                log_domain_event(
                    'commission.batch_approve',
                    entity_type='Commission',
                    result='rejected',
                    requested=len(ids),
                    failing_count=len(e.items),
                    error=str(e),
                )
                raise

        metrics.commission_batch_total.labels(operation='approve', result='success').inc()
        log_domain_event(
            'commission.batch_approve',
            entity_type='Commission',
            requested=len(ids),
            updated=updated,
        )
        return {'requested': len(ids), 'updated': updated}

    def batch_mark_paid(self, commission_ids, actor, method=None, reference=None) -> dict:
        """
        Mark a batch of approved commissions as paid.

        Rows not approved at write time are skipped.

        Returns:
            {'requested': n, 'updated': k}
        """
        ids = to_uuid_list(commission_ids, 'commission_ids')
        method = check_choice(method or CommissionPaymentMethod.CASH, CommissionPaymentMethod, 'payment_method')

        with trace_span('commission.batch_mark_paid', attributes={'requested': len(ids)}):
            try:
                with self.store.transaction('commission.batch_mark_paid'):
                    self._load_batch(ids)
                    now = timezone.now()
                    updated = self.store.query(Commission).filter(
                        pk__in=ids, status=CommissionStatus.APPROVED
                    ).update(
                        status=CommissionStatus.PAID,
                        paid_by=actor,
                        paid_at=now,
                        payment_method=method,
                        payment_reference=reference or '',
                        updated_at=now,
                    )
            except LedgerError as e:
                metrics.commission_batch_total.labels(operation='mark_paid', result=e.error_type).inc()
                raise

        metrics.commission_batch_total.labels(operation='mark_paid', result='success').inc()
        log_domain_event(
            'commission.batch_mark_paid',
            entity_type='Commission',
            requested=len(ids),
            updated=updated,
            payment_method=method,
        )
        return {'requested': len(ids), 'updated': updated}

    def _load_batch(self, ids):
        candidates = list(
            self.store.locked(Commission).select_related('appointment').filter(pk__in=ids)
        )
        found = {c.id for c in candidates}
        missing = [cid for cid in ids if cid not in found]
        if missing:
            raise NotFound(f'{len(missing)} commission(s) not found', items=missing)
        return candidates

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def summarize_by_sales_person(self, start=None, end=None) -> list:
        """
        Count and total commissions per sales person and status.

        start/end are optional 'YYYY-MM-DD' bounds on created_at (inclusive).
        """
        start_dt, end_dt = prepare_date_range(start, end)
        queryset = self.store.query(Commission)
        if start_dt:
            queryset = queryset.filter(created_at__gte=start_dt)
        if end_dt:
            queryset = queryset.filter(created_at__lte=end_dt)

        rows = queryset.values('sales_person_id', 'sales_person__email', 'status').annotate(
            count=Count('id'),
            amount=Sum('commission_amount'),
        ).order_by('sales_person__email', 'status')

        summary = {}
        for row in rows:
            entry = summary.setdefault(row['sales_person_id'], {
                'sales_person_id': str(row['sales_person_id']),
                'sales_person_email': row['sales_person__email'],
                'by_status': {
                    s: {'count': 0, 'amount': ZERO} for s in CommissionStatus.values
                },
                'total_count': 0,
                'total_amount': ZERO,
            })
            amount = row['amount'] or ZERO
            entry['by_status'][row['status']] = {'count': row['count'], 'amount': amount}
            entry['total_count'] += row['count']
            entry['total_amount'] += amount
        return list(summary.values())


# Module-level entry points used by views and commands

def approve_commission(commission_id, actor, notes=None, store=None):
    return CommissionLifecycleManager(store).approve(commission_id, actor, notes=notes)


def reject_commission(commission_id, actor, reason, notes=None, store=None):
    return CommissionLifecycleManager(store).reject(commission_id, actor, reason, notes=notes)


def mark_commission_paid(commission_id, actor, method=None, reference=None, notes=None, store=None):
    return CommissionLifecycleManager(store).mark_paid(
        commission_id, actor, method=method, reference=reference, notes=notes
    )


def cancel_commission(commission_id, actor=None, notes=None, store=None):
    return CommissionLifecycleManager(store).cancel(commission_id, actor, notes=notes)


def batch_approve(commission_ids, actor, notes=None, store=None):
    return CommissionLifecycleManager(store).batch_approve(commission_ids, actor, notes=notes)


def batch_mark_paid(commission_ids, actor, method=None, reference=None, store=None):
    return CommissionLifecycleManager(store).batch_mark_paid(
        commission_ids, actor, method=method, reference=reference
    )


def summarize_by_sales_person(start=None, end=None, store=None):
    return CommissionLifecycleManager(store).summarize_by_sales_person(start, end)
