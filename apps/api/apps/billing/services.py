"""
Billing service layer - invoicing and payment reconciliation.

Invoice status is never set by hand (except cancelled): it is derived from
the sum of the invoice's payments and recomputed in the same transaction as
every payment create/delete.
"""
from datetime import date, datetime
from typing import Optional
import time

from django.db.models import Count, Sum
from django.utils import timezone

from apps.clinical.models import Appointment, Patient
from apps.core.dates import add_days, parse_datetime_value
from apps.core.db import LedgerStore
from apps.core.exceptions import ConflictError, LedgerError, NotFound, ValidationError
from apps.core.money import ZERO, to_money
from apps.core.observability import metrics, log_domain_event, get_sanitized_logger
from apps.core.observability.events import log_consistency_checkpoint, log_invoice_status_change
from apps.core.observability.tracing import add_span_attribute, trace_span
from apps.core.validators import check_choice, to_non_negative_int, to_uuid, to_uuid_list
from apps.sales.models import Order

from .models import Invoice, InvoiceStatus, Payment, PaymentMethod, PaymentType

logger = get_sanitized_logger(__name__)


def _parse_due_date(value) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return parse_datetime_value(value, 'due_date').date()


class InvoicingService:
    """Invoice creation, cancellation and status reconciliation."""

    def __init__(self, store: Optional[LedgerStore] = None):
        self.store = store or LedgerStore()

    def create_invoice(
        self,
        order_ids,
        patient_id,
        actor,
        due_date=None,
        due_in_days=None,
        notes=None,
    ) -> Invoice:
        """
        Invoice a set of uninvoiced orders of one patient.

        total_amount is the sum of the orders' final prices. The invoice
        starts pending and the orders are linked to it in the same transaction.

        Raises:
            ValidationError: empty list, orders of several patients or of
                another patient, due_date and due_in_days both given
            NotFound: patient or an order does not exist
            ConflictError: an order is already invoiced (named in items)
        """
        if not order_ids:
            raise ValidationError('At least one order is required to create an invoice')
        ids = to_uuid_list(order_ids, 'order_ids')
        patient_id = to_uuid(patient_id, 'patient_id')
        if due_date is not None and due_in_days is not None:
            raise ValidationError('Give either due_date or due_in_days, not both')
        if due_date is not None:
            due = _parse_due_date(due_date)
        elif due_in_days is not None:
            due = add_days(timezone.localdate(), to_non_negative_int(due_in_days, 'due_in_days'))
        else:
            due = None

        start_time = time.time()
        with trace_span('invoice.create', attributes={
            'patient_id': str(patient_id),
            'order_count': len(ids),
        }):
            try:
                with self.store.transaction('invoice.create'):
                    patient = self.get_patient(patient_id)
                    orders = list(self.store.locked(Order).select_related('service').filter(pk__in=ids))

                    found = {o.id for o in orders}
                    missing = [oid for oid in ids if oid not in found]
                    if missing:
                        raise NotFound(f'{len(missing)} order(s) not found', items=missing)

                    patient_ids = {o.patient_id for o in orders}
                    if len(patient_ids) > 1:
                        raise ValidationError('All orders must belong to the same patient')
                    if patient_ids != {patient.id}:
                        raise ValidationError(
                            f'Orders do not belong to patient {patient.id}',
                            items=[o.id for o in orders]
                        )

                    invoiced = [o for o in orders if o.is_invoiced]
                    if invoiced:
                        names = ', '.join(f'{o.service.name} ({o.id})' for o in invoiced)
                        raise ConflictError(
                            f'Some orders are already invoiced: {names}',
                            items=[o.id for o in invoiced]
                        )

                    invoice = Invoice(
                        patient=patient,
                        total_amount=sum((o.final_price for o in orders), ZERO),
                        status=InvoiceStatus.PENDING,
                        due_date=due,
                        notes=notes or '',
                        created_by=actor,
                    )
                    self.store.save(invoice)
                    add_span_attribute('total_amount', invoice.total_amount)

                    linked = self.store.query(Order).filter(
                        pk__in=ids, invoice__isnull=True
                    ).update(invoice=invoice, updated_at=timezone.now())
                    if linked != len(ids):
                        raise ConflictError('Orders were invoiced concurrently', items=ids)
            except LedgerError as e:
                metrics.invoice_operations_total.labels(operation='create', result=e.error_type).inc()
                logger.warning(
                    'Invoice creation failed',
                    extra={
                        'patient_id': str(patient_id),
                        'error': str(e),
                        'failing_items': e.items,
                    }
                )
                raise

        metrics.invoice_operations_total.labels(operation='create', result='success').inc()
        metrics.ledger_operation_duration_seconds.labels(operation='invoice.create').observe(
            time.time() - start_time
        )
        log_domain_event(
            'invoice.created',
            entity_type='Invoice',
            entity_id=str(invoice.id),
            entity_ids={'patient_id': str(patient.id)},
            order_ids=[str(oid) for oid in ids],
            total_amount=str(invoice.total_amount),
            due_date=str(invoice.due_date) if invoice.due_date else None,
        )
        return invoice

    def recompute_invoice_status(self, invoice_id) -> Invoice:
        """
        Derive the invoice status from its payments.

        Writes only when the derived status differs from the stored one, so a
        second call with no payment change issues no UPDATE. Cancelled
        invoices are left untouched.
        """
        invoice_id = to_uuid(invoice_id, 'invoice_id')
        with self.store.transaction('invoice.recompute_status'):
            invoice = self.get_locked_invoice(invoice_id)
            if invoice.is_cancelled:
                metrics.invoice_status_recomputed_total.labels(result='skipped').inc()
                return invoice

            total_paid = self.store.query(Payment).filter(invoice=invoice).aggregate(
                total=Sum('amount_paid')
            )['total'] or ZERO
            new_status = Invoice.derive_status(total_paid, invoice.total_amount)

            if new_status == invoice.status:
                metrics.invoice_status_recomputed_total.labels(result='unchanged').inc()
                return invoice

            old_status = invoice.status
            invoice.status = new_status
            self.store.save(invoice, update_fields=['status', 'updated_at'])

        metrics.invoice_status_recomputed_total.labels(result='changed').inc()
        log_invoice_status_change(invoice, old_status, new_status, total_paid)
        log_consistency_checkpoint(
            'invoice_status_matches_payments',
            entity_ids={'invoice_id': str(invoice.id)},
            checks_passed={
                'stored_status_matches': self.store.query(Invoice).filter(
                    pk=invoice.id, status=new_status
                ).exists(),
            },
            total_paid=str(total_paid),
        )
        return invoice

    @metrics.track_duration(metrics.ledger_operation_duration_seconds, operation='invoice.cancel')
    def cancel_invoice(self, invoice_id, actor=None) -> Invoice:
        """
        Cancel an invoice without payments and release its orders.

        The orders become uninvoiced again. Cancelling twice is a no-op.

        Raises:
            ConflictError: the invoice has payments
        """
        invoice_id = to_uuid(invoice_id, 'invoice_id')
        with trace_span('invoice.cancel', attributes={'invoice_id': str(invoice_id)}):
            try:
                with self.store.transaction('invoice.cancel'):
                    invoice = self.get_locked_invoice(invoice_id)
                    if invoice.is_cancelled:
                        return invoice

                    payment_count = self.store.query(Payment).filter(invoice=invoice).count()
                    if payment_count:
                        raise ConflictError(
                            f'Cannot cancel invoice with {payment_count} payment(s) recorded',
                            items=[invoice.id]
                        )

                    released = self.store.query(Order).filter(invoice=invoice).update(
                        invoice=None, updated_at=timezone.now()
                    )
                    invoice.mark_cancelled()
                    self.store.save(invoice, update_fields=['status', 'cancelled_at', 'updated_at'])
            except LedgerError as e:
                metrics.invoice_operations_total.labels(operation='cancel', result=e.error_type).inc()
                raise

        metrics.invoice_operations_total.labels(operation='cancel', result='success').inc()
        log_domain_event(
            'invoice.cancelled',
            entity_type='Invoice',
            entity_id=str(invoice.id),
            entity_ids={'patient_id': str(invoice.patient_id)},
            released_orders=released,
            cancelled_by=str(actor.pk) if actor else None,
        )
        return invoice

    def list_uninvoiced_orders(self, patient_id):
        """Orders of the patient not yet on an invoice, newest first."""
        patient = self.get_patient(to_uuid(patient_id, 'patient_id'))
        return list(
            self.store.query(Order).uninvoiced().filter(patient=patient)
            .select_related('service').order_by('-created_at')
        )

    def invoice_summary(self, patient_id=None) -> dict:
        """Invoice count and total amount per status."""
        queryset = self.store.query(Invoice)
        if patient_id:
            queryset = queryset.filter(patient_id=to_uuid(patient_id, 'patient_id'))
        rows = queryset.values('status').annotate(count=Count('id'), amount=Sum('total_amount'))

        summary = {s: {'count': 0, 'amount': ZERO} for s in InvoiceStatus.values}
        for row in rows:
            summary[row['status']] = {'count': row['count'], 'amount': row['amount'] or ZERO}
        return summary

    def get_patient(self, patient_id) -> Patient:
        try:
            return self.store.query(Patient).get(pk=patient_id)
        except Patient.DoesNotExist:
            raise NotFound(f'Patient {patient_id} not found', items=[patient_id])

    def get_locked_invoice(self, invoice_id) -> Invoice:
        try:
            return self.store.locked(Invoice).get(pk=invoice_id)
        except Invoice.DoesNotExist:
            raise NotFound(f'Invoice {invoice_id} not found', items=[invoice_id])


class PaymentRecorder:
    """Records and voids payments, keeping invoice status in sync."""

    def __init__(self, store: Optional[LedgerStore] = None):
        self.store = store or LedgerStore()
        self.invoicing = InvoicingService(self.store)

    def create_payment(
        self,
        patient_id,
        amount_paid,
        payment_method,
        payment_type,
        actor,
        invoice_id=None,
        appointment_id=None,
        payment_date=None,
        receipt_url=None,
        notes=None,
    ) -> Payment:
        """
        Record a payment; recompute the invoice status when one is referenced.

        Raises:
            ValidationError: amount <= 0, unknown method/type, missing
                invoice/appointment for the payment type, patient mismatch
            NotFound: patient, invoice or appointment does not exist
            ConflictError: the invoice is cancelled
        """
        patient_id = to_uuid(patient_id, 'patient_id')
        amount = to_money(amount_paid, 'amount_paid')
        if amount <= 0:
            raise ValidationError('amount_paid must be greater than 0')
        method = check_choice(payment_method, PaymentMethod, 'payment_method')
        kind = check_choice(payment_type, PaymentType, 'payment_type')
        if kind == PaymentType.INVOICE_PAYMENT and not invoice_id:
            raise ValidationError('invoice_id is required for invoice payments')
        if kind in (PaymentType.RESERVATION, PaymentType.SERVICE_PAYMENT) and not appointment_id:
            raise ValidationError(f'appointment_id is required for {kind} payments')
        paid_at = parse_datetime_value(payment_date, 'payment_date') if payment_date else timezone.now()

        with trace_span('payment.create', attributes={'payment_type': kind, 'method': method}):
            try:
                with self.store.transaction('payment.create'):
                    patient = self.invoicing.get_patient(patient_id)
                    invoice = self._get_invoice(invoice_id, patient) if invoice_id else None
                    appointment = self._get_appointment(appointment_id, patient) if appointment_id else None

                    payment = Payment(
                        patient=patient,
                        invoice=invoice,
                        appointment=appointment,
                        amount_paid=amount,
                        payment_method=method,
                        payment_type=kind,
                        payment_date=paid_at,
                        receipt_url=receipt_url or None,
                        notes=notes or '',
                        created_by=actor,
                    )
                    self.store.save(payment)

                    if invoice is not None:
                        self.invoicing.recompute_invoice_status(invoice.id)
            except LedgerError as e:
                metrics.payments_recorded_total.labels(
                    operation='create', payment_type=kind, result=e.error_type
                ).inc()
                raise

        metrics.payments_recorded_total.labels(operation='create', payment_type=kind, result='success').inc()
        log_domain_event(
            'payment.created',
            entity_type='Payment',
            entity_id=str(payment.id),
            entity_ids={
                'patient_id': str(patient.id),
                'invoice_id': str(payment.invoice_id) if payment.invoice_id else None,
                'appointment_id': str(payment.appointment_id) if payment.appointment_id else None,
            },
            amount_paid=str(amount),
            payment_method=method,
            payment_type=kind,
        )
        return payment

    def update_payment(self, payment_id, notes=None, receipt_url=None) -> Payment:
        """
        Edit a payment's notes and receipt URL.

        Amount, method, type and links are fixed once recorded, so the
        invoice status is not recomputed.
        """
        payment_id = to_uuid(payment_id, 'payment_id')
        if notes is None and receipt_url is None:
            raise ValidationError('Nothing to update: give notes or receipt_url')

        with self.store.transaction('payment.update'):
            try:
                payment = self.store.locked(Payment).get(pk=payment_id)
            except Payment.DoesNotExist:
                raise NotFound(f'Payment {payment_id} not found', items=[payment_id])
            if notes is not None:
                payment.notes = notes
            if receipt_url is not None:
                payment.receipt_url = receipt_url or None
            self.store.save(payment)

        metrics.payments_recorded_total.labels(
            operation='update', payment_type=payment.payment_type, result='success'
        ).inc()
        log_domain_event(
            'payment.updated',
            entity_type='Payment',
            entity_id=str(payment.id),
            changed_fields=[
                name for name, value in (('notes', notes), ('receipt_url', receipt_url)) if value is not None
            ],
        )
        return payment

    @metrics.track_duration(metrics.ledger_operation_duration_seconds, operation='payment.delete')
    def delete_payment(self, payment_id) -> None:
        """Remove a payment and recompute its invoice status."""
        payment_id = to_uuid(payment_id, 'payment_id')
        with trace_span('payment.delete', attributes={'payment_id': str(payment_id)}):
            try:
                with self.store.transaction('payment.delete'):
                    try:
                        payment = self.store.locked(Payment).get(pk=payment_id)
                    except Payment.DoesNotExist:
                        raise NotFound(f'Payment {payment_id} not found', items=[payment_id])
                    invoice_id = payment.invoice_id
                    payment_type = payment.payment_type
                    payment.delete(using=self.store.using)

                    if invoice_id is not None:
                        self.invoicing.recompute_invoice_status(invoice_id)
            except LedgerError as e:
                metrics.payments_recorded_total.labels(
                    operation='delete', payment_type='unknown', result=e.error_type
                ).inc()
                raise

        metrics.payments_recorded_total.labels(
            operation='delete', payment_type=payment_type, result='success'
        ).inc()
        log_domain_event(
            'payment.deleted',
            entity_type='Payment',
            entity_id=str(payment_id),
            entity_ids={'invoice_id': str(invoice_id) if invoice_id else None},
        )

    def _get_invoice(self, invoice_id, patient) -> Invoice:
        invoice = self.invoicing.get_locked_invoice(to_uuid(invoice_id, 'invoice_id'))
        if invoice.patient_id != patient.id:
            raise ValidationError(
                f'Invoice {invoice.id} belongs to a different patient',
                items=[invoice.id]
            )
        if invoice.is_cancelled:
            raise ConflictError(
                f'Invoice {invoice.id} is cancelled and cannot receive payments',
                items=[invoice.id]
            )
        return invoice

    def _get_appointment(self, appointment_id, patient) -> Appointment:
        appointment_id = to_uuid(appointment_id, 'appointment_id')
        try:
            appointment = self.store.query(Appointment).get(pk=appointment_id)
        except Appointment.DoesNotExist:
            raise NotFound(f'Appointment {appointment_id} not found', items=[appointment_id])
        if appointment.patient_id != patient.id:
            raise ValidationError(
                f'Appointment {appointment.id} belongs to a different patient',
                items=[appointment.id]
            )
        return appointment


# Module-level entry points used by views and commands

def create_invoice(order_ids, patient_id, actor, due_date=None, due_in_days=None, notes=None, store=None):
    return InvoicingService(store).create_invoice(
        order_ids, patient_id, actor, due_date=due_date, due_in_days=due_in_days, notes=notes
    )


def recompute_invoice_status(invoice_id, store=None):
    return InvoicingService(store).recompute_invoice_status(invoice_id)


def cancel_invoice(invoice_id, actor=None, store=None):
    return InvoicingService(store).cancel_invoice(invoice_id, actor=actor)


def list_uninvoiced_orders(patient_id, store=None):
    return InvoicingService(store).list_uninvoiced_orders(patient_id)


def invoice_summary(patient_id=None, store=None):
    return InvoicingService(store).invoice_summary(patient_id)


def create_payment(patient_id, amount_paid, payment_method, payment_type, actor, store=None, **options):
    return PaymentRecorder(store).create_payment(
        patient_id, amount_paid, payment_method, payment_type, actor, **options
    )


def delete_payment(payment_id, store=None):
    return PaymentRecorder(store).delete_payment(payment_id)


def update_payment(payment_id, notes=None, receipt_url=None, store=None):
    return PaymentRecorder(store).update_payment(payment_id, notes=notes, receipt_url=receipt_url)
