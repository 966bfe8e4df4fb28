"""
Invoicing and payment reconciliation.

Test coverage:
1. Invoice creation: totals, linking, double invoicing, patient checks
2. Status derived from payments (pending / partial / paid)
3. Recompute is idempotent and skips cancelled invoices
4. Payment validation by type
5. Cancelling releases orders; invoices with payments stay
"""
from datetime import date, timedelta
from decimal import Decimal
import uuid

import pytest
from django.db import connection
from django.test.utils import CaptureQueriesContext
from django.utils import timezone

from apps.billing.models import Invoice, InvoiceStatus, Payment
from apps.billing.services import (
    cancel_invoice,
    create_invoice,
    create_payment,
    delete_payment,
    invoice_summary,
    list_uninvoiced_orders,
    recompute_invoice_status,
    update_payment,
)
from apps.core.exceptions import ConflictError, NotFound, ValidationError
from apps.sales.models import Order


@pytest.fixture
def laser_order(patient, laser_service, make_order):
    return make_order(patient, laser_service)


@pytest.fixture
def invoice(laser_order, patient, sales_user):
    return create_invoice([laser_order.id], patient.id, sales_user)


def pay(invoice, amount, actor, method='cash'):
    return create_payment(
        invoice.patient_id,
        amount,
        method,
        'invoice_payment',
        actor,
        invoice_id=invoice.id,
    )


@pytest.mark.django_db
class TestCreateInvoice:

    def test_total_is_sum_of_final_prices(self, patient, laser_service, peel_service, make_order, sales_user):
        laser = make_order(patient, laser_service, final_price=Decimal('450.00'))
        peel = make_order(patient, peel_service)

        invoice = create_invoice([laser.id, peel.id], patient.id, sales_user, notes='March treatments')

        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.total_amount == Decimal('750.00')
        assert invoice.notes == 'March treatments'
        assert set(Order.objects.filter(invoice=invoice).values_list('id', flat=True)) == {laser.id, peel.id}

    def test_order_cannot_be_invoiced_twice(self, invoice, laser_order, patient, sales_user):
        with pytest.raises(ConflictError) as exc_info:
            create_invoice([laser_order.id], patient.id, sales_user)

        assert exc_info.value.items == [str(laser_order.id)]
        assert 'Laser Hair Removal' in str(exc_info.value)
        assert Invoice.objects.count() == 1

    def test_orders_of_several_patients_rejected(self, patient, other_patient, laser_service, make_order, sales_user):
        mine = make_order(patient, laser_service)
        theirs = make_order(other_patient, laser_service)

        with pytest.raises(ValidationError):
            create_invoice([mine.id, theirs.id], patient.id, sales_user)

        assert Invoice.objects.count() == 0
        assert Order.objects.invoiced().count() == 0

    def test_orders_of_other_patient_rejected(self, patient, other_patient, laser_service, make_order, sales_user):
        theirs = make_order(other_patient, laser_service)

        with pytest.raises(ValidationError):
            create_invoice([theirs.id], patient.id, sales_user)

    def test_empty_order_list_rejected(self, patient, sales_user):
        with pytest.raises(ValidationError):
            create_invoice([], patient.id, sales_user)

    def test_unknown_order_not_found(self, laser_order, patient, sales_user):
        missing = uuid.uuid4()

        with pytest.raises(NotFound) as exc_info:
            create_invoice([laser_order.id, missing], patient.id, sales_user)

        assert exc_info.value.items == [str(missing)]

    def test_due_in_days(self, laser_order, patient, sales_user):
        invoice = create_invoice([laser_order.id], patient.id, sales_user, due_in_days=15)

        assert invoice.due_date == timezone.localdate() + timedelta(days=15)

    def test_explicit_due_date(self, laser_order, patient, sales_user):
        invoice = create_invoice([laser_order.id], patient.id, sales_user, due_date='2025-04-30')

        assert invoice.due_date == date(2025, 4, 30)

    @pytest.mark.parametrize('days', ['abc', -1, '2.5'])
    def test_malformed_due_in_days_rejected(self, laser_order, patient, sales_user, days):
        with pytest.raises(ValidationError):
            create_invoice([laser_order.id], patient.id, sales_user, due_in_days=days)

        assert Invoice.objects.count() == 0

    def test_due_date_and_days_together_rejected(self, laser_order, patient, sales_user):
        with pytest.raises(ValidationError):
            create_invoice([laser_order.id], patient.id, sales_user, due_date='2025-04-30', due_in_days=5)


@pytest.mark.django_db
class TestInvoiceStatusFromPayments:

    def test_full_payment_then_delete(self, patient, laser_service, peel_service, make_order, sales_user):
        first = make_order(patient, laser_service, final_price=Decimal('300.00'))
        second = make_order(patient, peel_service, final_price=Decimal('200.00'))
        invoice = create_invoice([first.id, second.id], patient.id, sales_user)
        assert invoice.total_amount == Decimal('500.00')
        assert invoice.status == InvoiceStatus.PENDING

        payment = pay(invoice, '500.00', sales_user)

        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PAID

        delete_payment(payment.id)

        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PENDING
        assert Payment.objects.count() == 0

    def test_partial_then_paid(self, invoice, sales_user):
        pay(invoice, '200.00', sales_user)
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PARTIAL

        pay(invoice, '300.00', sales_user, method='yape')
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PAID

    def test_overpayment_is_paid(self, invoice, sales_user):
        pay(invoice, '650.00', sales_user)

        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PAID

    def test_zero_total_invoice_stays_pending_without_payments(self, patient, laser_service, make_order, sales_user):
        order = make_order(patient, laser_service, final_price=Decimal('0.00'))
        invoice = create_invoice([order.id], patient.id, sales_user)

        assert recompute_invoice_status(invoice.id).status == InvoiceStatus.PENDING

    @pytest.mark.parametrize('paid,total,expected', [
        (Decimal('0'), Decimal('100'), InvoiceStatus.PENDING),
        (Decimal('0.01'), Decimal('100'), InvoiceStatus.PARTIAL),
        (Decimal('100'), Decimal('100'), InvoiceStatus.PAID),
        (Decimal('120'), Decimal('100'), InvoiceStatus.PAID),
    ])
    def test_derive_status(self, paid, total, expected):
        assert Invoice.derive_status(paid, total) == expected


@pytest.mark.django_db
class TestRecomputeInvoiceStatus:

    def test_second_recompute_issues_no_update(self, invoice, sales_user):
        Payment.objects.create(
            patient=invoice.patient,
            invoice=invoice,
            amount_paid=Decimal('100.00'),
            payment_method='cash',
            payment_type='invoice_payment',
            payment_date=timezone.now(),
            created_by=sales_user,
        )

        assert recompute_invoice_status(invoice.id).status == InvoiceStatus.PARTIAL

        with CaptureQueriesContext(connection) as queries:
            again = recompute_invoice_status(invoice.id)

        assert again.status == InvoiceStatus.PARTIAL
        assert not [q for q in queries.captured_queries if q['sql'].startswith('UPDATE')]

    def test_cancelled_invoice_is_left_alone(self, invoice, sales_user):
        cancel_invoice(invoice.id, sales_user)

        assert recompute_invoice_status(invoice.id).status == InvoiceStatus.CANCELLED

    def test_unknown_invoice_not_found(self):
        with pytest.raises(NotFound):
            recompute_invoice_status(uuid.uuid4())


@pytest.mark.django_db
class TestCreatePayment:

    @pytest.mark.parametrize('amount', ['0', '-10', 'abc', None])
    def test_invalid_amount_rejected(self, invoice, sales_user, amount):
        with pytest.raises(ValidationError):
            pay(invoice, amount, sales_user)

    def test_invoice_payment_requires_invoice(self, patient, sales_user):
        with pytest.raises(ValidationError):
            create_payment(patient.id, '50', 'cash', 'invoice_payment', sales_user)

    @pytest.mark.parametrize('payment_type', ['reservation', 'service_payment'])
    def test_visit_payments_require_appointment(self, patient, sales_user, payment_type):
        with pytest.raises(ValidationError):
            create_payment(patient.id, '50', 'cash', payment_type, sales_user)

    def test_reservation_payment_on_appointment(self, booked_appointment, patient, sales_user):
        payment = create_payment(
            patient.id, '100', 'card', 'reservation', sales_user,
            appointment_id=booked_appointment.id,
            payment_date='2025-03-01',
            receipt_url='receipts/r-1.pdf',
        )

        assert payment.invoice_id is None
        assert payment.amount_paid == Decimal('100.00')
        assert payment.payment_date.date() == date(2025, 3, 1)

    def test_appointment_of_other_patient_rejected(self, booked_appointment, other_patient, sales_user):
        with pytest.raises(ValidationError):
            create_payment(
                other_patient.id, '100', 'cash', 'service_payment', sales_user,
                appointment_id=booked_appointment.id,
            )

    def test_invalid_method_rejected(self, invoice, sales_user):
        with pytest.raises(ValidationError):
            pay(invoice, '10', sales_user, method='bitcoin')

    def test_cancelled_invoice_conflicts(self, invoice, sales_user):
        cancel_invoice(invoice.id, sales_user)

        with pytest.raises(ConflictError):
            pay(invoice, '10', sales_user)

        assert Payment.objects.count() == 0

    def test_unknown_invoice_not_found(self, patient, sales_user):
        with pytest.raises(NotFound):
            create_payment(patient.id, '10', 'cash', 'invoice_payment', sales_user, invoice_id=uuid.uuid4())

    def test_delete_unknown_payment_not_found(self):
        with pytest.raises(NotFound):
            delete_payment(uuid.uuid4())

    def test_edit_notes_and_receipt(self, invoice, sales_user):
        payment = pay(invoice, '200.00', sales_user)

        updated = update_payment(payment.id, notes='Paid at front desk', receipt_url='https://files.example/r/77.pdf')

        assert updated.notes == 'Paid at front desk'
        assert updated.receipt_url == 'https://files.example/r/77.pdf'
        assert updated.amount_paid == Decimal('200.00')
        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PARTIAL

    def test_blank_receipt_clears_it(self, invoice, sales_user):
        payment = pay(invoice, '50.00', sales_user)
        update_payment(payment.id, receipt_url='https://files.example/r/1.pdf')

        assert update_payment(payment.id, receipt_url='').receipt_url is None

    def test_edit_without_changes_rejected(self, invoice, sales_user):
        payment = pay(invoice, '50.00', sales_user)

        with pytest.raises(ValidationError):
            update_payment(payment.id)

    def test_edit_unknown_payment_not_found(self):
        with pytest.raises(NotFound):
            update_payment(uuid.uuid4(), notes='x')


@pytest.mark.django_db
class TestCancelInvoice:

    def test_cancel_releases_orders(self, invoice, laser_order, patient, sales_user):
        cancelled = cancel_invoice(invoice.id, sales_user)

        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        laser_order.refresh_from_db()
        assert laser_order.invoice_id is None

        reinvoiced = create_invoice([laser_order.id], patient.id, sales_user)
        assert reinvoiced.id != invoice.id

    def test_cancel_with_payments_conflicts(self, invoice, sales_user):
        pay(invoice, '100', sales_user)

        with pytest.raises(ConflictError):
            cancel_invoice(invoice.id, sales_user)

        invoice.refresh_from_db()
        assert invoice.status == InvoiceStatus.PARTIAL

    def test_cancel_twice_is_noop(self, invoice, sales_user):
        cancel_invoice(invoice.id, sales_user)

        assert cancel_invoice(invoice.id, sales_user).status == InvoiceStatus.CANCELLED


@pytest.mark.django_db
class TestBillingQueries:

    def test_uninvoiced_orders(self, invoice, patient, peel_service, make_order):
        peel = make_order(patient, peel_service)

        assert [o.id for o in list_uninvoiced_orders(patient.id)] == [peel.id]

    def test_uninvoiced_orders_unknown_patient(self):
        with pytest.raises(NotFound):
            list_uninvoiced_orders(uuid.uuid4())

    def test_summary_by_status(self, invoice, patient, peel_service, make_order, sales_user):
        peel = make_order(patient, peel_service)
        second = create_invoice([peel.id], patient.id, sales_user)
        pay(second, '300', sales_user)

        summary = invoice_summary()

        assert summary['pending'] == {'count': 1, 'amount': Decimal('500.00')}
        assert summary['paid'] == {'count': 1, 'amount': Decimal('300.00')}
        assert summary['partial']['count'] == 0
        assert invoice_summary(patient_id=uuid.uuid4())['pending']['count'] == 0
