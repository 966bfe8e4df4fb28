"""
Management command to re-derive invoice statuses from their payments.

Usage:
    python manage.py recompute_invoice_statuses [--invoice UUID]

Safe to run repeatedly: invoices whose stored status already matches their
payments are not written.
"""
from django.core.management.base import BaseCommand

from apps.billing.models import Invoice, InvoiceStatus
from apps.billing.services import InvoicingService
from apps.core.db import LedgerStore
from apps.core.exceptions import LedgerError


class Command(BaseCommand):
    help = 'Recompute the status of every non-cancelled invoice from its payments'

    def add_arguments(self, parser):
        parser.add_argument('--invoice', default=None, help='Only recompute this invoice')

    def handle(self, *args, **options):
        store = LedgerStore()
        service = InvoicingService(store)

        invoices = store.query(Invoice).exclude(status=InvoiceStatus.CANCELLED)
        if options['invoice']:
            invoices = invoices.filter(pk=options['invoice'])
        invoice_ids = list(invoices.values_list('id', flat=True))

        changed = 0
        failed = 0
        for invoice_id in invoice_ids:
            before = store.query(Invoice).values_list('status', flat=True).get(pk=invoice_id)
            try:
                invoice = service.recompute_invoice_status(invoice_id)
            except LedgerError as e:
                failed += 1
                self.stdout.write(self.style.ERROR(f'✗ Invoice {invoice_id}: {e}'))
                continue
            if invoice.status != before:
                changed += 1
                self.stdout.write(f'✓ Invoice {invoice_id}: {before} -> {invoice.status}')

        self.stdout.write(
            self.style.SUCCESS(
                f'\nSummary: {len(invoice_ids)} checked, {changed} changed, {failed} failed'
            )
        )
