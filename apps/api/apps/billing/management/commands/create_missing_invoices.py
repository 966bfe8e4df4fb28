"""
Management command to invoice every order that has no invoice yet.

Usage:
    python manage.py create_missing_invoices [--due-in-days N] [--patient UUID] [--dry-run]

One invoice per uninvoiced order, each in its own transaction: a failing
order is reported and counted, the others still get invoiced. The order's
creator is recorded as the invoice creator.
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from apps.billing.services import InvoicingService
from apps.core.db import LedgerStore
from apps.core.exceptions import LedgerError
from apps.core.observability import get_sanitized_logger
from apps.sales.models import Order

logger = get_sanitized_logger(__name__)


class Command(BaseCommand):
    help = 'Create one invoice per order that is not invoiced yet'

    def add_arguments(self, parser):
        parser.add_argument(
            '--due-in-days',
            type=int,
            default=None,
            help='Days until the invoice is due (default: INVOICE_DEFAULT_DUE_DAYS)',
        )
        parser.add_argument(
            '--patient',
            default=None,
            help='Only invoice orders of this patient',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the orders that would be invoiced without writing',
        )

    def handle(self, *args, **options):
        due_in_days = options['due_in_days']
        if due_in_days is None:
            due_in_days = settings.INVOICE_DEFAULT_DUE_DAYS

        store = LedgerStore()
        service = InvoicingService(store)

        orders = store.query(Order).uninvoiced().select_related('service').order_by('created_at')
        if options['patient']:
            orders = orders.filter(patient_id=options['patient'])
        orders = list(orders)

        if not orders:
            self.stdout.write(self.style.SUCCESS('No uninvoiced orders found'))
            return

        if options['dry_run']:
            for order in orders:
                self.stdout.write(f'  would invoice {order.id} ({order.service.name}, {order.final_price})')
            self.stdout.write(self.style.WARNING(f'Dry run: {len(orders)} order(s) pending'))
            return

        created = 0
        failed = 0
        for order in orders:
            try:
                invoice = service.create_invoice(
                    [order.id],
                    order.patient_id,
                    order.created_by,
                    due_in_days=due_in_days,
                )
            except LedgerError as e:
                failed += 1
                logger.warning(
                    'Backfill invoice failed',
                    extra={'order_id': str(order.id), 'error_type': e.error_type, 'error': str(e)}
                )
                self.stdout.write(self.style.ERROR(f'✗ Order {order.id}: {e}'))
                continue

            created += 1
            self.stdout.write(f'✓ Order {order.id} -> invoice {invoice.id}')

        summary = f'\nSummary: {created} invoice(s) created, {failed} failed'
        if failed:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
