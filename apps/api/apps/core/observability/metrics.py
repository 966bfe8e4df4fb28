"""
Prometheus metrics for the clinic ledger.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _create_counter(self, name, description, labels=None):
        return Counter(name, description, labels or [])

    def _create_histogram(self, name, description, labels=None, buckets=None):
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets)
        return Histogram(name, description, labels or [])

    def _setup_metrics(self):
        self.exceptions_total = self._create_counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Ledger store
        # ===================================================================
        self.ledger_transaction_failures_total = self._create_counter(
            'ledger_transaction_failures_total',
            'Ledger transactions rolled back by the database',
            ['operation', 'reason']  # reason: integrity|database
        )

        self.ledger_operation_duration_seconds = self._create_histogram(
            'ledger_operation_duration_seconds',
            'Duration of ledger operations',
            ['operation'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
        )

        # ===================================================================
        # Appointments
        # ===================================================================
        self.appointment_operations_total = self._create_counter(
            'appointment_operations_total',
            'Appointment orchestrator operations',
            ['operation', 'result']  # operation: create|update|attend|cancel
        )

        self.treatment_packages_created_total = self._create_counter(
            'treatment_packages_created_total',
            'Orders created from temporary package requests'
        )

        self.sessions_soft_deleted_total = self._create_counter(
            'sessions_soft_deleted_total',
            'Appointment session records soft-deleted'
        )

        # ===================================================================
        # Commissions
        # ===================================================================
        self.commissions_accrued_total = self._create_counter(
            'commissions_accrued_total',
            'Pending commissions created from reservation deposits'
        )

        self.commission_transitions_total = self._create_counter(
            'commission_transitions_total',
            'Commission status transitions',
            ['from_status', 'to_status', 'result']
        )

        self.commission_batch_total = self._create_counter(
            'commission_batch_total',
            'Commission batch operations',
            ['operation', 'result']  # operation: approve|mark_paid
        )

        # ===================================================================
        # Invoices & payments
        # ===================================================================
        self.invoice_operations_total = self._create_counter(
            'invoice_operations_total',
            'Invoice operations',
            ['operation', 'result']  # operation: create|cancel
        )

        self.invoice_status_recomputed_total = self._create_counter(
            'invoice_status_recomputed_total',
            'Invoice status recomputations',
            ['result']  # changed|unchanged|skipped
        )

        self.payments_recorded_total = self._create_counter(
            'payments_recorded_total',
            'Payments created, edited or deleted',
            ['operation', 'payment_type', 'result']
        )

    def track_duration(self, histogram_metric, **labels):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.ledger_operation_duration_seconds, operation='invoice.create')
            def create_invoice(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    metric = histogram_metric.labels(**labels) if labels else histogram_metric
                    metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
