"""
Ledger store: the transactional database seen by the service layer.

Services receive a LedgerStore instead of reaching for the default
connection, so tests and callers can pick the database alias and every
multi-step write shares one explicit transaction scope.
"""
from contextlib import contextmanager

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, transaction

from apps.core.exceptions import ConflictError, TransactionFailure, ValidationError
from apps.core.observability import metrics, get_sanitized_logger

logger = get_sanitized_logger(__name__)


class LedgerStore:
    """
    Thin wrapper over one Django database alias.

    Usage:
        store = LedgerStore()
        with store.transaction('invoice.create'):
            order = store.locked(Order).get(pk=order_id)
            ...
    """

    def __init__(self, using=DEFAULT_DB_ALIAS):
        self.using = using

    def __repr__(self):
        return f'LedgerStore(using={self.using!r})'

    def query(self, model):
        """Base queryset for a model on this store."""
        return model._default_manager.db_manager(self.using).all()

    def locked(self, model):
        """Queryset whose rows are locked until the transaction ends."""
        return self.query(model).select_for_update()

    def save(self, instance, **kwargs):
        instance.save(using=self.using, **kwargs)
        return instance

    @property
    def in_transaction(self):
        return transaction.get_connection(self.using).in_atomic_block

    @contextmanager
    def transaction(self, operation='ledger'):
        """
        Commit on success, roll back on any exception.

        Nested calls become savepoints. Model validation failures surface as
        ValidationError, constraint violations as ConflictError and any other
        database failure as TransactionFailure.
        """
        try:
            with transaction.atomic(using=self.using):
                yield self
        except DjangoValidationError as e:
            raise ValidationError('; '.join(e.messages)) from e
        except IntegrityError as e:
            metrics.ledger_transaction_failures_total.labels(
                operation=operation, reason='integrity'
            ).inc()
            logger.warning(
                'Ledger transaction rolled back - constraint violation',
                extra={'operation': operation, 'error': str(e)}
            )
            raise ConflictError(
                f'Operation {operation} conflicts with existing data and was rolled back'
            ) from e
        except DatabaseError as e:
            metrics.ledger_transaction_failures_total.labels(
                operation=operation, reason='database'
            ).inc()
            logger.error(
                'Ledger transaction aborted',
                exc_info=True,
                extra={'operation': operation, 'error_type': e.__class__.__name__}
            )
            raise TransactionFailure(
                f'Operation {operation} could not be completed; no changes were saved'
            ) from e
