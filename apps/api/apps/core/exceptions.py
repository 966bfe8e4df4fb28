"""
Ledger error taxonomy.

Every domain failure raised by the service layer is a LedgerError subclass.
Views translate them to HTTP responses with error_response().
"""
from rest_framework import status
from rest_framework.response import Response


class LedgerError(Exception):
    """
    Base class for domain errors.

    Attributes:
        message: Human-readable message
        items: Offending ids/values for batch or multi-entity failures
        status_code: HTTP status the error maps to
        error_type: Stable machine-readable code
    """
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = 'ledger_error'

    def __init__(self, message, items=None):
        super().__init__(message)
        self.message = message
        self.items = [str(item) for item in (items or [])]

    def __str__(self):
        return self.message

    def as_dict(self):
        data = {'error': self.message, 'error_type': self.error_type}
        if self.items:
            data['items'] = self.items
            data['count'] = len(self.items)
        return data


class ValidationError(LedgerError):
    """Missing/malformed input or an illegal state transition."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = 'validation_error'


class NotFound(LedgerError):
    """A referenced entity does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    error_type = 'not_found'


class ConflictError(LedgerError):
    """The request conflicts with current state (double invoicing, duplicate session, ...)."""
    status_code = status.HTTP_409_CONFLICT
    error_type = 'conflict'


class TransactionFailure(LedgerError):
    """
    Store-level abort (deadlock, timeout, lost connection).

    The whole operation was rolled back, so callers may retry it.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type = 'transaction_failure'


def error_response(exc: LedgerError) -> Response:
    """Build the DRF response for a ledger error."""
    return Response(exc.as_dict(), status=exc.status_code)
