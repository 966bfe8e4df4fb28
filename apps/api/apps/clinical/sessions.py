"""
Session linker - binds appointments to orders, one row per consumed session.
"""
from typing import Dict, Iterable, List, Optional

from apps.core.db import LedgerStore
from apps.core.exceptions import ConflictError, NotFound, ValidationError
from apps.core.observability import metrics, get_sanitized_logger
from apps.core.validators import to_positive_int, to_uuid
from apps.sales.models import Order

from .models import AppointmentService

logger = get_sanitized_logger(__name__)


def _parse_session_request(request: dict, index: int) -> dict:
    """
    Normalize one session request.

    Exactly one of order_id/temp_package_id identifies the order; service_id
    is optional here and only cross-checked when given.
    """
    order_id = request.get('order_id')
    temp_id = request.get('temp_package_id')
    if order_id and temp_id:
        raise ValidationError(
            f'Session {index + 1}: give either order_id or temp_package_id, not both'
        )
    if not order_id and not temp_id:
        raise ValidationError(
            f'Session {index + 1}: an order_id or temp_package_id is required'
        )
    if request.get('session_number') is None:
        raise ValidationError(f'Session {index + 1}: session_number is required')

    service_id = request.get('service_id')
    return {
        'order_id': to_uuid(order_id, 'order_id') if order_id else None,
        'temp_package_id': str(temp_id) if temp_id else None,
        'service_id': to_uuid(service_id, 'service_id') if service_id else None,
        'session_number': to_positive_int(request['session_number'], 'session_number'),
    }


class SessionLinker:
    """Creates and soft-deletes AppointmentService rows."""

    def __init__(self, store: Optional[LedgerStore] = None):
        self.store = store or LedgerStore()

    def link(
        self,
        appointment,
        requests: Iterable[dict],
        resolved_orders: Optional[Dict[str, Order]] = None,
    ) -> List[AppointmentService]:
        """
        Create one session record per request.

        Every request is validated before the first row is written.

        Raises:
            ValidationError: unresolvable order reference, order of another
                patient/service, or session number outside 1..total_sessions
            NotFound: referenced order does not exist
            ConflictError: session number already used by an active session of
                the same order
        """
        resolved_orders = resolved_orders or {}
        parsed = [_parse_session_request(r, i) for i, r in enumerate(requests)]
        if not parsed:
            return []

        existing = self._load_orders({p['order_id'] for p in parsed if p['order_id']})

        targets = []
        for index, request in enumerate(parsed):
            if request['temp_package_id']:
                order = resolved_orders.get(request['temp_package_id'])
                if order is None:
                    raise ValidationError(
                        f'Session {index + 1}: package {request["temp_package_id"]} was not resolved',
                        items=[request['temp_package_id']]
                    )
            else:
                order = existing[request['order_id']]

            self._check_order(appointment, order, request, index)
            targets.append((order, request['session_number']))

        self._check_session_numbers(targets)

        sessions = []
        for order, session_number in targets:
            session = AppointmentService(
                appointment=appointment,
                order=order,
                session_number=session_number,
            )
            self.store.save(session)
            sessions.append(session)

        logger.info(
            'Sessions linked',
            extra={
                'appointment_id': str(appointment.id),
                'session_ids': [str(s.id) for s in sessions],
            }
        )
        return sessions

    def soft_delete(self, appointment, session_ids: Iterable, actor=None, reason='') -> int:
        """
        Soft-delete sessions of this appointment.

        Ids are scoped by appointment: an id belonging to another appointment
        is reported as not found. Already deleted sessions are left untouched.

        Returns:
            Number of sessions newly soft-deleted
        """
        ids = []
        for session_id in session_ids:
            parsed = to_uuid(session_id, 'session_id')
            if parsed not in ids:
                ids.append(parsed)
        if not ids:
            return 0

        sessions = list(
            self.store.locked(AppointmentService).filter(appointment=appointment, pk__in=ids)
        )
        found = {s.id for s in sessions}
        missing = [sid for sid in ids if sid not in found]
        if missing:
            raise NotFound(
                f'Session not found on appointment {appointment.id}',
                items=missing
            )

        deleted = 0
        for session in sessions:
            if session.is_deleted:
                continue
            session.soft_delete(user=actor, reason=reason)
            self.store.save(session, update_fields=['deleted_at', 'deleted_by', 'delete_reason'])
            deleted += 1

        metrics.sessions_soft_deleted_total.inc(deleted)
        return deleted

    def _load_orders(self, order_ids) -> Dict:
        if not order_ids:
            return {}
        orders = {o.id: o for o in self.store.locked(Order).filter(pk__in=order_ids)}
        missing = [oid for oid in order_ids if oid not in orders]
        if missing:
            raise NotFound('Order not found', items=missing)
        return orders

    def _check_order(self, appointment, order, request, index):
        if order.patient_id != appointment.patient_id:
            raise ValidationError(
                f'Session {index + 1}: order {order.id} belongs to a different patient',
                items=[order.id]
            )
        if request['service_id'] and request['service_id'] != order.service_id:
            raise ValidationError(
                f'Session {index + 1}: order {order.id} is not for service {request["service_id"]}',
                items=[order.id]
            )
        if request['session_number'] > order.total_sessions:
            raise ValidationError(
                f'Session {index + 1}: session number {request["session_number"]} is outside '
                f'1..{order.total_sessions} for order {order.id}',
                items=[order.id]
            )

    def _check_session_numbers(self, targets):
        """Reject duplicate (order, session_number) pairs among active sessions."""
        seen = set()
        duplicates = []
        for order, number in targets:
            key = (order.id, number)
            if key in seen:
                duplicates.append(f'{order.id}#{number}')
            seen.add(key)
        if duplicates:
            raise ConflictError('Duplicate session numbers in request', items=duplicates)

        taken = self.store.query(AppointmentService).active().filter(
            order_id__in={order.id for order, _ in targets},
            session_number__in={number for _, number in targets},
        ).values_list('order_id', 'session_number')
        clashes = [f'{oid}#{number}' for oid, number in taken if (oid, number) in seen]
        if clashes:
            raise ConflictError(
                'Session number already used by an active session of the same order',
                items=clashes
            )
