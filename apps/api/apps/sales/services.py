"""
Sales service layer - treatment package resolution and repricing.

Packages are requested by the client with a temporary id (the package does
not exist yet when the booking form is filled in). The resolver persists one
Order per temporary id inside the caller's transaction and hands back the
temp-id -> Order map the session linker consumes. The map is never stored.
"""
from typing import Dict, Iterable, List, Optional

from apps.catalog.models import Service
from apps.core.db import LedgerStore
from apps.core.exceptions import ConflictError, NotFound, ValidationError
from apps.core.money import to_optional_money
from apps.core.observability import metrics, log_domain_event, get_sanitized_logger
from apps.core.validators import require, to_optional_positive_int, to_uuid

from .models import Order

logger = get_sanitized_logger(__name__)


def merge_package_requests(requests: Iterable[dict]) -> Dict[str, dict]:
    """
    Normalize package requests and merge duplicates by temporary id.

    The first request for a temp id fixes its service; later requests may fill
    in a price or session count the first one left out.

    Returns:
        {temp_package_id: {'service_id', 'final_price', 'total_sessions'}}, in
        first-seen order

    Raises:
        ValidationError: missing temp id/service id, malformed values, or two
            different services under one temp id
    """
    packages = {}
    for request in requests:
        temp_id = str(require(request.get('temp_package_id'), 'temp_package_id'))
        service_id = to_uuid(request.get('service_id'), 'service_id')
        final_price = to_optional_money(request.get('final_price'), 'final_price')
        total_sessions = to_optional_positive_int(request.get('total_sessions'), 'total_sessions')

        package = packages.get(temp_id)
        if package is None:
            packages[temp_id] = {
                'service_id': service_id,
                'final_price': final_price,
                'total_sessions': total_sessions,
            }
            continue

        if package['service_id'] != service_id:
            raise ValidationError(
                f'Package {temp_id} references two different services',
                items=[temp_id]
            )
        if package['final_price'] is None:
            package['final_price'] = final_price
        if package['total_sessions'] is None:
            package['total_sessions'] = total_sessions
    return packages


class TreatmentPackageResolver:
    """Turns temporary package requests into persisted orders."""

    def __init__(self, store: Optional[LedgerStore] = None):
        self.store = store or LedgerStore()

    def resolve(self, patient, requests: Iterable[dict], actor) -> Dict[str, Order]:
        """
        Create one Order per distinct temporary id.

        Must run inside the caller's transaction: a later failure in the same
        call rolls these orders back.

        Raises:
            NotFound: a referenced service does not exist or is inactive
            ValidationError: malformed request or negotiated price out of range
        """
        packages = merge_package_requests(requests)
        if not packages:
            return {}

        services = self._load_services({p['service_id'] for p in packages.values()})

        resolved = {}
        for temp_id, package in packages.items():
            service = services[package['service_id']]
            order = Order(
                patient=patient,
                service=service,
                total_sessions=package['total_sessions'] or service.default_sessions,
                original_price=service.base_price,
                created_by=actor,
            )
            order.apply_price(package['final_price'])
            self.store.save(order)
            resolved[temp_id] = order

        metrics.treatment_packages_created_total.inc(len(resolved))
        logger.info(
            'Treatment packages resolved',
            extra={
                'patient_id': str(patient.id),
                'temp_package_ids': list(resolved.keys()),
                'order_ids': [str(o.id) for o in resolved.values()],
            }
        )
        return resolved

    def _load_services(self, service_ids) -> Dict:
        services = {
            s.id: s
            for s in self.store.query(Service).active().filter(pk__in=service_ids)
        }
        missing = [sid for sid in service_ids if sid not in services]
        if missing:
            raise NotFound(
                f'Service not found: {", ".join(str(sid) for sid in missing)}',
                items=missing
            )
        return services


def reprice_orders(store: LedgerStore, patient, updates: List[dict]) -> List[Order]:
    """
    Apply explicit final-price overrides to existing orders of a patient.

    Each update is {'order_id', 'final_price'}. Discount is recomputed from the
    order's original price. Invoiced orders are frozen.

    Raises:
        NotFound: order does not exist
        ValidationError: order belongs to another patient, or price out of range
        ConflictError: order is already invoiced
    """
    parsed = []
    for update in updates:
        order_id = to_uuid(update.get('order_id'), 'order_id')
        price = to_optional_money(update.get('final_price'), 'final_price')
        if price is None:
            raise ValidationError('final_price is required for order price updates')
        parsed.append((order_id, price))

    orders = {
        o.id: o
        for o in store.locked(Order).filter(pk__in=[oid for oid, _ in parsed])
    }
    missing = [oid for oid, _ in parsed if oid not in orders]
    if missing:
        raise NotFound('Order not found', items=missing)

    foreign = [oid for oid in orders if orders[oid].patient_id != patient.id]
    if foreign:
        raise ValidationError('Orders belong to a different patient', items=foreign)

    invoiced = [oid for oid in orders if orders[oid].is_invoiced]
    if invoiced:
        raise ConflictError('Invoiced orders cannot be repriced', items=invoiced)

    repriced = []
    for order_id, price in parsed:
        order = orders[order_id]
        old_price = order.final_price
        order.apply_price(price)
        store.save(order)
        repriced.append(order)
        log_domain_event(
            'order.repriced',
            entity_type='Order',
            entity_id=str(order.id),
            entity_ids={'patient_id': str(patient.id)},
            old_final_price=str(old_price),
            new_final_price=str(order.final_price),
            discount=str(order.discount),
        )
    return repriced
