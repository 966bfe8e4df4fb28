"""
Domain events logging helpers.

Provides structured event logging for ledger operations.
"""
from typing import Dict, Optional

from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'appointment.created')
        entity_type: Type of entity (e.g., 'Appointment', 'Invoice')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, blocked, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'invoice.created',
            entity_type='Invoice',
            entity_id=str(invoice.id),
            entity_ids={'patient_id': str(invoice.patient_id)},
            order_count=2,
            total_amount=str(invoice.total_amount)
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'rejected']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points, e.g. that an invoice
    status matches its payments right before commit.
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_appointment_event(event_name, appointment, result='success', **extra):
    log_domain_event(
        event_name,
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'patient_id': str(appointment.patient_id)},
        result=result,
        status=appointment.status,
        **extra
    )


def log_commission_transition(commission, from_status, to_status, result='success', **extra):
    """Log commission status transition event."""
    log_domain_event(
        'commission.transition',
        entity_type='Commission',
        entity_id=str(commission.id),
        entity_ids={
            'appointment_id': str(commission.appointment_id),
            'sales_person_id': str(commission.sales_person_id),
        },
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_invoice_status_change(invoice, from_status, to_status, total_paid):
    log_domain_event(
        'invoice.status_recomputed',
        entity_type='Invoice',
        entity_id=str(invoice.id),
        entity_ids={'patient_id': str(invoice.patient_id)},
        from_status=from_status,
        to_status=to_status,
        total_paid=str(total_paid),
        total_amount=str(invoice.total_amount),
    )
