"""
Appointment orchestration: booking, editing and status changes.

Test coverage:
1. Booking creates orders, sessions and the pending commission together
2. A failure anywhere in a booking leaves no rows behind
3. Editing sessions: soft-delete, new packages, new sessions, repricing
4. Appointment status changes follow the transition table
5. Attend and cancel never delete sessions or commissions
"""
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
import uuid

import pytest

from apps.clinical.models import Appointment, AppointmentService, AppointmentStatus
from apps.clinical.services import (
    cancel_appointment,
    create_appointment,
    get_hydrated_appointment,
    mark_attended,
    update_appointment,
)
from apps.commissions.models import Commission, CommissionStatus
from apps.core.exceptions import ConflictError, NotFound, ValidationError
from apps.sales.models import Order


SCHEDULED = datetime(2025, 3, 10, 15, 0, tzinfo=dt_timezone.utc)


@pytest.mark.django_db
class TestCreateAppointment:

    def test_booking_with_new_package(self, patient, laser_service, sales_user):
        appointment = create_appointment(
            patient.id,
            SCHEDULED,
            [{'service_id': laser_service.id, 'temp_package_id': 'tmp1', 'session_number': 1}],
            sales_user,
            reservation_amount=100,
        )

        assert appointment.status == AppointmentStatus.RESERVED
        assert appointment.duration_minutes == 60

        order = Order.objects.get(patient=patient)
        assert order.total_sessions == 4
        assert order.final_price == Decimal('500.00')

        sessions = appointment.active_sessions
        assert len(sessions) == 1
        assert sessions[0].order_id == order.id
        assert sessions[0].session_number == 1

        commission = Commission.objects.get(appointment=appointment)
        assert commission.status == CommissionStatus.PENDING
        assert commission.sales_person == sales_user
        assert commission.commission_rate == Decimal('0.1000')
        assert commission.commission_amount == Decimal('10.00')

    def test_sessions_sharing_temp_id_share_one_order(self, patient, laser_service, sales_user):
        appointment = create_appointment(
            patient.id,
            SCHEDULED,
            [
                {'service_id': laser_service.id, 'temp_package_id': 'tmp1', 'session_number': 1,
                 'final_price': '400.00'},
                {'service_id': laser_service.id, 'temp_package_id': 'tmp1', 'session_number': 2},
            ],
            sales_user,
        )

        assert Order.objects.count() == 1
        assert Order.objects.get().final_price == Decimal('400.00')
        assert sorted(s.session_number for s in appointment.active_sessions) == [1, 2]

    def test_session_on_existing_order(self, patient, laser_service, sales_user, make_order):
        order = make_order(patient, laser_service)

        appointment = create_appointment(
            patient.id,
            '2025-03-10',
            [{'service_id': laser_service.id, 'order_id': order.id, 'session_number': 2}],
            sales_user,
        )

        assert Order.objects.count() == 1
        assert appointment.active_sessions[0].order_id == order.id
        assert appointment.scheduled_date == datetime(2025, 3, 10, tzinfo=dt_timezone.utc)

    def test_no_commission_without_deposit(self, patient, laser_service, sales_user):
        for amount in (None, 0):
            create_appointment(
                patient.id,
                SCHEDULED,
                [{'service_id': laser_service.id, 'temp_package_id': f'tmp-{amount}', 'session_number': 1}],
                sales_user,
                reservation_amount=amount,
            )

        assert Commission.objects.count() == 0

    def test_invalid_service_in_one_group_leaves_no_rows(self, patient, laser_service, peel_service, sales_user):
        with pytest.raises(NotFound):
            create_appointment(
                patient.id,
                SCHEDULED,
                [
                    {'service_id': laser_service.id, 'temp_package_id': 'a', 'session_number': 1},
                    {'service_id': peel_service.id, 'temp_package_id': 'b', 'session_number': 1},
                    {'service_id': uuid.uuid4(), 'temp_package_id': 'c', 'session_number': 1},
                ],
                sales_user,
                reservation_amount=100,
            )

        assert Appointment.objects.count() == 0
        assert Order.objects.count() == 0
        assert AppointmentService.objects.count() == 0
        assert Commission.objects.count() == 0

    def test_session_number_beyond_package_rolls_back(self, patient, peel_service, sales_user):
        with pytest.raises(ValidationError):
            create_appointment(
                patient.id,
                SCHEDULED,
                [{'service_id': peel_service.id, 'temp_package_id': 'tmp1', 'session_number': 2}],
                sales_user,
                reservation_amount=50,
            )

        assert Appointment.objects.count() == 0
        assert Order.objects.count() == 0

    def test_taken_session_number_conflicts(self, booked_appointment, patient, laser_service, sales_user):
        order = booked_appointment.active_sessions[0].order

        with pytest.raises(ConflictError):
            create_appointment(
                patient.id,
                SCHEDULED,
                [{'service_id': laser_service.id, 'order_id': order.id, 'session_number': 1}],
                sales_user,
            )

        assert Appointment.objects.count() == 1

    def test_order_of_other_patient_rejected(self, other_patient, patient, laser_service, sales_user, make_order):
        order = make_order(other_patient, laser_service)

        with pytest.raises(ValidationError):
            create_appointment(
                patient.id,
                SCHEDULED,
                [{'service_id': laser_service.id, 'order_id': order.id, 'session_number': 1}],
                sales_user,
            )

    @pytest.mark.parametrize('sessions', [
        [],
        [{'temp_package_id': 'tmp1', 'session_number': 1}],
        [{'service_id': str(uuid.uuid4()), 'temp_package_id': 'tmp1'}],
    ])
    def test_malformed_session_requests_rejected(self, patient, sales_user, sessions):
        with pytest.raises(ValidationError):
            create_appointment(patient.id, SCHEDULED, sessions, sales_user)

    def test_unknown_patient_not_found(self, laser_service, sales_user):
        with pytest.raises(NotFound):
            create_appointment(
                uuid.uuid4(),
                SCHEDULED,
                [{'service_id': laser_service.id, 'temp_package_id': 'tmp1', 'session_number': 1}],
                sales_user,
            )

    def test_negative_deposit_rejected(self, patient, laser_service, sales_user):
        with pytest.raises(ValidationError):
            create_appointment(
                patient.id,
                SCHEDULED,
                [{'service_id': laser_service.id, 'temp_package_id': 'tmp1', 'session_number': 1}],
                sales_user,
                reservation_amount='-5',
            )


@pytest.mark.django_db
class TestUpdateAppointment:

    def test_replace_session_with_new_package(self, booked_appointment, peel_service, nurse_user):
        removed = booked_appointment.active_sessions[0]

        updated = update_appointment(
            booked_appointment.id,
            nurse_user,
            session_operations={
                'to_delete': [removed.id],
                'new_orders': [{'temp_package_id': 'new1', 'service_id': peel_service.id}],
                'to_create': [{'temp_package_id': 'new1', 'session_number': 1}],
                'delete_reason': 'Patient switched treatment',
            },
        )

        active_ids = [s.id for s in updated.active_sessions]
        assert removed.id not in active_ids
        assert len(updated.active_sessions) == 1
        new_session = updated.active_sessions[0]
        assert new_session.order.service_id == peel_service.id
        assert new_session.order.final_price == Decimal('300.00')

        audit = AppointmentService.objects.get(pk=removed.id)
        assert audit.is_deleted
        assert audit.deleted_by == nurse_user
        assert audit.delete_reason == 'Patient switched treatment'

    def test_deleted_session_number_can_be_reused(self, booked_appointment, nurse_user):
        removed = booked_appointment.active_sessions[0]

        updated = update_appointment(
            booked_appointment.id,
            nurse_user,
            session_operations={
                'to_delete': [removed.id],
                'to_create': [{'order_id': removed.order_id, 'session_number': 1}],
            },
        )

        assert updated.active_sessions[0].session_number == 1
        assert AppointmentService.objects.filter(order_id=removed.order_id).count() == 2

    def test_removing_last_session_rejected(self, booked_appointment, nurse_user):
        removed = booked_appointment.active_sessions[0]

        with pytest.raises(ValidationError):
            update_appointment(
                booked_appointment.id,
                nurse_user,
                session_operations={'to_delete': [removed.id]},
            )

        assert not AppointmentService.objects.get(pk=removed.id).is_deleted

    def test_session_of_other_appointment_not_found(self, booked_appointment, patient, laser_service, sales_user, nurse_user):
        other = create_appointment(
            patient.id,
            SCHEDULED,
            [{'service_id': laser_service.id, 'temp_package_id': 'x', 'session_number': 1}],
            sales_user,
        )

        with pytest.raises(NotFound):
            update_appointment(
                booked_appointment.id,
                nurse_user,
                session_operations={'to_delete': [other.active_sessions[0].id]},
            )

    def test_reprice_order_in_update(self, booked_appointment, nurse_user):
        order_id = booked_appointment.active_sessions[0].order_id

        updated = update_appointment(
            booked_appointment.id,
            nurse_user,
            session_operations={'order_price_updates': [{'order_id': order_id, 'final_price': '450'}]},
        )

        order = updated.active_sessions[0].order
        assert order.final_price == Decimal('450.00')
        assert order.discount == Decimal('50.00')

    def test_failed_step_rolls_back_earlier_steps(self, booked_appointment, peel_service, nurse_user):
        removed = booked_appointment.active_sessions[0]

        with pytest.raises(NotFound):
            update_appointment(
                booked_appointment.id,
                nurse_user,
                fields={'notes': 'changed'},
                session_operations={
                    'to_delete': [removed.id],
                    'new_orders': [{'temp_package_id': 'n', 'service_id': peel_service.id}],
                    'to_create': [{'temp_package_id': 'n', 'session_number': 1}],
                    'order_price_updates': [{'order_id': uuid.uuid4(), 'final_price': '1'}],
                },
            )

        assert not AppointmentService.objects.get(pk=removed.id).is_deleted
        assert Order.objects.count() == 1
        assert Appointment.objects.get(pk=booked_appointment.id).notes == ''

    def test_field_update(self, booked_appointment, nurse_user):
        updated = update_appointment(
            booked_appointment.id,
            nurse_user,
            fields={'duration_minutes': 90, 'notes': 'Bring sunscreen', 'scheduled_date': '2025-03-11T09:30:00Z'},
        )

        assert updated.duration_minutes == 90
        assert updated.notes == 'Bring sunscreen'
        assert updated.scheduled_date == datetime(2025, 3, 11, 9, 30, tzinfo=dt_timezone.utc)

    def test_field_only_update_leaves_sessions(self, booked_appointment, nurse_user):
        session = booked_appointment.active_sessions[0]

        updated = update_appointment(booked_appointment.id, nurse_user, fields={'notes': 'Rescheduled by phone'})

        assert updated.notes == 'Rescheduled by phone'
        assert [s.id for s in updated.active_sessions] == [session.id]
        assert AppointmentService.objects.deleted().count() == 0

    def test_unknown_field_rejected(self, booked_appointment, nurse_user):
        with pytest.raises(ValidationError):
            update_appointment(booked_appointment.id, nurse_user, fields={'reservation_amount': 5})

    def test_status_follows_transition_table(self, booked_appointment, nurse_user):
        update_appointment(booked_appointment.id, nurse_user, fields={'status': 'in_progress'})

        with pytest.raises(ValidationError):
            update_appointment(booked_appointment.id, nurse_user, fields={'status': 'no_show'})

        updated = update_appointment(booked_appointment.id, nurse_user, fields={'status': 'attended'})
        assert updated.status == AppointmentStatus.ATTENDED
        assert updated.attended_by == nurse_user
        assert updated.attended_at is not None

    def test_invalid_status_value_rejected(self, booked_appointment, nurse_user):
        with pytest.raises(ValidationError):
            update_appointment(booked_appointment.id, nurse_user, fields={'status': 'done'})

    def test_unknown_appointment_not_found(self, nurse_user):
        with pytest.raises(NotFound):
            update_appointment(uuid.uuid4(), nurse_user, fields={'notes': 'x'})


@pytest.mark.django_db
class TestAppointmentStatusChanges:

    def test_mark_attended_stamps_actor(self, booked_appointment, nurse_user):
        attended = mark_attended(booked_appointment.id, nurse_user, notes='All good')

        assert attended.status == AppointmentStatus.ATTENDED
        assert attended.attended_by == nurse_user
        assert attended.attended_at is not None
        assert attended.notes == 'All good'
        assert Commission.objects.get(appointment=attended).status == CommissionStatus.PENDING

    def test_cannot_attend_cancelled_appointment(self, booked_appointment, nurse_user):
        cancel_appointment(booked_appointment.id, nurse_user)

        with pytest.raises(ValidationError):
            mark_attended(booked_appointment.id, nurse_user)

    def test_cancel_keeps_sessions_and_commissions(self, booked_appointment, nurse_user):
        cancelled = cancel_appointment(booked_appointment.id, nurse_user, reason='Patient ill')

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert cancelled.cancellation_reason == 'Patient ill'
        hydrated = get_hydrated_appointment(booked_appointment.id)
        assert len(hydrated.active_sessions) == 1
        assert hydrated.commissions.count() == 1

    def test_cancel_twice_is_noop(self, booked_appointment, nurse_user):
        cancel_appointment(booked_appointment.id, nurse_user, reason='first')
        again = cancel_appointment(booked_appointment.id, nurse_user, reason='second')

        assert again.status == AppointmentStatus.CANCELLED
        assert Appointment.objects.get(pk=booked_appointment.id).cancellation_reason == 'first'

    def test_cannot_cancel_attended_appointment(self, booked_appointment, nurse_user):
        mark_attended(booked_appointment.id, nurse_user)

        with pytest.raises(ValidationError):
            cancel_appointment(booked_appointment.id, nurse_user)


class TestAppointmentTransitionTable:

    @pytest.mark.parametrize('current,target,allowed', [
        (AppointmentStatus.RESERVED, AppointmentStatus.IN_PROGRESS, True),
        (AppointmentStatus.RESERVED, AppointmentStatus.ATTENDED, False),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.ATTENDED, True),
        (AppointmentStatus.ATTENDED, AppointmentStatus.IN_PROGRESS, True),
        (AppointmentStatus.ATTENDED, AppointmentStatus.CANCELLED, False),
        (AppointmentStatus.CANCELLED, AppointmentStatus.RESERVED, True),
        (AppointmentStatus.NO_SHOW, AppointmentStatus.IN_PROGRESS, True),
        (AppointmentStatus.NO_SHOW, AppointmentStatus.ATTENDED, False),
    ])
    def test_can_transition_to(self, current, target, allowed):
        assert Appointment(status=current).can_transition_to(target) is allowed

    def test_leaving_attended_clears_stamps(self):
        appointment = Appointment(status=AppointmentStatus.IN_PROGRESS)
        appointment.transition_to(AppointmentStatus.ATTENDED)
        assert appointment.attended_at is not None

        appointment.transition_to(AppointmentStatus.IN_PROGRESS)
        assert appointment.attended_at is None
        assert appointment.attended_by is None
