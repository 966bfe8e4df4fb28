"""
Session linking and soft-delete.
"""
import uuid

import pytest

from apps.clinical.models import AppointmentService
from apps.clinical.sessions import SessionLinker
from apps.core.exceptions import ConflictError, NotFound, ValidationError


@pytest.fixture
def laser_order(booked_appointment):
    return booked_appointment.active_sessions[0].order


@pytest.mark.django_db
class TestLink:

    def test_links_existing_order(self, store, booked_appointment, laser_order):
        with store.transaction():
            sessions = SessionLinker(store).link(
                booked_appointment, [{'order_id': str(laser_order.id), 'session_number': '2'}]
            )

        assert [s.session_number for s in sessions] == [2]
        assert AppointmentService.objects.active().filter(order=laser_order).count() == 2

    @pytest.mark.parametrize('number', [0, 5])
    def test_session_number_outside_package(self, store, booked_appointment, laser_order, number):
        with pytest.raises(ValidationError):
            SessionLinker(store).link(
                booked_appointment, [{'order_id': laser_order.id, 'session_number': number}]
            )

    def test_duplicate_numbers_in_request(self, store, booked_appointment, laser_order):
        with pytest.raises(ConflictError) as exc_info:
            SessionLinker(store).link(booked_appointment, [
                {'order_id': laser_order.id, 'session_number': 3},
                {'order_id': laser_order.id, 'session_number': 3},
            ])

        assert exc_info.value.items == [f'{laser_order.id}#3']

    def test_service_mismatch(self, store, booked_appointment, laser_order, peel_service):
        with pytest.raises(ValidationError):
            SessionLinker(store).link(booked_appointment, [
                {'order_id': laser_order.id, 'service_id': peel_service.id, 'session_number': 2},
            ])

    def test_unresolved_temp_id(self, store, booked_appointment):
        with pytest.raises(ValidationError) as exc_info:
            SessionLinker(store).link(booked_appointment, [{'temp_package_id': 'ghost', 'session_number': 1}])

        assert exc_info.value.items == ['ghost']

    def test_order_and_temp_id_together(self, store, booked_appointment, laser_order):
        with pytest.raises(ValidationError):
            SessionLinker(store).link(booked_appointment, [
                {'order_id': laser_order.id, 'temp_package_id': 'tmp1', 'session_number': 2},
            ])

    def test_unknown_order(self, store, booked_appointment):
        with pytest.raises(NotFound):
            SessionLinker(store).link(booked_appointment, [{'order_id': uuid.uuid4(), 'session_number': 1}])


@pytest.mark.django_db
class TestSoftDelete:

    def test_soft_delete_keeps_audit_fields(self, store, booked_appointment, nurse_user):
        session = booked_appointment.active_sessions[0]

        with store.transaction():
            deleted = SessionLinker(store).soft_delete(
                booked_appointment, [session.id, str(session.id)], actor=nurse_user, reason='Wrong package'
            )

        assert deleted == 1
        session.refresh_from_db()
        assert session.is_deleted
        assert session.deleted_by == nurse_user
        assert session.delete_reason == 'Wrong package'
        assert AppointmentService.objects.deleted().count() == 1
        assert AppointmentService.objects.active().count() == 0

    def test_already_deleted_session_left_untouched(self, store, booked_appointment, nurse_user, admin_user):
        session = booked_appointment.active_sessions[0]
        linker = SessionLinker(store)
        with store.transaction():
            linker.soft_delete(booked_appointment, [session.id], actor=nurse_user)

        with store.transaction():
            assert linker.soft_delete(booked_appointment, [session.id], actor=admin_user) == 0

        session.refresh_from_db()
        assert session.deleted_by == nurse_user

    def test_unknown_session_not_found(self, store, booked_appointment):
        missing = uuid.uuid4()

        with pytest.raises(NotFound) as exc_info:
            SessionLinker(store).soft_delete(booked_appointment, [missing])

        assert exc_info.value.items == [str(missing)]
