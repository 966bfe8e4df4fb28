"""
Global test fixtures for pytest.

Provides reusable fixtures for ledger testing:
- Staff users and authenticated API clients by role
- Catalog services, patients, orders and booked appointments
"""
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from apps.authz.models import RoleChoices, User
from apps.catalog.models import Service
from apps.clinical.models import Patient
from apps.clinical.services import create_appointment
from apps.core.db import LedgerStore
from apps.sales.models import Order


SCHEDULED = datetime(2025, 3, 10, 15, 0, tzinfo=dt_timezone.utc)


# ============================================================================
# Staff
# ============================================================================

@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        email='admin@test.com',
        password='testpass123',
        role=RoleChoices.ADMIN,
        is_staff=True,
    )


@pytest.fixture
def nurse_user(db):
    return User.objects.create_user(
        email='nurse@test.com',
        password='testpass123',
        first_name='Rosa',
        last_name='Quispe',
        role=RoleChoices.NURSE,
    )


@pytest.fixture
def sales_user(db):
    """Sales person; bookings made by this user accrue commissions to them."""
    return User.objects.create_user(
        email='sales@test.com',
        password='testpass123',
        first_name='Lucia',
        last_name='Flores',
        role=RoleChoices.SALES,
    )


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def sales_client(sales_user):
    client = APIClient()
    client.force_authenticate(user=sales_user)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# ============================================================================
# Catalog, patients, orders
# ============================================================================

@pytest.fixture
def store():
    return LedgerStore()


@pytest.fixture
def laser_service(db):
    """S1: base price 500, four sessions per package."""
    return Service.objects.create(
        name='Laser Hair Removal',
        base_price=Decimal('500.00'),
        default_sessions=4,
    )


@pytest.fixture
def peel_service(db):
    return Service.objects.create(
        name='Chemical Peel',
        base_price=Decimal('300.00'),
        default_sessions=1,
    )


@pytest.fixture
def inactive_service(db):
    return Service.objects.create(
        name='Discontinued Facial',
        base_price=Decimal('100.00'),
        is_active=False,
    )


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        first_name='Maria',
        last_name='Gomez',
        document_number='40123456',
        phone='+51 999 111 222',
    )


@pytest.fixture
def other_patient(db):
    return Patient.objects.create(first_name='Jorge', last_name='Ramos')


@pytest.fixture
def make_order(sales_user):
    """Factory for orders priced directly (final = original - discount)."""
    def _make(patient, service, final_price=None, total_sessions=None):
        order = Order(
            patient=patient,
            service=service,
            total_sessions=total_sessions or service.default_sessions,
            original_price=service.base_price,
            created_by=sales_user,
        )
        order.apply_price(final_price)
        order.save()
        return order
    return _make


@pytest.fixture
def booked_appointment(patient, laser_service, sales_user):
    """
    Appointment booked by the sales user with a 100.00 deposit and one
    session of a new laser package.
    """
    return create_appointment(
        patient.id,
        SCHEDULED,
        [{
            'service_id': laser_service.id,
            'temp_package_id': 'tmp1',
            'session_number': 1,
        }],
        sales_user,
        reservation_amount=Decimal('100.00'),
    )
