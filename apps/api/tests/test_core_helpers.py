"""
Tests for shared helpers: money, dates, input coercion, ledger store.
"""
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
import uuid

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, connection

from apps.catalog.models import Service
from apps.core.dates import (
    is_valid_date_string,
    parse_datetime_value,
    parse_end_of_day,
    parse_start_of_day,
    prepare_date_range,
)
from apps.core.exceptions import ConflictError, NotFound, TransactionFailure, ValidationError
from apps.core.money import apply_rate, to_money, to_optional_money
from apps.core.validators import (
    check_choice,
    require,
    to_non_negative_int,
    to_positive_int,
    to_uuid,
    to_uuid_list,
)
from apps.billing.models import PaymentMethod


class TestMoney:

    @pytest.mark.parametrize('value,expected', [
        ('10', Decimal('10.00')),
        (0.1, Decimal('0.10')),
        (Decimal('3.335'), Decimal('3.34')),
        (7, Decimal('7.00')),
    ])
    def test_to_money(self, value, expected):
        assert to_money(value) == expected

    @pytest.mark.parametrize('value', [None, 'ten', True, 'NaN', 'Infinity'])
    def test_to_money_rejects(self, value):
        with pytest.raises(ValidationError):
            to_money(value)

    def test_optional_money(self):
        assert to_optional_money(None) is None
        assert to_optional_money('') is None
        assert to_optional_money('5') == Decimal('5.00')

    def test_apply_rate(self):
        assert apply_rate(Decimal('100.00'), Decimal('0.10')) == Decimal('10.00')
        assert apply_rate(Decimal('0.05'), Decimal('0.10')) == Decimal('0.01')


class TestDates:

    def test_valid_date_strings(self):
        assert is_valid_date_string('2025-02-28')
        assert not is_valid_date_string('2025-02-30')
        assert not is_valid_date_string('2025-2-3')
        assert not is_valid_date_string(None)

    def test_day_boundaries_are_utc(self):
        assert parse_start_of_day('2025-03-01') == datetime(2025, 3, 1, tzinfo=dt_timezone.utc)
        end = parse_end_of_day(date(2025, 3, 1))
        assert end.date() == date(2025, 3, 1)
        assert (end.hour, end.minute, end.second) == (23, 59, 59)

    def test_date_range(self):
        start, end = prepare_date_range('2025-03-01', '2025-03-01')
        assert start < end
        assert prepare_date_range() == (None, None)

        with pytest.raises(ValidationError):
            prepare_date_range('2025-03-02', '2025-03-01')

    def test_parse_datetime_value(self):
        assert parse_datetime_value('2025-03-10T15:00:00Z') == datetime(2025, 3, 10, 15, tzinfo=dt_timezone.utc)
        assert parse_datetime_value(datetime(2025, 3, 10, 15)).tzinfo is not None
        assert parse_datetime_value('2025-03-10') == datetime(2025, 3, 10, tzinfo=dt_timezone.utc)

        with pytest.raises(ValidationError):
            parse_datetime_value('next tuesday', 'scheduled_date')


class TestValidators:

    def test_require(self):
        assert require('x', 'field') == 'x'
        for empty in (None, '', []):
            with pytest.raises(ValidationError):
                require(empty, 'field')

    def test_to_uuid(self):
        value = uuid.uuid4()
        assert to_uuid(value) is value
        assert to_uuid(str(value)) == value

        with pytest.raises(ValidationError):
            to_uuid('not-a-uuid', 'order_id')

    def test_to_uuid_list_drops_duplicates(self):
        first, second = uuid.uuid4(), uuid.uuid4()
        assert to_uuid_list([first, str(second), str(first)]) == [first, second]

        with pytest.raises(ValidationError):
            to_uuid_list([])

    @pytest.mark.parametrize('value', [0, -1, '1.5', 'abc', True, 2.5])
    def test_to_positive_int_rejects(self, value):
        with pytest.raises(ValidationError):
            to_positive_int(value, 'session_number')

    def test_to_positive_int_accepts_numeric_strings(self):
        assert to_positive_int('3', 'session_number') == 3
        assert to_positive_int(4, 'session_number') == 4

    def test_to_non_negative_int(self):
        assert to_non_negative_int('0', 'due_in_days') == 0
        assert to_non_negative_int(30, 'due_in_days') == 30

        for value in (-1, 'abc', None, False):
            with pytest.raises(ValidationError):
                to_non_negative_int(value, 'due_in_days')

    def test_check_choice(self):
        assert check_choice('yape', PaymentMethod, 'payment_method') == PaymentMethod.YAPE

        with pytest.raises(ValidationError):
            check_choice('cheque', PaymentMethod, 'payment_method')


class TestLedgerErrors:

    def test_items_are_stringified(self):
        missing = uuid.uuid4()
        error = NotFound('Order not found', items=[missing])

        assert error.as_dict() == {
            'error': 'Order not found',
            'error_type': 'not_found',
            'items': [str(missing)],
            'count': 1,
        }

    def test_status_codes(self):
        assert ValidationError('x').status_code == 400
        assert NotFound('x').status_code == 404
        assert ConflictError('x').status_code == 409
        assert TransactionFailure('x').status_code == 500


@pytest.mark.django_db
class TestLedgerStore:

    def test_runs_on_in_memory_sqlite(self):
        assert connection.vendor == 'sqlite'

    def test_commit_on_success(self, store):
        with store.transaction():
            store.save(Service(name='Microneedling', base_price=Decimal('250.00')))

        assert Service.objects.filter(name='Microneedling').exists()

    def test_rollback_on_ledger_error(self, store):
        with pytest.raises(NotFound):
            with store.transaction():
                store.save(Service(name='Microneedling', base_price=Decimal('250.00')))
                raise NotFound('missing')

        assert not Service.objects.filter(name='Microneedling').exists()

    def test_model_validation_becomes_validation_error(self, store):
        with pytest.raises(ValidationError):
            with store.transaction():
                raise DjangoValidationError({'final_price': 'mismatch'})

    def test_integrity_error_becomes_conflict(self, store):
        with pytest.raises(ConflictError):
            with store.transaction('order.create'):
                raise IntegrityError('duplicate key')

    def test_database_error_becomes_transaction_failure(self, store):
        with pytest.raises(TransactionFailure):
            with store.transaction('invoice.create'):
                raise DatabaseError('deadlock detected')

    def test_nested_transaction_is_savepoint(self, store):
        with store.transaction():
            store.save(Service(name='Outer', base_price=Decimal('10.00')))
            with pytest.raises(NotFound):
                with store.transaction():
                    store.save(Service(name='Inner', base_price=Decimal('10.00')))
                    raise NotFound('missing')
            assert store.in_transaction

        assert Service.objects.filter(name='Outer').exists()
        assert not Service.objects.filter(name='Inner').exists()
