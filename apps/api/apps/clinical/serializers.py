"""
Clinical serializers.

Write serializers only check shapes and types. Business rules (session
numbering, package pricing, transitions) live in the service layer so that
API calls and in-process callers share them.
"""
from rest_framework import serializers

from apps.sales.serializers import OrderPriceUpdateSerializer, PackageRequestSerializer

from .models import Appointment, AppointmentService


class AppointmentSessionSerializer(serializers.ModelSerializer):
    """Active session of an appointment, with its order summary."""
    order_id = serializers.UUIDField(read_only=True)
    service_id = serializers.UUIDField(source='order.service_id', read_only=True)
    service_name = serializers.CharField(source='order.service.name', read_only=True)
    total_sessions = serializers.IntegerField(source='order.total_sessions', read_only=True)
    final_price = serializers.DecimalField(
        source='order.final_price', max_digits=10, decimal_places=2, read_only=True
    )
    is_invoiced = serializers.BooleanField(source='order.is_invoiced', read_only=True)

    class Meta:
        model = AppointmentService
        fields = [
            'id', 'order_id', 'service_id', 'service_name', 'session_number',
            'total_sessions', 'final_price', 'is_invoiced', 'created_at',
        ]
        read_only_fields = fields


class AppointmentCommissionSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    sales_person = serializers.UUIDField(source='sales_person_id', read_only=True)
    commission_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    status = serializers.CharField(read_only=True)


class AppointmentDetailSerializer(serializers.ModelSerializer):
    """
    Hydrated appointment.

    Only active sessions are listed; soft-deleted ones stay in the database
    for audit.
    """
    patient_id = serializers.UUIDField(read_only=True)
    patient_name = serializers.SerializerMethodField()
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    sessions = serializers.SerializerMethodField()
    commissions = AppointmentCommissionSerializer(many=True, read_only=True)

    class Meta:
        model = Appointment
        fields = [
            'id',
            'patient_id',
            'patient_name',
            'scheduled_date',
            'duration_minutes',
            'reservation_amount',
            'reservation_receipt_url',
            'status',
            'status_display',
            'notes',
            'cancellation_reason',
            'created_by',
            'attended_by',
            'attended_at',
            'sessions',
            'commissions',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_patient_name(self, obj):
        return f'{obj.patient.first_name} {obj.patient.last_name}'.strip()

    def get_sessions(self, obj):
        sessions = getattr(obj, 'active_sessions', None)
        if sessions is None:
            sessions = obj.sessions.active().select_related('order', 'order__service')
        return AppointmentSessionSerializer(sessions, many=True).data


class SessionRequestSerializer(serializers.Serializer):
    """
    One session to link: to an existing order (order_id) or to a package
    created in the same request (temp_package_id).
    """
    order_id = serializers.UUIDField(required=False, allow_null=True)
    temp_package_id = serializers.CharField(max_length=100, required=False, allow_null=True)
    service_id = serializers.UUIDField(required=False, allow_null=True)
    session_number = serializers.IntegerField(min_value=1)
    final_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    total_sessions = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class AppointmentCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    scheduled_date = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    reservation_amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    reservation_receipt_url = serializers.CharField(
        max_length=500, required=False, allow_null=True, allow_blank=True
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    sessions = SessionRequestSerializer(many=True, allow_empty=False)


class SessionOperationsSerializer(serializers.Serializer):
    to_delete = serializers.ListField(child=serializers.UUIDField(), required=False)
    new_orders = PackageRequestSerializer(many=True, required=False)
    to_create = SessionRequestSerializer(many=True, required=False)
    order_price_updates = OrderPriceUpdateSerializer(many=True, required=False)
    delete_reason = serializers.CharField(required=False, allow_blank=True)


class AppointmentUpdateSerializer(serializers.Serializer):
    """
    PATCH payload: appointment fields plus optional session_operations.

    Only fields present in the payload are changed.
    """
    scheduled_date = serializers.DateTimeField(required=False)
    duration_minutes = serializers.IntegerField(min_value=1, required=False)
    status = serializers.CharField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    reservation_receipt_url = serializers.CharField(
        max_length=500, required=False, allow_null=True, allow_blank=True
    )
    session_operations = SessionOperationsSerializer(required=False)


class AppointmentAttendSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class AppointmentCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
