"""
Clinical views - appointment booking endpoints.

Every write goes through apps.clinical.services; the viewset only parses
payloads and renders the hydrated appointment.
"""
from django.db.models import Prefetch
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.core.dates import prepare_date_range
from apps.core.exceptions import LedgerError, error_response
from apps.core.observability import get_sanitized_logger
from apps.core.observability.correlation import bind_actor

from . import services
from .models import Appointment, AppointmentService
from .serializers import (
    AppointmentAttendSerializer,
    AppointmentCancelSerializer,
    AppointmentCreateSerializer,
    AppointmentDetailSerializer,
    AppointmentUpdateSerializer,
)

logger = get_sanitized_logger(__name__)


class AppointmentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for Appointment endpoints.

    Endpoints:
    - GET /api/v1/appointments/
    - POST /api/v1/appointments/
    - GET /api/v1/appointments/{id}/
    - PATCH /api/v1/appointments/{id}/
    - POST /api/v1/appointments/{id}/attend/
    - POST /api/v1/appointments/{id}/cancel/
    """
    serializer_class = AppointmentDetailSerializer
    permission_classes = [IsAuthenticated]
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_queryset(self):
        """
        Filters:
        - status: appointment status
        - patient_id: patient UUID
        - date_from / date_to: 'YYYY-MM-DD' bounds on scheduled_date
        """
        active_sessions = AppointmentService.objects.active().select_related(
            'order', 'order__service'
        )
        queryset = Appointment.objects.select_related('patient').prefetch_related(
            Prefetch('sessions', queryset=active_sessions, to_attr='active_sessions'),
            'commissions',
        )

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        patient_id = self.request.query_params.get('patient_id')
        if patient_id:
            queryset = queryset.filter(patient_id=patient_id)

        start, end = prepare_date_range(
            self.request.query_params.get('date_from'),
            self.request.query_params.get('date_to'),
        )
        if start:
            queryset = queryset.filter(scheduled_date__gte=start)
        if end:
            queryset = queryset.filter(scheduled_date__lte=end)

        return queryset.order_by('-scheduled_date')

    def list(self, request, *args, **kwargs):
        try:
            return super().list(request, *args, **kwargs)
        except LedgerError as e:
            return error_response(e)

    def create(self, request, *args, **kwargs):
        """
        POST /api/v1/appointments/

        {
            "patient_id": "uuid",
            "scheduled_date": "2024-05-10T10:00:00Z",
            "reservation_amount": "100.00",
            "sessions": [
                {"service_id": "uuid", "temp_package_id": "pkg-1", "session_number": 1,
                 "final_price": "400.00", "total_sessions": 4}
            ]
        }

        The booking user is recorded as creator and earns the commission on
        the reservation deposit.
        """
        bind_actor(request.user)
        serializer = AppointmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        try:
            appointment = services.create_appointment(
                data.pop('patient_id'),
                data.pop('scheduled_date'),
                [dict(s) for s in data.pop('sessions')],
                request.user,
                **data
            )
        except LedgerError as e:
            return error_response(e)

        return Response(
            AppointmentDetailSerializer(appointment).data,
            status=status.HTTP_201_CREATED
        )

    def partial_update(self, request, pk=None):
        """
        PATCH /api/v1/appointments/{id}/

        Appointment fields and session_operations
        (to_delete, new_orders, to_create, order_price_updates) are applied
        in one transaction.
        """
        bind_actor(request.user)
        serializer = AppointmentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        session_operations = fields.pop('session_operations', None)

        try:
            appointment = services.update_appointment(
                pk,
                request.user,
                fields=fields,
                session_operations=session_operations,
            )
        except LedgerError as e:
            return error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='attend')
    def attend(self, request, pk=None):
        """
        POST /api/v1/appointments/{id}/attend/

        Returns:
            200: appointment attended
            400: appointment cannot be attended from its current status
            404: appointment not found
        """
        bind_actor(request.user)
        serializer = AppointmentAttendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            appointment = services.mark_attended(
                pk, request.user, notes=serializer.validated_data.get('notes')
            )
        except LedgerError as e:
            return error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        """POST /api/v1/appointments/{id}/cancel/ - soft cancel, nothing is deleted."""
        bind_actor(request.user)
        serializer = AppointmentCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            services.cancel_appointment(
                pk, actor=request.user, reason=serializer.validated_data.get('reason')
            )
            appointment = services.get_hydrated_appointment(pk)
        except LedgerError as e:
            return error_response(e)

        return Response(AppointmentDetailSerializer(appointment).data)
