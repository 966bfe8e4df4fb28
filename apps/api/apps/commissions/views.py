"""Commission views."""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.core.exceptions import LedgerError, error_response
from apps.core.observability.correlation import bind_actor

from . import services
from .models import Commission
from .serializers import (
    CommissionApproveSerializer,
    CommissionBatchApproveSerializer,
    CommissionBatchPaySerializer,
    CommissionPaySerializer,
    CommissionRejectSerializer,
    CommissionSerializer,
)


class CommissionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for commission review and payout.

    Additional endpoints:
    - POST /commissions/{id}/approve|reject|pay|cancel/
    - POST /commissions/batch-approve/
    - POST /commissions/batch-pay/
    - GET /commissions/summary/?start=YYYY-MM-DD&end=YYYY-MM-DD
    """
    serializer_class = CommissionSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Commission.objects.select_related('sales_person', 'appointment')

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        sales_person = self.request.query_params.get('sales_person')
        if sales_person:
            queryset = queryset.filter(sales_person_id=sales_person)

        return queryset.order_by('-created_at')

    def _run(self, request, operation, *args, **kwargs):
        bind_actor(request.user)
        try:
            commission = operation(*args, **kwargs)
        except LedgerError as e:
            return error_response(e)
        return Response(CommissionSerializer(commission).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='approve')
    def approve(self, request, pk=None):
        """
        Approve a pending commission.

        Returns:
        - 200: approved
        - 400: not pending, or the appointment was not attended
        - 404: commission not found
        """
        serializer = CommissionApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._run(
            request, services.approve_commission,
            pk, request.user, notes=serializer.validated_data.get('notes')
        )

    @action(detail=True, methods=['post'], url_path='reject')
    def reject(self, request, pk=None):
        serializer = CommissionRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._run(
            request, services.reject_commission,
            pk, request.user,
            serializer.validated_data['rejection_reason'],
            notes=serializer.validated_data.get('notes')
        )

    @action(detail=True, methods=['post'], url_path='pay')
    def pay(self, request, pk=None):
        serializer = CommissionPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return self._run(
            request, services.mark_commission_paid,
            pk, request.user,
            method=data['payment_method'],
            reference=data.get('payment_reference'),
            notes=data.get('notes')
        )

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        return self._run(
            request, services.cancel_commission,
            pk, request.user, notes=request.data.get('notes')
        )

    @action(detail=False, methods=['post'], url_path='batch-approve')
    def batch_approve(self, request):
        """
        Approve several commissions at once, all or nothing.

        POST /api/v1/commissions/batch-approve/
        {"commission_ids": ["uuid", ...], "notes": "..."}

        Returns {"requested": n, "updated": k}. When any appointment is not
        attended nothing is approved and the offending ids come back in items.
        """
        bind_actor(request.user)
        serializer = CommissionBatchApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = services.batch_approve(
                serializer.validated_data['commission_ids'],
                request.user,
                notes=serializer.validated_data.get('notes')
            )
        except LedgerError as e:
            return error_response(e)
        return Response(result, status=status.HTTP_200_OK)

    @action(detail=False, methods=['post'], url_path='batch-pay')
    def batch_pay(self, request):
        bind_actor(request.user)
        serializer = CommissionBatchPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            result = services.batch_mark_paid(
                data['commission_ids'],
                request.user,
                method=data['payment_method'],
                reference=data.get('payment_reference')
            )
        except LedgerError as e:
            return error_response(e)
        return Response(result, status=status.HTTP_200_OK)

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        """Totals per sales person and status, optionally within start/end dates."""
        try:
            rows = services.summarize_by_sales_person(
                request.query_params.get('start'),
                request.query_params.get('end'),
            )
        except LedgerError as e:
            return error_response(e)
        return Response({'results': rows}, status=status.HTTP_200_OK)
