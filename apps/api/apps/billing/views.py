"""
Billing views - invoices and payments.

Invoice status is never accepted from clients: it is recomputed from the
payments after every payment write.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.core.exceptions import LedgerError, error_response
from apps.core.observability.correlation import bind_actor
from apps.sales.serializers import OrderSerializer

from . import services
from .models import Invoice, Payment
from .serializers import (
    InvoiceCreateSerializer,
    InvoiceSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    PaymentUpdateSerializer,
)


class InvoiceViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for invoices.

    Additional endpoints:
    - POST /invoices/{id}/cancel/ - Cancel an invoice without payments
    - POST /invoices/{id}/recompute-status/ - Re-derive status from payments
    - GET /invoices/uninvoiced-orders/?patient=<uuid>
    - GET /invoices/summary/?patient=<uuid>
    """
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Invoice.objects.prefetch_related('orders', 'orders__service')

        patient = self.request.query_params.get('patient')
        if patient:
            queryset = queryset.filter(patient_id=patient)

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('-created_at')

    def _reload(self, pk):
        return Invoice.objects.prefetch_related('orders', 'orders__service').get(pk=pk)

    def create(self, request, *args, **kwargs):
        """
        POST /api/v1/invoices/
        {
            "patient_id": "uuid",
            "order_ids": ["uuid", ...],
            "due_in_days": 30
        }

        Returns:
        - 201: invoice created, orders linked
        - 400: orders of several patients, or of another patient
        - 404: patient or order not found
        - 409: an order is already invoiced
        """
        bind_actor(request.user)
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            invoice = services.create_invoice(
                data['order_ids'],
                data['patient_id'],
                request.user,
                due_date=data.get('due_date'),
                due_in_days=data.get('due_in_days'),
                notes=data.get('notes'),
            )
        except LedgerError as e:
            return error_response(e)

        invoice = self._reload(invoice.pk)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        bind_actor(request.user)
        try:
            invoice = services.cancel_invoice(pk, actor=request.user)
        except LedgerError as e:
            return error_response(e)
        invoice = self._reload(invoice.pk)
        return Response(InvoiceSerializer(invoice).data)

    @action(detail=True, methods=['post'], url_path='recompute-status')
    def recompute_status(self, request, pk=None):
        try:
            invoice = services.recompute_invoice_status(pk)
        except LedgerError as e:
            return error_response(e)
        invoice = self._reload(invoice.pk)
        return Response(InvoiceSerializer(invoice).data)

    @action(detail=False, methods=['get'], url_path='uninvoiced-orders')
    def uninvoiced_orders(self, request):
        """GET /api/v1/invoices/uninvoiced-orders/?patient=<uuid>"""
        try:
            orders = services.list_uninvoiced_orders(request.query_params.get('patient'))
        except LedgerError as e:
            return error_response(e)
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        try:
            summary = services.invoice_summary(request.query_params.get('patient'))
        except LedgerError as e:
            return error_response(e)
        return Response(summary)


class PaymentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet
):
    """
    ViewSet for payments.

    - POST /payments/ - Record a payment (invoice status recomputed)
    - PATCH /payments/{id}/ - Edit notes or receipt_url
    - DELETE /payments/{id}/ - Remove a payment (invoice status recomputed)
    """
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Payment.objects.all()

        invoice = self.request.query_params.get('invoice')
        if invoice:
            queryset = queryset.filter(invoice_id=invoice)

        patient = self.request.query_params.get('patient')
        if patient:
            queryset = queryset.filter(patient_id=patient)

        return queryset.order_by('-payment_date')

    def create(self, request, *args, **kwargs):
        bind_actor(request.user)
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        try:
            payment = services.create_payment(
                data.pop('patient_id'),
                data.pop('amount_paid'),
                data.pop('payment_method'),
                data.pop('payment_type'),
                request.user,
                **data
            )
        except LedgerError as e:
            return error_response(e)

        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        bind_actor(request.user)
        serializer = PaymentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment = services.update_payment(pk, **serializer.validated_data)
        except LedgerError as e:
            return error_response(e)

        return Response(PaymentSerializer(payment).data)

    def destroy(self, request, pk=None):
        bind_actor(request.user)
        try:
            services.delete_payment(pk)
        except LedgerError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)
