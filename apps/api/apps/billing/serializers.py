"""Billing serializers."""
from rest_framework import serializers

from apps.sales.serializers import OrderSerializer

from .models import Invoice, Payment, PaymentMethod, PaymentType


class InvoiceSerializer(serializers.ModelSerializer):
    """
    Invoice with its orders.

    status is derived from payments and cannot be written.
    """
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    orders = OrderSerializer(many=True, read_only=True)

    class Meta:
        model = Invoice
        fields = [
            'id', 'patient', 'total_amount', 'status', 'status_display',
            'due_date', 'notes', 'orders', 'created_by',
            'created_at', 'updated_at', 'cancelled_at',
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    order_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    due_in_days = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs.get('due_date') is not None and attrs.get('due_in_days') is not None:
            raise serializers.ValidationError('Give either due_date or due_in_days, not both')
        return attrs


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            'id', 'patient', 'invoice', 'appointment', 'amount_paid',
            'payment_method', 'payment_type', 'payment_date', 'receipt_url',
            'notes', 'created_by', 'created_at',
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    """
    Payment input.

    invoice_id is required for invoice payments, appointment_id for
    reservation and service payments; the service layer enforces both.
    """
    patient_id = serializers.UUIDField()
    amount_paid = serializers.DecimalField(max_digits=10, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    payment_type = serializers.ChoiceField(choices=PaymentType.choices)
    invoice_id = serializers.UUIDField(required=False, allow_null=True)
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    payment_date = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    receipt_url = serializers.CharField(max_length=500, required=False, allow_null=True, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class PaymentUpdateSerializer(serializers.Serializer):
    """Only notes and receipt_url can change on a recorded payment."""
    notes = serializers.CharField(required=False, allow_blank=True)
    receipt_url = serializers.CharField(max_length=500, required=False, allow_blank=True)
