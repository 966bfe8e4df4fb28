"""Commission serializers."""
from rest_framework import serializers

from .models import Commission, CommissionPaymentMethod


class CommissionSerializer(serializers.ModelSerializer):
    """Read-only commission; status changes go through the action endpoints."""
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    sales_person_email = serializers.EmailField(source='sales_person.email', read_only=True)
    appointment_status = serializers.CharField(source='appointment.status', read_only=True)

    class Meta:
        model = Commission
        fields = [
            'id', 'sales_person', 'sales_person_email', 'appointment', 'appointment_status',
            'commission_rate', 'commission_amount', 'status', 'status_display',
            'approved_by', 'approved_at', 'paid_by', 'paid_at',
            'payment_method', 'payment_reference', 'rejection_reason', 'notes',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class CommissionApproveSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CommissionRejectSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CommissionPaySerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(
        choices=CommissionPaymentMethod.choices,
        default=CommissionPaymentMethod.CASH
    )
    payment_reference = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CommissionBatchApproveSerializer(serializers.Serializer):
    commission_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class CommissionBatchPaySerializer(serializers.Serializer):
    commission_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    payment_method = serializers.ChoiceField(
        choices=CommissionPaymentMethod.choices,
        default=CommissionPaymentMethod.CASH
    )
    payment_reference = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )
