"""Sales serializers."""
from rest_framework import serializers

from .models import Order


class OrderSerializer(serializers.ModelSerializer):
    """
    Read-only order (treatment package) representation.

    Orders are written by the appointment and invoicing services, never
    through a generic create/update endpoint.
    """
    service_name = serializers.CharField(source='service.name', read_only=True)
    is_invoiced = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'patient', 'service', 'service_name', 'invoice',
            'total_sessions', 'original_price', 'discount', 'final_price',
            'is_invoiced', 'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class PackageRequestSerializer(serializers.Serializer):
    """
    New treatment package referenced by a temporary id.

    The id is chosen by the client; sessions of the same request refer to it
    before the order exists.
    """
    temp_package_id = serializers.CharField(max_length=100)
    service_id = serializers.UUIDField()
    final_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True
    )
    total_sessions = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class OrderPriceUpdateSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    final_price = serializers.DecimalField(max_digits=10, decimal_places=2)
