"""Core serializers."""
from rest_framework import serializers


class UserProfileSerializer(serializers.Serializer):
    """Profile of the authenticated staff member."""
    id = serializers.UUIDField()
    email = serializers.EmailField()
    full_name = serializers.CharField()
    role = serializers.CharField()
    is_active = serializers.BooleanField()
