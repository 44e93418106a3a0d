from rest_framework import serializers
from providers.models import ProviderProfile


class ProviderBasicSerializer(serializers.ModelSerializer):
    """
    Lite provider info for booking details and offer debugging.
    """
    username = serializers.CharField(source="user.username", read_only=True)
    phone_number = serializers.CharField(source="user.phone_number", read_only=True)

    class Meta:
        model = ProviderProfile
        fields = [
            "id",
            "user_id",
            "username",
            "phone_number",
            "rating",
            "is_available",
        ]


class ProviderStatusSerializer(serializers.Serializer):
    """
    Serializer for going live / offline.
    """
    is_available = serializers.BooleanField()


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating provider GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
