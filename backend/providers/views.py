from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from providers.models import ProviderProfile
from providers.serializers import ProviderStatusSerializer, LocationUpdateSerializer
from providers import services


# Utility: Ensure request.user is a provider
def require_provider(user):
    if user.role != "provider":
        return False, Response({"error": "Only providers allowed"}, status=403)
    try:
        profile = user.provider_profile
        return True, profile
    except ProviderProfile.DoesNotExist:
        return False, Response({"error": "Provider profile not found"}, status=404)


class ProviderStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_provider(request.user)
        if ok is False:
            return profile

        return Response({
            "is_available": profile.is_available,
            "onboarding_status": profile.onboarding_status,
        })

    def put(self, request):
        ok, profile = require_provider(request.user)
        if ok is False:
            return profile

        serializer = ProviderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        is_available = serializer.validated_data["is_available"]

        services.update_provider_availability(profile, is_available)

        return Response({
            "message": "You are now live" if is_available else "You are now offline",
            "is_available": is_available,
        })


class ProviderLocationView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_provider(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "is_available": profile.is_available,
        })

    def post(self, request):
        ok, profile = require_provider(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        services.update_provider_location(profile, lat, lon)

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
        })
