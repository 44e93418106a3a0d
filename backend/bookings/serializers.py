from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import Booking, BookingOffer, ProviderResponse
from services.dispatch.ranking import SORT_PREFERENCES, SORT_RATING

User = get_user_model()

DISPATCH_MODE_CHOICES = [choice for choice, _ in Booking.DISPATCH_MODE_CHOICES]


class UserBriefSerializer(serializers.ModelSerializer):
    """Name and contact for the other side of a booking"""
    class Meta:
        model = User
        fields = ['id', 'username', 'first_name', 'last_name', 'phone_number']


class BookingOfferSerializer(serializers.ModelSerializer):
    """One offer in a booking's history"""
    provider = UserBriefSerializer(read_only=True)

    class Meta:
        model = BookingOffer
        fields = ['id', 'sequence', 'provider', 'status', 'offered_at', 'responded_at']


class ProviderResponseSerializer(serializers.ModelSerializer):
    """A provider's answer to an open broadcast"""
    class Meta:
        model = ProviderResponse
        fields = ['id', 'provider', 'status', 'reason', 'responded_at']


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for Bookings"""
    customer = UserBriefSerializer(read_only=True)
    provider = UserBriefSerializer(read_only=True)
    service_template_name = serializers.CharField(source='service_template.name', read_only=True, default=None)
    service_catalog_name = serializers.CharField(source='service_catalog.name', read_only=True, default=None)
    offers = BookingOfferSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = ['id', 'customer', 'provider', 'service', 'service_template', 'service_template_name',
                  'service_catalog', 'service_catalog_name', 'service_details',
                  'latitude', 'longitude', 'scheduled_at', 'preferred_datetime',
                  'status', 'overall_status', 'dispatch_mode', 'sort_preference',
                  'pending_providers', 'provider_response_timeout', 'pending_expires_at',
                  'auto_assign_message', 'offers', 'created_at', 'accepted_at',
                  'completed_at', 'cancelled_at', 'cancellation_reason']
        read_only_fields = fields


class BookingCreateBaseSerializer(serializers.Serializer):
    """Fields shared by both booking creation flows"""
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
    sort_preference = serializers.ChoiceField(choices=SORT_PREFERENCES, default=SORT_RATING)
    dispatch_mode = serializers.ChoiceField(choices=DISPATCH_MODE_CHOICES, default='offers_queue')
    scheduled_at = serializers.DateTimeField(required=False, allow_null=True)
    preferred_datetime = serializers.DateTimeField(required=False, allow_null=True)


class BookingMultiCreateSerializer(BookingCreateBaseSerializer):
    """Serializer for template-based booking requests"""
    service_template_id = serializers.IntegerField()
    service_details = serializers.JSONField(required=False, default=dict)


class BookingQuestionnaireCreateSerializer(BookingCreateBaseSerializer):
    """Serializer for catalog + questionnaire booking requests"""
    service_catalog_id = serializers.IntegerField()
    answers = serializers.DictField(required=False, default=dict)


class BookingReasonSerializer(serializers.Serializer):
    """Serializer for rejection and cancellation reasons"""
    reason = serializers.CharField(required=False, allow_blank=True, default='')
