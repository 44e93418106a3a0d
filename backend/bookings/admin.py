"""Tells what to show in the Django admin interface for bookings app"""

from django.contrib import admin
from .models import Booking, BookingOffer, ProviderResponse


class BookingOfferInline(admin.TabularInline):
    model = BookingOffer
    extra = 0
    readonly_fields = ("sequence", "provider", "status", "offered_at", "responded_at")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Booking admin"""
    list_display = ['id', 'customer', 'provider', 'status', 'overall_status', 'dispatch_mode',
                    'sort_preference', 'created_at', 'accepted_at']
    list_filter = ['status', 'overall_status', 'dispatch_mode', 'sort_preference']
    search_fields = ['customer__username', 'provider__username']
    readonly_fields = ['version', 'created_at', 'accepted_at', 'completed_at', 'cancelled_at']
    date_hierarchy = 'created_at'
    inlines = [BookingOfferInline]


@admin.register(BookingOffer)
class BookingOfferAdmin(admin.ModelAdmin):
    list_display = ("booking", "provider", "sequence", "status", "offered_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("booking__id", "provider__username")


@admin.register(ProviderResponse)
class ProviderResponseAdmin(admin.ModelAdmin):
    list_display = ("booking", "provider", "status", "responded_at")
    list_filter = ("status",)
    search_fields = ("booking__id", "provider__username")
