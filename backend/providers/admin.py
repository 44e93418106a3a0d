from django.contrib import admin
from providers.models import ProviderProfile


@admin.register(ProviderProfile)
class ProviderProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Provider Profiles"""

    list_display = [
        "user",
        "onboarding_status",
        "is_available",
        "rating",
        "completed_jobs",
        "current_latitude",
        "current_longitude",
        "last_location_update",
    ]

    list_filter = [
        "onboarding_status",
        "is_available",
    ]

    search_fields = [
        "user__username",
    ]

    readonly_fields = [
        "last_location_update",
    ]

    ordering = ("user__username",)
