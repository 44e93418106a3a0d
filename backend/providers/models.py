from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class ProviderProfile(models.Model):
    """Provider-specific details: availability, rating and live location"""
    ONBOARDING_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='provider_profile')

    # Availability ("go live") and onboarding review
    is_available = models.BooleanField(default=False)
    is_live_tracking = models.BooleanField(default=False)
    onboarding_status = models.CharField(max_length=20, choices=ONBOARDING_CHOICES, default='pending')

    # Reputation
    rating = models.FloatField(default=0)
    rating_count = models.PositiveIntegerField(default=0)
    completed_jobs = models.PositiveIntegerField(default=0)

    # Live location
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'provider_profiles'

    @property
    def has_location(self):
        return self.current_latitude is not None and self.current_longitude is not None

    def __str__(self):
        state = "live" if self.is_available else "offline"
        return f"{self.user.username} ({state})"
