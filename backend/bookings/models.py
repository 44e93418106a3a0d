from django.db import models
from django.db.models import Q
from django.conf import settings


class Booking(models.Model):
    """
    A customer's request for a tradesperson, plus the dispatch state used to
    find one (offer history, queue of not-yet-offered providers, timers).
    """

    STATUS_CHOICES = [
        ('requested', 'Requested'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('rejected', 'Rejected'),
        ('expired', 'Expired'),
    ]

    OVERALL_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in-progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('expired', 'Expired'),
    ]

    SORT_PREFERENCE_CHOICES = [
        ('nearby', 'Nearest first'),
        ('rating', 'Highest rated'),
        ('cheapest', 'Cheapest'),
        ('mix', 'Balanced mix'),
    ]

    # Fixed at creation: sequential offers vs. open broadcast
    DISPATCH_MODE_CHOICES = [
        ('offers_queue', 'Sequential offers'),
        ('response_set', 'Open broadcast'),
    ]

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='bookings'
    )

    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_bookings'
    )

    # What was asked for
    service = models.ForeignKey(
        'catalog.Service',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )
    service_template = models.ForeignKey(
        'catalog.ServiceTemplate',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )
    service_catalog = models.ForeignKey(
        'catalog.ServiceCatalog',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )
    service_details = models.JSONField(default=dict, blank=True)

    # Where and when
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    scheduled_at = models.DateTimeField(null=True, blank=True)
    preferred_datetime = models.DateTimeField(null=True, blank=True)

    # Status
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='requested')
    overall_status = models.CharField(max_length=20, choices=OVERALL_STATUS_CHOICES, default='pending')

    # Dispatch state
    dispatch_mode = models.CharField(max_length=20, choices=DISPATCH_MODE_CHOICES, default='offers_queue')
    sort_preference = models.CharField(max_length=10, choices=SORT_PREFERENCE_CHOICES, default='rating')
    pending_providers = models.JSONField(default=list, blank=True)  # provider user ids, rank order
    provider_response_timeout = models.DateTimeField(null=True, blank=True)
    pending_expires_at = models.DateTimeField(null=True, blank=True)
    auto_assign_message = models.CharField(max_length=255, blank=True, default='')

    # Optimistic concurrency token, bumped on every dispatch write
    version = models.PositiveIntegerField(default=0)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'provider_response_timeout'], name='booking_offer_timeout_idx'),
            models.Index(fields=['overall_status', 'pending_expires_at'], name='booking_pending_expiry_idx'),
        ]

    def current_offer(self):
        """The single pending offer, if any."""
        return self.offers.filter(status='pending').select_related('provider').first()

    def has_accepted_offer(self):
        return self.offers.filter(status='accepted').exists()

    def __str__(self):
        return f"Booking #{self.id} - {self.customer} - {self.status}"


class BookingOffer(models.Model):
    """One time-boxed proposal of a booking to one provider."""

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('declined', 'Declined'),
        ('expired', 'Expired'),
    ]

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name='offers'
    )

    # Nullable so a deleted provider leaves a detectable corrupted offer
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='booking_offers'
    )

    sequence = models.PositiveIntegerField()  # 0 = first offer made

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')

    offered_at = models.DateTimeField()
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'booking_offers'
        ordering = ['sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['booking', 'sequence'],
                name='unique_booking_offer_sequence'
            ),
            models.UniqueConstraint(
                fields=['booking'],
                condition=Q(status='pending'),
                name='one_pending_offer_per_booking'
            ),
        ]

    def __str__(self):
        return f"Offer #{self.id} - Booking {self.booking_id} -> Provider {self.provider_id} ({self.status})"


class ProviderResponse(models.Model):
    """A provider's answer to an open-broadcast booking."""

    STATUS_CHOICES = [
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
    ]

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name='provider_responses'
    )
    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='booking_responses'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    reason = models.TextField(blank=True, default='')
    responded_at = models.DateTimeField()

    class Meta:
        db_table = 'booking_provider_responses'
        constraints = [
            models.UniqueConstraint(
                fields=['booking', 'provider'],
                name='unique_booking_provider_response'
            ),
            models.UniqueConstraint(
                fields=['booking'],
                condition=Q(status='accepted'),
                name='one_accepted_response_per_booking'
            ),
        ]

    def __str__(self):
        return f"Response {self.provider_id} -> Booking {self.booking_id}: {self.status}"
