from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),  # Health check endpoint

    # Token endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),

    # Provider directory (availability, location)
    path('api/provider/', include('providers.urls')),

    # Booking dispatch (create, offers, accept/decline, debug)
    path('api/bookings/', include('bookings.urls')),
]
