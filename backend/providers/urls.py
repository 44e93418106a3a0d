from django.urls import path
from .views import ProviderStatusView, ProviderLocationView

urlpatterns = [
    path("status/", ProviderStatusView.as_view(), name="provider-status"),
    path("location/", ProviderLocationView.as_view(), name="provider-location"),
]
