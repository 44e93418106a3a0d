from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    # Customer APIs
    path('create-multi/', views.create_booking_multi_view, name='create-multi'),
    path('create-with-questionnaire/', views.create_booking_with_questionnaire_view, name='create-with-questionnaire'),
    path('<int:booking_id>/cancel/', views.cancel_booking_view, name='cancel'),
    path('<int:booking_id>/offers-debug/', views.offers_debug_view, name='offers-debug'),
    path('<int:booking_id>/candidates/', views.booking_candidates_view, name='candidates'),

    # Provider APIs
    path('offers/mine/', views.my_pending_offers_view, name='my-offers'),
    path('available/', views.available_bookings_view, name='available'),
    path('<int:booking_id>/offer/accept/', views.accept_offer_view, name='accept-offer'),
    path('<int:booking_id>/offer/decline/', views.decline_offer_view, name='decline-offer'),
    path('<int:booking_id>/accept/', views.accept_booking_view, name='accept'),
    path('<int:booking_id>/reject/', views.reject_booking_view, name='reject'),
    path('<int:booking_id>/complete/', views.complete_booking_view, name='complete'),

    # Admin
    path('<int:booking_id>/offer/force-advance/', views.force_advance_offer_view, name='force-advance'),
]
