import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services.booking_management import (
    accept_booking,
    cancel_booking,
    complete_booking,
    create_booking_multi,
    create_booking_with_questionnaire,
    get_booking_candidates,
    list_available_bookings,
    reject_booking,
)
from services.dispatch import (
    DispatchError,
    accept_offer,
    decline_offer,
    force_advance_offer,
    get_offers_debug,
    list_my_pending_offers,
)
from .permissions import IsCustomer, IsMarketplaceAdmin, IsProvider
from .serializers import (
    BookingMultiCreateSerializer,
    BookingQuestionnaireCreateSerializer,
    BookingReasonSerializer,
    BookingSerializer,
)

logger = logging.getLogger(__name__)


def _error_response(exc: DispatchError):
    return Response(
        {'success': False, 'error': exc.error_code, 'message': exc.message},
        status=exc.status_code
    )


def _booking_response(result, http_status=status.HTTP_200_OK):
    payload = {
        'success': True,
        'message': result.message,
        'booking': BookingSerializer(result.booking).data,
    }
    if result.extra:
        payload.update(result.extra)
    return Response(payload, status=http_status)


# ==================== Customer Booking APIs ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomer])
def create_booking_multi_view(request):
    """Book a service template; succeeds even when nobody is live right now"""
    serializer = BookingMultiCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        result = create_booking_multi(
            request.user,
            data['service_template_id'],
            data['longitude'],
            data['latitude'],
            data['sort_preference'],
            dispatch_mode=data['dispatch_mode'],
            scheduled_at=data.get('scheduled_at'),
            preferred_datetime=data.get('preferred_datetime'),
            service_details=data.get('service_details') or {},
        )
    except DispatchError as e:
        return _error_response(e)

    return _booking_response(result, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCustomer])
def create_booking_with_questionnaire_view(request):
    """Book a catalog entry with questionnaire answers; refuses when nobody is live"""
    serializer = BookingQuestionnaireCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    try:
        result = create_booking_with_questionnaire(
            request.user,
            data['service_catalog_id'],
            data['longitude'],
            data['latitude'],
            data['sort_preference'],
            answers=data.get('answers'),
            dispatch_mode=data['dispatch_mode'],
            scheduled_at=data.get('scheduled_at'),
            preferred_datetime=data.get('preferred_datetime'),
        )
    except DispatchError as e:
        return _error_response(e)

    return _booking_response(result, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_booking_view(request, booking_id):
    """Cancel a booking (owner or admin)"""
    serializer = BookingReasonSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = cancel_booking(request.user, booking_id, serializer.validated_data['reason'])
    except DispatchError as e:
        return _error_response(e)

    return _booking_response(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def offers_debug_view(request, booking_id):
    """Offer history, queue and countdown for one booking (owner or admin)"""
    try:
        snapshot = get_offers_debug(booking_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({'success': True, **snapshot})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def booking_candidates_view(request, booking_id):
    """Ranked candidates as they stand now (owner or admin)"""
    try:
        ranking = get_booking_candidates(booking_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({'success': True, **ranking})


# ==================== Provider Offer APIs ====================

@api_view(['GET'])
@permission_classes([IsAuthenticated, IsProvider])
def my_pending_offers_view(request):
    """Provider inbox: bookings currently offered to me"""
    offers = list_my_pending_offers(request.user)
    return Response({'success': True, 'count': len(offers), 'offers': offers})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsProvider])
def available_bookings_view(request):
    """Open broadcast bookings I can still accept"""
    bookings = list_available_bookings(request.user)
    return Response({
        'success': True,
        'count': len(bookings),
        'bookings': BookingSerializer(bookings, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsProvider])
def accept_offer_view(request, booking_id):
    """Accept the offer I currently hold"""
    try:
        booking = accept_offer(booking_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'message': 'Offer accepted. Head to the customer\'s location.',
        'booking': BookingSerializer(booking).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsProvider])
def decline_offer_view(request, booking_id):
    """Decline the offer I currently hold; the next provider is offered"""
    try:
        booking = decline_offer(booking_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'message': 'Offer declined.',
        'booking': BookingSerializer(booking).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsMarketplaceAdmin])
def force_advance_offer_view(request, booking_id):
    """Admin: expire the current offer now and move down the queue"""
    try:
        booking = force_advance_offer(booking_id, request.user)
    except DispatchError as e:
        return _error_response(e)

    return Response({
        'success': True,
        'message': 'Offer advanced.',
        'booking': BookingSerializer(booking).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsProvider])
def accept_booking_view(request, booking_id):
    """Accept a booking in either dispatch mode"""
    try:
        result = accept_booking(request.user, booking_id)
    except DispatchError as e:
        return _error_response(e)

    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsProvider])
def reject_booking_view(request, booking_id):
    """Reject a booking in either dispatch mode"""
    serializer = BookingReasonSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    try:
        result = reject_booking(request.user, booking_id, serializer.validated_data['reason'])
    except DispatchError as e:
        return _error_response(e)

    return _booking_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsProvider])
def complete_booking_view(request, booking_id):
    """Mark my in-progress booking as done"""
    try:
        result = complete_booking(request.user, booking_id)
    except DispatchError as e:
        return _error_response(e)

    return _booking_response(result)
