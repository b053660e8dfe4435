from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response

from services.alerts import get_driver_alerts
from services.matching import (
    accept_trip_offer,
    find_eligible_drivers,
    list_pending_offers_for_driver,
    reject_trip_offer,
    request_trip_to_all_eligible_drivers,
    request_trip_to_eligible_driver_now,
    request_trip_to_eligible_drivers_now,
)
from services.trip_management import (
    TripServiceError,
    UnauthorizedError,
    assign_driver,
    cancel_trip,
    collect_payment,
    create_trip,
    end_trip_direct,
    get_current_driver_trip,
    get_trip,
    get_trip_activity,
    initiate_end,
    initiate_start,
    mark_driver_on_the_way,
    reassign_driver,
    reject_assigned_trip,
    reschedule_trip,
    update_live_location,
    verify_and_end,
    verify_and_start,
    verify_payment_and_end_trip,
)
from .models import Trip, TripType
from .permissions import IsDriver, IsOfficeUser
from .serializers import (
    ActivityLogSerializer,
    CollectPaymentSerializer,
    DirectEndSerializer,
    DriverChoiceSerializer,
    DriverListSerializer,
    EndInitiateSerializer,
    LiveLocationSerializer,
    ReassignSerializer,
    RejectTripSerializer,
    RescheduleSerializer,
    StartInitiateSerializer,
    TripCancelSerializer,
    TripCreateSerializer,
    TripOfferSerializer,
    TripSerializer,
    TripTypeSerializer,
    VerifySerializer,
)


def service_error_response(error: TripServiceError):
    return Response(
        {'success': False, 'error': error.error_code, 'message': error.message},
        status=error.status_code,
    )


def trip_response(result, status_code=status.HTTP_200_OK, **extra):
    return Response({
        'success': result.success,
        'message': result.message,
        'trip': TripSerializer(result.trip).data,
        **(result.extra or {}),
        **extra,
    }, status=status_code)


def _office_trip(user, trip_id) -> Trip:
    """Load a trip the office user is allowed to manage."""
    trip = get_trip(trip_id)
    if user.role != 'admin' and not user.is_superuser and user.franchise_id != trip.franchise_id:
        raise UnauthorizedError("This trip belongs to another franchise")
    return trip


# ==================== Office Trip APIs ====================

@api_view(['GET'])
@permission_classes([IsOfficeUser])
def list_trip_types(request):
    trip_types = TripType.objects.filter(is_active=True)
    return Response(TripTypeSerializer(trip_types, many=True).data)


@api_view(['GET', 'POST'])
@permission_classes([IsOfficeUser])
def trips(request):
    """
    GET: trips of the user's franchise, optionally filtered by ?status=
    POST: create a trip and offer it to eligible drivers
    """
    if request.method == 'GET':
        qs = Trip.objects.select_related('trip_type', 'driver__driver_profile')
        if request.user.role != 'admin' and not request.user.is_superuser:
            qs = qs.filter(franchise_id=request.user.franchise_id)
        status_filter = request.query_params.get('status')
        if status_filter:
            qs = qs.filter(status=status_filter)
        return Response(TripSerializer(qs[:200], many=True).data)

    serializer = TripCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = dict(serializer.validated_data)
    dispatch = data.pop('dispatch', None)
    if not data.get('franchise'):
        data['franchise'] = request.user.franchise_id

    try:
        if request.user.role != 'admin' and data['franchise'] != request.user.franchise_id:
            raise UnauthorizedError("Cannot create trips for another franchise")
        result = create_trip(data, actor=request.user, dispatch=dispatch)
    except TripServiceError as e:
        return service_error_response(e)

    return trip_response(result, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsOfficeUser])
def trip_detail(request, trip_id):
    try:
        trip = _office_trip(request.user, trip_id)
    except TripServiceError as e:
        return service_error_response(e)
    return Response(TripSerializer(trip).data)


@api_view(['GET'])
@permission_classes([IsOfficeUser])
def trip_activity(request, trip_id):
    """Audit trail of one trip, oldest first."""
    try:
        _office_trip(request.user, trip_id)
        entries = get_trip_activity(trip_id)
    except TripServiceError as e:
        return service_error_response(e)
    return Response({'trip_id': trip_id, 'activity': ActivityLogSerializer(entries, many=True).data})


@api_view(['GET'])
@permission_classes([IsOfficeUser])
def eligible_drivers(request, trip_id):
    """Ranked drivers who could take this trip right now."""
    try:
        _office_trip(request.user, trip_id)
        candidates = find_eligible_drivers(trip_id)
    except TripServiceError as e:
        return service_error_response(e)
    return Response({
        'trip_id': trip_id,
        'count': len(candidates),
        'drivers': [candidate.to_dict() for candidate in candidates],
    })


@api_view(['POST'])
@permission_classes([IsOfficeUser])
def send_offers(request, trip_id):
    """
    Offer a trip to drivers.

    Body:
        {} offers to every eligible driver not asked yet
        {"driver_id": 7} offers to one chosen driver
        {"driver_ids": [7, 9]} offers to a chosen set
    """
    try:
        _office_trip(request.user, trip_id)
        if 'driver_ids' in request.data:
            serializer = DriverListSerializer(data=request.data)
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            sent = request_trip_to_eligible_drivers_now(
                trip_id, serializer.validated_data['driver_ids'], actor=request.user
            )
        elif 'driver_id' in request.data:
            serializer = DriverChoiceSerializer(data=request.data)
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            sent = request_trip_to_eligible_driver_now(
                trip_id, serializer.validated_data['driver_id'], actor=request.user
            )
        else:
            sent = request_trip_to_all_eligible_drivers(trip_id, actor=request.user)
    except TripServiceError as e:
        return service_error_response(e)

    return Response({
        'success': True,
        'trip_id': trip_id,
        'offers_sent': sent,
        'message': 'Notifying drivers...' if sent else 'No new drivers to notify.',
    })


@api_view(['POST'])
@permission_classes([IsOfficeUser])
def assign_trip(request, trip_id):
    serializer = DriverChoiceSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        _office_trip(request.user, trip_id)
        result = assign_driver(trip_id, serializer.validated_data['driver_id'], actor=request.user)
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsOfficeUser])
def reassign_trip(request, trip_id):
    serializer = ReassignSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        _office_trip(request.user, trip_id)
        result = reassign_driver(
            trip_id,
            serializer.validated_data['driver_id'],
            actor=request.user,
            reason=serializer.validated_data['reason'],
        )
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsOfficeUser])
def reschedule(request, trip_id):
    serializer = RescheduleSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        _office_trip(request.user, trip_id)
        result = reschedule_trip(trip_id, serializer.validated_data['scheduled_at'], actor=request.user)
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsOfficeUser])
def cancel(request, trip_id):
    serializer = TripCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        _office_trip(request.user, trip_id)
        result = cancel_trip(
            trip_id,
            cancelled_by=serializer.validated_data['cancelled_by'],
            reason=serializer.validated_data['reason'],
            actor=request.user,
        )
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsOfficeUser])
def end_trip(request, trip_id):
    """Office override: end an IN_PROGRESS trip without OTP verification."""
    serializer = DirectEndSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        _office_trip(request.user, trip_id)
        result = end_trip_direct(
            trip_id,
            serializer.validated_data['end_odometer'],
            actor=request.user,
            end_time=serializer.validated_data.get('end_time'),
        )
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


# ==================== Driver Offer APIs ====================

@api_view(['GET'])
@permission_classes([IsDriver])
def pending_offers(request):
    offers = list_pending_offers_for_driver(request.user.id)
    return Response({
        'count': len(offers),
        'offers': TripOfferSerializer(offers, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsDriver])
def accept_offer(request, offer_id):
    """Accept an offer. The response says whether this driver won the trip."""
    try:
        offer = accept_trip_offer(offer_id, request.user.id)
    except TripServiceError as e:
        return service_error_response(e)

    if offer.status != 'ACCEPTED':
        # Customer details stay with the driver who holds the trip
        return Response({
            'success': False,
            'offer_id': offer.pk,
            'offer_status': offer.status,
            'message': 'This trip is no longer available.',
        }, status=status.HTTP_409_CONFLICT)

    return Response({
        'success': True,
        'offer_id': offer.pk,
        'offer_status': offer.status,
        'trip': TripSerializer(offer.trip).data,
        'message': 'Trip accepted. Navigate to pickup location.',
    })


@api_view(['POST'])
@permission_classes([IsDriver])
def reject_offer(request, offer_id):
    try:
        offer = reject_trip_offer(offer_id, request.user.id)
    except TripServiceError as e:
        return service_error_response(e)

    return Response({
        'success': True,
        'offer_id': offer.pk,
        'offer_status': offer.status,
        'message': 'Offer declined',
    })


@api_view(['GET'])
@permission_classes([IsDriver])
def driver_alerts(request):
    """Incoming offers and recent trip events for the driver's alert screen."""
    try:
        limit = int(request.query_params.get('limit', 50))
    except (TypeError, ValueError):
        return Response({'error': 'limit must be an integer'}, status=status.HTTP_400_BAD_REQUEST)

    alerts = get_driver_alerts(request.user.id, limit=max(limit, 0))
    return Response({'count': len(alerts), 'alerts': [alert.to_dict() for alert in alerts]})


@api_view(['GET'])
@permission_classes([IsDriver])
def current_trip(request):
    trip = get_current_driver_trip(request.user.id)
    if trip is None:
        return Response({'has_active_trip': False, 'message': 'No active trip'})
    return Response({'has_active_trip': True, 'trip': TripSerializer(trip).data})


# ==================== Driver Trip Actions ====================

@api_view(['POST'])
@permission_classes([IsDriver])
def on_the_way(request, trip_id):
    try:
        result = mark_driver_on_the_way(trip_id, request.user.id)
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsDriver])
def driver_reject_trip(request, trip_id):
    """Hand an assigned trip back. It is offered again unless it came from an accepted offer."""
    serializer = RejectTripSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = reject_assigned_trip(trip_id, request.user.id, serializer.validated_data['reason'])
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsDriver])
def start_initiate(request, trip_id):
    serializer = StartInitiateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = dict(serializer.validated_data)
    try:
        ticket = initiate_start(
            trip_id,
            request.user.id,
            data.pop('odometer_value'),
            start_time=data.pop('start_time', None),
            **data,
        )
    except TripServiceError as e:
        return service_error_response(e)

    return Response({
        'success': True,
        'trip_id': ticket.trip_id,
        'token': ticket.token,
        'expires_at': ticket.expires_at,
        'message': 'OTP sent to customer',
    })


@api_view(['POST'])
@permission_classes([IsDriver])
def start_verify(request, trip_id):
    serializer = VerifySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = verify_and_start(
            trip_id,
            request.user.id,
            serializer.validated_data['token'],
            serializer.validated_data['otp'],
        )
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsDriver])
def end_initiate(request, trip_id):
    serializer = EndInitiateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = dict(serializer.validated_data)
    try:
        ticket = initiate_end(
            trip_id,
            request.user.id,
            data.pop('odometer_value'),
            end_time=data.pop('end_time', None),
            **data,
        )
    except TripServiceError as e:
        return service_error_response(e)

    return Response({
        'success': True,
        'trip_id': ticket.trip_id,
        'token': ticket.token,
        'expires_at': ticket.expires_at,
        'message': 'OTP sent to customer',
    })


@api_view(['POST'])
@permission_classes([IsDriver])
def end_verify(request, trip_id):
    serializer = VerifySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = verify_and_end(
            trip_id,
            request.user.id,
            serializer.validated_data['token'],
            serializer.validated_data['otp'],
            await_payment=serializer.validated_data['await_payment'],
        )
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsDriver])
def payment_collect(request, trip_id):
    serializer = CollectPaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = collect_payment(
            trip_id,
            request.user.id,
            data['payment_method'],
            cash_amount=data.get('cash_amount'),
            upi_amount=data.get('upi_amount'),
            upi_reference=data.get('upi_reference', ""),
        )
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsDriver])
def payment_verify(request, trip_id):
    try:
        result = verify_payment_and_end_trip(trip_id, request.user.id)
    except TripServiceError as e:
        return service_error_response(e)
    return trip_response(result)


@api_view(['POST'])
@permission_classes([IsDriver])
def live_location(request, trip_id):
    """HTTP fallback for the driver socket's trip_location_update message."""
    serializer = LiveLocationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        update_live_location(
            trip_id,
            request.user.id,
            serializer.validated_data['latitude'],
            serializer.validated_data['longitude'],
        )
    except TripServiceError as e:
        return service_error_response(e)
    return Response({'success': True, 'trip_id': trip_id, 'message': 'Location updated'})
