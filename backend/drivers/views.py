from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import DriverProfile
from drivers.serializers import (
    AttendanceSerializer,
    DriverProfileSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
)
from services.trip_management import TripServiceError
from trips.models import Trip, TripStatus
from trips.serializers import TripSerializer

from drivers import services


# Utility: Ensure request.user is a driver
def require_driver(user):
    if user.role != "driver":
        return False, Response({"error": "Only drivers allowed"}, status=403)
    try:
        profile = user.driver_profile
        return True, profile
    except DriverProfile.DoesNotExist:
        return False, Response({"error": "Driver profile not found"}, status=404)


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile  # Response object

        serializer = DriverProfileSerializer(profile, context={"request": request})
        return Response(serializer.data)

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        vehicle_number = request.data.get("vehicle_number", profile.vehicle_number)
        profile.vehicle_number = vehicle_number
        profile.save(update_fields=["vehicle_number"])

        serializer = DriverProfileSerializer(profile, context={"request": request})
        return Response(serializer.data, status=200)


#    NOTE: WS can replace this, but HTTP fallback remains.
class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({"status": profile.trip_status, "is_checked_in": profile.is_checked_in})

    def put(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        try:
            services.update_driver_status(request.user.id, new_status)
        except TripServiceError as e:
            return Response({"error": e.error_code, "message": e.message}, status=e.status_code)

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status
        })


class DriverAttendanceView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = AttendanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        profile = services.set_checked_in(request.user.id, serializer.validated_data["checked_in"])

        return Response({"is_checked_in": profile.is_checked_in})


#    Live trip location goes through the trip endpoints / WS instead.
class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "status": profile.trip_status,
        })

    def post(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        services.update_driver_location(request.user.id, lat, lon)

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
            "status": profile.trip_status
        })


class DriverTripHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_driver(request.user)
        if ok is False:
            return profile

        completed = Trip.objects.filter(driver=request.user, status=TripStatus.COMPLETED).order_by("-ended_at")
        serializer = TripSerializer(completed, many=True, context={"request": request})

        return Response({"count": completed.count(), "trips": serializer.data})
