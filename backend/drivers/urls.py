from django.urls import path
from .views import (
    DriverProfileView,
    DriverStatusView,
    DriverAttendanceView,
    DriverLocationUpdateView,
    DriverTripHistoryView,
)

urlpatterns = [
    path("profile/", DriverProfileView.as_view(), name="driver-profile"),
    path("status/", DriverStatusView.as_view(), name="driver-status"),
    path("attendance/", DriverAttendanceView.as_view(), name="driver-attendance"),
    path("location/", DriverLocationUpdateView.as_view(), name="driver-location"),
    path("history/", DriverTripHistoryView.as_view(), name="driver-history"),
]
