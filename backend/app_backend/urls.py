from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check),  # Health check endpoint

    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # login, refresh, me

    # Driver APIs (driver profile, status, attendance, location, history)
    path('api/driver/', include('drivers.urls')),

    # Trip endpoints (at /api/trips/): office operations, offers, driver trip actions
    path('api/trips/', include('trips.urls')),
]
