from django.urls import path
from . import views

app_name = 'trips'

urlpatterns = [
    # Office APIs
    path('types/', views.list_trip_types, name='trip-types'),
    path('', views.trips, name='trips'),
    path('<int:trip_id>/', views.trip_detail, name='trip-detail'),
    path('<int:trip_id>/activity/', views.trip_activity, name='trip-activity'),
    path('<int:trip_id>/eligible-drivers/', views.eligible_drivers, name='eligible-drivers'),
    path('<int:trip_id>/offers/', views.send_offers, name='send-offers'),
    path('<int:trip_id>/assign/', views.assign_trip, name='assign-trip'),
    path('<int:trip_id>/reassign/', views.reassign_trip, name='reassign-trip'),
    path('<int:trip_id>/reschedule/', views.reschedule, name='reschedule-trip'),
    path('<int:trip_id>/cancel/', views.cancel, name='cancel-trip'),
    path('<int:trip_id>/end/', views.end_trip, name='end-trip'),

    # Driver offer APIs
    path('offers/pending/', views.pending_offers, name='pending-offers'),
    path('offers/<int:offer_id>/accept/', views.accept_offer, name='accept-offer'),
    path('offers/<int:offer_id>/reject/', views.reject_offer, name='reject-offer'),
    path('driver/alerts/', views.driver_alerts, name='driver-alerts'),
    path('driver/current/', views.current_trip, name='driver-current-trip'),

    # Driver trip actions
    path('<int:trip_id>/on-the-way/', views.on_the_way, name='on-the-way'),
    path('<int:trip_id>/reject/', views.driver_reject_trip, name='driver-reject-trip'),
    path('<int:trip_id>/start/initiate/', views.start_initiate, name='start-initiate'),
    path('<int:trip_id>/start/verify/', views.start_verify, name='start-verify'),
    path('<int:trip_id>/end/initiate/', views.end_initiate, name='end-initiate'),
    path('<int:trip_id>/end/verify/', views.end_verify, name='end-verify'),
    path('<int:trip_id>/payment/collect/', views.payment_collect, name='payment-collect'),
    path('<int:trip_id>/payment/verify/', views.payment_verify, name='payment-verify'),
    path('<int:trip_id>/location/', views.live_location, name='live-location'),
]
