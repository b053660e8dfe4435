"""
Realtime app for WebSocket delivery of trip events.

This app provides:
- WebSocket consumers for drivers and for trip / franchise tracking
- The notification sink service code publishes trip events through
- JWT/Cookie authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (driver, trip)
    - notifications.py: group names and trip event helpers

Usage:
    from realtime.consumers import DriverConsumer, TripConsumer
    from realtime.notifications import notify_driver_event, notify_trip_event
"""
