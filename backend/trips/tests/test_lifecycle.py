from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone

from activity.models import ActivityAction, ActivityLog
from drivers.models import DriverProfile
from services.trip_management import (
	assign_driver,
	cancel_trip,
	create_trip,
	end_trip_direct,
	get_current_driver_trip,
	get_trip,
	get_trip_activity,
	mark_driver_on_the_way,
	reassign_driver,
	reject_assigned_trip,
	reschedule_trip,
	update_live_location,
)
from services.trip_management.exceptions import (
	DriverIneligibleError,
	InvalidStateError,
	TripNotFoundError,
	TripValidationError,
	UnauthorizedError,
)
from trips.models import CarCategory, Trip, TripOffer, TripOfferStatus, TripStatus

from .helpers import (
	make_driver,
	make_franchise,
	make_offer,
	make_office_user,
	make_trip,
	make_trip_type,
	profile_of,
)


def trip_payload(franchise, trip_type, **overrides):
	data = {
		'franchise': franchise.pk,
		'trip_type': trip_type.pk,
		'customer_name': 'Ravi Das',
		'customer_phone': '9831111111',
		'customer_email': 'ravi@example.com',
		'pickup_address': 'Salt Lake Sector V',
		'pickup_latitude': Decimal('22.570000'),
		'pickup_longitude': Decimal('88.430000'),
	}
	data.update(overrides)
	return data


@patch('realtime.notifications._enqueue')
class CreateTripTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.office = make_office_user(self.franchise)

	def test_create_prices_and_dispatches(self, mock_enqueue):
		driver = make_driver(self.franchise, 'driver_one')

		result = create_trip(
			trip_payload(self.franchise, self.trip_type, estimated_duration_hours='5.5'),
			actor=self.office,
		)

		trip = result.trip
		self.assertTrue(result.success)
		self.assertEqual(trip.status, TripStatus.REQUESTED)
		self.assertEqual(trip.base_amount, Decimal('500.00'))
		self.assertEqual(trip.extra_amount, Decimal('150.00'))
		self.assertEqual(trip.created_by, self.office)
		self.assertIsNone(trip.final_amount)
		self.assertEqual(result.extra, {'offers_sent': 1})
		self.assertTrue(TripOffer.objects.filter(trip=trip, driver=driver).exists())
		self.assertTrue(
			ActivityLog.objects.filter(trip=trip, action=ActivityAction.TRIP_CREATED, actor=self.office).exists()
		)

	def test_create_without_dispatch(self, mock_enqueue):
		make_driver(self.franchise, 'driver_one')

		result = create_trip(trip_payload(self.franchise, self.trip_type), dispatch=False)

		self.assertEqual(result.extra['offers_sent'], 0)
		self.assertFalse(TripOffer.objects.exists())

	def test_create_with_no_drivers_still_succeeds(self, mock_enqueue):
		result = create_trip(trip_payload(self.franchise, self.trip_type))

		self.assertTrue(result.success)
		self.assertEqual(result.message, "Trip created.")

	def test_premium_category_is_priced_up(self, mock_enqueue):
		result = create_trip(
			trip_payload(self.franchise, self.trip_type, car_category=CarCategory.PREMIUM),
			dispatch=False,
		)
		self.assertEqual(result.trip.estimated_fare, Decimal('750.00'))

	def test_missing_fields(self, mock_enqueue):
		data = trip_payload(self.franchise, self.trip_type)
		del data['customer_phone']
		data['pickup_address'] = ''

		with self.assertRaises(TripValidationError) as ctx:
			create_trip(data)
		self.assertIn('customer_phone', ctx.exception.message)
		self.assertIn('pickup_address', ctx.exception.message)
		self.assertFalse(Trip.objects.exists())

	def test_inactive_references_rejected(self, mock_enqueue):
		closed = make_franchise('DEL', is_active=False)
		with self.assertRaises(TripValidationError):
			create_trip(trip_payload(closed, self.trip_type))

		with self.assertRaises(TripValidationError):
			create_trip(trip_payload(self.franchise, self.trip_type, car_gear_type='SEMI'))


@patch('realtime.notifications._enqueue')
class AssignmentTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.office = make_office_user(self.franchise)
		self.trip = make_trip(self.franchise, self.trip_type)
		self.driver_one = make_driver(self.franchise, 'driver_one')
		self.driver_two = make_driver(self.franchise, 'driver_two')

	def test_assign_cancels_outstanding_offers(self, mock_enqueue):
		offer = make_offer(self.trip, self.driver_two)

		result = assign_driver(self.trip.pk, self.driver_one.id, actor=self.office)

		self.assertEqual(result.trip.status, TripStatus.ASSIGNED)
		self.assertEqual(result.trip.driver_id, self.driver_one.id)
		offer.refresh_from_db()
		self.assertEqual(offer.status, TripOfferStatus.CANCELLED)
		self.assertEqual(profile_of(self.driver_one).trip_status, DriverProfile.TRIP_STATUS_ON_TRIP)

	def test_assign_rejects_ineligible_and_assigned(self, mock_enqueue):
		offline = make_driver(self.franchise, 'offline', trip_status=DriverProfile.TRIP_STATUS_OFFLINE)
		with self.assertRaises(DriverIneligibleError):
			assign_driver(self.trip.pk, offline.id)

		assign_driver(self.trip.pk, self.driver_one.id)
		with self.assertRaises(InvalidStateError):
			assign_driver(self.trip.pk, self.driver_two.id)

	def test_reassign_swaps_drivers(self, mock_enqueue):
		assign_driver(self.trip.pk, self.driver_one.id)

		result = reassign_driver(self.trip.pk, self.driver_two.id, actor=self.office, reason='Car broke down')

		self.assertEqual(result.trip.driver_id, self.driver_two.id)
		self.assertEqual(result.extra, {'previous_driver_id': self.driver_one.id})
		self.assertEqual(profile_of(self.driver_one).trip_status, DriverProfile.TRIP_STATUS_AVAILABLE)
		self.assertEqual(profile_of(self.driver_two).trip_status, DriverProfile.TRIP_STATUS_ON_TRIP)
		entry = ActivityLog.objects.get(trip=self.trip, action=ActivityAction.TRIP_REASSIGNED)
		self.assertEqual(entry.driver_id, self.driver_one.id)
		self.assertEqual(entry.metadata['reason'], 'Car broke down')

	def test_reassign_to_same_driver(self, mock_enqueue):
		assign_driver(self.trip.pk, self.driver_one.id)
		with self.assertRaises(TripValidationError):
			reassign_driver(self.trip.pk, self.driver_one.id)

	def test_reassign_requires_assignment(self, mock_enqueue):
		with self.assertRaises(InvalidStateError):
			reassign_driver(self.trip.pk, self.driver_two.id)

	def test_unknown_trip(self, mock_enqueue):
		with self.assertRaises(TripNotFoundError):
			assign_driver(987654, self.driver_one.id)
		with self.assertRaises(TripNotFoundError):
			get_trip('not-a-number')


@patch('realtime.notifications._enqueue')
class RescheduleAndCancelTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.trip = make_trip(self.franchise, self.trip_type)
		self.driver = make_driver(self.franchise, 'driver_one')

	def test_reschedule_requested_and_assigned(self, mock_enqueue):
		when = timezone.now() + timedelta(days=1)
		result = reschedule_trip(self.trip.pk, when.isoformat())
		self.assertEqual(result.trip.status, TripStatus.REQUESTED)
		self.assertEqual(result.trip.scheduled_at, when)

		assign_driver(self.trip.pk, self.driver.id)
		later = when + timedelta(hours=2)
		result = reschedule_trip(self.trip.pk, later)
		self.assertEqual(result.trip.status, TripStatus.ASSIGNED)
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.scheduled_at, later)
		self.assertEqual(
			ActivityLog.objects.filter(trip=self.trip, action=ActivityAction.TRIP_RESCHEDULED).count(), 2
		)

	def test_reschedule_rejects_bad_input(self, mock_enqueue):
		with self.assertRaises(TripValidationError):
			reschedule_trip(self.trip.pk, 'tomorrow-ish')
		with self.assertRaises(TripValidationError):
			reschedule_trip(self.trip.pk, None)

	def test_cancel_requested_trip_withdraws_offers(self, mock_enqueue):
		offer = make_offer(self.trip, self.driver)

		result = cancel_trip(self.trip.pk, cancelled_by='customer', reason='Plans changed')

		self.assertEqual(result.trip.status, TripStatus.CANCELLED_BY_CUSTOMER)
		self.assertEqual(result.extra, {'was_assigned': False})
		self.assertIsNotNone(result.trip.cancelled_at)
		offer.refresh_from_db()
		self.assertEqual(offer.status, TripOfferStatus.CANCELLED)

	def test_cancel_assigned_trip_frees_driver(self, mock_enqueue):
		assign_driver(self.trip.pk, self.driver.id)

		result = cancel_trip(self.trip.pk, reason='Duplicate booking')

		self.assertEqual(result.trip.status, TripStatus.CANCELLED_BY_OFFICE)
		self.assertIsNone(result.trip.driver_id)
		self.assertTrue(result.extra['was_assigned'])
		self.assertEqual(profile_of(self.driver).trip_status, DriverProfile.TRIP_STATUS_AVAILABLE)
		entry = ActivityLog.objects.get(trip=self.trip, action=ActivityAction.TRIP_CANCELLED)
		self.assertEqual(entry.driver_id, self.driver.id)

	def test_cancel_refused_once_started_or_finished(self, mock_enqueue):
		started = make_trip(self.franchise, self.trip_type, status=TripStatus.IN_PROGRESS, driver=self.driver)
		with self.assertRaises(InvalidStateError):
			cancel_trip(started.pk)

		cancel_trip(self.trip.pk)
		with self.assertRaises(InvalidStateError):
			cancel_trip(self.trip.pk)

	def test_cancel_validates_origin(self, mock_enqueue):
		with self.assertRaises(TripValidationError):
			cancel_trip(self.trip.pk, cancelled_by='driver')


@patch('realtime.notifications._enqueue')
class DriverTripTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.driver = make_driver(self.franchise, 'driver_one', remaining_daily_limit=Decimal('600.00'))
		self.other = make_driver(self.franchise, 'driver_two')
		self.trip = make_trip(self.franchise, self.trip_type)
		assign_driver(self.trip.pk, self.driver.id)

	def test_on_the_way(self, mock_enqueue):
		result = mark_driver_on_the_way(self.trip.pk, self.driver.id)
		self.assertEqual(result.trip.status, TripStatus.DRIVER_ON_THE_WAY)

		with self.assertRaises(InvalidStateError):
			mark_driver_on_the_way(self.trip.pk, self.driver.id)

	def test_only_assigned_driver_may_act(self, mock_enqueue):
		with self.assertRaises(UnauthorizedError):
			mark_driver_on_the_way(self.trip.pk, self.other.id)
		with self.assertRaises(UnauthorizedError):
			reject_assigned_trip(self.trip.pk, self.other.id)
		with self.assertRaises(UnauthorizedError):
			update_live_location(self.trip.pk, self.other.id, '22.5', '88.3')

	def test_reject_returns_trip_to_pool(self, mock_enqueue):
		with self.captureOnCommitCallbacks(execute=True):
			result = reject_assigned_trip(self.trip.pk, self.driver.id, reason='Too far')

		self.assertTrue(result.extra['redispatch'])
		self.assertEqual(result.trip.status, TripStatus.REQUESTED)
		self.assertIsNone(result.trip.driver_id)
		self.assertEqual(profile_of(self.driver).trip_status, DriverProfile.TRIP_STATUS_AVAILABLE)
		self.assertTrue(
			ActivityLog.objects.filter(trip=self.trip, action=ActivityAction.TRIP_REJECTED).exists()
		)
		# Offered again, but never to the driver who gave it back
		offered = set(TripOffer.objects.filter(trip=self.trip).values_list('driver_id', flat=True))
		self.assertEqual(offered, {self.other.id})

	def test_live_location(self, mock_enqueue):
		result = update_live_location(self.trip.pk, self.driver.id, '22.58', '88.41')

		self.assertEqual(result.trip.live_latitude, Decimal('22.580000'))
		self.assertIsNotNone(result.trip.live_location_updated_at)
		self.assertEqual(profile_of(self.driver).current_longitude, Decimal('88.410000'))

		with self.assertRaises(TripValidationError):
			update_live_location(self.trip.pk, self.driver.id, '95', '88.41')

	def test_live_location_needs_active_trip(self, mock_enqueue):
		cancel_trip(self.trip.pk)
		finished = make_trip(self.franchise, self.trip_type, status=TripStatus.COMPLETED, driver=self.driver)
		with self.assertRaises(InvalidStateError):
			update_live_location(finished.pk, self.driver.id, '22.58', '88.41')

	def test_current_trip(self, mock_enqueue):
		self.assertEqual(get_current_driver_trip(self.driver.id), self.trip)
		self.assertIsNone(get_current_driver_trip(self.other.id))

	def test_end_trip_direct_prices_and_completes(self, mock_enqueue):
		started_at = timezone.now() - timedelta(hours=5, minutes=30)
		Trip.objects.filter(pk=self.trip.pk).update(
			status=TripStatus.IN_PROGRESS,
			start_odometer=Decimal('1000.0'),
			start_time=started_at,
			started_at=started_at,
		)

		result = end_trip_direct(self.trip.pk, '1042.5', end_time=started_at + timedelta(hours=5, minutes=30))

		trip = result.trip
		self.assertEqual(trip.status, TripStatus.COMPLETED)
		self.assertEqual(trip.distance_km, Decimal('42.5'))
		self.assertEqual(trip.duration_hours, Decimal('5.50'))
		self.assertEqual(trip.final_amount, Decimal('650.00'))
		self.assertIsNotNone(trip.ended_at)

		profile = profile_of(self.driver)
		self.assertEqual(profile.trip_status, DriverProfile.TRIP_STATUS_AVAILABLE)
		# Daily limit never drops below zero
		self.assertEqual(profile.remaining_daily_limit, Decimal('0.00'))
		self.assertIsNone(get_current_driver_trip(self.driver.id))

	def test_end_trip_direct_validation(self, mock_enqueue):
		with self.assertRaises(InvalidStateError):
			end_trip_direct(self.trip.pk, '1000')

		Trip.objects.filter(pk=self.trip.pk).update(status=TripStatus.IN_PROGRESS, start_odometer=Decimal('1000.0'))
		with self.assertRaises(TripValidationError):
			end_trip_direct(self.trip.pk, '999')
		with self.assertRaises(TripValidationError):
			end_trip_direct(self.trip.pk, 'abc')

	def test_activity_is_oldest_first(self, mock_enqueue):
		mark_driver_on_the_way(self.trip.pk, self.driver.id)

		actions = [entry.action for entry in get_trip_activity(self.trip.pk)]

		self.assertEqual(actions, [ActivityAction.TRIP_ASSIGNED, ActivityAction.TRIP_UPDATED])
