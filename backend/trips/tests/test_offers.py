from datetime import timedelta
from io import StringIO
from unittest.mock import Mock, patch

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from activity.models import ActivityAction, ActivityLog
from drivers.models import DriverProfile
from services.matching import (
	accept_trip_offer,
	expire_stale_offers,
	list_pending_offers_for_driver,
	reject_trip_offer,
	request_trip_to_all_eligible_drivers,
	request_trip_to_eligible_driver_now,
	request_trip_to_eligible_drivers_now,
)
from services.matching.offer_dispatch import _lock_offer
from services.trip_management import assign_driver, reject_assigned_trip
from services.trip_management.exceptions import (
	DriverIneligibleError,
	InvalidStateError,
	OfferNotFoundError,
	UnauthorizedError,
)
from services.trip_management.state_machine import load_trip
from trips.models import Trip, TripOffer, TripOfferStatus, TripStatus

from .helpers import make_driver, make_franchise, make_offer, make_trip, make_trip_type, profile_of


@patch('realtime.notifications._enqueue')
class OfferDispatchTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.trip = make_trip(self.franchise, self.trip_type)
		self.driver_one = make_driver(self.franchise, 'driver_one')
		self.driver_two = make_driver(self.franchise, 'driver_two')

	def test_offers_every_eligible_driver_once(self, mock_enqueue):
		before = timezone.now()
		sent = request_trip_to_all_eligible_drivers(self.trip.pk)

		self.assertEqual(sent, 2)
		offers = TripOffer.objects.filter(trip=self.trip)
		self.assertEqual({o.driver_id for o in offers}, {self.driver_one.id, self.driver_two.id})
		for offer in offers:
			self.assertEqual(offer.status, TripOfferStatus.OFFERED)
			self.assertGreaterEqual(offer.expires_at, before + timedelta(seconds=300))
		self.assertEqual(
			ActivityLog.objects.filter(trip=self.trip, action=ActivityAction.TRIP_OFFERED).count(), 2
		)

		# Nobody new to ask
		self.assertEqual(request_trip_to_all_eligible_drivers(self.trip.pk), 0)

	def test_franchise_overrides_ttl_and_attempt_ceiling(self, mock_enqueue):
		self.franchise.offer_ttl_seconds = 60
		self.franchise.max_offer_attempts = 1
		self.franchise.save()

		sent = request_trip_to_all_eligible_drivers(self.trip.pk)

		self.assertEqual(sent, 1)
		offer = TripOffer.objects.get(trip=self.trip)
		self.assertLessEqual(offer.expires_at, timezone.now() + timedelta(seconds=60))

	def test_offering_assigned_trip_is_invalid(self, mock_enqueue):
		Trip.objects.filter(pk=self.trip.pk).update(status=TripStatus.ASSIGNED, driver=self.driver_one)
		with self.assertRaises(InvalidStateError):
			request_trip_to_all_eligible_drivers(self.trip.pk)

	def test_offer_to_single_driver_checks_eligibility(self, mock_enqueue):
		offline = make_driver(self.franchise, 'offline', trip_status=DriverProfile.TRIP_STATUS_OFFLINE)

		with self.assertRaises(DriverIneligibleError):
			request_trip_to_eligible_driver_now(self.trip.pk, offline.id)

		self.assertEqual(request_trip_to_eligible_driver_now(self.trip.pk, self.driver_one.id), 1)
		# A live offer already exists
		self.assertEqual(request_trip_to_eligible_driver_now(self.trip.pk, self.driver_one.id), 0)

	def test_offer_to_chosen_drivers_skips_ineligible(self, mock_enqueue):
		banned = make_driver(self.franchise, 'banned', banned_globally=True)

		sent = request_trip_to_eligible_drivers_now(self.trip.pk, [self.driver_one.id, banned.id])

		self.assertEqual(sent, 1)
		self.assertFalse(TripOffer.objects.filter(trip=self.trip, driver=banned).exists())

	def test_driver_who_declined_is_not_offered_again(self, mock_enqueue):
		offer = make_offer(self.trip, self.driver_one, status=TripOfferStatus.REJECTED)
		self.assertEqual(offer.status, TripOfferStatus.REJECTED)

		with self.assertRaises(DriverIneligibleError):
			request_trip_to_eligible_driver_now(self.trip.pk, self.driver_one.id)
		self.assertEqual(request_trip_to_eligible_drivers_now(self.trip.pk, [self.driver_one.id]), 0)


@patch('realtime.notifications._enqueue')
class OfferResponseTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.trip = make_trip(self.franchise, self.trip_type)
		self.driver_one = make_driver(self.franchise, 'driver_one')
		self.driver_two = make_driver(self.franchise, 'driver_two')
		self.offer_one = make_offer(self.trip, self.driver_one)
		self.offer_two = make_offer(self.trip, self.driver_two)

	def test_accept_assigns_trip_and_cancels_siblings(self, mock_enqueue):
		offer = accept_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(offer.status, TripOfferStatus.ACCEPTED)
		self.assertIsNotNone(offer.accepted_at)

		self.trip.refresh_from_db()
		self.offer_two.refresh_from_db()
		self.assertEqual(self.trip.status, TripStatus.ASSIGNED)
		self.assertEqual(self.trip.driver_id, self.driver_one.id)
		self.assertEqual(self.offer_two.status, TripOfferStatus.CANCELLED)
		self.assertEqual(profile_of(self.driver_one).trip_status, DriverProfile.TRIP_STATUS_ON_TRIP)
		self.assertTrue(
			ActivityLog.objects.filter(
				trip=self.trip, driver=self.driver_one, action=ActivityAction.TRIP_ACCEPTED
			).exists()
		)

	def test_accept_is_idempotent(self, mock_enqueue):
		accept_trip_offer(self.offer_one.pk, self.driver_one.id)
		again = accept_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(again.status, TripOfferStatus.ACCEPTED)
		self.assertEqual(
			ActivityLog.objects.filter(trip=self.trip, action=ActivityAction.TRIP_ACCEPTED).count(), 1
		)

	def test_second_accept_loses(self, mock_enqueue):
		accept_trip_offer(self.offer_one.pk, self.driver_one.id)
		late = accept_trip_offer(self.offer_two.pk, self.driver_two.id)

		self.assertEqual(late.status, TripOfferStatus.CANCELLED)
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.driver_id, self.driver_one.id)
		self.assertEqual(profile_of(self.driver_two).trip_status, DriverProfile.TRIP_STATUS_AVAILABLE)

	def test_trip_row_is_locked_before_offer_row(self, mock_enqueue):
		order = Mock()
		with patch('services.matching.offer_dispatch.load_trip', wraps=load_trip) as lock_trip:
			with patch('services.matching.offer_dispatch._lock_offer', wraps=_lock_offer) as lock_offer:
				order.attach_mock(lock_trip, 'trip')
				order.attach_mock(lock_offer, 'offer')
				accept_trip_offer(self.offer_one.pk, self.driver_one.id)
				reject_trip_offer(self.offer_two.pk, self.driver_two.id)

		self.assertEqual([name for name, args, kwargs in order.mock_calls], ['trip', 'offer', 'trip', 'offer'])
		lock_trip.assert_called_with(self.trip.pk, for_update=True)

	def test_trip_handed_back_after_accept_is_never_accepted_again(self, mock_enqueue):
		accept_trip_offer(self.offer_one.pk, self.driver_one.id)
		with self.captureOnCommitCallbacks(execute=True):
			result = reject_assigned_trip(self.trip.pk, self.driver_one.id, reason='Car broke down')

		self.assertFalse(result.extra['redispatch'])
		self.assertFalse(TripOffer.objects.filter(trip=self.trip, status=TripOfferStatus.OFFERED).exists())
		with self.assertRaises(InvalidStateError):
			request_trip_to_all_eligible_drivers(self.trip.pk)

		# An offer that is still live somehow cannot win a second time
		stray = make_offer(self.trip, self.driver_two)
		late = accept_trip_offer(stray.pk, self.driver_two.id)

		self.assertEqual(late.status, TripOfferStatus.CANCELLED)
		self.assertEqual(TripOffer.objects.filter(trip=self.trip, status=TripOfferStatus.ACCEPTED).count(), 1)
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.status, TripStatus.REQUESTED)
		self.assertIsNone(self.trip.driver_id)

		# The office can still place it
		assign_driver(self.trip.pk, self.driver_two.id)
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.driver_id, self.driver_two.id)

	def test_accept_after_trip_taken_underneath_is_cancelled(self, mock_enqueue):
		# Another request committed the assignment first; the sibling offer is still OFFERED
		Trip.objects.filter(pk=self.trip.pk).update(status=TripStatus.ASSIGNED, driver=self.driver_two)

		offer = accept_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(offer.status, TripOfferStatus.CANCELLED)
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.driver_id, self.driver_two.id)

	def test_accept_after_cancellation_is_cancelled(self, mock_enqueue):
		Trip.objects.filter(pk=self.trip.pk).update(status=TripStatus.CANCELLED_BY_OFFICE)

		offer = accept_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(offer.status, TripOfferStatus.CANCELLED)

	def test_accept_expired_offer(self, mock_enqueue):
		TripOffer.objects.filter(pk=self.offer_one.pk).update(expires_at=timezone.now() - timedelta(seconds=1))

		offer = accept_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(offer.status, TripOfferStatus.EXPIRED)
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.status, TripStatus.REQUESTED)
		self.assertIsNone(self.trip.driver_id)

	def test_busy_driver_cannot_accept(self, mock_enqueue):
		make_trip(self.franchise, self.trip_type, status=TripStatus.IN_PROGRESS, driver=self.driver_one)

		with self.assertRaises(DriverIneligibleError):
			accept_trip_offer(self.offer_one.pk, self.driver_one.id)
		self.offer_one.refresh_from_db()
		self.assertEqual(self.offer_one.status, TripOfferStatus.OFFERED)

	def test_offer_ownership(self, mock_enqueue):
		with self.assertRaises(UnauthorizedError):
			accept_trip_offer(self.offer_one.pk, self.driver_two.id)
		with self.assertRaises(UnauthorizedError):
			reject_trip_offer(self.offer_one.pk, self.driver_two.id)
		with self.assertRaises(OfferNotFoundError):
			accept_trip_offer(999999, self.driver_one.id)

	def test_reject_marks_offer_and_logs(self, mock_enqueue):
		offer = reject_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(offer.status, TripOfferStatus.REJECTED)
		self.assertIsNotNone(offer.rejected_at)
		self.assertTrue(
			ActivityLog.objects.filter(driver=self.driver_one, action=ActivityAction.TRIP_REJECTED).exists()
		)

		# Terminal offers come back unchanged
		again = reject_trip_offer(self.offer_one.pk, self.driver_one.id)
		self.assertEqual(again.status, TripOfferStatus.REJECTED)
		self.assertEqual(
			ActivityLog.objects.filter(driver=self.driver_one, action=ActivityAction.TRIP_REJECTED).count(), 1
		)

	def test_rejecting_last_live_offer_redispatches(self, mock_enqueue):
		reject_trip_offer(self.offer_two.pk, self.driver_two.id)
		newcomer = make_driver(self.franchise, 'newcomer')

		with self.captureOnCommitCallbacks(execute=True):
			reject_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertTrue(
			TripOffer.objects.filter(trip=self.trip, driver=newcomer, status=TripOfferStatus.OFFERED).exists()
		)
		# Drivers who declined are never asked again
		self.assertEqual(TripOffer.objects.filter(trip=self.trip, driver=self.driver_one).count(), 1)

	@override_settings(TRIP_DISPATCH={'OFFER_TTL_SECONDS': 300, 'MAX_OFFER_ATTEMPTS': 25,
									  'AUTO_DISPATCH_ON_CREATE': True, 'REDISPATCH_ON_EXHAUSTION': False})
	def test_no_redispatch_when_disabled(self, mock_enqueue):
		reject_trip_offer(self.offer_two.pk, self.driver_two.id)
		make_driver(self.franchise, 'newcomer')

		with self.captureOnCommitCallbacks(execute=True):
			reject_trip_offer(self.offer_one.pk, self.driver_one.id)

		self.assertEqual(TripOffer.objects.filter(trip=self.trip).count(), 2)

	def test_pending_offers_hide_expired_and_taken(self, mock_enqueue):
		other_trip = make_trip(self.franchise, self.trip_type, customer_name='Other')
		stale_trip = make_trip(self.franchise, self.trip_type, customer_name='Stale')
		make_offer(other_trip, self.driver_one)
		make_offer(stale_trip, self.driver_one, seconds_left=-5)

		pending = list(list_pending_offers_for_driver(self.driver_one.id))
		self.assertEqual({o.trip_id for o in pending}, {self.trip.pk, other_trip.pk})

		accept_trip_offer(self.offer_two.pk, self.driver_two.id)
		pending = list(list_pending_offers_for_driver(self.driver_one.id))
		self.assertEqual([o.trip_id for o in pending], [other_trip.pk])


@patch('realtime.notifications._enqueue')
class OfferExpiryTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.trip = make_trip(self.franchise, self.trip_type)
		self.driver_one = make_driver(self.franchise, 'driver_one')
		self.stale = make_offer(self.trip, self.driver_one, seconds_left=-10)

	def test_sweep_expires_and_redispatches(self, mock_enqueue):
		newcomer = make_driver(self.franchise, 'newcomer')

		expired, redispatched = expire_stale_offers()

		self.assertEqual((expired, redispatched), (1, 1))
		self.stale.refresh_from_db()
		self.assertEqual(self.stale.status, TripOfferStatus.EXPIRED)
		self.assertIsNotNone(self.stale.responded_at)
		self.assertTrue(TripOffer.objects.filter(trip=self.trip, driver=newcomer).exists())

	def test_sweep_without_redispatch(self, mock_enqueue):
		make_driver(self.franchise, 'newcomer')

		self.assertEqual(expire_stale_offers(redispatch=False), (1, 0))
		self.assertEqual(TripOffer.objects.filter(trip=self.trip).count(), 1)

	def test_sweep_leaves_live_offers_alone(self, mock_enqueue):
		live = make_offer(make_trip(self.franchise, self.trip_type), self.driver_one)

		expire_stale_offers(redispatch=False)

		live.refresh_from_db()
		self.assertEqual(live.status, TripOfferStatus.OFFERED)

	def test_process_offer_timeouts_command(self, mock_enqueue):
		out = StringIO()
		call_command('process_offer_timeouts', '--no-redispatch', stdout=out)

		self.stale.refresh_from_db()
		self.assertEqual(self.stale.status, TripOfferStatus.EXPIRED)
		self.assertIn('Expired 1 offer(s)', out.getvalue())
