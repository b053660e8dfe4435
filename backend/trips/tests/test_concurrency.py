import threading
from unittest.mock import patch

from django.db import connections
from django.test import TransactionTestCase, skipUnlessDBFeature

from activity.models import ActivityAction, ActivityLog
from drivers.models import DriverProfile
from services.matching import accept_trip_offer
from services.trip_management import cancel_trip
from trips.models import TripOffer, TripOfferStatus, TripStatus

from .helpers import make_driver, make_franchise, make_offer, make_trip, make_trip_type


def run_together(*calls):
	"""
	Start every call on its own thread, released at the same moment.

	Returns:
		(results, errors) keyed by position
	"""
	barrier = threading.Barrier(len(calls))
	results, errors = {}, {}

	def worker(index, fn):
		try:
			barrier.wait(timeout=10)
			results[index] = fn()
		except Exception as e:
			errors[index] = e
		finally:
			connections.close_all()

	threads = [threading.Thread(target=worker, args=(i, fn)) for i, fn in enumerate(calls)]
	for thread in threads:
		thread.start()
	for thread in threads:
		thread.join(timeout=60)
	return results, errors


# Runs against PostgreSQL (DB_ENGINE); SQLite has no row locks.
@skipUnlessDBFeature('has_select_for_update')
@patch('realtime.notifications._enqueue')
class ConcurrentAcceptTests(TransactionTestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.trip = make_trip(self.franchise, self.trip_type)
		self.drivers = [make_driver(self.franchise, f'racer_{i}') for i in range(5)]
		self.offers = [make_offer(self.trip, driver) for driver in self.drivers]

	def accept_call(self, offer):
		return lambda: accept_trip_offer(offer.pk, offer.driver_id).status

	def test_exactly_one_sibling_accept_wins(self, mock_enqueue):
		results, errors = run_together(*[self.accept_call(offer) for offer in self.offers])

		self.assertEqual(errors, {})
		self.assertEqual(len(results), len(self.offers))
		winners = [i for i, status in results.items() if status == TripOfferStatus.ACCEPTED]
		self.assertEqual(len(winners), 1)
		losers = [status for status in results.values() if status != TripOfferStatus.ACCEPTED]
		self.assertEqual(losers, [TripOfferStatus.CANCELLED] * (len(self.offers) - 1))

		self.trip.refresh_from_db()
		self.assertEqual(self.trip.status, TripStatus.ASSIGNED)
		self.assertEqual(self.trip.driver_id, self.drivers[winners[0]].id)
		self.assertEqual(TripOffer.objects.filter(trip=self.trip, status=TripOfferStatus.ACCEPTED).count(), 1)
		self.assertEqual(
			ActivityLog.objects.filter(trip=self.trip, action=ActivityAction.TRIP_ACCEPTED).count(), 1
		)
		self.assertEqual(
			DriverProfile.objects.filter(trip_status=DriverProfile.TRIP_STATUS_ON_TRIP).count(), 1
		)

	def test_accept_racing_cancellation(self, mock_enqueue):
		offer = self.offers[0]
		results, errors = run_together(
			self.accept_call(offer),
			lambda: cancel_trip(self.trip.pk, reason='Customer called off').trip.status,
		)

		self.assertEqual(errors, {})
		self.assertEqual(results[1], TripStatus.CANCELLED_BY_OFFICE)
		self.assertIn(results[0], (TripOfferStatus.ACCEPTED, TripOfferStatus.CANCELLED))

		# Whichever ran first, the trip ends cancelled with nobody left holding it
		self.trip.refresh_from_db()
		self.assertEqual(self.trip.status, TripStatus.CANCELLED_BY_OFFICE)
		self.assertIsNone(self.trip.driver_id)
		self.assertFalse(TripOffer.objects.filter(trip=self.trip, status=TripOfferStatus.OFFERED).exists())
		self.assertFalse(
			DriverProfile.objects.filter(trip_status=DriverProfile.TRIP_STATUS_ON_TRIP).exists()
		)
