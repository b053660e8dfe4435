from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from services.matching import (
	check_driver_eligible,
	find_eligible_drivers,
	request_trip_to_all_eligible_drivers,
	request_trip_to_eligible_drivers_now,
)
from services.matching.eligibility import performance_score
from services.trip_management.exceptions import (
	DriverIneligibleError,
	InvalidStateError,
	TripNotFoundError,
)
from trips.models import CarCategory, CarGearType, TripOffer, TripStatus

from .helpers import make_driver, make_franchise, make_trip, make_trip_type, profile_of


class EligibilityTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.other_franchise = make_franchise(code='HWH')
		self.trip_type = make_trip_type()
		self.trip = make_trip(self.franchise, self.trip_type)

		self.near = make_driver(
			self.franchise, 'near',
			current_latitude=Decimal('22.553000'), current_longitude=Decimal('88.353000'),
		)
		self.far = make_driver(
			self.franchise, 'far',
			current_latitude=Decimal('22.600000'), current_longitude=Decimal('88.400000'),
		)
		self.unlocated = make_driver(self.franchise, 'unlocated')

	def ids(self, candidates):
		return [c.driver_id for c in candidates]

	def test_orders_by_distance_with_unknown_location_last(self):
		candidates = find_eligible_drivers(self.trip.pk)

		self.assertEqual(self.ids(candidates), [self.near.id, self.far.id, self.unlocated.id])
		self.assertLess(candidates[0].distance_km, candidates[1].distance_km)
		self.assertIsNone(candidates[2].distance_km)

	def test_unknown_distance_ties_broken_by_performance(self):
		strong = make_driver(self.franchise, 'strong', current_rating=Decimal('5.00'), completion_rate=Decimal('100'))

		candidates = find_eligible_drivers(self.trip.pk)

		self.assertEqual(self.ids(candidates)[-2:], [strong.id, self.unlocated.id])

	def test_excludes_drivers_failing_hard_filters(self):
		make_driver(self.franchise, 'banned', banned_globally=True)
		make_driver(self.franchise, 'offline', trip_status='offline')
		make_driver(self.franchise, 'blocked', status='BLOCKED')
		make_driver(self.franchise, 'expired', license_expiry=timezone.localdate() - timedelta(days=1))
		make_driver(self.franchise, 'capped', remaining_daily_limit=Decimal('100.00'))
		make_driver(self.other_franchise, 'elsewhere')

		candidates = find_eligible_drivers(self.trip.pk)

		self.assertEqual(set(self.ids(candidates)), {self.near.id, self.far.id, self.unlocated.id})

	def test_driver_with_active_trip_is_excluded(self):
		make_trip(self.franchise, self.trip_type, status=TripStatus.ASSIGNED, driver=self.near)

		candidates = find_eligible_drivers(self.trip.pk)

		self.assertNotIn(self.near.id, self.ids(candidates))

	def test_vehicle_category_and_gear_must_match(self):
		premium_trip = make_trip(
			self.franchise, self.trip_type,
			car_category=CarCategory.PREMIUM,
			car_gear_type=CarGearType.AUTOMATIC,
		)
		premium_driver = make_driver(self.franchise, 'premium', car_types=['PREMIUM_CARS', 'AUTOMATIC'])
		manual_premium = make_driver(self.franchise, 'manualpremium', car_types=['PREMIUM_CARS', 'MANUAL'])

		candidates = find_eligible_drivers(premium_trip.pk)

		self.assertEqual(self.ids(candidates), [premium_driver.id])
		self.assertNotIn(manual_premium.id, self.ids(candidates))

	def test_attendance_required_when_franchise_tracks_it(self):
		self.franchise.attendance_tracking_enabled = True
		self.franchise.save(update_fields=['attendance_tracking_enabled'])
		near_profile = profile_of(self.near)
		near_profile.is_checked_in = True
		near_profile.save(update_fields=['is_checked_in'])

		candidates = find_eligible_drivers(self.trip.pk)

		self.assertEqual(self.ids(candidates), [self.near.id])

	def test_empty_result_is_not_an_error(self):
		trip = make_trip(self.other_franchise, self.trip_type)
		self.assertEqual(find_eligible_drivers(trip.pk), [])

	def test_assigned_trip_cannot_be_matched(self):
		self.trip.status = TripStatus.ASSIGNED
		self.trip.driver = self.far
		self.trip.save()

		with self.assertRaises(InvalidStateError):
			find_eligible_drivers(self.trip.pk)

	def test_unknown_trip(self):
		with self.assertRaises(TripNotFoundError):
			find_eligible_drivers(999999)

	def test_check_driver_eligible_reports_reason(self):
		banned = make_driver(self.franchise, 'banned', banned_globally=True)

		with self.assertRaises(DriverIneligibleError) as ctx:
			check_driver_eligible(self.trip, banned.id)
		self.assertIn('banned', ctx.exception.message)

		self.assertEqual(check_driver_eligible(self.trip, self.near.id).user_id, self.near.id)

	def test_disabled_account_is_never_eligible(self):
		self.near.is_active = False
		self.near.save(update_fields=['is_active'])

		with self.assertRaises(DriverIneligibleError) as ctx:
			check_driver_eligible(self.trip, self.near.id)
		self.assertIn('disabled', ctx.exception.message)

		self.assertEqual(request_trip_to_eligible_drivers_now(self.trip.pk, [self.near.id]), 0)
		request_trip_to_all_eligible_drivers(self.trip.pk)
		offered = set(TripOffer.objects.filter(trip=self.trip).values_list('driver_id', flat=True))
		self.assertEqual(offered, {self.far.id, self.unlocated.id})

	def test_performance_score_is_clamped(self):
		profile = profile_of(self.near)
		profile.current_rating = Decimal('1.00')
		profile.completion_rate = Decimal('10')
		profile.complaint_count = 10
		self.assertEqual(performance_score(profile), 0.0)

		profile.current_rating = Decimal('5.00')
		profile.completion_rate = Decimal('100')
		profile.complaint_count = 0
		self.assertEqual(performance_score(profile), 100.0)
