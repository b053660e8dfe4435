from decimal import Decimal

from django.test import TestCase

from services.pricing import quote
from services.trip_management.exceptions import PricingError
from trips.models import CarCategory, TripType

from .helpers import make_trip_type


class RateCardQuoteTests(TestCase):
	def setUp(self):
		self.local = make_trip_type()
		self.outstation = make_trip_type(
			name='Outstation',
			pricing_type=TripType.PRICING_DISTANCE,
			base_amount=Decimal('300.00'),
			base_duration_hours=None,
			base_distance_km=Decimal('40'),
			extra_per_km=Decimal('12.00'),
		)

	def test_time_pricing_within_base_hours_has_no_extra(self):
		result = quote(self.local, duration=Decimal('3.5'))
		self.assertEqual(result.base_amount, Decimal('500.00'))
		self.assertEqual(result.extra_amount, Decimal('0.00'))

	def test_time_pricing_charges_full_hours_and_a_half_hour(self):
		# 1.6h over the 4h base: one full hour + one half hour block
		result = quote(self.local, duration=Decimal('5.6'))
		self.assertEqual(result.extra_amount, Decimal('150.00'))
		self.assertEqual(result.total, Decimal('650.00'))

	def test_time_pricing_ignores_remainder_under_half_hour(self):
		result = quote(self.local, duration=Decimal('6.25'))
		self.assertEqual(result.extra_amount, Decimal('200.00'))

	def test_distance_pricing_charges_per_extra_km(self):
		result = quote(self.outstation, distance=Decimal('52.5'))
		self.assertEqual(result.base_amount, Decimal('300.00'))
		self.assertEqual(result.extra_amount, Decimal('150.00'))

	def test_premium_category_folds_multiplier_into_extra(self):
		result = quote(self.local, CarCategory.PREMIUM, duration=Decimal('4'))
		self.assertEqual(result.base_amount, Decimal('500.00'))
		self.assertEqual(result.extra_amount, Decimal('250.00'))

	def test_accepts_primary_key(self):
		result = quote(self.local.pk, duration=Decimal('1'))
		self.assertEqual(result.total, Decimal('500.00'))

	def test_inactive_trip_type_is_rejected(self):
		self.local.is_active = False
		self.local.save(update_fields=['is_active'])
		with self.assertRaises(PricingError):
			quote(self.local.pk)

	def test_negative_distance_is_rejected(self):
		with self.assertRaises(PricingError):
			quote(self.outstation, distance=Decimal('-1'))
