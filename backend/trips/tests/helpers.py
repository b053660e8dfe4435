from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from accounts.models import User
from drivers.models import DriverProfile
from franchises.models import Franchise
from trips.models import Trip, TripOffer, TripStatus, TripType


def make_franchise(code='KOL', **kwargs):
	return Franchise.objects.create(name=kwargs.pop('name', f'Franchise {code}'), code=code, **kwargs)


def make_trip_type(name='Local 4h', **kwargs):
	defaults = dict(
		pricing_type=TripType.PRICING_TIME,
		base_amount=Decimal('500.00'),
		base_duration_hours=Decimal('4'),
		extra_per_hour=Decimal('100.00'),
		extra_per_half_hour=Decimal('50.00'),
		premium_multiplier=Decimal('1.50'),
	)
	defaults.update(kwargs)
	return TripType.objects.create(name=name, **defaults)


def make_office_user(franchise, username='office', role='office_staff'):
	return User.objects.create_user(
		username=username,
		password='office1234',
		role=role,
		franchise=franchise,
	)


def make_driver(franchise, username, **profile_fields):
	user = User.objects.create_user(
		username=username,
		password='driver1234',
		role='driver',
		franchise=franchise,
		phone_number='9000000000',
	)
	defaults = dict(
		vehicle_number=f'WB-{username.upper()}',
		car_types=['MANUAL', 'AUTOMATIC'],
		trip_status=DriverProfile.TRIP_STATUS_AVAILABLE,
		current_rating=Decimal('4.50'),
		completion_rate=Decimal('90'),
	)
	defaults.update(profile_fields)
	DriverProfile.objects.create(user=user, franchise=franchise, **defaults)
	return user


def make_trip(franchise, trip_type, **kwargs):
	defaults = dict(
		customer_name='Asha Sen',
		customer_phone='9830000000',
		customer_email='asha@example.com',
		pickup_address='Park Street',
		pickup_latitude=Decimal('22.552800'),
		pickup_longitude=Decimal('88.352600'),
		base_amount=trip_type.base_amount,
		status=TripStatus.REQUESTED,
	)
	defaults.update(kwargs)
	return Trip.objects.create(franchise=franchise, trip_type=trip_type, **defaults)


def make_offer(trip, driver, seconds_left=300, **kwargs):
	now = timezone.now()
	return TripOffer.objects.create(
		trip=trip,
		driver=driver,
		offered_at=kwargs.pop('offered_at', now),
		expires_at=now + timedelta(seconds=seconds_left),
		**kwargs,
	)


def profile_of(user):
	return DriverProfile.objects.get(user=user)
