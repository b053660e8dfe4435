from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from services.trip_management.verification import hash_token
from trips.models import Trip, TripOffer, TripOfferStatus, TripStatus, VerificationChallenge
from trips.views import (
	accept_offer,
	assign_trip,
	cancel,
	current_trip,
	driver_alerts,
	eligible_drivers,
	end_verify,
	pending_offers,
	reject_offer,
	send_offers,
	start_initiate,
	start_verify,
	trip_activity,
	trip_detail,
	trips,
)

from .helpers import (
	make_driver,
	make_franchise,
	make_offer,
	make_office_user,
	make_trip,
	make_trip_type,
)


@patch('realtime.notifications._enqueue')
class OfficeTripApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.office = make_office_user(self.franchise)
		self.driver = make_driver(self.franchise, 'driver_one')
		self.trip = make_trip(self.franchise, self.trip_type)

	def test_create_trip(self, mock_enqueue):
		request = self.factory.post('/api/trips/', {
			'trip_type': self.trip_type.id,
			'customer_name': 'Ravi Das',
			'customer_phone': '9831111111',
			'pickup_address': 'Howrah Station',
			'estimated_duration_hours': '6.25',
		}, format='json')
		force_authenticate(request, user=self.office)
		response = trips(request)

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['offers_sent'], 1)
		self.assertEqual(response.data['trip']['status'], TripStatus.REQUESTED)
		self.assertEqual(Decimal(response.data['trip']['extra_amount']), Decimal('200.00'))
		created = Trip.objects.get(pk=response.data['trip']['id'])
		self.assertEqual(created.franchise_id, self.franchise.id)

	def test_create_trip_invalid_payload(self, mock_enqueue):
		request = self.factory.post('/api/trips/', {'customer_name': 'Ravi Das'}, format='json')
		force_authenticate(request, user=self.office)
		response = trips(request)

		self.assertEqual(response.status_code, 400)
		self.assertIn('trip_type', response.data)

	def test_list_is_scoped_to_franchise(self, mock_enqueue):
		other = make_franchise('DEL')
		make_trip(other, self.trip_type, customer_name='Elsewhere')

		request = self.factory.get('/api/trips/', {'status': 'REQUESTED'})
		force_authenticate(request, user=self.office)
		response = trips(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual([t['id'] for t in response.data], [self.trip.id])

	def test_other_franchise_trip_is_forbidden(self, mock_enqueue):
		outsider = make_office_user(make_franchise('DEL'), username='outsider')
		request = self.factory.get(f'/api/trips/{self.trip.id}/')
		force_authenticate(request, user=outsider)
		response = trip_detail(request, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['error'], 'unauthorized')

	def test_missing_trip(self, mock_enqueue):
		request = self.factory.get('/api/trips/999/')
		force_authenticate(request, user=self.office)
		response = trip_detail(request, trip_id=999)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'trip_not_found')

	def test_drivers_cannot_use_office_api(self, mock_enqueue):
		request = self.factory.get(f'/api/trips/{self.trip.id}/')
		force_authenticate(request, user=self.driver)
		response = trip_detail(request, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 403)

	def test_eligible_drivers_and_send_offers(self, mock_enqueue):
		request = self.factory.get(f'/api/trips/{self.trip.id}/eligible-drivers/')
		force_authenticate(request, user=self.office)
		response = eligible_drivers(request, trip_id=self.trip.id)

		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['drivers'][0]['driver_id'], self.driver.id)

		request = self.factory.post(f'/api/trips/{self.trip.id}/offers/', {'driver_id': self.driver.id}, format='json')
		force_authenticate(request, user=self.office)
		response = send_offers(request, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['offers_sent'], 1)
		self.assertTrue(TripOffer.objects.filter(trip=self.trip, driver=self.driver).exists())

	def test_assign_then_cancel(self, mock_enqueue):
		request = self.factory.post(f'/api/trips/{self.trip.id}/assign/', {'driver_id': self.driver.id}, format='json')
		force_authenticate(request, user=self.office)
		response = assign_trip(request, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['trip']['status'], TripStatus.ASSIGNED)
		self.assertEqual(response.data['trip']['driver']['user_id'], self.driver.id)

		request = self.factory.post(f'/api/trips/{self.trip.id}/cancel/', {'reason': 'No show'}, format='json')
		force_authenticate(request, user=self.office)
		response = cancel(request, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['was_assigned'])
		self.assertEqual(response.data['trip']['status'], TripStatus.CANCELLED_BY_OFFICE)

		request = self.factory.get(f'/api/trips/{self.trip.id}/activity/')
		force_authenticate(request, user=self.office)
		response = trip_activity(request, trip_id=self.trip.id)

		actions = [entry['action'] for entry in response.data['activity']]
		self.assertEqual(actions, ['TRIP_ASSIGNED', 'TRIP_CANCELLED'])
		self.assertEqual(response.data['activity'][0]['actor'], 'office')

	def test_cancel_in_progress_conflicts(self, mock_enqueue):
		Trip.objects.filter(pk=self.trip.pk).update(status=TripStatus.IN_PROGRESS, driver=self.driver)

		request = self.factory.post(f'/api/trips/{self.trip.id}/cancel/', {}, format='json')
		force_authenticate(request, user=self.office)
		response = cancel(request, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'invalid_state')


@patch('realtime.notifications._enqueue')
class DriverApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.driver_one = make_driver(self.franchise, 'driver_one')
		self.driver_two = make_driver(self.franchise, 'driver_two')
		self.trip = make_trip(self.franchise, self.trip_type)
		self.offer_one = make_offer(self.trip, self.driver_one)
		self.offer_two = make_offer(self.trip, self.driver_two)

	def _post(self, view, user, data=None, **kwargs):
		request = self.factory.post('/api/trips/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def _get(self, view, user, params=None, **kwargs):
		request = self.factory.get('/api/trips/', params or {})
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def test_pending_offers(self, mock_enqueue):
		response = self._get(pending_offers, self.driver_one)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['offers'][0]['id'], self.offer_one.id)
		self.assertEqual(response.data['offers'][0]['trip']['id'], self.trip.id)

	def test_first_accept_wins(self, mock_enqueue):
		response = self._post(accept_offer, self.driver_one, offer_id=self.offer_one.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['offer_status'], TripOfferStatus.ACCEPTED)
		self.assertEqual(response.data['trip']['status'], TripStatus.ASSIGNED)

		response = self._post(accept_offer, self.driver_two, offer_id=self.offer_two.id)

		self.assertEqual(response.status_code, 409)
		self.assertFalse(response.data['success'])
		self.assertEqual(response.data['offer_status'], TripOfferStatus.CANCELLED)
		# The losing driver never sees the customer contact details
		self.assertNotIn('trip', response.data)
		self.assertNotIn('9830000000', str(response.data))

	def test_accepting_someone_elses_offer(self, mock_enqueue):
		response = self._post(accept_offer, self.driver_two, offer_id=self.offer_one.id)

		self.assertEqual(response.status_code, 403)

	def test_reject_offer(self, mock_enqueue):
		response = self._post(reject_offer, self.driver_one, offer_id=self.offer_one.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['offer_status'], TripOfferStatus.REJECTED)

	def test_alerts(self, mock_enqueue):
		response = self._get(driver_alerts, self.driver_one, {'limit': '10'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['alerts'][0]['type'], 'INCOMING_REQUEST')

		response = self._get(driver_alerts, self.driver_one, {'limit': 'lots'})
		self.assertEqual(response.status_code, 400)

	def test_start_and_end_flow(self, mock_enqueue):
		self._post(accept_offer, self.driver_one, offer_id=self.offer_one.id)

		response = self._get(current_trip, self.driver_one)
		self.assertTrue(response.data['has_active_trip'])

		response = self._post(start_initiate, self.driver_one, {
			'odometer_value': '1200.0',
			'odometer_image': 'uploads/odo.jpg',
			'car_front_image': 'uploads/front.jpg',
			'car_back_image': 'uploads/back.jpg',
			'driver_selfie': 'uploads/selfie.jpg',
		}, trip_id=self.trip.id)
		self.assertEqual(response.status_code, 200)
		token = response.data['token']
		otp = VerificationChallenge.objects.get(token_digest=hash_token(token)).otp

		response = self._post(start_verify, self.driver_one, {'token': token, 'otp': otp}, trip_id=self.trip.id)
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['trip']['status'], TripStatus.IN_PROGRESS)

		response = self._post(start_verify, self.driver_one, {'token': token, 'otp': otp}, trip_id=self.trip.id)
		self.assertEqual(response.status_code, 410)
		self.assertEqual(response.data['error'], 'challenge_expired')

		response = self._post(end_verify, self.driver_one, {'token': 'unknown', 'otp': '1234'}, trip_id=self.trip.id)
		self.assertEqual(response.status_code, 404)

	def test_start_requires_evidence(self, mock_enqueue):
		self._post(accept_offer, self.driver_one, offer_id=self.offer_one.id)

		response = self._post(start_initiate, self.driver_one, {'odometer_value': '1200.0'}, trip_id=self.trip.id)

		self.assertEqual(response.status_code, 400)
		self.assertIn('driver_selfie', response.data)

	def test_office_users_cannot_use_driver_api(self, mock_enqueue):
		office = make_office_user(self.franchise)
		response = self._get(pending_offers, office)

		self.assertEqual(response.status_code, 403)
