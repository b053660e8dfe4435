from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from drivers.models import DriverProfile
from drivers.views import DriverAttendanceView, DriverStatusView, DriverTripHistoryView
from trips.models import TripStatus
from trips.tests.helpers import make_driver, make_franchise, make_office_user, make_trip, make_trip_type, profile_of


class DriverAvailabilityTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.franchise = make_franchise()
		self.driver = make_driver(self.franchise, 'driver_one')

	def _put_status(self, user, value):
		request = self.factory.put('/api/driver/status/', {'status': value}, format='json')
		force_authenticate(request, user=user)
		return DriverStatusView.as_view()(request)

	def test_go_offline_and_back(self):
		response = self._put_status(self.driver, 'offline')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(profile_of(self.driver).trip_status, DriverProfile.TRIP_STATUS_OFFLINE)

		self._put_status(self.driver, 'available')
		self.assertEqual(profile_of(self.driver).trip_status, DriverProfile.TRIP_STATUS_AVAILABLE)

	def test_cannot_leave_a_trip_through_status(self):
		DriverProfile.objects.filter(user=self.driver).update(trip_status=DriverProfile.TRIP_STATUS_ON_TRIP)

		response = self._put_status(self.driver, 'offline')

		self.assertEqual(response.status_code, 409)
		self.assertEqual(profile_of(self.driver).trip_status, DriverProfile.TRIP_STATUS_ON_TRIP)

	def test_on_trip_is_not_settable(self):
		response = self._put_status(self.driver, 'on_trip')

		self.assertEqual(response.status_code, 400)

	def test_only_drivers(self):
		office = make_office_user(self.franchise)
		response = self._put_status(office, 'offline')

		self.assertEqual(response.status_code, 403)

	def test_attendance(self):
		request = self.factory.post('/api/driver/attendance/', {'checked_in': True}, format='json')
		force_authenticate(request, user=self.driver)
		response = DriverAttendanceView.as_view()(request)

		self.assertEqual(response.data, {'is_checked_in': True})
		self.assertTrue(profile_of(self.driver).is_checked_in)

	def test_history_lists_completed_trips(self):
		trip_type = make_trip_type()
		done = make_trip(self.franchise, trip_type, status=TripStatus.COMPLETED, driver=self.driver)
		make_trip(self.franchise, trip_type, status=TripStatus.ASSIGNED, driver=self.driver)

		request = self.factory.get('/api/driver/history/')
		force_authenticate(request, user=self.driver)
		response = DriverTripHistoryView.as_view()(request)

		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['trips'][0]['id'], done.id)
