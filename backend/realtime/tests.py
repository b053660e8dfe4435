from decimal import Decimal
from unittest.mock import patch

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase

from realtime.notifications import (
	driver_group,
	franchise_group,
	notify_driver_event,
	notify_trip_event,
	publish,
	trip_group,
)
from realtime.routing import websocket_urlpatterns
from trips.models import TripStatus
from trips.tasks import deliver_trip_event
from trips.tests.helpers import (
	make_driver,
	make_franchise,
	make_office_user,
	make_trip,
	make_trip_type,
	profile_of,
)

application = URLRouter(websocket_urlpatterns)


def communicator_for(path, user):
	communicator = WebsocketCommunicator(application, path)
	communicator.scope['user'] = user
	return communicator


class NotificationDeliveryTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip = make_trip(self.franchise, make_trip_type())
		self.layer = get_channel_layer()

	def _listen(self, group):
		channel = async_to_sync(self.layer.new_channel)()
		async_to_sync(self.layer.group_add)(group, channel)
		return channel

	def test_nothing_is_sent_before_commit(self):
		with patch('realtime.notifications._enqueue') as mock_enqueue:
			with self.captureOnCommitCallbacks() as callbacks:
				notify_trip_event('trip_created', self.trip, "New trip created")

			mock_enqueue.assert_not_called()
			self.assertEqual(len(callbacks), 2)

	def test_trip_event_reaches_trip_and_franchise_groups(self):
		trip_channel = self._listen(trip_group(self.trip.id))
		office_channel = self._listen(franchise_group(self.franchise.id))

		with self.captureOnCommitCallbacks(execute=True):
			notify_trip_event('trip_cancelled', self.trip, "Trip cancelled", {'reason': 'test'})

		for channel in (trip_channel, office_channel):
			message = async_to_sync(self.layer.receive)(channel)
			self.assertEqual(message['type'], 'trip_cancelled')
			self.assertEqual(message['trip_id'], self.trip.id)
			self.assertEqual(message['status'], TripStatus.REQUESTED)
			self.assertEqual(message['trip_data']['customer_name'], 'Asha Sen')
			self.assertEqual(message['reason'], 'test')

	def test_driver_event_needs_a_driver(self):
		with self.captureOnCommitCallbacks() as callbacks:
			self.assertFalse(notify_driver_event('trip_assigned', self.trip, None))
		self.assertEqual(callbacks, [])

	def test_driver_event_payload(self):
		channel = self._listen(driver_group(41))

		with self.captureOnCommitCallbacks(execute=True):
			notify_driver_event('trip_offer', self.trip, 41, "New trip request", {'offer_id': 9})

		message = async_to_sync(self.layer.receive)(channel)
		self.assertEqual(message['driver_id'], 41)
		self.assertEqual(message['offer_id'], 9)
		self.assertEqual(message['message'], "New trip request")

	def test_delivery_task_reports_failures(self):
		with patch('realtime.notifications.get_channel_layer', return_value=None):
			self.assertFalse(publish('trip_1', {'type': 'trip_updated'}))
			self.assertFalse(deliver_trip_event('trip_1', {'type': 'trip_updated'}))


class DriverSocketTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.driver = make_driver(self.franchise, 'driver_one')
		self.office = make_office_user(self.franchise)

	async def test_anonymous_connection_is_refused(self):
		communicator = communicator_for('/ws/driver/', AnonymousUser())
		connected, _ = await communicator.connect()

		self.assertFalse(connected)

	async def test_non_driver_is_turned_away(self):
		communicator = communicator_for('/ws/driver/', self.office)
		connected, _ = await communicator.connect()
		self.assertTrue(connected)

		response = await communicator.receive_json_from()
		self.assertEqual(response['type'], 'error')
		self.assertEqual(response['message'], 'This endpoint is for drivers only')
		output = await communicator.receive_output()
		self.assertEqual(output['type'], 'websocket.close')

	async def test_driver_receives_targeted_events(self):
		communicator = communicator_for('/ws/driver/', self.driver)
		connected, _ = await communicator.connect()
		self.assertTrue(connected)

		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')
		self.assertEqual(greeting['user_id'], self.driver.id)

		layer = get_channel_layer()
		await layer.group_send(driver_group(self.driver.id), {
			'type': 'trip_offer',
			'trip_id': 5,
			'offer_id': 11,
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event['type'], 'new_trip_request')
		self.assertEqual(event['offer_id'], 11)

		await layer.group_send(driver_group(self.driver.id), {'type': 'offer_expired', 'offer_id': 11})
		event = await communicator.receive_json_from()
		self.assertEqual(event, {'type': 'offer_expired', 'offer_id': 11})

		await communicator.disconnect()

	async def test_message_validation(self):
		communicator = communicator_for('/ws/driver/', self.driver)
		await communicator.connect()
		await communicator.receive_json_from()

		await communicator.send_json_to({'latitude': 1})
		response = await communicator.receive_json_from()
		self.assertEqual(response['message'], 'Message type is required')

		await communicator.send_json_to({'type': 'trip_location_update', 'trip_id': 1})
		response = await communicator.receive_json_from()
		self.assertEqual(response['type'], 'error')

		await communicator.send_json_to({'type': 'dance'})
		response = await communicator.receive_json_from()
		self.assertEqual(response['message'], 'Unknown message type: dance')

		await communicator.disconnect()

	async def test_status_update(self):
		communicator = communicator_for('/ws/driver/', self.driver)
		await communicator.connect()
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'driver_status_update', 'status': 'offline'})
		response = await communicator.receive_json_from()
		self.assertEqual(response, {'type': 'status_updated', 'status': 'offline'})

		await communicator.send_json_to({'type': 'driver_status_update', 'status': 'on_trip'})
		response = await communicator.receive_json_from()
		self.assertEqual(response['error'], 'validation_error')

		await communicator.disconnect()

	async def test_trip_location_for_unassigned_trip(self):
		trip = await self._make_trip()
		communicator = communicator_for('/ws/driver/', self.driver)
		await communicator.connect()
		await communicator.receive_json_from()

		await communicator.send_json_to({
			'type': 'trip_location_update',
			'trip_id': trip.id,
			'latitude': 22.5,
			'longitude': 88.3,
		})
		response = await communicator.receive_json_from()
		self.assertEqual(response['error'], 'unauthorized')

		await communicator.disconnect()

	async def _make_trip(self, **kwargs):
		from channels.db import database_sync_to_async
		return await database_sync_to_async(make_trip)(self.franchise, self.trip_type, **kwargs)


class TripSocketTests(TestCase):
	def setUp(self):
		self.franchise = make_franchise()
		self.trip_type = make_trip_type()
		self.driver = make_driver(self.franchise, 'driver_one')
		self.office = make_office_user(self.franchise)
		self.outsider = make_office_user(make_franchise('DEL'), username='outsider')
		self.trip = make_trip(
			self.franchise,
			self.trip_type,
			status=TripStatus.ASSIGNED,
			driver=self.driver,
		)

	async def test_office_user_gets_franchise_events(self):
		communicator = communicator_for('/ws/trips/', self.office)
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		await communicator.receive_json_from()

		await get_channel_layer().group_send(franchise_group(self.franchise.id), {
			'type': 'trip_created',
			'trip_id': self.trip.id,
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event['type'], 'trip_created')

		await communicator.disconnect()

	async def test_tracking_is_authorised(self):
		communicator = communicator_for('/ws/trips/', self.outsider)
		await communicator.connect()
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'start_tracking', 'trip_id': self.trip.id})
		response = await communicator.receive_json_from()
		self.assertEqual(response['message'], 'You are not authorized to track this trip')
		await communicator.disconnect()

		communicator = communicator_for('/ws/trips/', self.driver)
		await communicator.connect()
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'start_tracking', 'trip_id': self.trip.id})
		response = await communicator.receive_json_from()
		self.assertEqual(response, {'type': 'tracking_started', 'trip_id': self.trip.id})

		await get_channel_layer().group_send(trip_group(self.trip.id), {
			'type': 'trip_location_update',
			'trip_id': self.trip.id,
			'driver_id': self.driver.id,
			'latitude': 22.5,
			'longitude': 88.3,
			'updated_at': '2024-01-01T00:00:00Z',
			'internal': 'dropped',
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event['latitude'], 22.5)
		self.assertNotIn('internal', event)

		await communicator.send_json_to({'type': 'stop_tracking', 'trip_id': self.trip.id})
		response = await communicator.receive_json_from()
		self.assertEqual(response['type'], 'tracking_stopped')

		await communicator.disconnect()


class DriverLocationServiceTests(TestCase):
	def test_driver_location_is_stored(self):
		from drivers.services import update_driver_location

		franchise = make_franchise()
		driver = make_driver(franchise, 'driver_one')

		self.assertEqual(update_driver_location(driver.id, Decimal('22.5'), Decimal('88.3')), 1)
		self.assertEqual(profile_of(driver).current_latitude, Decimal('22.500000'))
