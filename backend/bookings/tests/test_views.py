from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from bookings import views
from bookings.models import Booking
from services.booking_management import create_booking_multi

from .helpers import make_admin, make_catalog, make_customer, make_provider, make_template


class BookingViewTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.template = make_template()
		self.customer = make_customer()
		self.p1 = make_provider('first', km=1, rating=4.9, template=self.template)
		self.p2 = make_provider('second', km=2, rating=4.7, template=self.template)

	def post(self, view, user, data=None, **kwargs):
		request = self.factory.post('/api/bookings/', data or {}, format='json')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def get(self, view, user, **kwargs):
		request = self.factory.get('/api/bookings/')
		force_authenticate(request, user=user)
		return view(request, **kwargs)

	def create_booking(self):
		return create_booking_multi(self.customer, self.template.id, 0, 0, 'rating').booking

	def test_create_multi_returns_created_booking(self):
		response = self.post(views.create_booking_multi_view, self.customer, {
			'service_template_id': self.template.id,
			'latitude': '0.000000',
			'longitude': '0.000000',
			'sort_preference': 'rating',
		})

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['booking']['status'], 'requested')
		self.assertEqual(response.data['booking']['pending_providers'], [self.p2.id])
		self.assertEqual(len(response.data['candidates']), 2)

	def test_create_multi_rejects_providers(self):
		response = self.post(views.create_booking_multi_view, self.p1, {
			'service_template_id': self.template.id,
			'latitude': '0',
			'longitude': '0',
		})

		self.assertEqual(response.status_code, 403)

	def test_create_multi_validates_sort_preference(self):
		response = self.post(views.create_booking_multi_view, self.customer, {
			'service_template_id': self.template.id,
			'latitude': '0',
			'longitude': '0',
			'sort_preference': 'fastest',
		})

		self.assertEqual(response.status_code, 400)
		self.assertIn('sort_preference', response.data)

	def test_create_multi_unknown_template(self):
		response = self.post(views.create_booking_multi_view, self.customer, {
			'service_template_id': 9999,
			'latitude': '0',
			'longitude': '0',
		})

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data, {
			'success': False,
			'error': 'not_found',
			'message': 'Service template not found',
		})

	def test_questionnaire_without_providers_is_refused(self):
		catalog = make_catalog(name='Roof leak', category='Roofing')

		response = self.post(views.create_booking_with_questionnaire_view, self.customer, {
			'service_catalog_id': catalog.id,
			'latitude': '0',
			'longitude': '0',
			'answers': {'floors': '2'},
		})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'no_providers_available')
		self.assertFalse(Booking.objects.exists())

	def test_accept_offer_by_holder(self):
		booking = self.create_booking()

		response = self.post(views.accept_offer_view, self.p1, booking_id=booking.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['booking']['status'], 'in_progress')
		self.assertEqual(response.data['booking']['provider']['id'], self.p1.id)

	def test_accept_offer_by_non_holder_is_forbidden(self):
		booking = self.create_booking()

		response = self.post(views.accept_offer_view, self.p2, booking_id=booking.id)

		self.assertEqual(response.status_code, 403)
		self.assertEqual(response.data['message'], 'No active offer for you')

	def test_accept_after_acceptance_is_conflict(self):
		booking = self.create_booking()
		self.post(views.accept_offer_view, self.p1, booking_id=booking.id)

		response = self.post(views.decline_offer_view, self.p1, booking_id=booking.id)

		self.assertEqual(response.status_code, 409)
		self.assertFalse(response.data['success'])

	def test_decline_offer_moves_to_next(self):
		booking = self.create_booking()

		response = self.post(views.decline_offer_view, self.p1, booking_id=booking.id)

		self.assertEqual(response.status_code, 200)
		offers = response.data['booking']['offers']
		self.assertEqual([o['status'] for o in offers], ['declined', 'pending'])
		self.assertEqual(offers[1]['provider']['id'], self.p2.id)

	def test_force_advance_admin_only(self):
		booking = self.create_booking()

		denied = self.post(views.force_advance_offer_view, self.customer, booking_id=booking.id)
		allowed = self.post(views.force_advance_offer_view, make_admin(), booking_id=booking.id)

		self.assertEqual(denied.status_code, 403)
		self.assertEqual(allowed.status_code, 200)
		self.assertEqual(Booking.objects.get(pk=booking.pk).current_offer().provider, self.p2)

	def test_my_offers_inbox(self):
		booking = self.create_booking()

		response = self.get(views.my_pending_offers_view, self.p1)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['offers'][0]['booking_id'], booking.id)

	def test_offers_debug_for_owner_and_not_for_stranger(self):
		booking = self.create_booking()

		owner = self.get(views.offers_debug_view, self.customer, booking_id=booking.id)
		stranger = self.get(views.offers_debug_view, make_customer('stranger'), booking_id=booking.id)

		self.assertEqual(owner.status_code, 200)
		self.assertEqual(owner.data['current_pending_provider'], self.p1.id)
		self.assertEqual(stranger.status_code, 403)

	def test_offers_debug_unknown_booking(self):
		response = self.get(views.offers_debug_view, self.customer, booking_id=9999)

		self.assertEqual(response.status_code, 404)

	def test_candidates_view(self):
		booking = self.create_booking()

		response = self.get(views.booking_candidates_view, self.customer, booking_id=booking.id)

		self.assertEqual(response.status_code, 200)
		self.assertEqual([c['provider_id'] for c in response.data['candidates']], [self.p1.id, self.p2.id])

	def test_broadcast_accept_reject_and_available(self):
		booking = create_booking_multi(
			self.customer, self.template.id, 0, 0, 'rating', dispatch_mode='response_set'
		).booking

		available = self.get(views.available_bookings_view, self.p2)
		self.assertEqual(available.data['count'], 1)

		rejected = self.post(views.reject_booking_view, self.p2, {'reason': 'Busy'}, booking_id=booking.id)
		again = self.post(views.reject_booking_view, self.p2, booking_id=booking.id)
		accepted = self.post(views.accept_booking_view, self.p1, booking_id=booking.id)

		self.assertEqual(rejected.data['result'], 'rejected')
		self.assertEqual(again.data['result'], 'already-rejected')
		self.assertEqual(accepted.status_code, 200)
		self.assertEqual(accepted.data['booking']['overall_status'], 'in-progress')

	def test_complete_and_cancel(self):
		booking = self.create_booking()
		self.post(views.accept_booking_view, self.p1, booking_id=booking.id)

		completed = self.post(views.complete_booking_view, self.p1, booking_id=booking.id)
		cancelled = self.post(views.cancel_booking_view, self.customer, {'reason': 'late'}, booking_id=booking.id)

		self.assertEqual(completed.status_code, 200)
		self.assertEqual(completed.data['booking']['status'], 'completed')
		self.assertEqual(cancelled.status_code, 409)
