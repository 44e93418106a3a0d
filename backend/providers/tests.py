from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from providers.models import ProviderProfile
from providers import services
from providers.views import ProviderLocationView, ProviderStatusView


class ProviderDirectoryTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.provider = User.objects.create_user(
			username='provider',
			password='provider1234',
			role='provider',
			phone_number='9000000001'
		)
		self.profile = ProviderProfile.objects.create(
			user=self.provider,
			is_available=False,
			onboarding_status='approved',
			rating=4.2
		)
		self.customer = User.objects.create_user(
			username='customer',
			password='customer1234',
			role='customer'
		)

	def test_go_live(self):
		request = self.factory.put('/api/provider/status/', {'is_available': True}, format='json')
		force_authenticate(request, user=self.provider)
		response = ProviderStatusView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.profile.refresh_from_db()
		self.assertTrue(self.profile.is_available)
		self.assertTrue(services.is_provider_available(self.provider.id))

	def test_status_rejects_customers(self):
		request = self.factory.get('/api/provider/status/')
		force_authenticate(request, user=self.customer)
		response = ProviderStatusView.as_view()(request)

		self.assertEqual(response.status_code, 403)

	def test_location_update(self):
		request = self.factory.post(
			'/api/provider/location/',
			{'latitude': '28.613900', 'longitude': '77.209000'},
			format='json'
		)
		force_authenticate(request, user=self.provider)
		response = ProviderLocationView.as_view()(request)

		self.assertEqual(response.status_code, 200)
		self.profile.refresh_from_db()
		self.assertEqual(self.profile.current_latitude, Decimal('28.613900'))
		self.assertTrue(self.profile.has_location)

	def test_location_update_rejects_out_of_range(self):
		request = self.factory.post('/api/provider/location/', {'latitude': '95', 'longitude': '0'}, format='json')
		force_authenticate(request, user=self.provider)
		response = ProviderLocationView.as_view()(request)

		self.assertEqual(response.status_code, 400)

	def test_pause_and_release(self):
		services.update_provider_availability(self.profile, True)

		services.pause_provider(self.provider.id)
		self.assertFalse(services.is_provider_available(self.provider.id))

		services.release_provider(self.provider.id, job_completed=True)
		self.profile.refresh_from_db()
		self.assertTrue(self.profile.is_available)
		self.assertEqual(self.profile.completed_jobs, 1)
