from django.test import TestCase
from rest_framework.test import APIRequestFactory

from accounts.models import User
from accounts.views import RegisterView
from providers.models import ProviderProfile


class RegisterTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()

	def register(self, **data):
		request = self.factory.post('/api/auth/register/', data, format='json')
		return RegisterView.as_view()(request)

	def test_provider_registration_creates_offline_profile(self):
		response = self.register(username='jane', password='password123', role='provider')

		self.assertEqual(response.status_code, 201)
		self.assertIn('access', response.data['tokens'])
		profile = ProviderProfile.objects.get(user__username='jane')
		self.assertFalse(profile.is_available)
		self.assertEqual(profile.onboarding_status, 'pending')

	def test_customer_registration_has_no_profile(self):
		response = self.register(username='sam', password='password123', role='customer')

		self.assertEqual(response.status_code, 201)
		self.assertFalse(ProviderProfile.objects.filter(user__username='sam').exists())

	def test_admin_role_cannot_be_self_assigned(self):
		response = self.register(username='eve', password='password123', role='admin')

		self.assertEqual(response.status_code, 400)
		self.assertFalse(User.objects.filter(username='eve').exists())
