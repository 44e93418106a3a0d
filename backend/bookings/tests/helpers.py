"""Shared fixtures for booking tests. Customers sit at (0, 0); providers due north."""

from decimal import Decimal

from accounts.models import User
from catalog.models import Service, ServiceCatalog, ServiceTemplate
from providers.models import ProviderProfile

# Great-circle km per degree of latitude for a 6371 km Earth
KM_PER_DEGREE = 111.195


def latitude_for_km(km):
	return Decimal(str(round(km / KM_PER_DEGREE, 6)))


def make_customer(username='customer'):
	return User.objects.create_user(
		username=username,
		password='customer1234',
		role='customer',
		phone_number='9000000000'
	)


def make_admin(username='ops'):
	return User.objects.create_user(username=username, password='admin1234', role='admin')


def make_template(name='Tap repair', category='Plumbing'):
	return ServiceTemplate.objects.create(name=name, category=category)


def make_catalog(name='Tap repair', category='Plumbing'):
	return ServiceCatalog.objects.create(name=name, category=category, base_price=Decimal('300'))


def make_provider(username, km=1.0, rating=4.5, price=100, template=None, service_name=None,
				  category='Plumbing', available=True, onboarding_status='approved'):
	user = User.objects.create_user(
		username=username,
		password='provider1234',
		role='provider',
		first_name=username.title(),
	)
	ProviderProfile.objects.create(
		user=user,
		is_available=available,
		onboarding_status=onboarding_status,
		rating=rating,
		current_latitude=latitude_for_km(km),
		current_longitude=Decimal('0'),
	)
	if template is not None or service_name is not None:
		Service.objects.create(
			provider=user,
			template=template,
			name=service_name or template.name,
			category=template.category if template is not None else category,
			price=Decimal(str(price)),
		)
	return user
