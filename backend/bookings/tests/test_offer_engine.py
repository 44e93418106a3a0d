from datetime import timedelta
from unittest.mock import patch

from django.db import IntegrityError, OperationalError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone

from bookings.models import Booking, BookingOffer
from bookings.tasks import expire_offer_task
from providers.models import ProviderProfile
from services.booking_management import create_booking_multi
from services.dispatch import (
	ConflictError,
	CorruptedOfferError,
	ForbiddenError,
	OfferExpiredError,
	StaleBookingError,
	accept_offer,
	advance_offer,
	decline_offer,
	expire_if_needed,
	force_advance_offer,
	get_offers_debug,
	list_my_pending_offers,
	process_offer_timeouts,
)
from services.dispatch.offer_engine import NO_LIVE_PROVIDERS_MESSAGE, SEARCHING_MESSAGE
from services.dispatch.persistence import save_booking

from .helpers import make_admin, make_customer, make_provider, make_template


class OfferQueueTestCase(TestCase):
	def setUp(self):
		self.template = make_template()
		self.customer = make_customer()
		self.p1 = make_provider('first', km=1, rating=4.9, template=self.template)
		self.p2 = make_provider('second', km=2, rating=4.7, template=self.template)
		self.p3 = make_provider('third', km=3, rating=4.5, template=self.template)

	def create_booking(self, sort_preference='rating'):
		result = create_booking_multi(self.customer, self.template.id, 0, 0, sort_preference)
		return result.booking

	def pending_offers(self, booking):
		return BookingOffer.objects.filter(booking=booking, status='pending')

	def expire_window(self, booking, seconds=1):
		Booking.objects.filter(pk=booking.pk).update(
			provider_response_timeout=timezone.now() - timedelta(seconds=seconds)
		)

	def set_available(self, provider, is_available):
		ProviderProfile.objects.filter(user=provider).update(is_available=is_available)


class OfferChainTests(OfferQueueTestCase):
	def test_create_offers_head_and_queues_tail(self):
		before = timezone.now()
		booking = self.create_booking()
		booking.refresh_from_db()

		offer = booking.current_offer()
		self.assertEqual(offer.provider, self.p1)
		self.assertEqual(offer.sequence, 0)
		self.assertEqual(booking.pending_providers, [self.p2.id, self.p3.id])
		self.assertEqual(booking.auto_assign_message, SEARCHING_MESSAGE)
		self.assertGreaterEqual(booking.provider_response_timeout, before + timedelta(seconds=120))
		self.assertLessEqual(booking.provider_response_timeout, timezone.now() + timedelta(seconds=120))
		self.assertGreaterEqual(booking.pending_expires_at, before + timedelta(seconds=300))

	def test_decline_cascades_to_next_provider(self):
		booking = self.create_booking()
		old_timeout = Booking.objects.get(pk=booking.pk).provider_response_timeout

		decline_offer(booking.id, self.p1)

		booking.refresh_from_db()
		first = BookingOffer.objects.get(booking=booking, provider=self.p1)
		self.assertEqual(first.status, 'declined')
		self.assertIsNotNone(first.responded_at)
		self.assertEqual(booking.current_offer().provider, self.p2)
		self.assertEqual(booking.pending_providers, [self.p3.id])
		self.assertGreaterEqual(booking.provider_response_timeout, old_timeout)

	def test_advance_skips_unavailable_provider(self):
		booking = self.create_booking()
		self.set_available(self.p2, False)

		decline_offer(booking.id, self.p1)

		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, self.p3)
		self.assertEqual(booking.pending_providers, [])
		self.assertFalse(BookingOffer.objects.filter(booking=booking, provider=self.p2).exists())

	def test_queue_exhausted_when_nobody_is_available(self):
		booking = self.create_booking()
		self.set_available(self.p2, False)
		self.set_available(self.p3, False)

		decline_offer(booking.id, self.p1)

		booking.refresh_from_db()
		self.assertIsNone(booking.current_offer())
		self.assertEqual(booking.pending_providers, [])
		self.assertIsNone(booking.provider_response_timeout)
		self.assertEqual(booking.auto_assign_message, NO_LIVE_PROVIDERS_MESSAGE)
		self.assertEqual(booking.status, 'requested')

	def test_declined_provider_is_never_requeued(self):
		booking = self.create_booking()
		decline_offer(booking.id, self.p1)
		decline_offer(booking.id, self.p2)
		decline_offer(booking.id, self.p3)

		booking.refresh_from_db()
		self.assertIsNone(booking.current_offer())
		self.assertEqual(
			list(BookingOffer.objects.filter(booking=booking).values_list('provider_id', flat=True)),
			[self.p1.id, self.p2.id, self.p3.id]
		)

	def test_second_decline_reports_no_active_offer(self):
		booking = self.create_booking()
		decline_offer(booking.id, self.p1)

		with self.assertRaises(ForbiddenError) as ctx:
			decline_offer(booking.id, self.p1)
		self.assertEqual(ctx.exception.message, 'No active offer for you')

	def test_version_bumps_on_every_transition(self):
		booking = self.create_booking()
		start = Booking.objects.get(pk=booking.pk).version

		decline_offer(booking.id, self.p1)

		self.assertGreater(Booking.objects.get(pk=booking.pk).version, start)


class AcceptOfferTests(OfferQueueTestCase):
	def test_accept_assigns_provider_and_clears_queue(self):
		booking = self.create_booking()

		accept_offer(booking.id, self.p1)

		booking.refresh_from_db()
		offer = BookingOffer.objects.get(booking=booking, provider=self.p1)
		self.assertEqual(offer.status, 'accepted')
		self.assertIsNotNone(offer.responded_at)
		self.assertEqual(booking.status, 'in_progress')
		self.assertEqual(booking.overall_status, 'in-progress')
		self.assertEqual(booking.provider, self.p1)
		self.assertEqual(booking.pending_providers, [])
		self.assertIsNone(booking.provider_response_timeout)
		self.assertEqual(booking.auto_assign_message, '')
		self.assertIsNotNone(booking.service)
		self.assertEqual(booking.service.provider, self.p1)

	def test_accept_pauses_the_provider(self):
		booking = self.create_booking()

		accept_offer(booking.id, self.p1)

		profile = ProviderProfile.objects.get(user=self.p1)
		self.assertFalse(profile.is_available)
		self.assertFalse(profile.is_live_tracking)

	def test_accept_withdraws_the_providers_other_offers(self):
		first = self.create_booking()
		second = self.create_booking()
		self.assertEqual(second.current_offer().provider, self.p1)

		accept_offer(first.id, self.p1)

		second.refresh_from_db()
		self.assertEqual(BookingOffer.objects.get(booking=second, provider=self.p1).status, 'expired')
		self.assertEqual(second.current_offer().provider, self.p2)
		with self.assertRaises(ForbiddenError):
			accept_offer(second.id, self.p1)
		self.assertEqual(list(Booking.objects.filter(provider=self.p1).values_list('id', flat=True)), [first.id])

	def test_accept_by_non_holder_is_forbidden(self):
		booking = self.create_booking()

		with self.assertRaises(ForbiddenError):
			accept_offer(booking.id, self.p2)

		self.assertEqual(self.pending_offers(booking).get().provider, self.p1)

	def test_accept_locks_out_others(self):
		booking = self.create_booking()
		decline_offer(booking.id, self.p1)
		accept_offer(booking.id, self.p2)

		with self.assertRaises(ForbiddenError):
			accept_offer(booking.id, self.p3)
		with self.assertRaises(ConflictError):
			decline_offer(booking.id, self.p2)
		with self.assertRaises(ConflictError):
			accept_offer(booking.id, self.p1)

		booking.refresh_from_db()
		self.assertEqual(booking.provider, self.p2)
		self.assertEqual(self.pending_offers(booking).count(), 0)

	def test_expired_offer_cannot_be_accepted(self):
		booking = self.create_booking()
		self.expire_window(booking)

		with self.assertRaises(OfferExpiredError):
			accept_offer(booking.id, self.p1)

		booking.refresh_from_db()
		self.assertEqual(BookingOffer.objects.get(booking=booking, provider=self.p1).status, 'expired')
		self.assertEqual(booking.current_offer().provider, self.p2)
		self.assertIsNone(booking.provider)

	def test_corrupted_offer_is_rejected(self):
		booking = self.create_booking()
		BookingOffer.objects.filter(booking=booking, status='pending').update(provider=None)

		with self.assertRaises(CorruptedOfferError):
			accept_offer(booking.id, self.p1)

	def test_no_new_offer_after_acceptance(self):
		booking = self.create_booking()
		accept_offer(booking.id, self.p1)
		booking.refresh_from_db()

		self.assertIsNone(advance_offer(booking))
		with self.assertRaises(ConflictError):
			force_advance_offer(booking.id, make_admin())

		booking.refresh_from_db()
		self.assertEqual(self.pending_offers(booking).count(), 0)
		self.assertEqual(booking.pending_providers, [])

	def test_open_broadcast_booking_rejects_offer_calls(self):
		result = create_booking_multi(self.customer, self.template.id, 0, 0, 'rating', dispatch_mode='response_set')

		with self.assertRaises(ConflictError):
			accept_offer(result.booking.id, self.p1)


class ExpiryTests(OfferQueueTestCase):
	def test_expire_if_needed_is_noop_before_timeout(self):
		booking = self.create_booking()
		booking.refresh_from_db()

		self.assertIsNone(expire_if_needed(booking))
		self.assertEqual(self.pending_offers(booking).get().provider, self.p1)

	def test_expire_if_needed_advances_after_timeout(self):
		booking = self.create_booking()
		self.expire_window(booking)
		booking.refresh_from_db()

		with transaction.atomic():
			expired = expire_if_needed(booking)

		self.assertEqual(expired.provider, self.p1)
		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, self.p2)
		self.assertGreater(booking.provider_response_timeout, timezone.now())

	def test_force_advance_requires_admin(self):
		booking = self.create_booking()

		with self.assertRaises(ForbiddenError):
			force_advance_offer(booking.id, self.customer)

		force_advance_offer(booking.id, make_admin())

		booking.refresh_from_db()
		self.assertEqual(BookingOffer.objects.get(booking=booking, provider=self.p1).status, 'expired')
		self.assertEqual(booking.current_offer().provider, self.p2)

	def test_expire_offer_task_expires_overdue_offer(self):
		booking = self.create_booking()
		offer = self.pending_offers(booking).get()
		self.expire_window(booking)

		self.assertTrue(expire_offer_task(booking.id, offer.id))

		offer.refresh_from_db()
		self.assertEqual(offer.status, 'expired')

	def test_expire_offer_task_ignores_answered_offer(self):
		booking = self.create_booking()
		offer = self.pending_offers(booking).get()
		decline_offer(booking.id, self.p1)

		self.assertFalse(expire_offer_task(booking.id, offer.id))
		self.assertEqual(self.pending_offers(booking).get().provider, self.p2)


class InvariantTests(OfferQueueTestCase):
	def test_at_most_one_pending_offer_throughout(self):
		booking = self.create_booking()
		self.assertEqual(self.pending_offers(booking).count(), 1)

		decline_offer(booking.id, self.p1)
		self.assertEqual(self.pending_offers(booking).count(), 1)

		self.expire_window(booking)
		process_offer_timeouts()
		self.assertEqual(self.pending_offers(booking).count(), 1)

		accept_offer(booking.id, self.p3)
		self.assertEqual(self.pending_offers(booking).count(), 0)

	def test_database_refuses_second_pending_offer(self):
		booking = self.create_booking()

		with self.assertRaises(IntegrityError):
			with transaction.atomic():
				BookingOffer.objects.create(
					booking=booking, provider=self.p2, sequence=5,
					status='pending', offered_at=timezone.now()
				)

	def test_stale_copy_cannot_be_saved(self):
		booking = self.create_booking()
		fresh = Booking.objects.get(pk=booking.pk)
		stale = Booking.objects.get(pk=booking.pk)

		fresh.auto_assign_message = 'first writer'
		save_booking(fresh, ['auto_assign_message'])

		stale.auto_assign_message = 'second writer'
		with self.assertRaises(StaleBookingError):
			save_booking(stale, ['auto_assign_message'])
		self.assertEqual(Booking.objects.get(pk=booking.pk).auto_assign_message, 'first writer')


class EndToEndTests(TestCase):
	def test_decline_timeout_accept_scenario(self):
		template = make_template()
		customer = make_customer()
		a = make_provider('alpha', km=2, rating=4.8, template=template)
		b = make_provider('bravo', km=5, rating=4.5, template=template)
		c = make_provider('charlie', km=8, rating=4.2, template=template)

		booking = create_booking_multi(customer, template.id, 0, 0, 'rating').booking
		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, a)
		self.assertEqual(booking.pending_providers, [b.id, c.id])

		decline_offer(booking.id, a)
		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, b)

		Booking.objects.filter(pk=booking.pk).update(
			provider_response_timeout=timezone.now() - timedelta(seconds=5)
		)
		self.assertEqual(process_offer_timeouts(), (1, 1))
		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, c)

		accept_offer(booking.id, c)
		booking.refresh_from_db()
		self.assertEqual(booking.provider, c)
		self.assertEqual(booking.pending_providers, [])
		self.assertEqual(
			list(booking.offers.values_list('status', flat=True)),
			['declined', 'expired', 'accepted']
		)


class NotificationTests(OfferQueueTestCase):
	@patch('services.dispatch.offer_engine.notify_provider_event')
	def test_next_provider_notified_after_commit(self, mock_notify):
		booking = self.create_booking()
		mock_notify.reset_mock()

		with self.captureOnCommitCallbacks(execute=True):
			decline_offer(booking.id, self.p1)

		offered = [c.args for c in mock_notify.call_args_list if c.args[0] == 'booking_offer']
		self.assertEqual(len(offered), 1)
		self.assertEqual(offered[0][2], self.p2.id)

	@patch('services.dispatch.offer_engine.notify_customer_event')
	def test_customer_notified_on_accept(self, mock_notify):
		booking = self.create_booking()

		with self.captureOnCommitCallbacks(execute=True):
			accept_offer(booking.id, self.p1)

		mock_notify.assert_called_once()
		self.assertEqual(mock_notify.call_args.args[0], 'booking_accepted')

	@patch('services.dispatch.offer_engine.notify_provider_event', side_effect=RuntimeError('redis down'))
	def test_notification_failure_does_not_break_decline(self, mock_notify):
		booking = self.create_booking()

		with self.captureOnCommitCallbacks(execute=True):
			decline_offer(booking.id, self.p1)

		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, self.p2)

	@override_settings(BOOKING_SCHEDULE_OFFER_EXPIRY=True)
	@patch('bookings.tasks.expire_offer_task.apply_async')
	def test_expiry_task_scheduled_per_offer(self, mock_apply):
		with self.captureOnCommitCallbacks(execute=True):
			booking = self.create_booking()

		offer = self.pending_offers(booking).get()
		mock_apply.assert_called_once_with((booking.id, offer.id), countdown=121)


class OfferQueryTests(OfferQueueTestCase):
	def test_inbox_lists_only_the_current_holder(self):
		booking = self.create_booking()

		inbox = list_my_pending_offers(self.p1)
		self.assertEqual([row['booking_id'] for row in inbox], [booking.id])
		self.assertGreater(inbox[0]['seconds_left'], 0)
		self.assertEqual(list_my_pending_offers(self.p2), [])

	def test_inbox_hides_timed_out_offers(self):
		booking = self.create_booking()
		self.expire_window(booking)

		self.assertEqual(list_my_pending_offers(self.p1), [])

	def test_debug_view_for_owner(self):
		booking = self.create_booking()

		snapshot = get_offers_debug(booking.id, self.customer)

		self.assertEqual(snapshot['current_pending_provider'], self.p1.id)
		self.assertEqual([p['id'] for p in snapshot['pending_providers']], [self.p2.id, self.p3.id])
		self.assertEqual(len(snapshot['offers']), 1)
		self.assertTrue(0 < snapshot['seconds_left'] <= 120)

	def test_debug_view_applies_overdue_expiry(self):
		booking = self.create_booking()
		self.expire_window(booking)

		snapshot = get_offers_debug(booking.id, make_admin())

		self.assertEqual(snapshot['current_pending_provider'], self.p2.id)
		self.assertEqual([o['status'] for o in snapshot['offers']], ['expired', 'pending'])

	def test_debug_view_forbidden_for_strangers(self):
		booking = self.create_booking()

		with self.assertRaises(ForbiddenError):
			get_offers_debug(booking.id, make_customer('stranger'))
		with self.assertRaises(ForbiddenError):
			get_offers_debug(booking.id, self.p1)


class DatabaseErrorLoggingTests(OfferQueueTestCase):
	def test_failed_decline_logs_booking_and_provider(self):
		booking = self.create_booking()

		with patch('services.dispatch.offer_engine.BookingOffer.objects.create', side_effect=IntegrityError('boom')):
			with self.assertLogs('services', level='ERROR') as logs:
				with self.assertRaises(IntegrityError):
					decline_offer(booking.id, self.p1)

		expected = f'during decline on booking {booking.id} (actor {self.p1.id})'
		self.assertTrue(any(expected in line for line in logs.output), logs.output)
		booking.refresh_from_db()
		self.assertEqual(booking.current_offer().provider, self.p1)

	def test_offer_sweep_logs_and_skips_a_failing_booking(self):
		broken = self.create_booking()
		healthy = self.create_booking()
		self.expire_window(broken, seconds=10)
		self.expire_window(healthy)
		real_expire = expire_if_needed

		def flaky_expire(booking, now=None):
			if booking.id == broken.id:
				raise OperationalError('deadlock detected')
			return real_expire(booking, now=now)

		with patch('services.dispatch.sweeps.expire_if_needed', side_effect=flaky_expire):
			with self.assertLogs('services', level='ERROR') as logs:
				self.assertEqual(process_offer_timeouts(), (1, 1))

		self.assertTrue(any(f'on booking {broken.id}' in line for line in logs.output), logs.output)
		healthy.refresh_from_db()
		self.assertEqual(healthy.current_offer().provider, self.p2)
		broken.refresh_from_db()
		self.assertEqual(broken.current_offer().provider, self.p1)
