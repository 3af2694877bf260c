import json
import threading
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from smtplib import SMTPException
from unittest.mock import MagicMock, patch

import requests
from django.contrib.auth.models import User
from django.core import mail
from django.core.exceptions import ImproperlyConfigured
from django.core.mail import EmailMultiAlternatives
from django.core.management import call_command
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone

from movies.models import Movie
from movies.services import RoomService, SeatService, ShowService
from .email_utils import DjangoEmailSender
from .exceptions import (
    BookingValidationError,
    DiscountExpiredError,
    DiscountInactiveError,
    DiscountNotFoundError,
    DuplicateDiscountCodeError,
    InvalidTicketTransitionError,
    NotFoundError,
    PaymentBridgeError,
    SeatConflictError,
)
from .models import Discount, Order, Ticket, Transaction
from .paypal_utils import PayPalClient
from .services import DiscountService, OrderService, TicketService
from .tasks import SWEEP_LOCK_KEY, acquire_lock, release_lock, run_show_lifecycle_sweep
from .utils import QR_MISSING_DETAILS
from .webhooks import handle_webhook_event

SHOW_START = datetime(2030, 1, 1, 18, 0, tzinfo=dt_timezone.utc)


class FakeClock:

    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class FakeEmailSender:

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def send(self, to, subject, html_body, attachments=None):
        self.sent.append({
            'to': to,
            'subject': subject,
            'html_body': html_body,
            'attachments': list(attachments or []),
        })
        return self.succeed


class FakePaymentBridge:

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []

    def create_remote_order(self, currency, amount):
        self.calls.append((currency, amount))
        if not self.succeed:
            return None
        return f"PAY-{len(self.calls)}"


class BookingFixtureMixin:

    def setUp(self):

        self.clock = FakeClock(SHOW_START - timedelta(days=1))
        self.email_sender = FakeEmailSender()
        self.bridge = FakePaymentBridge()
        self.ticket_service = TicketService()
        self.service = OrderService(
            self.email_sender,
            self.bridge,
            ticket_service=self.ticket_service,
            clock=self.clock,
            currency='EUR',
        )

        self.user = User.objects.create_user(username='alice', email='alice@example.com', password='testpass123')
        self.other_user = User.objects.create_user(username='bob', email='bob@example.com', password='testpass123')

        self.movie = Movie.objects.create(title='Test Movie', duration=120)

        self.room = RoomService().create_room('A')
        self.seat_a1, self.seat_a2 = RoomService().generate_layout(self.room.pk, rows=1, seats_per_row=2)

        self.show = ShowService().create_show(
            self.movie.pk,
            self.room.pk,
            SHOW_START,
            SHOW_START + timedelta(hours=2),
            base_price=Decimal('10.00'),
        )


class TicketStateMachineTests(BookingFixtureMixin, TestCase):

    def _ticket(self, state):
        return Ticket.objects.create(show=self.show, seat=self.seat_a1, seat_type='Standard', price=10, state=state)

    def test_allowed_transitions(self):

        self.assertTrue(Ticket(state=Ticket.State.AVAILABLE).can_transition(Ticket.State.RESERVED))
        self.assertTrue(Ticket(state=Ticket.State.RESERVED).can_transition(Ticket.State.BOOKED))
        self.assertTrue(Ticket(state=Ticket.State.RESERVED).can_transition(Ticket.State.INVALID))
        self.assertTrue(Ticket(state=Ticket.State.BOOKED).can_transition(Ticket.State.INVALID))

    def test_nothing_returns_to_reserved(self):

        self.assertFalse(Ticket(state=Ticket.State.BOOKED).can_transition(Ticket.State.RESERVED))
        self.assertFalse(Ticket(state=Ticket.State.INVALID).can_transition(Ticket.State.RESERVED))
        self.assertEqual(Ticket.sources_for(Ticket.State.RESERVED), [Ticket.State.AVAILABLE])

    def test_illegal_transition_raises_and_keeps_state(self):

        ticket = self._ticket(Ticket.State.BOOKED)

        with self.assertRaises(InvalidTicketTransitionError):
            ticket.transition_to(Ticket.State.RESERVED)

        ticket.refresh_from_db()
        self.assertEqual(ticket.state, Ticket.State.BOOKED)

    def test_bulk_transition_rejects_illegal_source(self):

        with self.assertRaises(InvalidTicketTransitionError):
            self.ticket_service.transition_for_show(self.show.pk, Ticket.State.RESERVED, [Ticket.State.BOOKED])

    def test_void_ticket_frees_the_seat(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])
        ticket = order.tickets.get()

        self.ticket_service.void_ticket(ticket.pk)

        ticket.refresh_from_db()
        self.show.refresh_from_db()
        self.assertEqual(ticket.state, Ticket.State.INVALID)
        self.assertEqual(self.show.free_seats, 2)

    def test_delete_ticket_recomputes_order_total(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk, self.seat_a2.pk])
        ticket = order.tickets.first()

        self.assertTrue(self.ticket_service.delete_ticket(ticket.pk))

        order.refresh_from_db()
        self.assertEqual(order.total_price, Decimal('10.00'))
        self.assertFalse(self.ticket_service.delete_ticket(ticket.pk))

    def test_tickets_for_user(self):

        self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])
        self.service.create_order(self.other_user.pk, self.show.pk, [self.seat_a2.pk])

        tickets = self.ticket_service.get_tickets_for_user(self.user.pk)

        self.assertEqual([t.seat_id for t in tickets], [self.seat_a1.pk])
        self.assertEqual(len(self.ticket_service.get_all_tickets()), 2)

    def test_get_unknown_ticket_raises(self):

        with self.assertRaises(NotFoundError):
            self.ticket_service.get_ticket(9999)


class QRCodeTests(BookingFixtureMixin, TestCase):

    def test_qr_code_is_png_data_uri(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        qr_code = self.ticket_service.generate_qr_code(order.tickets.get())

        self.assertTrue(qr_code.startswith('data:image/png;base64,'))

    def test_qr_code_without_seat_returns_sentinel(self):

        ticket = Ticket(show=self.show, seat_type='Standard', price=10)

        self.assertEqual(self.ticket_service.generate_qr_code(ticket), QR_MISSING_DETAILS)
        self.assertEqual(self.ticket_service.generate_qr_code(None), "Error: Ticket details missing.")


class OrderCreationTests(BookingFixtureMixin, TestCase):

    def test_example_scenario(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        ticket = order.tickets.get()
        self.assertEqual(ticket.price, Decimal('10.00'))
        self.assertEqual(ticket.state, Ticket.State.RESERVED)
        self.assertEqual(order.total_price, Decimal('10.00'))

        with self.assertRaises(SeatConflictError):
            self.service.create_order(self.other_user.pk, self.show.pk, [self.seat_a1.pk])

        DiscountService().create_discount('SAVE10', 10, SHOW_START + timedelta(days=30))
        order = self.service.apply_discount(order.pk, 'SAVE10')

        self.assertEqual(order.total_price, Decimal('9.00'))

    def test_order_has_one_reserved_ticket_per_seat(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk, self.seat_a2.pk])

        tickets = list(order.tickets.all())
        self.assertEqual(len(tickets), 2)
        self.assertTrue(all(t.state == Ticket.State.RESERVED for t in tickets))
        self.assertEqual(order.total_price, sum(t.price for t in tickets))

    def test_seat_type_multiplier_and_snapshot(self):

        SeatService().update_seat(self.seat_a2.pk, 'A', 2, 'Premium', True)

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a2.pk])
        ticket = order.tickets.get()
        self.assertEqual(ticket.price, Decimal('12.50'))
        self.assertEqual(ticket.seat_type, 'Premium')

        ShowService().update_show(self.show.pk, base_price='20.00')
        SeatService().update_seat(self.seat_a2.pk, 'A', 2, 'VIP', True)

        ticket.refresh_from_db()
        self.assertEqual(ticket.price, Decimal('12.50'))
        self.assertEqual(ticket.seat_type, 'Premium')

    def test_remote_order_is_created_after_reservation(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        self.assertEqual(self.bridge.calls, [('EUR', Decimal('10.00'))])
        self.assertEqual(order.external_payment_id, 'PAY-1')

    def test_free_seats_follow_reservations(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])
        self.show.refresh_from_db()
        self.assertEqual(self.show.free_seats, 1)

        self.assertTrue(self.service.delete_order(order.pk))
        self.show.refresh_from_db()
        self.assertEqual(self.show.free_seats, 2)

    def test_conflict_is_all_or_nothing(self):

        self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        with self.assertRaises(SeatConflictError) as ctx:
            self.service.create_order(self.other_user.pk, self.show.pk, [self.seat_a2.pk, self.seat_a1.pk])

        self.assertEqual(ctx.exception.seat_ids, [self.seat_a1.pk])
        self.assertEqual(Order.objects.count(), 1)
        self.assertFalse(Ticket.objects.filter(seat=self.seat_a2).exists())

    def test_invalid_ticket_does_not_block_new_reservation(self):

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])
        self.ticket_service.void_ticket(order.tickets.get().pk)

        second = self.service.create_order(self.other_user.pk, self.show.pk, [self.seat_a1.pk])

        self.assertEqual(second.tickets.get().state, Ticket.State.RESERVED)
        self.assertEqual(Ticket.objects.filter(show=self.show, seat=self.seat_a1).count(), 2)

    def test_available_placeholder_row_is_reused(self):

        placeholder = Ticket.objects.create(
            show=self.show, seat=self.seat_a1, seat_type='Standard', state=Ticket.State.AVAILABLE
        )

        order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        ticket = order.tickets.get()
        self.assertEqual(ticket.pk, placeholder.pk)
        self.assertEqual(ticket.state, Ticket.State.RESERVED)
        self.assertEqual(ticket.price, Decimal('10.00'))

    def test_database_constraint_backs_up_conflict_check(self):

        self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        # Blind the in-transaction check so the insert reaches the unique constraint
        with patch('bookings.services.OCCUPYING_STATES', ()):
            with self.assertRaises(SeatConflictError):
                self.service.create_order(self.other_user.pk, self.show.pk, [self.seat_a1.pk])

        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(Ticket.objects.filter(show=self.show, seat=self.seat_a1).count(), 1)

    def test_bridge_failure_releases_seats(self):

        self.bridge.succeed = False

        with self.assertRaises(PaymentBridgeError):
            self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        self.show.refresh_from_db()
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(Ticket.objects.count(), 0)
        self.assertEqual(self.show.free_seats, 2)

    def test_request_validation(self):

        other_room = RoomService().create_room('B')
        foreign_seat = SeatService().create_seat(other_room.pk, 'A', 1)
        SeatService().set_availability_for_row(self.room.pk, 'A', False)

        with self.assertRaises(BookingValidationError):
            self.service.create_order(self.user.pk, self.show.pk, [])
        with self.assertRaises(BookingValidationError):
            self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk, self.seat_a1.pk])
        with self.assertRaises(BookingValidationError):
            self.service.create_order(self.user.pk, self.show.pk, [foreign_seat.pk])
        with self.assertRaises(BookingValidationError):
            self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        self.assertEqual(Order.objects.count(), 0)

    def test_unknown_references(self):

        with self.assertRaises(NotFoundError):
            self.service.create_order(9999, self.show.pk, [self.seat_a1.pk])
        with self.assertRaises(NotFoundError):
            self.service.create_order(self.user.pk, 9999, [self.seat_a1.pk])
        with self.assertRaises(NotFoundError):
            self.service.create_order(self.user.pk, self.show.pk, [9999])

    def test_started_show_cannot_be_booked(self):

        ShowService().start_show(self.show.pk)

        with self.assertRaises(BookingValidationError):
            self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

    def test_show_past_start_time_cannot_be_booked_before_sweep(self):

        self.clock.advance(days=1)

        with self.assertRaises(BookingValidationError):
            self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])

        self.show.refresh_from_db()
        self.assertFalse(self.show.has_started)
        self.assertFalse(Ticket.objects.exists())

    def test_delete_unknown_order(self):

        self.assertFalse(self.service.delete_order(9999))

    def test_list_orders_by_user(self):

        self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])
        self.service.create_order(self.other_user.pk, self.show.pk, [self.seat_a2.pk])

        self.assertEqual(len(self.service.list_orders()), 2)
        self.assertEqual([o.user_id for o in self.service.list_orders(user_id=self.user.pk)], [self.user.pk])


class DiscountTests(BookingFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.discounts = DiscountService(clock=self.clock)
        self.discounts.create_discount('SAVE10', 10, SHOW_START)
        self.order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk, self.seat_a2.pk])

    def test_applying_twice_does_not_compound(self):

        self.service.apply_discount(self.order.pk, 'SAVE10')
        order = self.service.apply_discount(self.order.pk, 'SAVE10')

        self.assertEqual(order.total_price, Decimal('18.00'))

    def test_new_code_replaces_previous_one(self):

        self.discounts.create_discount('HALF', 50, SHOW_START)

        self.service.apply_discount(self.order.pk, 'HALF')
        order = self.service.apply_discount(self.order.pk, 'SAVE10')

        self.assertEqual(order.total_price, Decimal('18.00'))
        self.assertEqual(order.discount.code, 'SAVE10')

    def test_codes_are_case_insensitive(self):

        order = self.service.apply_discount(self.order.pk, 'save10')

        self.assertEqual(order.total_price, Decimal('18.00'))

    def test_remote_order_is_repriced(self):

        order = self.service.apply_discount(self.order.pk, 'SAVE10')

        self.assertEqual(self.bridge.calls[-1], ('EUR', Decimal('18.00')))
        self.assertEqual(order.external_payment_id, 'PAY-2')

    def test_bridge_failure_leaves_order_unchanged(self):

        self.bridge.succeed = False

        with self.assertRaises(PaymentBridgeError):
            self.service.apply_discount(self.order.pk, 'SAVE10')

        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal('20.00'))
        self.assertIsNone(self.order.discount)

    def test_unknown_code_leaves_total_unchanged(self):

        with self.assertRaises(DiscountNotFoundError):
            self.service.apply_discount(self.order.pk, 'NOPE')

        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal('20.00'))

    def test_expired_code(self):

        self.clock.advance(days=2)

        with self.assertRaises(DiscountExpiredError):
            self.service.apply_discount(self.order.pk, 'SAVE10')

        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal('20.00'))

    def test_inactive_code(self):

        self.discounts.update_discount('SAVE10', is_active=False)

        with self.assertRaises(DiscountInactiveError):
            self.service.apply_discount(self.order.pk, 'SAVE10')

    def test_unknown_order(self):

        with self.assertRaises(NotFoundError):
            self.service.apply_discount(9999, 'SAVE10')

    def test_validity_window_is_inclusive(self):

        discount = self.discounts.get_by_code('SAVE10')

        self.assertTrue(self.discounts.is_valid(discount, SHOW_START))
        self.assertFalse(self.discounts.is_valid(discount, SHOW_START + timedelta(seconds=1)))

    def test_create_validation(self):

        with self.assertRaises(BookingValidationError):
            self.discounts.create_discount('TOO_MUCH', 150, SHOW_START)
        with self.assertRaises(BookingValidationError):
            self.discounts.create_discount('NEGATIVE', -1, SHOW_START)
        with self.assertRaises(DuplicateDiscountCodeError):
            self.discounts.create_discount('save10', 5, SHOW_START)

    def test_delete_discount(self):

        self.assertTrue(self.discounts.delete_discount('SAVE10'))
        self.assertFalse(self.discounts.delete_discount('SAVE10'))
        self.assertFalse(Discount.objects.exists())


class PaymentConfirmationTests(BookingFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk, self.seat_a2.pk])

    def test_confirmation_books_tickets_and_sends_email(self):

        self.assertTrue(self.service.confirm_payment('PAY-1'))

        self.order.refresh_from_db()
        self.assertEqual(self.order.confirmed_at, self.clock.now())
        self.assertTrue(self.order.confirmation_email_sent)
        self.assertEqual(set(self.order.tickets.values_list('state', flat=True)), {Ticket.State.BOOKED})

        self.assertEqual(len(self.email_sender.sent), 1)
        email = self.email_sender.sent[0]
        self.assertEqual(email['to'], 'alice@example.com')
        self.assertEqual(len(email['attachments']), 2)
        content_id, png = email['attachments'][0]
        self.assertIn(f'cid:{content_id}', email['html_body'])
        self.assertTrue(png.startswith(b'\x89PNG'))

    def test_repeated_confirmation_sends_one_email(self):

        self.service.confirm_payment('PAY-1')
        self.assertTrue(self.service.confirm_payment('PAY-1'))

        self.assertEqual(len(self.email_sender.sent), 1)

    def test_unknown_payment_id(self):

        self.assertFalse(self.service.confirm_payment('PAY-UNKNOWN'))
        self.assertFalse(self.service.confirm_payment(''))

    def test_email_failure_does_not_undo_confirmation(self):

        self.email_sender.succeed = False

        self.assertTrue(self.service.confirm_payment('PAY-1'))

        self.order.refresh_from_db()
        self.assertIsNotNone(self.order.confirmed_at)
        self.assertFalse(self.order.confirmation_email_sent)
        self.assertEqual(set(self.order.tickets.values_list('state', flat=True)), {Ticket.State.BOOKED})

    def test_late_payment_sends_notice_once(self):

        ShowService().start_show(self.show.pk)

        self.assertFalse(self.service.confirm_payment('PAY-1'))
        self.assertFalse(self.service.confirm_payment('PAY-1'))

        self.order.refresh_from_db()
        self.assertIsNone(self.order.confirmed_at)
        self.assertTrue(self.order.late_payment_email_sent)
        self.assertEqual(len(self.email_sender.sent), 1)
        self.assertIn('too late', self.email_sender.sent[0]['subject'])

    def test_resend_confirmation(self):

        self.assertFalse(self.service.resend_confirmation(self.order.pk))

        self.service.confirm_payment('PAY-1')
        self.assertTrue(self.service.resend_confirmation(self.order.pk))

        self.assertEqual(len(self.email_sender.sent), 2)

    def test_discount_refused_after_payment(self):

        DiscountService().create_discount('SAVE10', 10, SHOW_START)
        self.service.confirm_payment('PAY-1')

        with self.assertRaises(BookingValidationError):
            self.service.apply_discount(self.order.pk, 'SAVE10')


class WebhookTests(BookingFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.order = self.service.create_order(self.user.pk, self.show.pk, [self.seat_a1.pk])
        patcher = patch('bookings.webhooks.get_order_service', return_value=self.service)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _post(self, payload):
        body = payload if isinstance(payload, str) else json.dumps(payload)
        return self.client.post('/bookings/paypal-webhook/', data=body, content_type='application/json')

    def test_approved_order_is_confirmed(self):

        response = self._post({'event_type': 'CHECKOUT.ORDER.APPROVED', 'resource': {'id': 'PAY-1'}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.order.tickets.get().state, Ticket.State.BOOKED)
        transaction = Transaction.objects.get()
        self.assertEqual(transaction.order, self.order)
        self.assertEqual(transaction.status, 'SUCCESS')

    def test_malformed_json(self):

        response = self._post('not json')

        self.assertEqual(response.status_code, 400)

    def test_unknown_order(self):

        response = self._post({'event_type': 'CHECKOUT.ORDER.APPROVED', 'resource': {'id': 'PAY-404'}})

        self.assertEqual(response.status_code, 404)
        self.assertFalse(Transaction.objects.exists())

    def test_other_events_are_acknowledged(self):

        response = self._post({'event_type': 'PAYMENT.CAPTURE.DENIED', 'resource': {'id': 'PAY-1'}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.order.tickets.get().state, Ticket.State.RESERVED)

    def test_get_is_not_allowed(self):

        response = self.client.get('/bookings/paypal-webhook/')

        self.assertEqual(response.status_code, 405)

    def test_handler_only_calls_confirmer_for_approved_events(self):

        confirmer = MagicMock(return_value=True)

        status, _ = handle_webhook_event({'event_type': 'SOMETHING.ELSE', 'resource': {'id': 'PAY-1'}}, confirmer)
        self.assertEqual(status, 200)
        confirmer.assert_not_called()

        status, _ = handle_webhook_event({'event_type': 'CHECKOUT.ORDER.APPROVED', 'resource': {'id': 'PAY-1'}}, confirmer)
        self.assertEqual(status, 200)
        confirmer.assert_called_once_with('PAY-1')


class OrderViewTests(BookingFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        patcher = patch('bookings.views.get_order_service', return_value=self.service)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _create(self, user, seats):
        return self.client.post(
            '/bookings/orders/',
            data=json.dumps({'user_id': user.pk, 'show_id': self.show.pk, 'seat_ids': [s.pk for s in seats]}),
            content_type='application/json',
        )

    def test_create_and_conflict(self):

        response = self._create(self.user, [self.seat_a1])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['total_price'], '10.00')

        response = self._create(self.other_user, [self.seat_a1])
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'SeatConflictError')

    def test_non_numeric_ids_are_bad_request(self):

        response = self.client.get('/bookings/orders/?user=abc')
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            '/bookings/orders/',
            data=json.dumps({'user_id': 'alice', 'show_id': self.show.pk, 'seat_ids': [self.seat_a1.pk]}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_orders_filtered_by_user(self):

        self._create(self.user, [self.seat_a1])
        self._create(self.other_user, [self.seat_a2])

        response = self.client.get(f'/bookings/orders/?user={self.user.pk}')

        self.assertEqual([o['user_id'] for o in response.json()['orders']], [self.user.pk])

    def test_discount_active_flag_must_be_boolean(self):

        response = self.client.post(
            '/bookings/discounts/',
            data=json.dumps({'code': 'SPRING', 'percentage': 15, 'valid_until': '2030-06-01T00:00:00Z', 'is_active': 'false'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.json()['is_active'])

        response = self.client.post(
            '/bookings/discounts/',
            data=json.dumps({'code': 'SUMMER', 'percentage': 15, 'valid_until': '2030-06-01T00:00:00Z', 'is_active': 'maybe'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)

    def test_bridge_failure_is_bad_gateway(self):

        self.bridge.succeed = False

        response = self._create(self.user, [self.seat_a1])

        self.assertEqual(response.status_code, 502)

    def test_unknown_order_is_not_found(self):

        response = self.client.get('/bookings/orders/9999/')

        self.assertEqual(response.status_code, 404)

    def test_apply_discount_endpoint(self):

        DiscountService().create_discount('SAVE10', 10, SHOW_START)
        order_id = self._create(self.user, [self.seat_a1]).json()['id']

        response = self.client.post(
            f'/bookings/orders/{order_id}/discount/',
            data=json.dumps({'code': 'SAVE10'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['total_price'], '9.00')

    def test_discount_endpoints(self):

        response = self.client.post(
            '/bookings/discounts/',
            data=json.dumps({'code': 'spring', 'percentage': 15, 'valid_until': '2030-06-01T00:00:00Z'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['code'], 'SPRING')

        self.assertEqual(self.client.get('/bookings/discounts/SPRING/').status_code, 200)
        self.assertEqual(self.client.delete('/bookings/discounts/SPRING/').status_code, 200)
        self.assertEqual(self.client.get('/bookings/discounts/SPRING/').status_code, 404)


class PayPalClientTests(TestCase):

    def _response(self, status_code, payload):
        response = MagicMock(status_code=status_code)
        response.json.return_value = payload
        return response

    def _client(self, session):
        return PayPalClient(base_url='https://paypal.test', client_id='id', secret='secret', timeout=5, session=session)

    def test_create_remote_order(self):

        session = MagicMock()
        session.post.side_effect = [
            self._response(200, {'access_token': 'token'}),
            self._response(201, {'id': 'ORDER-1'}),
        ]

        order_id = self._client(session).create_remote_order('EUR', Decimal('18.00'))

        self.assertEqual(order_id, 'ORDER-1')
        order_call = session.post.call_args_list[1]
        self.assertEqual(order_call.args[0], 'https://paypal.test/v2/checkout/orders')
        self.assertEqual(order_call.kwargs['timeout'], 5)
        self.assertEqual(order_call.kwargs['json']['purchase_units'][0]['amount'], {'currency_code': 'EUR', 'value': '18.00'})
        self.assertEqual(order_call.kwargs['headers']['Authorization'], 'Bearer token')

    def test_each_order_gets_its_own_request_id(self):

        session = MagicMock()
        session.post.side_effect = [
            self._response(200, {'access_token': 'token'}),
            self._response(201, {'id': 'ORDER-1'}),
            self._response(200, {'access_token': 'token'}),
            self._response(201, {'id': 'ORDER-2'}),
        ]
        client = self._client(session)

        client.create_remote_order('EUR', 10)
        client.create_remote_order('EUR', 10)

        first = session.post.call_args_list[1].kwargs['headers']['PayPal-Request-Id']
        second = session.post.call_args_list[3].kwargs['headers']['PayPal-Request-Id']
        self.assertTrue(first)
        self.assertNotEqual(first, second)

    def test_retries_are_bounded(self):

        session = MagicMock()
        self._client(session)

        adapter = session.mount.call_args_list[0].args[1]
        self.assertEqual(adapter.max_retries.total, 2)

    def test_token_failure_returns_none(self):

        session = MagicMock()
        session.post.return_value = self._response(401, {})

        self.assertIsNone(self._client(session).create_remote_order('EUR', 10))
        self.assertEqual(session.post.call_count, 1)

    def test_order_failure_returns_none(self):

        session = MagicMock()
        session.post.side_effect = [
            self._response(200, {'access_token': 'token'}),
            self._response(500, {}),
        ]

        self.assertIsNone(self._client(session).create_remote_order('EUR', 10))

    def test_network_error_returns_none(self):

        session = MagicMock()
        session.post.side_effect = requests.ConnectionError('connection refused')

        self.assertIsNone(self._client(session).create_remote_order('EUR', 10))

    def test_mock_mode_without_credentials(self):

        session = MagicMock()
        client = PayPalClient(client_id='', secret='', session=session)

        order_id = client.create_remote_order('EUR', 10)

        self.assertTrue(client.is_mock)
        self.assertTrue(order_id.startswith('MOCK-'))
        session.post.assert_not_called()


class DjangoEmailSenderTests(TestCase):

    def test_sends_html_with_inline_images(self):

        sender = DjangoEmailSender(from_email='tickets@example.com')

        sent = sender.send('alice@example.com', 'Your tickets', '<p>Hello</p>', [('ticket-qr-1', b'fake-png')])

        self.assertTrue(sent)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['alice@example.com'])
        self.assertEqual(message.alternatives[0][1], 'text/html')
        self.assertEqual(message.attachments[0]['Content-ID'], '<ticket-qr-1>')

    def test_send_failure_returns_false(self):

        sender = DjangoEmailSender(from_email='tickets@example.com')

        with patch.object(EmailMultiAlternatives, 'send', side_effect=SMTPException('server down')):
            self.assertFalse(sender.send('alice@example.com', 'Your tickets', '<p>Hello</p>'))

    def test_missing_recipient_returns_false(self):

        self.assertFalse(DjangoEmailSender(from_email='tickets@example.com').send('', 'Subject', '<p>x</p>'))
        self.assertEqual(len(mail.outbox), 0)

    @override_settings(DEFAULT_FROM_EMAIL='')
    def test_missing_sender_configuration(self):

        with self.assertRaises(ImproperlyConfigured):
            DjangoEmailSender()


class LifecycleTaskTests(TestCase):

    def setUp(self):

        movie = Movie.objects.create(title='Matinee')
        room = RoomService().create_room('Hall 1')
        start = timezone.now() - timedelta(minutes=5)
        self.show = ShowService().create_show(movie.pk, room.pk, start, start + timedelta(hours=2))

    def test_sweep_task_starts_due_shows(self):

        result = run_show_lifecycle_sweep()

        self.assertEqual(result, {'started': [self.show.pk], 'ended': []})
        self.show.refresh_from_db()
        self.assertTrue(self.show.has_started)

        self.assertTrue(acquire_lock(SWEEP_LOCK_KEY, 10))
        release_lock(SWEEP_LOCK_KEY)

    def test_sweep_task_skips_when_locked(self):

        self.assertTrue(acquire_lock(SWEEP_LOCK_KEY, 10))
        try:
            result = run_show_lifecycle_sweep()
        finally:
            release_lock(SWEEP_LOCK_KEY)

        self.assertTrue(result.startswith('Skipped'))
        self.show.refresh_from_db()
        self.assertFalse(self.show.has_started)

    def test_management_command(self):

        out = StringIO()
        call_command('run_show_sweep', stdout=out)
        self.assertIn('1 started', out.getvalue())

        out = StringIO()
        call_command('run_show_sweep', stdout=out)
        self.assertIn('No shows to start or end', out.getvalue())


class ConcurrentReservationTests(TransactionTestCase):

    def test_only_one_of_four_concurrent_orders_wins(self):

        users = [
            User.objects.create_user(username=f'user{i}', email=f'user{i}@example.com', password='testpass123')
            for i in range(4)
        ]
        movie = Movie.objects.create(title='Premiere')
        room = RoomService().create_room('Main')
        seat = SeatService().create_seat(room.pk, 'A', 1)
        show = ShowService().create_show(movie.pk, room.pk, SHOW_START, SHOW_START + timedelta(hours=2))
        service = OrderService(FakeEmailSender(), FakePaymentBridge())

        barrier = threading.Barrier(len(users))
        results = []

        def attempt(user):
            try:
                barrier.wait()
                service.create_order(user.pk, show.pk, [seat.pk])
                results.append('ok')
            except SeatConflictError:
                results.append('conflict')
            except Exception as e:
                results.append(type(e).__name__)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(user,)) for user in users]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(results), ['conflict', 'conflict', 'conflict', 'ok'])
        self.assertEqual(Ticket.objects.filter(show=show).exclude(state=Ticket.State.INVALID).count(), 1)
