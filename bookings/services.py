import logging
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from movies.models import Seat, Show

from .email_utils import build_confirmation_email, build_late_payment_email
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
from .interfaces import SystemClock
from .models import Discount, Order, Ticket
from .utils import (
    QR_MISSING_DETAILS,
    PriceCalculator,
    as_utc,
    qr_data_uri,
    qr_png_bytes,
    quantize_money,
    ticket_qr_payload,
)

logger = logging.getLogger(__name__)

OCCUPYING_STATES = (Ticket.State.RESERVED, Ticket.State.BOOKED)


class TicketService:

    def get_all_tickets(self):
        return list(Ticket.objects.select_related('show', 'seat', 'order'))

    def get_ticket(self, ticket_id):
        ticket = Ticket.objects.select_related('show__movie', 'show__room', 'seat', 'order').filter(pk=ticket_id).first()
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    def get_tickets_for_user(self, user_id):
        return list(
            Ticket.objects.select_related('show', 'seat', 'order')
            .filter(order__user_id=user_id)
            .order_by('-created_at')
        )

    def delete_ticket(self, ticket_id):
        with transaction.atomic():
            ticket = Ticket.objects.select_related('order').filter(pk=ticket_id).first()
            if ticket is None:
                return False
            show_id = ticket.show_id
            order = ticket.order
            ticket.delete()

            if order is not None:
                if order.tickets.exists():
                    recalculate_order_total(order)
                else:
                    order.delete()
            self.refresh_free_seats(show_id)

        logger.info(f"Ticket {ticket_id} deleted")
        return True

    def void_ticket(self, ticket_id):
        with transaction.atomic():
            ticket = Ticket.objects.select_for_update().filter(pk=ticket_id).first()
            if ticket is None:
                raise NotFoundError(f"Ticket {ticket_id} not found")
            ticket.transition_to(Ticket.State.INVALID)
            self.refresh_free_seats(ticket.show_id)

        logger.info(f"Ticket {ticket_id} voided")
        return ticket

    def _bulk_transition(self, queryset, target, source_states):
        legal = [state for state in source_states if target in Ticket.TRANSITIONS[state]]
        if not legal:
            raise InvalidTicketTransitionError(
                f"No ticket may move from {', '.join(source_states)} to {target}"
            )
        return queryset.filter(state__in=legal).update(state=target, updated_at=timezone.now())

    def transition_for_show(self, show_id, target, source_states):
        return self._bulk_transition(Ticket.objects.filter(show_id=show_id), target, source_states)

    def transition_for_order(self, order_id, target, source_states):
        return self._bulk_transition(Ticket.objects.filter(order_id=order_id), target, source_states)

    def invalidate_reserved_for_show(self, show_id):
        count = self.transition_for_show(show_id, Ticket.State.INVALID, [Ticket.State.RESERVED])
        if count:
            self.refresh_free_seats(show_id)
            logger.info(f"🎟️ Invalidated {count} reserved ticket(s) for show {show_id}")
        return count

    def book_reserved_for_order(self, order_id):
        return self.transition_for_order(order_id, Ticket.State.BOOKED, [Ticket.State.RESERVED])

    def refresh_free_seats(self, show_id):
        show = Show.objects.select_related('room').filter(pk=show_id).first()
        if show is None:
            return 0
        occupied = show.tickets.filter(state__in=OCCUPYING_STATES).count()
        free_seats = max(show.room.capacity - occupied, 0)
        Show.objects.filter(pk=show_id).update(free_seats=free_seats)
        return free_seats

    def generate_qr_code(self, ticket):
        if ticket is None or ticket.show_id is None or ticket.seat_id is None:
            return QR_MISSING_DETAILS
        return qr_data_uri(qr_png_bytes(ticket_qr_payload(ticket)))


def recalculate_order_total(order):
    subtotal = order.tickets.aggregate(total=Sum('price'))['total'] or Decimal('0.00')
    percentage = order.discount.percentage if order.discount_id else None
    order.total_price = PriceCalculator.apply_discount(subtotal, percentage)
    order.save(update_fields=['total_price'])
    return order.total_price


class DiscountService:

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()

    def is_valid(self, discount, now=None):
        return discount.is_valid(now or self.clock.now())

    def _clean_percentage(self, percentage):
        try:
            percentage = Decimal(str(percentage))
        except (InvalidOperation, TypeError, ValueError):
            raise BookingValidationError(f"Invalid discount percentage: {percentage}")
        if percentage < 0 or percentage > 100:
            raise BookingValidationError("Discount percentage must be between 0 and 100")
        return percentage

    def create_discount(self, code, percentage, valid_until, is_active=True):
        code = Discount.normalize_code(code)
        if not code:
            raise BookingValidationError("Discount code is required")
        percentage = self._clean_percentage(percentage)

        if Discount.objects.filter(code=code).exists():
            raise DuplicateDiscountCodeError(f"Discount code {code} already exists")

        try:
            with transaction.atomic():
                discount = Discount.objects.create(
                    code=code,
                    percentage=percentage,
                    valid_until=as_utc(valid_until),
                    is_active=is_active,
                )
        except IntegrityError:
            raise DuplicateDiscountCodeError(f"Discount code {code} already exists")

        logger.info(f"Discount {code} created ({percentage}%)")
        return discount

    def get_by_code(self, code):
        discount = Discount.objects.filter(code=Discount.normalize_code(code)).first()
        if discount is None:
            raise DiscountNotFoundError(f"Discount code {code} not found")
        return discount

    def list_discounts(self):
        return list(Discount.objects.all())

    def update_discount(self, code, percentage=None, valid_until=None, is_active=None):
        discount = Discount.objects.filter(code=Discount.normalize_code(code)).first()
        if discount is None:
            return False

        if percentage is not None:
            discount.percentage = self._clean_percentage(percentage)
        if valid_until is not None:
            discount.valid_until = as_utc(valid_until)
        if is_active is not None:
            discount.is_active = is_active
        discount.save()
        return True

    def delete_discount(self, code):
        deleted, _ = Discount.objects.filter(code=Discount.normalize_code(code)).delete()
        return deleted > 0

    def validate_code(self, code, now=None):
        discount = self.get_by_code(code)
        now = now or self.clock.now()
        if not discount.is_active:
            raise DiscountInactiveError(f"Discount code {discount.code} is not active")
        if now > discount.valid_until:
            raise DiscountExpiredError(f"Discount code {discount.code} has expired")
        return discount


class OrderService:

    def __init__(self, email_sender, payment_bridge, ticket_service=None, clock=None, currency=None,
                 discount_service=None):
        self.email_sender = email_sender
        self.payment_bridge = payment_bridge
        self.ticket_service = ticket_service or TicketService()
        self.clock = clock or SystemClock()
        self.currency = currency or getattr(settings, 'PAYPAL_CURRENCY', 'EUR')
        self.discount_service = discount_service or DiscountService(clock=self.clock)

    def get_order(self, order_id):
        order = Order.objects.select_related('user', 'discount').filter(pk=order_id).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def list_orders(self, user_id=None):
        orders = Order.objects.select_related('user', 'discount').prefetch_related('tickets')
        if user_id is not None:
            orders = orders.filter(user_id=user_id)
        return list(orders)

    def _clean_seat_ids(self, seat_ids):
        try:
            seat_ids = [int(seat_id) for seat_id in seat_ids or []]
        except (TypeError, ValueError):
            raise BookingValidationError("Seat ids must be integers")
        if not seat_ids:
            raise BookingValidationError("At least one seat must be selected")
        if len(set(seat_ids)) != len(seat_ids):
            raise BookingValidationError("The same seat was requested more than once")
        return seat_ids

    def create_order(self, user_id, show_id, seat_ids):
        seat_ids = self._clean_seat_ids(seat_ids)

        user = get_user_model().objects.filter(pk=user_id).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        try:
            with transaction.atomic():
                order = self._reserve_seats(user, show_id, seat_ids)
        except IntegrityError as e:
            # Lost the race on the (show, seat) constraint
            logger.warning(f"⚠️ Seat conflict on insert for show {show_id}, seats {seat_ids}: {e}")
            raise SeatConflictError("One or more seats are no longer available", seat_ids)

        logger.info(
            f"Order {order.pk} created for user {user.pk}: show {show_id}, "
            f"{len(seat_ids)} seat(s), total {order.total_price}"
        )

        try:
            remote_id = self.payment_bridge.create_remote_order(self.currency, order.total_price)
        except Exception:
            self._discard(order)
            raise

        if not remote_id:
            logger.error(f"❌ Payment bridge failed for order {order.pk}, releasing its seats")
            self._discard(order)
            raise PaymentBridgeError("The payment provider could not create an order")

        order.external_payment_id = remote_id
        order.save(update_fields=['external_payment_id'])
        return order

    def _reserve_seats(self, user, show_id, seat_ids):
        show = Show.objects.select_for_update().select_related('room').filter(pk=show_id).first()
        if show is None:
            raise NotFoundError(f"Show {show_id} not found")
        if show.has_started or show.has_ended or self.clock.now() >= show.start_at:
            raise BookingValidationError("This show has already started")

        seats = Seat.objects.in_bulk(seat_ids)
        missing = [seat_id for seat_id in seat_ids if seat_id not in seats]
        if missing:
            raise NotFoundError(f"Seats not found: {missing}")

        foreign = [seat_id for seat_id in seat_ids if seats[seat_id].room_id != show.room_id]
        if foreign:
            raise BookingValidationError(f"Seats {foreign} are not in the show's room")

        unavailable = [seat_id for seat_id in seat_ids if not seats[seat_id].is_available]
        if unavailable:
            raise BookingValidationError(f"Seats {unavailable} are not available for booking")

        existing = Ticket.objects.filter(show=show, seat_id__in=seat_ids).exclude(state=Ticket.State.INVALID)
        taken = sorted(t.seat_id for t in existing if t.state in OCCUPYING_STATES)
        if taken:
            logger.info(f"Seat conflict for show {show.pk}: seats {taken} already taken")
            raise SeatConflictError("One or more seats are no longer available", taken)
        placeholders = {t.seat_id: t for t in existing if t.state == Ticket.State.AVAILABLE}

        order = Order.objects.create(user=user)
        subtotal = Decimal('0.00')
        for seat_id in seat_ids:
            seat = seats[seat_id]
            price = PriceCalculator.ticket_price(show, seat.seat_type)
            subtotal += price

            ticket = placeholders.get(seat_id)
            if ticket is not None:
                ticket.order = order
                ticket.seat_type = seat.seat_type
                ticket.price = price
                ticket.save(update_fields=['order', 'seat_type', 'price', 'updated_at'])
                ticket.transition_to(Ticket.State.RESERVED)
            else:
                Ticket.objects.create(
                    show=show,
                    seat=seat,
                    order=order,
                    seat_type=seat.seat_type,
                    price=price,
                    state=Ticket.State.RESERVED,
                )

        order.total_price = quantize_money(subtotal)
        order.save(update_fields=['total_price'])
        self.ticket_service.refresh_free_seats(show.pk)
        return order

    def _discard(self, order):
        show_ids = set(order.tickets.values_list('show_id', flat=True))
        order.delete()
        for show_id in show_ids:
            self.ticket_service.refresh_free_seats(show_id)

    def apply_discount(self, order_id, code):
        order = self.get_order(order_id)
        if order.confirmed_at is not None:
            raise BookingValidationError("Discounts cannot be applied to a paid order")

        discount = self.discount_service.validate_code(code, self.clock.now())

        subtotal = order.ticket_sum()
        new_total = PriceCalculator.apply_discount(subtotal, discount.percentage)

        remote_id = order.external_payment_id
        if remote_id and new_total != order.total_price:
            remote_id = self.payment_bridge.create_remote_order(self.currency, new_total)
            if not remote_id:
                logger.error(f"❌ Payment bridge failed while repricing order {order.pk}")
                raise PaymentBridgeError("The payment provider could not update the order")

        order.discount = discount
        order.total_price = new_total
        order.external_payment_id = remote_id
        order.save(update_fields=['discount', 'total_price', 'external_payment_id'])

        logger.info(f"Discount {discount.code} applied to order {order.pk}: {subtotal} -> {new_total}")
        return order

    def delete_order(self, order_id):
        with transaction.atomic():
            order = Order.objects.filter(pk=order_id).first()
            if order is None:
                return False
            self._discard(order)

        logger.info(f"Order {order_id} deleted")
        return True

    def confirm_payment(self, external_payment_id):
        if not external_payment_id:
            return False

        with transaction.atomic():
            order = Order.objects.select_for_update().filter(external_payment_id=external_payment_id).first()
            if order is None:
                logger.warning(f"No order for payment id {external_payment_id}")
                return False

            booked = self.ticket_service.book_reserved_for_order(order.pk)
            is_late = not order.tickets.exclude(state=Ticket.State.INVALID).exists()

            if not is_late and order.confirmed_at is None:
                order.confirmed_at = self.clock.now()
                order.save(update_fields=['confirmed_at'])

        if is_late:
            logger.warning(f"⚠️ Late payment for order {order.pk}: every ticket has lapsed")
            self._send_late_payment_notice(order)
            return False

        logger.info(f"✅ Payment confirmed for order {order.pk}: {booked} ticket(s) booked")
        self._send_confirmation(order)
        return True

    def resend_confirmation(self, order_id):
        order = self.get_order(order_id)
        if not order.tickets.filter(state=Ticket.State.BOOKED).exists():
            logger.info(f"⏭️  SKIPPED: order {order.pk} has no booked tickets to confirm")
            return False
        return self._send_confirmation(order, force=True)

    def _send_confirmation(self, order, force=False):
        # Claim the flag first so two concurrent confirmations send one email
        claimed = Order.objects.filter(pk=order.pk, confirmation_email_sent=False).update(confirmation_email_sent=True)
        if not claimed and not force:
            logger.info(f"⏭️  SKIPPED: confirmation email for order {order.pk} already sent")
            return False

        tickets = list(
            order.tickets.select_related('show__movie', 'show__room', 'seat')
            .filter(state=Ticket.State.BOOKED)
        )
        try:
            subject, html_body, attachments = build_confirmation_email(order, tickets)
            sent = self.email_sender.send(order.user.email, subject, html_body, attachments)
        except Exception:
            logger.exception(f"❌ 📧 Could not build confirmation email for order {order.pk}")
            sent = False

        Order.objects.filter(pk=order.pk).update(confirmation_email_sent=sent or not claimed)
        if not sent:
            logger.error(f"❌ 📧 Confirmation email for order {order.pk} was not sent")
        return sent

    def _send_late_payment_notice(self, order):
        claimed = Order.objects.filter(pk=order.pk, late_payment_email_sent=False).update(late_payment_email_sent=True)
        if not claimed:
            return False

        try:
            subject, html_body = build_late_payment_email(order)
            sent = self.email_sender.send(order.user.email, subject, html_body)
        except Exception:
            logger.exception(f"❌ 📧 Could not build late payment email for order {order.pk}")
            sent = False

        if not sent:
            Order.objects.filter(pk=order.pk).update(late_payment_email_sent=False)
        return sent


def get_order_service():
    from .email_utils import DjangoEmailSender
    from .paypal_utils import paypal_client

    return OrderService(email_sender=DjangoEmailSender(), payment_bridge=paypal_client)
