import base64
import io
import json
from datetime import timezone as dt_timezone
from decimal import Decimal, ROUND_HALF_UP

import qrcode
from django.conf import settings
from django.utils import timezone

from .exceptions import BookingValidationError

CENT = Decimal('0.01')
HUNDRED = Decimal('100')

QR_MISSING_DETAILS = "Error: Ticket details missing."


def quantize_money(amount):
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class PriceCalculator:

    DEFAULT_MULTIPLIERS = {
        'Standard': '1.00',
        'Premium': '1.25',
        'VIP': '1.50',
    }

    @staticmethod
    def multiplier_for(seat_type):
        multipliers = getattr(settings, 'SEAT_TYPE_PRICE_MULTIPLIERS', PriceCalculator.DEFAULT_MULTIPLIERS)
        return Decimal(str(multipliers.get(seat_type, '1.00')))

    @staticmethod
    def ticket_price(show, seat_type):
        return quantize_money(show.base_price * PriceCalculator.multiplier_for(seat_type))

    @staticmethod
    def apply_discount(subtotal, percentage):
        # Always from the undiscounted subtotal so a second code replaces the first
        if not percentage:
            return quantize_money(subtotal)
        factor = (HUNDRED - Decimal(percentage)) / HUNDRED
        return quantize_money(Decimal(subtotal) * factor)


def ticket_qr_payload(ticket):
    show = ticket.show
    seat = ticket.seat
    return (
        f"Ticket ID: {ticket.pk}\n"
        f"Movie: {show.movie.title}\n"
        f"Room: {show.room.name}\n"
        f"Seat: {seat.label}\n"
        f"Start: {show.start_at:%Y-%m-%d %H:%M}"
    )


def qr_png_bytes(data):
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def qr_data_uri(png_bytes):
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode('ascii')


def read_json_body(request):
    try:
        data = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BookingValidationError("Request body is not valid JSON")
    if not isinstance(data, dict):
        raise BookingValidationError("Request body must be a JSON object")
    return data


def read_int(value, name):
    if isinstance(value, bool):
        raise BookingValidationError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BookingValidationError(f"{name} must be an integer")


def read_bool(value, name):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise BookingValidationError(f"{name} must be true or false")


def as_utc(value):
    # Naive datetimes from clients are taken to be UTC
    if value is not None and timezone.is_naive(value):
        return timezone.make_aware(value, dt_timezone.utc)
    return value
