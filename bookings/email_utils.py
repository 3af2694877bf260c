import logging
from email.mime.image import MIMEImage

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from .utils import qr_png_bytes, ticket_qr_payload

logger = logging.getLogger(__name__)


class DjangoEmailSender:

    def __init__(self, from_email=None):
        self.from_email = from_email or getattr(settings, 'DEFAULT_FROM_EMAIL', None)
        if not self.from_email:
            raise ImproperlyConfigured("DEFAULT_FROM_EMAIL must be set to send booking emails")

    def send(self, to, subject, html_body, attachments=None):
        if not to:
            logger.warning(f"⏭️  SKIPPED: email '{subject}' has no recipient")
            return False

        email = EmailMultiAlternatives(subject, strip_tags(html_body), self.from_email, [to])
        email.attach_alternative(html_body, "text/html")

        if attachments:
            # Inline images are referenced from the HTML as cid:<content_id>
            email.mixed_subtype = 'related'
            for content_id, data in attachments:
                image = MIMEImage(data, _subtype='png')
                image.add_header('Content-ID', f"<{content_id}>")
                image.add_header('Content-Disposition', 'inline', filename=f"{content_id}.png")
                email.attach(image)

        try:
            email.send()
        except Exception as e:
            logger.error(f"❌ 📧 ERROR sending '{subject}' to {to}: {type(e).__name__}: {e}")
            return False

        logger.info(f"✅ 📧 EMAIL SENT | Subject: {subject} | To: {to}")
        return True


def ticket_content_id(ticket):
    return f"ticket-qr-{ticket.pk}"


def build_confirmation_email(order, tickets):
    attachments = []
    rows = []
    for ticket in tickets:
        content_id = ticket_content_id(ticket)
        attachments.append((content_id, qr_png_bytes(ticket_qr_payload(ticket))))
        rows.append({'ticket': ticket, 'content_id': content_id})

    show = tickets[0].show if tickets else None
    context = {
        'order': order,
        'user': order.user,
        'show': show,
        'movie': show.movie if show else None,
        'rows': rows,
        'site_url': getattr(settings, 'SITE_URL', ''),
    }
    subject = f"🎬 Booking Confirmed - Order {order.pk}"
    html_body = render_to_string('bookings/email/order_confirmation.html', context)
    return subject, html_body, attachments


def build_late_payment_email(order):
    context = {
        'order': order,
        'user': order.user,
        'site_url': getattr(settings, 'SITE_URL', ''),
    }
    subject = f"Payment received too late - Order {order.pk}"
    html_body = render_to_string('bookings/email/late_payment.html', context)
    return subject, html_body
