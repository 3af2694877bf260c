import json
import logging

from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .models import Order, Transaction
from .services import get_order_service

logger = logging.getLogger(__name__)

ORDER_APPROVED = 'CHECKOUT.ORDER.APPROVED'


def handle_webhook_event(webhook_data, confirm_payment):
    """Apply one PayPal event and return ``(status, message)``.

    ``confirm_payment`` is the order service's ``confirm_payment``; only
    approved checkouts reach it, everything else is acknowledged.
    """
    event_type = webhook_data.get('event_type', '')
    resource = webhook_data.get('resource') or {}
    payment_id = resource.get('id') if isinstance(resource, dict) else None

    logger.info(f"Processing webhook event: {event_type} ({payment_id})")

    if event_type != ORDER_APPROVED:
        logger.info(f"Unhandled webhook event: {event_type}")
        return 200, 'Event not handled'

    if not payment_id:
        logger.warning("Approved event without resource id")
        return 400, 'Missing resource id'

    order = Order.objects.filter(external_payment_id=payment_id).first()
    if order is None:
        logger.error(f"Order not found for payment id: {payment_id}")
        return 404, 'Order not found'

    confirmed = confirm_payment(payment_id)

    Transaction.objects.create(
        order=order,
        external_payment_id=payment_id,
        event_type=event_type,
        status='SUCCESS' if confirmed else 'LATE',
        payment_gateway='PAYPAL',
        gateway_response=webhook_data,
    )

    if confirmed:
        logger.info(f"Payment confirmed via webhook for order {order.pk}")
        return 200, 'Payment confirmed'

    logger.warning(f"Payment for order {order.pk} arrived after its reservation lapsed")
    return 200, 'Payment recorded as late'


@csrf_exempt
@require_POST
def paypal_webhook(request):

    try:
        webhook_data = json.loads(request.body.decode('utf-8'))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON in webhook: {str(e)}")
        return HttpResponse('Invalid JSON', status=400)

    if not isinstance(webhook_data, dict):
        return HttpResponse('Invalid payload', status=400)

    status, message = handle_webhook_event(webhook_data, get_order_service().confirm_payment)
    return HttpResponse(message, status=status)
