from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST
from django.utils.dateparse import parse_datetime

from .exceptions import BookingValidationError, DiscountNotFoundError, NotFoundError
from .services import DiscountService, TicketService, get_order_service
from .utils import read_bool, read_int, read_json_body


def ticket_to_dict(ticket):
    return {
        'id': ticket.pk,
        'show_id': ticket.show_id,
        'seat_id': ticket.seat_id,
        'order_id': ticket.order_id,
        'seat_type': ticket.seat_type,
        'price': str(ticket.price),
        'state': ticket.state,
    }


def order_to_dict(order):
    return {
        'id': order.pk,
        'user_id': order.user_id,
        'total_price': str(order.total_price),
        'discount': order.discount.code if order.discount_id else None,
        'external_payment_id': order.external_payment_id,
        'created_at': order.created_at.isoformat(),
        'confirmed_at': order.confirmed_at.isoformat() if order.confirmed_at else None,
        'tickets': [ticket_to_dict(ticket) for ticket in order.tickets.all()],
    }


def discount_to_dict(discount):
    return {
        'code': discount.code,
        'percentage': str(discount.percentage),
        'valid_until': discount.valid_until.isoformat(),
        'is_active': discount.is_active,
    }


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def orders(request):
    service = get_order_service()
    if request.method == 'GET':
        user_id = request.GET.get('user')
        if user_id is not None:
            user_id = read_int(user_id, 'user')
        return JsonResponse({'orders': [order_to_dict(order) for order in service.list_orders(user_id=user_id)]})

    data = read_json_body(request)
    if not data.get('user_id') or not data.get('show_id'):
        raise BookingValidationError("user_id and show_id are required")
    seat_ids = data.get('seat_ids')
    if not isinstance(seat_ids, list):
        raise BookingValidationError("seat_ids must be a list")

    order = service.create_order(read_int(data['user_id'], 'user_id'), read_int(data['show_id'], 'show_id'), seat_ids)
    return JsonResponse(order_to_dict(order), status=201)


@csrf_exempt
@require_http_methods(['GET', 'DELETE'])
def order_detail(request, order_id):
    service = get_order_service()
    if request.method == 'GET':
        return JsonResponse(order_to_dict(service.get_order(order_id)))

    if not service.delete_order(order_id):
        raise NotFoundError(f"Order {order_id} not found")
    return JsonResponse({'success': True})


@csrf_exempt
@require_POST
def apply_discount(request, order_id):
    data = read_json_body(request)
    if not data.get('code'):
        raise BookingValidationError("code is required")
    order = get_order_service().apply_discount(order_id, data['code'])
    return JsonResponse(order_to_dict(order))


@csrf_exempt
@require_POST
def resend_confirmation(request, order_id):
    sent = get_order_service().resend_confirmation(order_id)
    return JsonResponse({'sent': sent})


@require_GET
def ticket_detail(request, ticket_id):
    return JsonResponse(ticket_to_dict(TicketService().get_ticket(ticket_id)))


@require_GET
def ticket_qr(request, ticket_id):
    service = TicketService()
    return JsonResponse({'qr_code': service.generate_qr_code(service.get_ticket(ticket_id))})


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def discounts(request):
    service = DiscountService()
    if request.method == 'GET':
        return JsonResponse({'discounts': [discount_to_dict(d) for d in service.list_discounts()]})

    data = read_json_body(request)
    valid_until = data.get('valid_until')
    valid_until = parse_datetime(valid_until) if isinstance(valid_until, str) else None
    if not data.get('code') or data.get('percentage') is None or valid_until is None:
        raise BookingValidationError("code, percentage and an ISO 8601 valid_until are required")

    discount = service.create_discount(
        code=data['code'],
        percentage=data['percentage'],
        valid_until=valid_until,
        is_active=read_bool(data.get('is_active', True), 'is_active'),
    )
    return JsonResponse(discount_to_dict(discount), status=201)


@csrf_exempt
@require_http_methods(['GET', 'DELETE'])
def discount_detail(request, code):
    service = DiscountService()
    if request.method == 'GET':
        return JsonResponse(discount_to_dict(service.get_by_code(code)))

    if not service.delete_discount(code):
        raise DiscountNotFoundError(f"Discount code {code} not found")
    return JsonResponse({'success': True})
