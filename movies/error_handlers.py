import logging

from django.core.exceptions import PermissionDenied
from django.db import DatabaseError
from django.http import JsonResponse

from bookings.exceptions import DomainError, SeatConflictError

logger = logging.getLogger(__name__)


def error_response(status, error, message, **extra):
    body = {'error': error, 'message': message}
    body.update(extra)
    return JsonResponse(body, status=status)


def domain_error_response(exc):
    status = exc.status_code
    if status >= 500:
        logger.error(f'{status} {type(exc).__name__}: {exc.message}')
    else:
        logger.warning(f'{status} {type(exc).__name__}: {exc.message}')

    extra = {}
    if isinstance(exc, SeatConflictError) and exc.seat_ids:
        extra['seat_ids'] = exc.seat_ids
    return error_response(status, type(exc).__name__, exc.message, **extra)


def handler400(request, exception):

    logger.warning(f'400 Error: {exception}')
    return error_response(400, 'Bad Request', 'The request could not be understood.')


def handler403(request, exception):

    logger.warning(f'403 Error: {exception}')
    return error_response(403, 'Forbidden', 'You do not have permission to access this resource.')


def handler404(request, exception):

    logger.warning(f'404 Error: {exception}')
    return error_response(404, 'Not Found', 'The requested resource was not found.')


def handler500(request):

    logger.error('500 Internal Server Error')
    return error_response(500, 'Internal Server Error', 'An unexpected error occurred.')


def handler503(request, exception=None):

    logger.error('503 Service Unavailable')
    return error_response(503, 'Service Unavailable', 'The service is temporarily unavailable.')


class GlobalExceptionMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):

        if isinstance(exception, DomainError):
            return domain_error_response(exception)

        logger.error(f'Unhandled exception: {exception}', exc_info=True)

        if isinstance(exception, DatabaseError):
            return handler503(request, exception)
        elif isinstance(exception, PermissionDenied):
            return handler403(request, exception)

        return None
