"""Business-rule errors raised by the booking core.

Views translate these into JSON responses using ``status_code``; anything
that is not a ``DomainError`` is treated as a bug and propagates.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409


class BookingValidationError(DomainError):
    status_code = 400


class PaymentBridgeError(DomainError):
    status_code = 502


class DiscountNotFoundError(NotFoundError):
    pass


class SeatConflictError(ConflictError):

    def __init__(self, message, seat_ids=None):
        self.seat_ids = list(seat_ids or [])
        super().__init__(message)


class OverlapConflictError(ConflictError):
    pass


class RoomNotEmptyError(ConflictError):
    pass


class DuplicateDiscountCodeError(ConflictError):
    pass


class InvalidTimeRangeError(BookingValidationError):
    pass


class DuplicateSeatPositionError(BookingValidationError):
    pass


class InvalidDiscountError(BookingValidationError):
    pass


class DiscountExpiredError(InvalidDiscountError):
    pass


class DiscountInactiveError(InvalidDiscountError):
    pass


class InvalidTicketTransitionError(BookingValidationError):
    pass
