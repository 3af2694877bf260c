import logging
import string
from decimal import Decimal, InvalidOperation
from typing import NamedTuple, Tuple

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError

from bookings.exceptions import (
    BookingValidationError,
    ConflictError,
    DuplicateSeatPositionError,
    InvalidTimeRangeError,
    NotFoundError,
    OverlapConflictError,
    RoomNotEmptyError,
)
from bookings.interfaces import SystemClock
from bookings.models import Order, Ticket
from bookings.services import TicketService
from bookings.utils import as_utc

from .models import Movie, Review
from .theater_models import Room, Seat, Show

logger = logging.getLogger(__name__)

ROW_LETTERS = string.ascii_uppercase


def _get_room(room_id, lock=False):
    rooms = Room.objects.select_for_update() if lock else Room.objects
    room = rooms.filter(pk=room_id).first()
    if room is None:
        raise NotFoundError(f"Room {room_id} not found")
    return room


def _clean_row(row):
    row = (row or '').strip().upper()
    if len(row) != 1 or row not in ROW_LETTERS:
        raise BookingValidationError(f"Row must be a single letter A-Z, got {row!r}")
    return row


def _clean_seat_type(seat_type):
    if seat_type not in dict(Seat.SEAT_TYPES):
        raise BookingValidationError(f"Unknown seat type {seat_type!r}")
    return seat_type


class RoomService:

    def __init__(self, ticket_service=None):
        self.ticket_service = ticket_service or TicketService()

    def create_room(self, name, capacity=None, is_available=True):
        if not name:
            raise BookingValidationError("Room name is required")
        if capacity is not None and capacity < 0:
            raise BookingValidationError("Capacity cannot be negative")

        room = Room.objects.create(name=name, capacity=capacity or 0, is_available=is_available)
        logger.info(f"Room {room.pk} '{room.name}' created")
        return room

    def get_room(self, room_id):
        return _get_room(room_id)

    def list_rooms(self):
        return list(Room.objects.all())

    def update_room(self, room_id, name=None, capacity=None, is_available=None):
        room = Room.objects.filter(pk=room_id).first()
        if room is None:
            return False

        if name is not None:
            room.name = name
        if is_available is not None:
            room.is_available = is_available
        if capacity is not None and not room.seats.exists():
            if capacity < 0:
                raise BookingValidationError("Capacity cannot be negative")
            room.capacity = capacity
        room.save()

        if room.seats.exists():
            self.recalculate_capacity(room.pk)
        return True

    def recalculate_capacity(self, room_id):
        room = _get_room(room_id)
        capacity = room.seats.count()
        Room.objects.filter(pk=room.pk).update(capacity=capacity)

        for show_id in room.shows.filter(has_started=False).values_list('pk', flat=True):
            self.ticket_service.refresh_free_seats(show_id)
        return capacity

    def generate_layout(self, room_id, rows, seats_per_row, seat_type=Seat.STANDARD):
        if not 1 <= rows <= len(ROW_LETTERS):
            raise BookingValidationError(f"Rows must be between 1 and {len(ROW_LETTERS)}")
        if seats_per_row < 1:
            raise BookingValidationError("Seats per row must be at least 1")
        seat_type = _clean_seat_type(seat_type)
        letters = ROW_LETTERS[:rows]

        with transaction.atomic():
            room = _get_room(room_id, lock=True)
            clash = room.seats.filter(row__in=letters, seat_number__lte=seats_per_row).first()
            if clash is not None:
                raise DuplicateSeatPositionError("Seat position already exists in this room.")

            Seat.objects.bulk_create([
                Seat(room=room, row=letter, seat_number=number, seat_type=seat_type)
                for letter in letters
                for number in range(1, seats_per_row + 1)
            ])
            self.recalculate_capacity(room.pk)

        logger.info(f"Generated {rows}x{seats_per_row} layout for room {room.pk}")
        return list(room.seats.filter(row__in=letters, seat_number__lte=seats_per_row))

    def delete_room(self, room_id):
        room = Room.objects.filter(pk=room_id).first()
        if room is None:
            return False
        if room.seats.exists():
            raise RoomNotEmptyError("Room still has seats; delete them first")
        if room.shows.exists():
            raise RoomNotEmptyError("Room still has scheduled shows")

        room.delete()
        logger.info(f"Room {room_id} deleted")
        return True


class SeatService:

    def __init__(self, room_service=None):
        self.room_service = room_service or RoomService()

    def get_seat(self, seat_id):
        seat = Seat.objects.select_related('room').filter(pk=seat_id).first()
        if seat is None:
            raise NotFoundError(f"Seat {seat_id} not found")
        return seat

    def get_seats_for_room(self, room_id):
        room = _get_room(room_id)
        return list(room.seats.all())

    def create_seat(self, room_id, row, seat_number, seat_type=Seat.STANDARD, is_available=True):
        row = _clean_row(row)
        seat_type = _clean_seat_type(seat_type)
        if seat_number < 1:
            raise BookingValidationError("Seat number must be positive")

        try:
            with transaction.atomic():
                room = _get_room(room_id, lock=True)
                if room.seats.filter(row=row, seat_number=seat_number).exists():
                    raise DuplicateSeatPositionError("Seat position already exists in this room.")
                seat = Seat.objects.create(
                    room=room,
                    row=row,
                    seat_number=seat_number,
                    seat_type=seat_type,
                    is_available=is_available,
                )
                self.room_service.recalculate_capacity(room.pk)
        except IntegrityError:
            raise DuplicateSeatPositionError("Seat position already exists in this room.")
        return seat

    def update_seat(self, seat_id, row, seat_number, seat_type, is_available):
        seat = Seat.objects.filter(pk=seat_id).first()
        if seat is None:
            return False

        row = _clean_row(row)
        seat_type = _clean_seat_type(seat_type)
        if seat_number < 1:
            raise BookingValidationError("Seat number must be positive")
        duplicate = Seat.objects.filter(
            room_id=seat.room_id, row=row, seat_number=seat_number
        ).exclude(pk=seat.pk).exists()
        if duplicate:
            raise DuplicateSeatPositionError("Seat position already exists in this room.")

        seat.row = row
        seat.seat_number = seat_number
        seat.seat_type = seat_type
        seat.is_available = is_available
        seat.save()
        return True

    def delete_seat(self, seat_id):
        seat = Seat.objects.filter(pk=seat_id).first()
        if seat is None:
            return False

        room_id = seat.room_id
        try:
            seat.delete()
        except ProtectedError:
            raise ConflictError(f"Seat {seat.label} has tickets and cannot be deleted")

        self.room_service.recalculate_capacity(room_id)
        return True

    def delete_all_seats_in_room(self, room_id):
        room = _get_room(room_id)
        try:
            with transaction.atomic():
                count = room.seats.count()
                room.seats.all().delete()
        except ProtectedError:
            raise ConflictError(f"Seats in room {room.pk} have tickets and cannot be deleted")

        self.room_service.recalculate_capacity(room.pk)
        logger.info(f"Deleted {count} seat(s) from room {room.pk}")
        return count

    def set_availability_for_row(self, room_id, row, available):
        return Seat.objects.filter(room_id=room_id, row=(row or '').strip().upper()).update(is_available=available)


class ShowService:

    EDITABLE_FIELDS = ('movie_id', 'room_id', 'start_at', 'end_at', 'base_price', 'language', 'subtitle', 'is_3d')

    def __init__(self, ticket_service=None):
        self.ticket_service = ticket_service or TicketService()

    def _clean_window(self, start_at, end_at):
        if start_at is None or end_at is None:
            raise InvalidTimeRangeError("Show needs both a start and an end time")
        start_at, end_at = as_utc(start_at), as_utc(end_at)
        if end_at <= start_at:
            raise InvalidTimeRangeError("Show must end after it starts")
        return start_at, end_at

    def _clean_price(self, base_price):
        try:
            base_price = Decimal(str(base_price))
        except (InvalidOperation, TypeError, ValueError):
            raise BookingValidationError(f"Invalid base price: {base_price}")
        if base_price < 0:
            raise BookingValidationError("Base price cannot be negative")
        return base_price

    def _check_overlap(self, room_id, start_at, end_at, exclude_id=None):
        clashing = Show.objects.filter(room_id=room_id, start_at__lt=end_at, end_at__gt=start_at)
        if exclude_id is not None:
            clashing = clashing.exclude(pk=exclude_id)
        other = clashing.first()
        if other is not None:
            raise OverlapConflictError(
                f"Room {room_id} already has show {other.pk} from {other.start_at} to {other.end_at}"
            )

    def get_show(self, show_id):
        show = Show.objects.select_related('movie', 'room').filter(pk=show_id).first()
        if show is None:
            raise NotFoundError(f"Show {show_id} not found")
        return show

    def list_shows(self, room_id=None, upcoming_only=False):
        shows = Show.objects.select_related('movie', 'room')
        if room_id is not None:
            shows = shows.filter(room_id=room_id)
        if upcoming_only:
            shows = shows.filter(has_started=False)
        return list(shows)

    def create_show(self, movie_id, room_id, start_at, end_at, base_price=Decimal('10.00'),
                    language='', subtitle='', is_3d=False):
        start_at, end_at = self._clean_window(start_at, end_at)
        base_price = self._clean_price(base_price)

        movie = Movie.objects.filter(pk=movie_id).first()
        if movie is None:
            raise NotFoundError(f"Movie {movie_id} not found")

        with transaction.atomic():
            room = _get_room(room_id, lock=True)
            self._check_overlap(room.pk, start_at, end_at)
            show = Show.objects.create(
                movie=movie,
                room=room,
                start_at=start_at,
                end_at=end_at,
                base_price=base_price,
                language=language,
                subtitle=subtitle,
                is_3d=is_3d,
                free_seats=room.capacity,
            )

        logger.info(f"Show {show.pk} scheduled: '{movie.title}' in room {room.pk} at {start_at:%Y-%m-%d %H:%M}")
        return show

    def update_show(self, show_id, **fields):
        unknown = set(fields) - set(self.EDITABLE_FIELDS)
        if unknown:
            raise BookingValidationError(f"Fields cannot be updated: {sorted(unknown)}")

        with transaction.atomic():
            show = Show.objects.select_for_update().filter(pk=show_id).first()
            if show is None:
                return False
            if show.has_started:
                raise BookingValidationError(f"Show {show_id} has already started and can no longer be edited")

            start_at, end_at = self._clean_window(
                fields.get('start_at', show.start_at), fields.get('end_at', show.end_at)
            )
            room_id = _get_room(fields.get('room_id', show.room_id), lock=True).pk
            if 'movie_id' in fields and not Movie.objects.filter(pk=fields['movie_id']).exists():
                raise NotFoundError(f"Movie {fields['movie_id']} not found")
            self._check_overlap(room_id, start_at, end_at, exclude_id=show.pk)

            room_changed = room_id != show.room_id
            if room_changed and show.tickets.exclude(state=Ticket.State.INVALID).exists():
                raise ConflictError(f"Show {show_id} has active tickets and cannot move to another room")
            if 'base_price' in fields:
                fields['base_price'] = self._clean_price(fields['base_price'])
            fields['start_at'], fields['end_at'] = start_at, end_at
            if 'room_id' in fields:
                fields['room_id'] = room_id
            for name, value in fields.items():
                setattr(show, name, value)
            show.save()

            if room_changed:
                self.ticket_service.refresh_free_seats(show.pk)

        logger.info(f"Show {show_id} updated: {sorted(fields)}")
        return True

    def delete_show(self, show_id):
        with transaction.atomic():
            show = Show.objects.filter(pk=show_id).first()
            if show is None:
                return False

            order_ids = set(
                show.tickets.filter(order__isnull=False).values_list('order_id', flat=True)
            )
            show.delete()
            Order.objects.filter(pk__in=order_ids, tickets__isnull=True).delete()

        logger.info(f"Show {show_id} deleted with its tickets ({len(order_ids)} order(s) affected)")
        return True

    def start_show(self, show_id):
        with transaction.atomic():
            show = Show.objects.select_for_update().filter(pk=show_id).first()
            if show is None:
                return False
            if not show.has_started:
                show.has_started = True
                show.save(update_fields=['has_started'])
                logger.info(f"🎬 Show {show.pk} started")
            self.ticket_service.invalidate_reserved_for_show(show.pk)
        return True

    def end_show(self, show_id):
        with transaction.atomic():
            show = Show.objects.select_for_update().filter(pk=show_id).first()
            if show is None:
                return False
            if not show.has_started:
                show.has_started = True
                self.ticket_service.invalidate_reserved_for_show(show.pk)
            if not show.has_ended:
                show.has_ended = True
                logger.info(f"🏁 Show {show.pk} ended")
            show.save(update_fields=['has_started', 'has_ended'])
        return True


class LifecycleChanges(NamedTuple):
    to_start: Tuple[int, ...] = ()
    to_end: Tuple[int, ...] = ()

    @property
    def is_empty(self):
        return not self.to_start and not self.to_end


def plan_lifecycle_changes(now, shows):
    """Work out which shows the sweep must start and which it must end.

    ``shows`` is any iterable of objects with ``id``, ``start_at``, ``end_at``,
    ``has_started`` and ``has_ended``. Nothing is read from or written to the
    database here, so the plan for a given ``now`` and snapshot is always the
    same.
    """
    to_start = []
    to_end = []
    for show in shows:
        if now >= show.start_at and not show.has_started:
            to_start.append(show.id)
        if now >= show.end_at and not show.has_ended:
            to_end.append(show.id)
    return LifecycleChanges(tuple(sorted(to_start)), tuple(sorted(to_end)))


class ShowStatusService:

    def __init__(self, show_service=None, clock=None):
        self.show_service = show_service or ShowService()
        self.clock = clock or SystemClock()

    def snapshot(self, now):
        return list(
            Show.objects.filter(has_ended=False, start_at__lte=now)
            .only('id', 'start_at', 'end_at', 'has_started', 'has_ended')
        )

    def tick(self):
        now = self.clock.now()
        changes = plan_lifecycle_changes(now, self.snapshot(now))

        for show_id in changes.to_start:
            self.show_service.start_show(show_id)
        for show_id in changes.to_end:
            self.show_service.end_show(show_id)

        if not changes.is_empty:
            logger.info(
                f"Lifecycle sweep at {now:%Y-%m-%d %H:%M:%S}: started {list(changes.to_start)}, "
                f"ended {list(changes.to_end)}"
            )
        return changes


class MovieService:

    EDITABLE_FIELDS = (
        'title', 'description', 'genre', 'duration', 'release_date', 'age_restriction',
        'director', 'cast', 'image_url', 'trailer_url', 'imdb_rating', 'is_active',
    )

    def _clean_fields(self, fields):
        unknown = set(fields) - set(self.EDITABLE_FIELDS)
        if unknown:
            raise BookingValidationError(f"Fields cannot be updated: {sorted(unknown)}")

        if 'title' in fields:
            fields['title'] = (fields['title'] or '').strip()
            if not fields['title']:
                raise BookingValidationError("Movie title is required")
        if 'duration' in fields and (fields['duration'] is None or fields['duration'] < 1):
            raise BookingValidationError("Duration must be a positive number of minutes")
        if 'age_restriction' in fields and fields['age_restriction'] not in dict(Movie.AGE_RESTRICTIONS):
            raise BookingValidationError(f"Unknown age restriction {fields['age_restriction']!r}")
        if 'imdb_rating' in fields and not 0 <= fields['imdb_rating'] <= 10:
            raise BookingValidationError("IMDb rating must be between 0 and 10")
        return fields

    def create_movie(self, title, **fields):
        fields = self._clean_fields(dict(fields, title=title))
        movie = Movie.objects.create(**fields)
        logger.info(f"Movie {movie.pk} '{movie.title}' created")
        return movie

    def get_movie(self, movie_id):
        movie = Movie.objects.filter(pk=movie_id).first()
        if movie is None:
            raise NotFoundError(f"Movie {movie_id} not found")
        return movie

    def list_movies(self, active_only=False):
        movies = Movie.objects.all()
        if active_only:
            movies = movies.filter(is_active=True)
        return list(movies)

    def update_movie(self, movie_id, **fields):
        fields = self._clean_fields(fields)
        movie = Movie.objects.filter(pk=movie_id).first()
        if movie is None:
            return False

        for name, value in fields.items():
            setattr(movie, name, value)
        movie.save()
        return True

    def delete_movie(self, movie_id):
        movie = Movie.objects.filter(pk=movie_id).first()
        if movie is None:
            return False

        try:
            movie.delete()
        except ProtectedError:
            raise ConflictError(f"Movie {movie_id} still has scheduled shows")

        logger.info(f"Movie {movie_id} deleted")
        return True


def _clean_star_rating(star_rating):
    if not 1 <= star_rating <= 5:
        raise BookingValidationError("Star rating must be between 1 and 5")
    return star_rating


class ReviewService:

    def get_review(self, review_id):
        review = Review.objects.select_related('movie').filter(pk=review_id).first()
        if review is None:
            raise NotFoundError(f"Review {review_id} not found")
        return review

    def list_reviews(self, movie_id=None):
        reviews = Review.objects.all()
        if movie_id is not None:
            reviews = reviews.filter(movie_id=movie_id)
        return list(reviews)

    def add_review(self, movie_id, star_rating, comment='', user_id=None):
        star_rating = _clean_star_rating(star_rating)
        if user_id is not None and not get_user_model().objects.filter(pk=user_id).exists():
            raise NotFoundError(f"User {user_id} not found")

        with transaction.atomic():
            movie = Movie.objects.select_for_update().filter(pk=movie_id).first()
            if movie is None:
                raise NotFoundError(f"Movie {movie_id} not found")
            review = Review.objects.create(movie=movie, user_id=user_id, comment=comment, star_rating=star_rating)
            movie.refresh_rating()
        return review

    def update_review(self, review_id, star_rating=None, comment=None):
        if star_rating is not None:
            star_rating = _clean_star_rating(star_rating)

        with transaction.atomic():
            review = Review.objects.filter(pk=review_id).first()
            if review is None:
                return False
            movie = Movie.objects.select_for_update().get(pk=review.movie_id)

            if star_rating is not None:
                review.star_rating = star_rating
            if comment is not None:
                review.comment = comment
            review.save()
            movie.refresh_rating()
        return True

    def delete_review(self, review_id):
        with transaction.atomic():
            review = Review.objects.filter(pk=review_id).first()
            if review is None:
                return False
            movie = Movie.objects.select_for_update().get(pk=review.movie_id)

            review.delete()
            movie.refresh_rating()
        return True
