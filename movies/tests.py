import json
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth.models import User
from django.test import TestCase

from bookings.exceptions import (
    BookingValidationError,
    ConflictError,
    DuplicateSeatPositionError,
    InvalidTimeRangeError,
    NotFoundError,
    OverlapConflictError,
    RoomNotEmptyError,
)
from bookings.models import Order, Ticket
from .models import Movie, Review
from .services import (
    LifecycleChanges,
    MovieService,
    ReviewService,
    RoomService,
    SeatService,
    ShowService,
    ShowStatusService,
    plan_lifecycle_changes,
)
from .theater_models import Room, Seat, Show

T = datetime(2030, 3, 1, 20, 0, tzinfo=dt_timezone.utc)


class FakeClock:

    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class RoomServiceTests(TestCase):

    def setUp(self):
        self.rooms = RoomService()
        self.seats = SeatService(room_service=self.rooms)
        self.room = self.rooms.create_room('Hall 1', capacity=50)

    def test_generate_layout(self):

        seats = self.rooms.generate_layout(self.room.pk, rows=2, seats_per_row=3)

        self.assertEqual([s.label for s in seats], ['A1', 'A2', 'A3', 'B1', 'B2', 'B3'])
        self.assertEqual(self.rooms.get_room(self.room.pk).capacity, 6)

    def test_layout_for_unknown_room(self):

        with self.assertRaises(NotFoundError):
            self.rooms.generate_layout(9999, rows=1, seats_per_row=1)

    def test_layout_bounds(self):

        with self.assertRaises(BookingValidationError):
            self.rooms.generate_layout(self.room.pk, rows=0, seats_per_row=5)
        with self.assertRaises(BookingValidationError):
            self.rooms.generate_layout(self.room.pk, rows=27, seats_per_row=5)
        with self.assertRaises(BookingValidationError):
            self.rooms.generate_layout(self.room.pk, rows=2, seats_per_row=0)

    def test_overlapping_layout_is_rejected_whole(self):

        self.seats.create_seat(self.room.pk, 'B', 2)

        with self.assertRaises(DuplicateSeatPositionError):
            self.rooms.generate_layout(self.room.pk, rows=2, seats_per_row=3)

        self.assertEqual(Seat.objects.filter(room=self.room).count(), 1)

    def test_capacity_input_ignored_once_seats_exist(self):

        self.seats.create_seat(self.room.pk, 'A', 1)

        self.assertTrue(self.rooms.update_room(self.room.pk, name='Hall One', capacity=500))

        room = self.rooms.get_room(self.room.pk)
        self.assertEqual(room.name, 'Hall One')
        self.assertEqual(room.capacity, 1)

    def test_update_unknown_room(self):

        self.assertFalse(self.rooms.update_room(9999, name='Nope'))

    def test_delete_room(self):

        empty = self.rooms.create_room('Empty')
        self.assertTrue(self.rooms.delete_room(empty.pk))
        self.assertFalse(self.rooms.delete_room(empty.pk))

        self.seats.create_seat(self.room.pk, 'A', 1)
        with self.assertRaises(RoomNotEmptyError):
            self.rooms.delete_room(self.room.pk)
        self.assertTrue(Room.objects.filter(pk=self.room.pk).exists())


class SeatServiceTests(TestCase):

    def setUp(self):
        self.rooms = RoomService()
        self.seats = SeatService(room_service=self.rooms)
        self.room = self.rooms.create_room('Hall 1')

    def test_create_seat_recalculates_capacity(self):

        seat = self.seats.create_seat(self.room.pk, 'a', 1, 'VIP')

        self.assertEqual(seat.row, 'A')
        self.assertEqual(seat.seat_type, 'VIP')
        self.assertEqual(self.rooms.get_room(self.room.pk).capacity, 1)

    def test_duplicate_position(self):

        self.seats.create_seat(self.room.pk, 'A', 1)

        with self.assertRaisesMessage(DuplicateSeatPositionError, 'Seat position already exists in this room.'):
            self.seats.create_seat(self.room.pk, 'A', 1)

    def test_same_position_in_other_room(self):

        other = self.rooms.create_room('Hall 2')
        self.seats.create_seat(self.room.pk, 'A', 1)

        self.assertIsNotNone(self.seats.create_seat(other.pk, 'A', 1))

    def test_create_seat_validation(self):

        with self.assertRaises(NotFoundError):
            self.seats.create_seat(9999, 'A', 1)
        with self.assertRaises(BookingValidationError):
            self.seats.create_seat(self.room.pk, 'AA', 1)
        with self.assertRaises(BookingValidationError):
            self.seats.create_seat(self.room.pk, 'A', 1, 'Sofa')

    def test_update_seat(self):

        seat = self.seats.create_seat(self.room.pk, 'A', 1)
        self.seats.create_seat(self.room.pk, 'A', 2)

        self.assertTrue(self.seats.update_seat(seat.pk, 'A', 1, 'Premium', False))
        with self.assertRaises(DuplicateSeatPositionError):
            self.seats.update_seat(seat.pk, 'A', 2, 'Standard', True)
        self.assertFalse(self.seats.update_seat(9999, 'A', 3, 'Standard', True))

        seat.refresh_from_db()
        self.assertEqual(seat.seat_type, 'Premium')
        self.assertFalse(seat.is_available)

    def test_delete_seat(self):

        seat = self.seats.create_seat(self.room.pk, 'A', 1)

        self.assertTrue(self.seats.delete_seat(seat.pk))
        self.assertFalse(self.seats.delete_seat(seat.pk))
        self.assertEqual(self.rooms.get_room(self.room.pk).capacity, 0)

    def test_seat_with_tickets_cannot_be_deleted(self):

        seat = self.seats.create_seat(self.room.pk, 'A', 1)
        movie = Movie.objects.create(title='Test Movie')
        show = ShowService().create_show(movie.pk, self.room.pk, T, T + timedelta(hours=2))
        Ticket.objects.create(show=show, seat=seat, seat_type='Standard', price=10)

        with self.assertRaises(ConflictError):
            self.seats.delete_seat(seat.pk)

    def test_delete_all_seats_in_room(self):

        self.rooms.generate_layout(self.room.pk, rows=2, seats_per_row=4)

        self.assertEqual(self.seats.delete_all_seats_in_room(self.room.pk), 8)
        self.assertEqual(self.rooms.get_room(self.room.pk).capacity, 0)
        self.assertTrue(self.rooms.delete_room(self.room.pk))

    def test_set_availability_for_row(self):

        self.rooms.generate_layout(self.room.pk, rows=2, seats_per_row=3)

        self.assertEqual(self.seats.set_availability_for_row(self.room.pk, 'b', False), 3)
        self.assertEqual(self.seats.set_availability_for_row(self.room.pk, 'Z', False), 0)
        self.assertEqual(Seat.objects.filter(room=self.room, is_available=False).count(), 3)


class ShowServiceTests(TestCase):

    def setUp(self):
        self.shows = ShowService()
        self.movie = Movie.objects.create(title='Test Movie')
        self.room = RoomService().create_room('Hall 1')
        self.other_room = RoomService().create_room('Hall 2')
        RoomService().generate_layout(self.room.pk, rows=2, seats_per_row=5)
        self.show = self.shows.create_show(self.movie.pk, self.room.pk, T, T + timedelta(hours=2), base_price='12.00')

    def test_show_starts_with_room_capacity(self):

        self.assertEqual(self.show.free_seats, 10)
        self.assertEqual(self.show.base_price, Decimal('12.00'))

    def test_end_must_be_after_start(self):

        with self.assertRaises(InvalidTimeRangeError):
            self.shows.create_show(self.movie.pk, self.room.pk, T + timedelta(days=1), T + timedelta(days=1))

        # checked before the movie and room are even looked up
        with self.assertRaises(InvalidTimeRangeError):
            self.shows.create_show(9999, 9999, T, T - timedelta(minutes=1))

    def test_overlap_in_same_room(self):

        with self.assertRaises(OverlapConflictError):
            self.shows.create_show(self.movie.pk, self.room.pk, T + timedelta(hours=1), T + timedelta(hours=3))
        with self.assertRaises(OverlapConflictError):
            self.shows.create_show(self.movie.pk, self.room.pk, T - timedelta(minutes=30), T + timedelta(hours=3))

    def test_adjacent_and_other_room_shows_are_fine(self):

        self.shows.create_show(self.movie.pk, self.room.pk, T + timedelta(hours=2), T + timedelta(hours=4))
        self.shows.create_show(self.movie.pk, self.other_room.pk, T, T + timedelta(hours=2))

        self.assertEqual(Show.objects.count(), 3)

    def test_negative_price_rejected(self):

        with self.assertRaises(BookingValidationError):
            self.shows.create_show(self.movie.pk, self.room.pk, T + timedelta(days=1), T + timedelta(days=1, hours=2), base_price=-1)

    def test_unknown_movie_or_room(self):

        with self.assertRaises(NotFoundError):
            self.shows.create_show(9999, self.room.pk, T + timedelta(days=1), T + timedelta(days=1, hours=2))
        with self.assertRaises(NotFoundError):
            self.shows.create_show(self.movie.pk, 9999, T + timedelta(days=1), T + timedelta(days=1, hours=2))

    def test_update_show(self):

        later = self.shows.create_show(self.movie.pk, self.room.pk, T + timedelta(hours=3), T + timedelta(hours=5))

        self.assertTrue(self.shows.update_show(self.show.pk, start_at=T + timedelta(minutes=30), end_at=T + timedelta(hours=2, minutes=30)))
        with self.assertRaises(OverlapConflictError):
            self.shows.update_show(later.pk, start_at=T + timedelta(hours=2))
        with self.assertRaises(InvalidTimeRangeError):
            self.shows.update_show(later.pk, end_at=T)
        self.assertFalse(self.shows.update_show(9999, language='German'))

        self.show.refresh_from_db()
        self.assertEqual(self.show.start_at, T + timedelta(minutes=30))

    def test_delete_show_cascades_tickets_and_empty_orders(self):

        user = User.objects.create_user(username='alice', email='alice@example.com')
        order = Order.objects.create(user=user, total_price=Decimal('12.00'))
        seat = Seat.objects.filter(room=self.room).first()
        Ticket.objects.create(show=self.show, seat=seat, order=order, seat_type='Standard', price=Decimal('12.00'))

        self.assertTrue(self.shows.delete_show(self.show.pk))
        self.assertFalse(self.shows.delete_show(self.show.pk))

        self.assertFalse(Ticket.objects.exists())
        self.assertFalse(Order.objects.exists())

    def test_room_with_shows_cannot_be_deleted(self):

        empty_room = RoomService().create_room('Pop-up')
        self.shows.create_show(self.movie.pk, empty_room.pk, T, T + timedelta(hours=1))

        with self.assertRaises(RoomNotEmptyError):
            RoomService().delete_room(empty_room.pk)

    def test_show_with_active_tickets_cannot_change_room(self):

        user = User.objects.create_user(username='alice', email='alice@example.com')
        order = Order.objects.create(user=user, total_price=Decimal('12.00'))
        seat = Seat.objects.filter(room=self.room).first()
        Ticket.objects.create(
            show=self.show, seat=seat, order=order, seat_type='Standard', price=Decimal('12.00'),
            state=Ticket.State.RESERVED,
        )

        with self.assertRaises(ConflictError):
            self.shows.update_show(self.show.pk, room_id=self.other_room.pk)

        self.show.refresh_from_db()
        self.assertEqual(self.show.room_id, self.room.pk)
        self.assertEqual(Ticket.objects.get().seat.room_id, self.show.room_id)

    def test_show_without_tickets_can_change_room(self):

        self.assertTrue(self.shows.update_show(self.show.pk, room_id=self.other_room.pk))

        self.show.refresh_from_db()
        self.assertEqual(self.show.room_id, self.other_room.pk)
        self.assertEqual(self.show.free_seats, 0)

    def test_started_show_cannot_be_edited(self):

        self.shows.start_show(self.show.pk)

        with self.assertRaises(BookingValidationError):
            self.shows.update_show(self.show.pk, start_at=T + timedelta(days=1), end_at=T + timedelta(days=1, hours=2))

        self.show.refresh_from_db()
        self.assertEqual(self.show.start_at, T)


class LifecycleSweepTests(TestCase):

    def setUp(self):
        self.clock = FakeClock(T - timedelta(hours=1))
        self.sweep = ShowStatusService(clock=self.clock)

        movie = Movie.objects.create(title='Test Movie')
        room = RoomService().create_room('Hall 1')
        seats = RoomService().generate_layout(room.pk, rows=1, seats_per_row=2)
        self.show = ShowService().create_show(movie.pk, room.pk, T, T + timedelta(hours=2))

        user = User.objects.create_user(username='alice', email='alice@example.com')
        order = Order.objects.create(user=user)
        self.reserved = Ticket.objects.create(
            show=self.show, seat=seats[0], order=order, seat_type='Standard', price=10, state=Ticket.State.RESERVED
        )
        self.booked = Ticket.objects.create(
            show=self.show, seat=seats[1], order=order, seat_type='Standard', price=10, state=Ticket.State.BOOKED
        )

    def _states(self):
        self.reserved.refresh_from_db()
        self.booked.refresh_from_db()
        return self.reserved.state, self.booked.state

    def test_nothing_happens_before_start(self):

        changes = self.sweep.tick()

        self.assertTrue(changes.is_empty)
        self.assertEqual(self._states(), (Ticket.State.RESERVED, Ticket.State.BOOKED))

    def test_start_invalidates_reservations_only(self):

        self.clock.advance(hours=1)

        changes = self.sweep.tick()

        self.assertEqual(changes, LifecycleChanges(to_start=(self.show.pk,), to_end=()))
        self.assertEqual(self._states(), (Ticket.State.INVALID, Ticket.State.BOOKED))
        self.show.refresh_from_db()
        self.assertTrue(self.show.has_started)
        self.assertFalse(self.show.has_ended)

    def test_repeated_ticks_are_noops(self):

        self.clock.advance(hours=1, minutes=1)
        self.sweep.tick()

        changes = self.sweep.tick()

        self.assertTrue(changes.is_empty)
        self.assertEqual(self._states(), (Ticket.State.INVALID, Ticket.State.BOOKED))

    def test_missed_start_is_caught_up_at_end(self):

        self.clock.advance(hours=4)

        changes = self.sweep.tick()

        self.assertEqual(changes, LifecycleChanges(to_start=(self.show.pk,), to_end=(self.show.pk,)))
        self.show.refresh_from_db()
        self.assertTrue(self.show.has_started)
        self.assertTrue(self.show.has_ended)
        self.assertEqual(self._states(), (Ticket.State.INVALID, Ticket.State.BOOKED))

    def test_start_show_is_idempotent(self):

        service = ShowService()

        self.assertTrue(service.start_show(self.show.pk))
        self.assertTrue(service.start_show(self.show.pk))
        self.assertFalse(service.start_show(9999))
        self.assertEqual(self._states(), (Ticket.State.INVALID, Ticket.State.BOOKED))

    def test_plan_is_pure(self):

        shows = [
            SimpleNamespace(id=1, start_at=T, end_at=T + timedelta(hours=2), has_started=False, has_ended=False),
            SimpleNamespace(id=2, start_at=T - timedelta(hours=3), end_at=T - timedelta(hours=1), has_started=True, has_ended=False),
            SimpleNamespace(id=3, start_at=T + timedelta(hours=1), end_at=T + timedelta(hours=3), has_started=False, has_ended=False),
        ]

        changes = plan_lifecycle_changes(T, shows)

        self.assertEqual(changes.to_start, (1,))
        self.assertEqual(changes.to_end, (2,))
        self.assertEqual(plan_lifecycle_changes(T, shows), changes)
        self.assertTrue(plan_lifecycle_changes(T - timedelta(days=1), shows).is_empty)


class ReviewServiceTests(TestCase):

    def test_review_updates_movie_rating(self):

        movie = Movie.objects.create(title='Test Movie')

        ReviewService().add_review(movie.pk, 5, 'Great')
        ReviewService().add_review(movie.pk, 3)

        movie.refresh_from_db()
        self.assertEqual(movie.rating_count, 2)
        self.assertEqual(movie.rating, 4.0)
        self.assertEqual(Review.objects.filter(movie=movie).count(), 2)

    def test_rating_bounds(self):

        movie = Movie.objects.create(title='Test Movie')

        with self.assertRaises(BookingValidationError):
            ReviewService().add_review(movie.pk, 6)
        with self.assertRaises(NotFoundError):
            ReviewService().add_review(9999, 4)
        with self.assertRaises(NotFoundError):
            ReviewService().add_review(movie.pk, 4, user_id=9999)

    def test_get_and_list_reviews(self):

        movie = Movie.objects.create(title='Test Movie')
        other = Movie.objects.create(title='Other Movie')
        review = ReviewService().add_review(movie.pk, 3, 'Test Review')
        ReviewService().add_review(other.pk, 4)

        found = ReviewService().get_review(review.pk)

        self.assertEqual(found.comment, 'Test Review')
        self.assertEqual(found.star_rating, 3)
        self.assertEqual(len(ReviewService().list_reviews()), 2)
        self.assertEqual([r.pk for r in ReviewService().list_reviews(movie.pk)], [review.pk])
        with self.assertRaises(NotFoundError):
            ReviewService().get_review(9999)

    def test_update_review_recomputes_rating(self):

        movie = Movie.objects.create(title='Test Movie')
        review = ReviewService().add_review(movie.pk, 1, 'Old Comment')
        ReviewService().add_review(movie.pk, 3)

        self.assertTrue(ReviewService().update_review(review.pk, star_rating=5, comment='Updated Comment'))
        self.assertFalse(ReviewService().update_review(9999, star_rating=5))

        review.refresh_from_db()
        movie.refresh_from_db()
        self.assertEqual(review.comment, 'Updated Comment')
        self.assertEqual(movie.rating, 4.0)
        self.assertEqual(movie.rating_count, 2)

    def test_delete_review_recomputes_rating(self):

        movie = Movie.objects.create(title='Test Movie')
        review = ReviewService().add_review(movie.pk, 1)

        self.assertTrue(ReviewService().delete_review(review.pk))
        self.assertFalse(ReviewService().delete_review(review.pk))

        movie.refresh_from_db()
        self.assertEqual(movie.rating, 0.0)
        self.assertEqual(movie.rating_count, 0)
        self.assertFalse(Review.objects.exists())


class MovieServiceTests(TestCase):

    def setUp(self):
        self.movies = MovieService()

    def test_create_movie(self):

        movie = self.movies.create_movie(
            'Inception', description='A dream heist', duration=148, genre='Sci-Fi', age_restriction=12, imdb_rating=8.8
        )

        self.assertEqual(Movie.objects.count(), 1)
        self.assertEqual(self.movies.get_movie(movie.pk).title, 'Inception')
        self.assertEqual(movie.duration, 148)

    def test_create_movie_validation(self):

        with self.assertRaises(BookingValidationError):
            self.movies.create_movie('  ')
        with self.assertRaises(BookingValidationError):
            self.movies.create_movie('Matrix', duration=0)
        with self.assertRaises(BookingValidationError):
            self.movies.create_movie('Matrix', age_restriction=7)
        with self.assertRaises(BookingValidationError):
            self.movies.create_movie('Matrix', imdb_rating=11)
        with self.assertRaises(BookingValidationError):
            self.movies.create_movie('Matrix', budget=100)
        self.assertFalse(Movie.objects.exists())

    def test_get_and_list_movies(self):

        self.movies.create_movie('A')
        self.movies.create_movie('B', is_active=False)

        self.assertEqual([m.title for m in self.movies.list_movies()], ['A', 'B'])
        self.assertEqual([m.title for m in self.movies.list_movies(active_only=True)], ['A'])
        with self.assertRaises(NotFoundError):
            self.movies.get_movie(999)

    def test_update_movie(self):

        movie = self.movies.create_movie('Old Title')

        self.assertTrue(self.movies.update_movie(movie.pk, title='New Title', description='Updated Description', duration=150))
        self.assertFalse(self.movies.update_movie(movie.pk + 1, title='Wrong ID'))

        movie.refresh_from_db()
        self.assertEqual(movie.title, 'New Title')
        self.assertEqual(movie.description, 'Updated Description')
        self.assertEqual(movie.duration, 150)

    def test_delete_movie(self):

        movie = self.movies.create_movie('Delete Me')

        self.assertTrue(self.movies.delete_movie(movie.pk))
        self.assertFalse(self.movies.delete_movie(999))
        self.assertFalse(Movie.objects.exists())

    def test_movie_with_shows_cannot_be_deleted(self):

        movie = self.movies.create_movie('Scheduled')
        room = RoomService().create_room('Hall 1')
        ShowService().create_show(movie.pk, room.pk, T, T + timedelta(hours=2))

        with self.assertRaises(ConflictError):
            self.movies.delete_movie(movie.pk)
        self.assertTrue(Movie.objects.filter(pk=movie.pk).exists())


class MovieViewTests(TestCase):

    def setUp(self):
        self.movie = Movie.objects.create(title='Test Movie')

    def _post(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def test_room_and_layout_endpoints(self):

        response = self._post('/rooms/', {'name': 'Hall 1'})
        self.assertEqual(response.status_code, 201)
        room_id = response.json()['id']

        response = self._post(f'/rooms/{room_id}/layout/', {'rows': 2, 'seats_per_row': 2})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()['seats']), 4)

        response = self._post(f'/rooms/{room_id}/rows/A/availability/', {'available': False})
        self.assertEqual(response.json(), {'updated': 2})

        response = self.client.delete(f'/rooms/{room_id}/')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'RoomNotEmptyError')

    def test_duplicate_seat_is_bad_request(self):

        room = RoomService().create_room('Hall 1')
        self._post(f'/rooms/{room.pk}/seats/', {'row': 'A', 'seat_number': 1})

        response = self._post(f'/rooms/{room.pk}/seats/', {'row': 'A', 'seat_number': 1})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Seat position already exists in this room.')

    def test_show_endpoints(self):

        room = RoomService().create_room('Hall 1')
        payload = {
            'movie_id': self.movie.pk,
            'room_id': room.pk,
            'start_at': '2030-03-01T20:00:00Z',
            'end_at': '2030-03-01T22:00:00Z',
            'base_price': '9.50',
        }

        response = self._post('/shows/', payload)
        self.assertEqual(response.status_code, 201)
        show_id = response.json()['id']

        self.assertEqual(self._post('/shows/', payload).status_code, 409)
        self.assertEqual(self._post('/shows/', dict(payload, end_at='2030-03-01T19:00:00Z')).status_code, 400)

        response = self._post(f'/shows/{show_id}/start/', {})
        self.assertTrue(response.json()['has_started'])

        self.assertEqual(self.client.delete(f'/shows/{show_id}/').status_code, 200)
        self.assertEqual(self.client.get(f'/shows/{show_id}/').status_code, 404)

    def test_malformed_json_is_bad_request(self):

        response = self.client.post('/rooms/', data='{not json', content_type='application/json')

        self.assertEqual(response.status_code, 400)

    def test_wrongly_typed_fields_are_bad_request(self):

        self.assertEqual(self._post('/rooms/', {'name': 'Hall 1', 'capacity': 'big'}).status_code, 400)
        self.assertEqual(self.client.get('/shows/?room=abc').status_code, 400)
        self.assertFalse(Room.objects.exists())

    def test_row_availability_parses_false(self):

        room = RoomService().create_room('Hall 1')
        RoomService().generate_layout(room.pk, rows=1, seats_per_row=2)

        response = self._post(f'/rooms/{room.pk}/rows/A/availability/', {'available': 'false'})

        self.assertEqual(response.json(), {'updated': 2})
        self.assertFalse(Seat.objects.filter(room=room, is_available=True).exists())
        self.assertEqual(self._post(f'/rooms/{room.pk}/rows/A/availability/', {'available': 'nope'}).status_code, 400)

    def test_movie_endpoints(self):

        response = self._post('/movies/', {'title': 'Inception', 'duration': '148', 'release_date': '2010-07-16'})
        self.assertEqual(response.status_code, 201)
        movie_id = response.json()['id']
        self.assertEqual(response.json()['duration'], 148)
        self.assertEqual(response.json()['release_date'], '2010-07-16')

        response = self.client.patch(
            f'/movies/{movie_id}/', data=json.dumps({'title': 'Inception (Re-release)'}), content_type='application/json'
        )
        self.assertEqual(response.json()['title'], 'Inception (Re-release)')

        response = self.client.get('/movies/')
        self.assertEqual(len(response.json()['movies']), 2)

        self.assertEqual(self.client.delete(f'/movies/{movie_id}/').status_code, 200)
        self.assertEqual(self.client.get(f'/movies/{movie_id}/').status_code, 404)
        self.assertEqual(self._post('/movies/', {'title': 'Bad', 'release_date': 'soon'}).status_code, 400)

    def test_review_endpoints(self):

        response = self._post(f'/movies/{self.movie.pk}/reviews/', {'star_rating': 4, 'comment': 'Good'})
        self.assertEqual(response.status_code, 201)
        review_id = response.json()['id']

        response = self.client.patch(
            f'/reviews/{review_id}/', data=json.dumps({'star_rating': 2}), content_type='application/json'
        )
        self.assertEqual(response.json()['star_rating'], 2)
        self.assertEqual(self.client.get(f'/movies/{self.movie.pk}/').json()['rating'], 2.0)

        response = self.client.get(f'/movies/{self.movie.pk}/reviews/')
        self.assertEqual(len(response.json()['reviews']), 1)

        self.assertEqual(self.client.delete(f'/reviews/{review_id}/').status_code, 200)
        self.assertEqual(self.client.delete(f'/reviews/{review_id}/').status_code, 404)
        self.assertEqual(self._post(f'/movies/{self.movie.pk}/reviews/', {'star_rating': 9}).status_code, 400)
