from django.http import JsonResponse
from django.utils.dateparse import parse_date, parse_datetime
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from bookings.exceptions import BookingValidationError, NotFoundError
from bookings.utils import read_bool, read_int, read_json_body

from .services import MovieService, ReviewService, RoomService, SeatService, ShowService


def movie_to_dict(movie):
    return {
        'id': movie.pk,
        'title': movie.title,
        'description': movie.description,
        'genre': movie.genre,
        'duration': movie.duration,
        'release_date': movie.release_date.isoformat() if movie.release_date else None,
        'age_restriction': movie.age_restriction,
        'director': movie.director,
        'cast': movie.cast,
        'image_url': movie.image_url,
        'trailer_url': movie.trailer_url,
        'imdb_rating': movie.imdb_rating,
        'rating': movie.rating,
        'rating_count': movie.rating_count,
        'is_active': movie.is_active,
    }


def review_to_dict(review):
    return {
        'id': review.pk,
        'movie_id': review.movie_id,
        'user_id': review.user_id,
        'comment': review.comment,
        'star_rating': review.star_rating,
        'created_at': review.created_at.isoformat(),
    }


def room_to_dict(room):
    return {
        'id': room.pk,
        'name': room.name,
        'capacity': room.capacity,
        'is_available': room.is_available,
    }


def seat_to_dict(seat):
    return {
        'id': seat.pk,
        'room_id': seat.room_id,
        'row': seat.row,
        'seat_number': seat.seat_number,
        'label': seat.label,
        'seat_type': seat.seat_type,
        'is_available': seat.is_available,
    }


def show_to_dict(show):
    return {
        'id': show.pk,
        'movie_id': show.movie_id,
        'room_id': show.room_id,
        'start_at': show.start_at.isoformat(),
        'end_at': show.end_at.isoformat(),
        'language': show.language,
        'subtitle': show.subtitle,
        'is_3d': show.is_3d,
        'base_price': str(show.base_price),
        'free_seats': show.free_seats,
        'has_started': show.has_started,
        'has_ended': show.has_ended,
    }


def _required(data, *names):
    missing = [name for name in names if data.get(name) in (None, '')]
    if missing:
        raise BookingValidationError(f"Missing fields: {', '.join(missing)}")


def _datetime(value, name):
    parsed = parse_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        raise BookingValidationError(f"{name} must be an ISO 8601 datetime")
    return parsed


def _movie_fields(data):
    fields = {key: value for key, value in data.items() if key in MovieService.EDITABLE_FIELDS}
    for name in ('duration', 'age_restriction'):
        if name in fields:
            fields[name] = read_int(fields[name], name)
    if 'is_active' in fields:
        fields['is_active'] = read_bool(fields['is_active'], 'is_active')
    if 'imdb_rating' in fields:
        try:
            fields['imdb_rating'] = float(fields['imdb_rating'])
        except (TypeError, ValueError):
            raise BookingValidationError("imdb_rating must be a number")
    if fields.get('release_date') is not None:
        release_date = parse_date(fields['release_date']) if isinstance(fields['release_date'], str) else None
        if release_date is None:
            raise BookingValidationError("release_date must be an ISO 8601 date")
        fields['release_date'] = release_date
    return fields


def _show_fields(data):
    fields = {key: value for key, value in data.items() if key in ShowService.EDITABLE_FIELDS}
    for name in ('movie_id', 'room_id'):
        if name in fields:
            fields[name] = read_int(fields[name], name)
    for name in ('start_at', 'end_at'):
        if name in fields:
            fields[name] = _datetime(fields[name], name)
    if 'is_3d' in fields:
        fields['is_3d'] = read_bool(fields['is_3d'], 'is_3d')
    return fields


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def movies(request):
    service = MovieService()
    if request.method == 'GET':
        active_only = request.GET.get('active') == 'true'
        return JsonResponse({'movies': [movie_to_dict(movie) for movie in service.list_movies(active_only)]})

    data = read_json_body(request)
    _required(data, 'title')
    fields = _movie_fields(data)
    movie = service.create_movie(fields.pop('title'), **fields)
    return JsonResponse(movie_to_dict(movie), status=201)


@csrf_exempt
@require_http_methods(['GET', 'PATCH', 'DELETE'])
def movie_detail(request, movie_id):
    service = MovieService()
    if request.method == 'GET':
        return JsonResponse(movie_to_dict(service.get_movie(movie_id)))

    if request.method == 'DELETE':
        if not service.delete_movie(movie_id):
            raise NotFoundError(f"Movie {movie_id} not found")
        return JsonResponse({'success': True})

    if not service.update_movie(movie_id, **_movie_fields(read_json_body(request))):
        raise NotFoundError(f"Movie {movie_id} not found")
    return JsonResponse(movie_to_dict(service.get_movie(movie_id)))


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def movie_reviews(request, movie_id):
    service = ReviewService()
    if request.method == 'GET':
        return JsonResponse({'reviews': [review_to_dict(review) for review in service.list_reviews(movie_id)]})

    data = read_json_body(request)
    _required(data, 'star_rating')
    user_id = data.get('user_id')
    review = service.add_review(
        movie_id,
        star_rating=read_int(data['star_rating'], 'star_rating'),
        comment=data.get('comment', ''),
        user_id=read_int(user_id, 'user_id') if user_id is not None else None,
    )
    return JsonResponse(review_to_dict(review), status=201)


@csrf_exempt
@require_http_methods(['GET', 'PATCH', 'DELETE'])
def review_detail(request, review_id):
    service = ReviewService()
    if request.method == 'GET':
        return JsonResponse(review_to_dict(service.get_review(review_id)))

    if request.method == 'DELETE':
        if not service.delete_review(review_id):
            raise NotFoundError(f"Review {review_id} not found")
        return JsonResponse({'success': True})

    data = read_json_body(request)
    star_rating = data.get('star_rating')
    updated = service.update_review(
        review_id,
        star_rating=read_int(star_rating, 'star_rating') if star_rating is not None else None,
        comment=data.get('comment'),
    )
    if not updated:
        raise NotFoundError(f"Review {review_id} not found")
    return JsonResponse(review_to_dict(service.get_review(review_id)))


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def rooms(request):
    if request.method == 'GET':
        return JsonResponse({'rooms': [room_to_dict(room) for room in RoomService().list_rooms()]})

    data = read_json_body(request)
    _required(data, 'name')
    capacity = data.get('capacity')
    room = RoomService().create_room(
        name=data['name'],
        capacity=read_int(capacity, 'capacity') if capacity is not None else None,
        is_available=read_bool(data.get('is_available', True), 'is_available'),
    )
    return JsonResponse(room_to_dict(room), status=201)


@csrf_exempt
@require_http_methods(['GET', 'DELETE'])
def room_detail(request, room_id):
    service = RoomService()
    if request.method == 'GET':
        return JsonResponse(room_to_dict(service.get_room(room_id)))

    if not service.delete_room(room_id):
        raise NotFoundError(f"Room {room_id} not found")
    return JsonResponse({'success': True})


@csrf_exempt
@require_POST
def room_layout(request, room_id):
    data = read_json_body(request)
    _required(data, 'rows', 'seats_per_row')
    seats = RoomService().generate_layout(
        room_id,
        rows=read_int(data['rows'], 'rows'),
        seats_per_row=read_int(data['seats_per_row'], 'seats_per_row'),
        seat_type=data.get('seat_type', 'Standard'),
    )
    return JsonResponse({'seats': [seat_to_dict(seat) for seat in seats]}, status=201)


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def room_seats(request, room_id):
    service = SeatService()
    if request.method == 'GET':
        return JsonResponse({'seats': [seat_to_dict(seat) for seat in service.get_seats_for_room(room_id)]})

    data = read_json_body(request)
    _required(data, 'row', 'seat_number')
    seat = service.create_seat(
        room_id,
        row=data['row'],
        seat_number=read_int(data['seat_number'], 'seat_number'),
        seat_type=data.get('seat_type', 'Standard'),
        is_available=read_bool(data.get('is_available', True), 'is_available'),
    )
    return JsonResponse(seat_to_dict(seat), status=201)


@csrf_exempt
@require_POST
def row_availability(request, room_id, row):
    data = read_json_body(request)
    _required(data, 'available')
    count = SeatService().set_availability_for_row(room_id, row, read_bool(data['available'], 'available'))
    return JsonResponse({'updated': count})


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def shows(request):
    service = ShowService()
    if request.method == 'GET':
        room_id = request.GET.get('room')
        if room_id is not None:
            room_id = read_int(room_id, 'room')
        return JsonResponse({'shows': [show_to_dict(show) for show in service.list_shows(room_id=room_id)]})

    data = read_json_body(request)
    _required(data, 'movie_id', 'room_id', 'start_at', 'end_at')
    fields = _show_fields(data)
    show = service.create_show(
        movie_id=fields['movie_id'],
        room_id=fields['room_id'],
        start_at=fields['start_at'],
        end_at=fields['end_at'],
        base_price=fields.get('base_price', '10.00'),
        language=fields.get('language', ''),
        subtitle=fields.get('subtitle', ''),
        is_3d=fields.get('is_3d', False),
    )
    return JsonResponse(show_to_dict(show), status=201)


@csrf_exempt
@require_http_methods(['GET', 'PATCH', 'DELETE'])
def show_detail(request, show_id):
    service = ShowService()
    if request.method == 'GET':
        return JsonResponse(show_to_dict(service.get_show(show_id)))

    if request.method == 'DELETE':
        if not service.delete_show(show_id):
            raise NotFoundError(f"Show {show_id} not found")
        return JsonResponse({'success': True})

    if not service.update_show(show_id, **_show_fields(read_json_body(request))):
        raise NotFoundError(f"Show {show_id} not found")
    return JsonResponse(show_to_dict(service.get_show(show_id)))


@csrf_exempt
@require_POST
def start_show(request, show_id):
    if not ShowService().start_show(show_id):
        raise NotFoundError(f"Show {show_id} not found")
    return JsonResponse(show_to_dict(ShowService().get_show(show_id)))
