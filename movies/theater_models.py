from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models


class Room(models.Model):
    name = models.CharField(max_length=100)

    # Derived from the seat count once seats exist, see RoomService.recalculate_capacity
    capacity = models.IntegerField(default=0, validators=[MinValueValidator(0)])

    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Seat(models.Model):
    STANDARD = 'Standard'
    PREMIUM = 'Premium'
    VIP = 'VIP'

    SEAT_TYPES = [
        (STANDARD, 'Standard'),
        (PREMIUM, 'Premium'),
        (VIP, 'VIP'),
    ]

    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name='seats')

    row = models.CharField(max_length=1)  # A, B, C...
    seat_number = models.PositiveIntegerField()

    seat_type = models.CharField(max_length=20, choices=SEAT_TYPES, default=STANDARD)
    is_available = models.BooleanField(default=True)

    class Meta:
        ordering = ['room', 'row', 'seat_number']
        constraints = [
            models.UniqueConstraint(
                fields=['room', 'row', 'seat_number'],
                name='unique_seat_position_per_room',
            ),
        ]

    def __str__(self):
        return f"{self.room.name} - {self.label}"

    @property
    def label(self):
        return f"{self.row}{self.seat_number}"


class Show(models.Model):
    movie = models.ForeignKey('movies.Movie', on_delete=models.PROTECT, related_name='shows')
    room = models.ForeignKey(Room, on_delete=models.PROTECT, related_name='shows')

    start_at = models.DateTimeField(db_index=True)
    end_at = models.DateTimeField(db_index=True)

    language = models.CharField(max_length=50, blank=True)
    subtitle = models.CharField(max_length=50, blank=True)
    is_3d = models.BooleanField(default=False)

    base_price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        default=Decimal('10.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )

    free_seats = models.IntegerField(default=0)

    has_started = models.BooleanField(default=False, db_index=True)
    has_ended = models.BooleanField(default=False, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['start_at']

    def __str__(self):
        return f"{self.movie.title} - {self.room.name} {self.start_at:%Y-%m-%d %H:%M}"

    def get_formatted_time(self):

        return self.start_at.strftime("%I:%M %p")

    def get_formatted_date(self):

        return self.start_at.strftime("%d %b, %Y")
