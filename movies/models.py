from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Avg, Count


class Movie(models.Model):

    AGE_RESTRICTIONS = [
        (0, 'FSK 0'),
        (6, 'FSK 6'),
        (12, 'FSK 12'),
        (16, 'FSK 16'),
        (18, 'FSK 18'),
    ]

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    genre = models.CharField(max_length=100, blank=True)
    duration = models.IntegerField(default=120, help_text="Duration in minutes")
    release_date = models.DateField(null=True, blank=True)

    age_restriction = models.IntegerField(choices=AGE_RESTRICTIONS, default=12)

    director = models.CharField(max_length=200, blank=True)
    cast = models.TextField(blank=True, help_text="Comma separated list of actors")

    image_url = models.URLField(blank=True)
    trailer_url = models.URLField(blank=True)
    imdb_rating = models.FloatField(default=0.0)

    # Average of user reviews, see refresh_rating
    rating = models.FloatField(default=0.0)
    rating_count = models.IntegerField(default=0)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return self.title

    def refresh_rating(self):
        stats = self.reviews.aggregate(average=Avg('star_rating'), count=Count('id'))
        self.rating = round(stats['average'] or 0.0, 1)
        self.rating_count = stats['count']
        self.save(update_fields=['rating', 'rating_count', 'updated_at'])


class Review(models.Model):
    movie = models.ForeignKey(Movie, on_delete=models.CASCADE, related_name='reviews')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviews'
    )

    comment = models.TextField(blank=True)
    star_rating = models.IntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.movie.title} - {self.star_rating}/5"


from .theater_models import Room, Seat, Show  # noqa: E402,F401
