from django.urls import path
from . import views

app_name = 'movies'

urlpatterns = [
    path('movies/', views.movies, name='movies'),
    path('movies/<int:movie_id>/', views.movie_detail, name='movie_detail'),
    path('movies/<int:movie_id>/reviews/', views.movie_reviews, name='movie_reviews'),
    path('reviews/<int:review_id>/', views.review_detail, name='review_detail'),

    path('rooms/', views.rooms, name='rooms'),
    path('rooms/<int:room_id>/', views.room_detail, name='room_detail'),
    path('rooms/<int:room_id>/layout/', views.room_layout, name='room_layout'),
    path('rooms/<int:room_id>/seats/', views.room_seats, name='room_seats'),
    path('rooms/<int:room_id>/rows/<str:row>/availability/', views.row_availability, name='row_availability'),

    path('shows/', views.shows, name='shows'),
    path('shows/<int:show_id>/', views.show_detail, name='show_detail'),
    path('shows/<int:show_id>/start/', views.start_show, name='start_show'),
]
