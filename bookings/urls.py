from django.urls import path
from . import views, webhooks

app_name = 'bookings'

urlpatterns = [
    path('orders/', views.orders, name='orders'),
    path('orders/<int:order_id>/', views.order_detail, name='order_detail'),
    path('orders/<int:order_id>/discount/', views.apply_discount, name='apply_discount'),
    path('orders/<int:order_id>/resend-confirmation/', views.resend_confirmation, name='resend_confirmation'),

    path('tickets/<int:ticket_id>/', views.ticket_detail, name='ticket_detail'),
    path('tickets/<int:ticket_id>/qr/', views.ticket_qr, name='ticket_qr'),

    path('discounts/', views.discounts, name='discounts'),
    path('discounts/<str:code>/', views.discount_detail, name='discount_detail'),

    path('paypal-webhook/', webhooks.paypal_webhook, name='paypal_webhook'),
]
