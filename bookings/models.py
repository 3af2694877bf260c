from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .exceptions import InvalidTicketTransitionError


class Discount(models.Model):
    code = models.CharField(max_length=50, unique=True)
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
    )
    valid_until = models.DateTimeField()
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} ({self.percentage}%)"

    @staticmethod
    def normalize_code(code):
        return (code or '').strip().upper()

    def save(self, *args, **kwargs):
        self.code = self.normalize_code(self.code)
        super().save(*args, **kwargs)

    def is_valid(self, now=None):
        now = now or timezone.now()
        return self.is_active and now <= self.valid_until


class Order(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='orders')
    discount = models.ForeignKey(Discount, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')

    total_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    external_payment_id = models.CharField(max_length=100, unique=True, null=True, blank=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    confirmation_email_sent = models.BooleanField(default=False, help_text="Track if confirmation email was sent")
    late_payment_email_sent = models.BooleanField(default=False, help_text="Track if late payment notice was sent")

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Order {self.pk} - {self.user}"

    def ticket_sum(self):
        total = self.tickets.aggregate(total=models.Sum('price'))['total']
        return total if total is not None else Decimal('0.00')


class Ticket(models.Model):

    class State(models.TextChoices):
        AVAILABLE = 'AVAILABLE', 'Available'
        RESERVED = 'RESERVED', 'Reserved'
        BOOKED = 'BOOKED', 'Booked'
        INVALID = 'INVALID', 'Invalid'

    # Nothing ever goes back to RESERVED once booked or invalidated
    TRANSITIONS = {
        State.AVAILABLE: {State.RESERVED, State.INVALID},
        State.RESERVED: {State.BOOKED, State.INVALID},
        State.BOOKED: {State.INVALID},
        State.INVALID: set(),
    }

    show = models.ForeignKey('movies.Show', on_delete=models.CASCADE, related_name='tickets')
    seat = models.ForeignKey('movies.Seat', on_delete=models.PROTECT, related_name='tickets')
    order = models.ForeignKey(Order, on_delete=models.CASCADE, null=True, blank=True, related_name='tickets')

    # Snapshots taken at creation; later seat or show edits do not touch sold tickets
    seat_type = models.CharField(max_length=20)
    price = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'))

    state = models.CharField(max_length=20, choices=State.choices, default=State.RESERVED, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['show', 'seat']
        constraints = [
            models.UniqueConstraint(
                fields=['show', 'seat'],
                condition=~Q(state='INVALID'),
                name='unique_active_ticket_per_show_seat',
            ),
        ]

    def __str__(self):
        return f"Ticket {self.pk} [{self.state}]"

    @classmethod
    def sources_for(cls, target):
        return [state for state, targets in cls.TRANSITIONS.items() if target in targets]

    def can_transition(self, target):
        return target in self.TRANSITIONS.get(self.state, set())

    def transition_to(self, target):
        if not self.can_transition(target):
            raise InvalidTicketTransitionError(
                f"Ticket {self.pk} cannot move from {self.state} to {target}"
            )
        self.state = target
        self.save(update_fields=['state', 'updated_at'])
        return self


class Transaction(models.Model):

    TRANSACTION_STATUS = (
        ('SUCCESS', 'Success'),
        ('LATE', 'Late'),
        ('IGNORED', 'Ignored'),
    )

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='transactions')
    external_payment_id = models.CharField(max_length=100, db_index=True)
    event_type = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=TRANSACTION_STATUS, default='SUCCESS')
    payment_gateway = models.CharField(max_length=50, default='PAYPAL')
    gateway_response = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.external_payment_id} - {self.status}"
