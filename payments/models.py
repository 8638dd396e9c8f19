from django.db import models


class Payment(models.Model):
    STATUS_CHOICES = [
        ("PENDING", "Pending"),
        ("SUCCEEDED", "Succeeded"),
        ("FAILED", "Failed"),
        ("CANCELLED", "Cancelled"),
        ("REFUND_DUE", "Refund due"),
        ("REFUNDED", "Refunded"),
    ]
    registration = models.OneToOneField("registrations.Registration", on_delete=models.CASCADE, related_name="payment")
    stripe_session_id = models.CharField(max_length=255, unique=True)
    stripe_payment_intent = models.CharField(max_length=255, blank=True, db_index=True)
    amount_cents = models.PositiveIntegerField(default=0)
    original_amount_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="eur")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="PENDING", db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.registration_id} {self.amount_cents/100:.2f} {self.currency.upper()} [{self.status}]"


class StripeEvent(models.Model):
    """Idempotency: store processed Stripe event IDs so we never double-handle."""
    event_id = models.CharField(max_length=200, unique=True)
    type = models.CharField(max_length=120)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.type} {self.event_id}"
