from django.conf import settings
from django.db import models
from django.utils import timezone


class Coupon(models.Model):
    DISCOUNT_CHOICES = [
        ("PERCENTAGE", "Percentage"),
        ("FIXED_AMOUNT", "Fixed amount"),
    ]
    code = models.CharField(max_length=20, unique=True)          # stored upper-case
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=12, choices=DISCOUNT_CHOICES, default="PERCENTAGE")
    discount_value = models.PositiveIntegerField()                # percent, or cents for FIXED_AMOUNT
    min_order_cents = models.PositiveIntegerField(null=True, blank=True)
    max_uses = models.PositiveIntegerField(null=True, blank=True)  # null = unlimited
    max_uses_per_user = models.PositiveIntegerField(default=1)
    current_uses = models.PositiveIntegerField(default=0)         # cached, see services.reconcile_usage
    valid_from = models.DateTimeField(default=timezone.now)
    valid_to = models.DateTimeField(null=True, blank=True)
    ems_clients_only = models.BooleanField(default=False)
    public_only = models.BooleanField(default=False)
    active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True,
                                   on_delete=models.SET_NULL, related_name="coupons_created")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    def is_live(self):
        now = timezone.now()
        return self.active and (not self.valid_from or self.valid_from <= now) and (not self.valid_to or now <= self.valid_to)

    def is_expired(self):
        return bool(self.valid_to and self.valid_to < timezone.now())

    def is_not_yet_valid(self):
        return bool(self.valid_from and self.valid_from > timezone.now())

    def describe_discount(self):
        if self.discount_type == "PERCENTAGE":
            return f"{self.discount_value}% off"
        return f"€{self.discount_value / 100:.2f} off"

    def __str__(self):
        return self.code
