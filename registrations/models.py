import uuid
from django.conf import settings
from django.db import models


class Registration(models.Model):
    STATUS_CHOICES = [
        ("PENDING", "Pending approval"),
        ("VERIFIED", "Verified"),
        ("PAYMENT_PENDING", "Payment pending"),
        ("COMPLETED", "Completed"),
        ("REJECTED", "Rejected"),
        ("CANCELLED", "Cancelled"),
    ]
    reference = models.UUIDField(default=uuid.uuid4, unique=True, editable=False, db_index=True)
    first_name = models.CharField(max_length=80)
    last_name = models.CharField(max_length=80)
    email = models.EmailField(db_index=True)
    phone = models.CharField(max_length=40)
    id_card_number = models.CharField(max_length=40, blank=True)
    is_ems_client = models.BooleanField(default=False)
    company_name = models.CharField(max_length=160, blank=True)
    ems_customer_id = models.CharField(max_length=60, blank=True)
    account_manager = models.CharField(max_length=120, blank=True)
    order_number = models.CharField(max_length=60, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING", db_index=True)

    original_amount_cents = models.PositiveIntegerField(default=0)
    discount_amount_cents = models.PositiveIntegerField(default=0)
    final_amount_cents = models.PositiveIntegerField(default=0)
    applied_coupon = models.ForeignKey("coupons.Coupon", null=True, blank=True,
                                       on_delete=models.SET_NULL, related_name="registrations")
    applied_coupon_code = models.CharField(max_length=20, blank=True)

    admin_notes = models.TextField(blank=True)
    rejected_reason = models.TextField(blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True,
                                    on_delete=models.SET_NULL, related_name="registrations_verified")
    terms_accepted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def customer_type(self):
        return "EMS client" if self.is_ems_client else "Public"

    def __str__(self):
        return f"{self.full_name} <{self.email}> [{self.status}]"


class PanelInterest(models.Model):
    INTEREST_CHOICES = [
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("URGENT", "Urgent"),
    ]
    LEAD_STATUS_CHOICES = [
        ("NEW", "New"),
        ("CONTACTED", "Contacted"),
        ("QUALIFIED", "Qualified"),
        ("CONVERTED", "Converted"),
        ("LOST", "Lost"),
        ("CLOSED", "Closed"),
    ]
    registration = models.ForeignKey(Registration, on_delete=models.CASCADE, related_name="panel_interests")
    panel_type = models.CharField(max_length=80, default="SOLAR_PANEL")
    interest_level = models.CharField(max_length=10, choices=INTEREST_CHOICES, default="MEDIUM")
    estimated_budget = models.CharField(max_length=80, blank=True)
    timeframe = models.CharField(max_length=80, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=12, choices=LEAD_STATUS_CHOICES, default="NEW", db_index=True)
    assigned_to = models.CharField(max_length=120, blank=True)
    follow_up_date = models.DateField(null=True, blank=True)
    last_contact_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["registration", "panel_type"], name="uniq_panel_interest_per_registration"),
        ]

    def __str__(self):
        return f"{self.registration.full_name} / {self.panel_type} ({self.status})"


class EmailLog(models.Model):
    TYPE_CHOICES = [
        ("REGISTRATION_CONFIRMATION", "Registration confirmation"),
        ("PAYMENT_REQUIRED", "Payment required"),
        ("REGISTRATION_APPROVED", "Registration approved"),
        ("REGISTRATION_REJECTED", "Registration rejected"),
        ("PAYMENT_CONFIRMATION", "Payment confirmation"),
        ("TICKET_DELIVERY", "Ticket delivery"),
    ]
    STATUS_CHOICES = [
        ("SENT", "Sent"),
        ("FAILED", "Failed"),
    ]
    registration = models.ForeignKey(Registration, null=True, blank=True,
                                     on_delete=models.SET_NULL, related_name="email_logs")
    email_type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    subject = models.CharField(max_length=240)
    recipient = models.EmailField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    error_message = models.TextField(blank=True)
    template_used = models.CharField(max_length=120, blank=True)
    sent_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-sent_at"]

    def __str__(self):
        return f"{self.email_type} -> {self.recipient} [{self.status}]"
