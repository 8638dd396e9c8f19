from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone
import uuid
from datetime import timedelta
from django.conf import settings

RESERVE_TTL_MIN = getattr(settings, "RESERVE_TTL_MIN", 30)  # how long a booking hold lasts before auto-release


class TicketType(models.Model):
    CATEGORY_CHOICES = [
        ("GENERAL", "General"),
        ("VIP", "VIP"),
        ("VR_EXPERIENCE", "VR Experience"),
    ]
    PRICING_CHOICES = [
        ("FIXED", "Fixed"),
        ("TIERED", "Tiered"),
    ]
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default="GENERAL")
    pricing_type = models.CharField(max_length=10, choices=PRICING_CHOICES, default="FIXED")
    price_cents = models.PositiveIntegerField(default=0)
    total_stock = models.PositiveIntegerField(default=0)      # total available
    min_per_order = models.PositiveIntegerField(default=1)
    max_per_order = models.PositiveIntegerField(default=10)
    ems_clients_only = models.BooleanField(default=False)
    public_only = models.BooleanField(default=False)
    featured = models.BooleanField(default=False)
    sort_order = models.IntegerField(default=0)
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)
    active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sort_order", "name"]

    def is_on_sale(self):
        now = timezone.now()
        if not self.active:
            return False
        if self.available_from and now < self.available_from:
            return False
        if self.available_until and now > self.available_until:
            return False
        return True

    def reserved_qty(self):
        return self.reservations.live().aggregate(models.Sum("qty"))["qty__sum"] or 0

    def sold_qty(self):
        return self.tickets.exclude(status="CANCELLED").count()

    def remaining(self):
        return max(0, self.total_stock - self.sold_qty() - self.reserved_qty())

    def open_to(self, is_ems_client):
        if self.ems_clients_only and not is_ems_client:
            return False
        if self.public_only and is_ems_client:
            return False
        return True

    def stock_summary(self):
        sold = self.sold_qty()
        reserved = self.reserved_qty()
        return {
            "total": self.total_stock,
            "sold": sold,
            "reserved": reserved,
            "available": max(0, self.total_stock - sold - reserved),
        }

    def __str__(self):
        return self.name


class PricingTier(models.Model):
    """Bundle price: `ticket_count` tickets of the parent type for `price_cents`."""
    ticket_type = models.ForeignKey(TicketType, on_delete=models.CASCADE, related_name="tiers")
    name = models.CharField(max_length=120)
    ticket_count = models.PositiveIntegerField(default=1)
    price_cents = models.PositiveIntegerField()
    sort_order = models.IntegerField(default=0)
    popular = models.BooleanField(default=False)
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ["sort_order", "ticket_count"]

    @property
    def price_per_ticket_cents(self):
        if not self.ticket_count:
            return 0
        return self.price_cents // self.ticket_count

    @property
    def savings_cents(self):
        full = self.ticket_count * self.ticket_type.price_cents
        return max(0, full - self.price_cents)

    @property
    def savings_percent(self):
        full = self.ticket_count * self.ticket_type.price_cents
        if not full:
            return 0
        return round(self.savings_cents * 100 / full)

    def __str__(self):
        return f"{self.ticket_type.name} / {self.name}"


class ReservationQuerySet(models.QuerySet):
    def live(self):
        """
        Holds that still take stock: unexpired ones, plus any hold bound to a Stripe
        checkout whose registration has not been paid or cancelled yet.
        """
        open_checkout = Q(registration__status="PAYMENT_PENDING") & ~Q(stripe_session_id="")
        return self.filter(Q(expires_at__gt=timezone.now()) | open_checkout, fulfilled=False)


class TicketReservation(models.Model):
    """
    Short-lived hold for inventory. Fulfilled once payment succeeds.
    """
    registration = models.ForeignKey("registrations.Registration", on_delete=models.CASCADE,
                                     null=True, blank=True, related_name="reservations")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.CASCADE, related_name="reservations")
    tier = models.ForeignKey(PricingTier, null=True, blank=True, on_delete=models.SET_NULL,
                             related_name="reservations")
    qty = models.PositiveIntegerField()                  # tickets, not bundles
    unit_price_cents = models.PositiveIntegerField(default=0)
    line_total_cents = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    fulfilled = models.BooleanField(default=False)
    stripe_session_id = models.CharField(max_length=255, blank=True, db_index=True)

    objects = ReservationQuerySet.as_manager()

    def is_live(self):
        if self.fulfilled:
            return False
        if self.expires_at > timezone.now():
            return True
        return bool(self.stripe_session_id and self.registration_id
                    and self.registration.status == "PAYMENT_PENDING")

    @staticmethod
    def _refuse_if_unavailable(tt, qty, is_ems_client):
        from .services import StockError

        if not tt.is_on_sale():
            raise StockError(f"{tt.name} is not on sale.")
        if not tt.open_to(is_ems_client):
            raise StockError(f"{tt.name} is not available for this customer type.")
        if qty < tt.min_per_order:
            raise StockError(f"Minimum {tt.min_per_order} per order for {tt.name}.")
        if tt.max_per_order and qty > tt.max_per_order:
            raise StockError(f"Max {tt.max_per_order} per order for {tt.name}.")
        if qty <= 0 or qty > tt.remaining():
            raise StockError(f"Insufficient inventory for {tt.name}.")

    @classmethod
    def create_reservations(cls, lines, registration=None, is_ems_client=False, stripe_session_id=""):
        """
        Hold stock for priced lines from coupons.services.resolve_selections
        ({"tt", "tier", "qty", "unit_price_cents", "line_total_cents"}).

        Ticket type rows stay locked until the caller's transaction ends, so two
        bookings cannot both take the last tickets.
        """
        from .services import StockError

        per_type = {}
        for line in lines:
            per_type[line["tt"].pk] = per_type.get(line["tt"].pk, 0) + line["qty"]

        with transaction.atomic():
            locked = {tt.pk: tt for tt in TicketType.objects.select_for_update().filter(pk__in=per_type)}
            for pk, qty in per_type.items():
                if pk not in locked:
                    raise StockError("Ticket is not on sale.")
                cls._refuse_if_unavailable(locked[pk], qty, is_ems_client)

            until = timezone.now() + timedelta(minutes=RESERVE_TTL_MIN)
            return [
                cls.objects.create(
                    registration=registration,
                    ticket_type=locked[line["tt"].pk],
                    tier=line.get("tier"),
                    qty=line["qty"],
                    unit_price_cents=line.get("unit_price_cents", 0),
                    line_total_cents=line.get("line_total_cents", 0),
                    expires_at=until,
                    stripe_session_id=stripe_session_id,
                )
                for line in lines
            ]

    def __str__(self):
        return f"{self.qty} x {self.ticket_type.name} (reg {self.registration_id})"


class Ticket(models.Model):
    STATUS_CHOICES = [
        ("GENERATED", "Generated"),
        ("SENT", "Sent"),
        ("COLLECTED", "Collected"),
        ("USED", "Used"),
        ("CANCELLED", "Cancelled"),
        ("EXPIRED", "Expired"),
    ]
    registration = models.ForeignKey("registrations.Registration", on_delete=models.CASCADE, related_name="tickets")
    ticket_type = models.ForeignKey(TicketType, null=True, blank=True, on_delete=models.PROTECT, related_name="tickets")
    ticket_number = models.CharField(max_length=40, unique=True)
    qr_token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False, db_index=True)
    sequence = models.PositiveIntegerField(default=1)
    purchase_price_cents = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default="GENERATED", db_index=True)
    issued_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    collected_at = models.DateTimeField(null=True, blank=True)
    collected_by = models.CharField(max_length=120, blank=True)
    checked_in_at = models.DateTimeField(null=True, blank=True)
    issued_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True,
                                  on_delete=models.SET_NULL, related_name="tickets_issued")

    class Meta:
        ordering = ["registration_id", "sequence"]

    def is_checked_in(self) -> bool:
        return self.status == "USED"

    @property
    def verify_url(self):
        from .utils import verify_url
        return verify_url(self.ticket_number)

    def __str__(self):
        return self.ticket_number


class TicketCheckIn(models.Model):
    ticket = models.OneToOneField(Ticket, on_delete=models.CASCADE, related_name="check_in")
    checked_in_at = models.DateTimeField(default=timezone.now)
    staff = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True,
                              on_delete=models.SET_NULL, related_name="check_ins")
    staff_label = models.CharField(max_length=120, blank=True)
    location = models.CharField(max_length=120, blank=True, default="Main Entrance")
    notes = models.CharField(max_length=240, blank=True)

    def __str__(self):
        return f"{self.ticket.ticket_number} @ {self.checked_in_at:%Y-%m-%d %H:%M}"
