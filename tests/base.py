"""Object builders shared by the test modules."""

from datetime import timedelta

from django.utils import timezone

from coupons.models import Coupon
from registrations.models import Registration
from tickets.models import PricingTier, Ticket, TicketReservation, TicketType
from tickets.utils import generate_ticket_number


def make_ticket_type(**kw):
    data = {
        "name": "Standard Entry",
        "category": "GENERAL",
        "price_cents": 5000,
        "total_stock": 100,
    }
    data.update(kw)
    return TicketType.objects.create(**data)


def make_tier(ticket_type, **kw):
    data = {"name": "Family pack", "ticket_count": 4, "price_cents": 16000}
    data.update(kw)
    return PricingTier.objects.create(ticket_type=ticket_type, **data)


def make_coupon(**kw):
    data = {
        "code": "SAVE10",
        "name": "Save 10",
        "discount_type": "PERCENTAGE",
        "discount_value": 10,
        "valid_from": timezone.now() - timedelta(days=1),
    }
    data.update(kw)
    return Coupon.objects.create(**data)


def make_registration(**kw):
    data = {
        "first_name": "Maria",
        "last_name": "Borg",
        "email": "maria@example.com",
        "phone": "+35699123456",
        "status": "PENDING",
    }
    data.update(kw)
    return Registration.objects.create(**data)


def make_ticket(registration, ticket_type=None, **kw):
    data = {
        "ticket_number": generate_ticket_number(registration.is_ems_client),
        "sequence": registration.tickets.count() + 1,
    }
    data.update(kw)
    return Ticket.objects.create(registration=registration, ticket_type=ticket_type, **data)


def make_hold(ticket_type, registration=None, qty=1, minutes=30, **kw):
    return TicketReservation.objects.create(
        registration=registration,
        ticket_type=ticket_type,
        qty=qty,
        unit_price_cents=ticket_type.price_cents,
        line_total_cents=ticket_type.price_cents * qty,
        expires_at=timezone.now() + timedelta(minutes=minutes),
        **kw,
    )


def form_data(**kw):
    """cleaned_data as produced by RegistrationForm."""
    data = {
        "first_name": "Joseph",
        "last_name": "Camilleri",
        "email": "joseph@example.com",
        "phone": "+35679111222",
        "id_card_number": "",
        "is_ems_client": False,
        "company_name": "",
        "ems_customer_id": "",
        "account_manager": "",
        "order_number": "",
        "panel_interest": False,
        "accept_terms": True,
        "accept_privacy_policy": True,
    }
    data.update(kw)
    return data
