import logging
from django.db import IntegrityError, transaction
from django.db.models import Count, Max
from django.utils import timezone

from .models import Ticket, TicketCheckIn, TicketReservation, TicketType
from .utils import extract_ticket_number, generate_ticket_number

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "EMS Booth - Main Entrance"
BLOCKED_STATUSES = ("USED", "CANCELLED", "EXPIRED")
NUMBER_ATTEMPTS = 5


class StockError(ValueError):
    ...


def _next_sequence(registration):
    top = registration.tickets.aggregate(m=Max("sequence"))["m"]
    return (top or 0) + 1


def _create_ticket(**fields):
    is_ems = fields["registration"].is_ems_client
    for _ in range(NUMBER_ATTEMPTS):
        try:
            with transaction.atomic():
                return Ticket.objects.create(ticket_number=generate_ticket_number(is_ems), **fields)
        except IntegrityError:
            logger.warning("Ticket number collision for registration %s, retrying", fields["registration"].pk)
    raise StockError("Could not allocate a unique ticket number.")


def issue_tickets(registration, ticket_type, quantity, price_cents=0, issued_by=None,
                  status="GENERATED", reservation=None):
    """
    Create `quantity` tickets for a registration.

    The ticket type row is locked and remaining stock re-checked. When fulfilling a
    live reservation the held quantity counts as available to its owner.
    """
    if quantity < 1:
        raise StockError("Quantity must be at least 1.")
    created = []
    with transaction.atomic():
        if ticket_type is not None:
            tt = TicketType.objects.select_for_update().get(pk=ticket_type.pk)
            available = tt.remaining()
            if reservation is not None and reservation.is_live():
                available += reservation.qty
            if quantity > available:
                raise StockError(f"Only {available} {tt.name} ticket(s) left.")
        else:
            tt = None
        seq = _next_sequence(registration)
        user = issued_by if issued_by is not None and issued_by.is_authenticated else None
        for i in range(quantity):
            created.append(_create_ticket(
                registration=registration,
                ticket_type=tt,
                sequence=seq + i,
                purchase_price_cents=price_cents,
                status=status,
                issued_by=user,
            ))
    logger.info("Issued %s ticket(s) for registration %s", len(created), registration.pk)
    return created


def fulfill_reservations(registration, status="GENERATED", issued_by=None):
    """Turn the registration's unfulfilled holds into tickets. Safe to call twice."""
    tickets = []
    with transaction.atomic():
        holds = (TicketReservation.objects
                 .select_for_update()
                 .select_related("ticket_type")
                 .filter(registration=registration, fulfilled=False)
                 .order_by("id"))
        for h in holds:
            tickets += issue_tickets(
                registration, h.ticket_type, h.qty,
                price_cents=h.unit_price_cents,
                issued_by=issued_by,
                status=status,
                reservation=h,
            )
            h.fulfilled = True
            h.save(update_fields=["fulfilled"])
    return tickets


def release_reservations(registration):
    """Drop unfulfilled holds so their stock returns to sale."""
    deleted, _ = TicketReservation.objects.filter(registration=registration, fulfilled=False).delete()
    if deleted:
        logger.info("Released %s reservation(s) for registration %s", deleted, registration.pk)
    return deleted


def mark_sent(tickets):
    ids = [t.pk for t in tickets]
    now = timezone.now()
    Ticket.objects.filter(pk__in=ids, status="GENERATED").update(status="SENT", sent_at=now)
    for t in tickets:
        if t.status == "GENERATED":
            t.status = "SENT"
            t.sent_at = now


def ticket_summary(t):
    reg = t.registration
    return {
        "ticket_number": t.ticket_number,
        "customer_name": f"{reg.first_name} {reg.last_name}".strip(),
        "email": reg.email,
        "is_ems_client": reg.is_ems_client,
        "ticket_type": t.ticket_type.name if t.ticket_type else "Event Access",
        "status": t.status,
    }


def _check_in_data(ci):
    if ci is None:
        return None
    return {
        "timestamp": ci.checked_in_at.isoformat(),
        "location": ci.location,
        "checked_in_by": ci.staff_label,
    }


def verify_ticket(raw, staff=None, location="", check_in=True, notes=""):
    """
    Door check. Returns a dict with valid / can_enter / status / message / ticket / check_in.
    status is one of "ok", "already", "refused", "invalid".
    """
    number = extract_ticket_number(raw)
    if not number:
        return {"valid": False, "can_enter": False, "status": "invalid",
                "message": "Invalid ticket number format", "ticket": None, "check_in": None}

    t = Ticket.objects.select_related("registration", "ticket_type").filter(ticket_number=number).first()
    if not t:
        return {"valid": False, "can_enter": False, "status": "invalid",
                "message": "Ticket not found in system", "ticket": None, "check_in": None}

    reg = t.registration
    if reg.status != "COMPLETED":
        return {"valid": False, "can_enter": False, "status": "refused",
                "message": f"Registration status is {reg.status}. Entry not allowed.",
                "ticket": ticket_summary(t), "check_in": None}

    if t.status in ("CANCELLED", "EXPIRED"):
        return {"valid": False, "can_enter": False, "status": "refused",
                "message": f"Ticket has been {t.status.lower()}",
                "ticket": ticket_summary(t), "check_in": None}

    if t.status == "USED":
        return _already_used(t)

    if not check_in:
        return {"valid": True, "can_enter": True, "status": "ok", "message": "Valid ticket",
                "ticket": ticket_summary(t), "check_in": None}

    user = staff if staff is not None and staff.is_authenticated else None
    label = (user.get_full_name() or user.get_username()) if user else "Staff"
    with transaction.atomic():
        now = timezone.now()
        # compare-and-set: only one scanner can flip the ticket to USED
        won = (Ticket.objects
               .filter(pk=t.pk)
               .exclude(status__in=BLOCKED_STATUSES)
               .update(status="USED", checked_in_at=now))
        if not won:
            ci = None
        else:
            ci = TicketCheckIn.objects.create(
                ticket=t,
                checked_in_at=now,
                staff=user,
                staff_label=label,
                location=location or DEFAULT_LOCATION,
                notes=notes or f"Staff verification by {label}",
            )
    if ci is None:
        t.refresh_from_db()
        logger.warning("Ticket %s lost a concurrent check-in", t.ticket_number)
        return _already_used(t)

    t.status = "USED"
    t.checked_in_at = now
    logger.info("Ticket %s checked in by %s at %s", t.ticket_number, label, ci.location)
    return {"valid": True, "can_enter": True, "status": "ok", "message": "Valid ticket - Entry allowed",
            "ticket": ticket_summary(t), "check_in": _check_in_data(ci)}


def _already_used(t):
    ci = TicketCheckIn.objects.filter(ticket=t).first()
    return {"valid": True, "can_enter": False, "status": "already",
            "message": "Ticket has already been used",
            "ticket": ticket_summary(t), "check_in": _check_in_data(ci)}


def search_tickets(suffix, limit=5):
    """Staff lookup by the tail of a ticket number (damaged QR codes)."""
    suffix = (suffix or "").strip().upper()
    if len(suffix) < 4:
        raise ValueError("Enter at least 4 characters.")
    qs = (Ticket.objects
          .select_related("registration", "ticket_type")
          .filter(ticket_number__endswith=suffix)
          .order_by("-issued_at")[:limit])
    return [ticket_summary(t) for t in qs]


def mark_collected(ticket, collected_by=""):
    now = timezone.now()
    changed = (Ticket.objects
               .filter(pk=ticket.pk)
               .exclude(status__in=BLOCKED_STATUSES)
               .update(status="COLLECTED", collected_at=now, collected_by=collected_by))
    ticket.refresh_from_db()
    if not changed:
        raise ValueError(f"Ticket is {ticket.status.lower()} and cannot be collected.")
    return ticket


def cancel_ticket(ticket):
    changed = Ticket.objects.filter(pk=ticket.pk).exclude(status="USED").update(status="CANCELLED")
    ticket.refresh_from_db()
    if not changed:
        raise ValueError("A used ticket cannot be cancelled.")
    logger.info("Ticket %s cancelled", ticket.ticket_number)
    return ticket


def ticket_stats():
    by_status = dict(Ticket.objects.order_by().values_list("status").annotate(n=Count("id")))
    stats = {code.lower(): by_status.get(code, 0) for code, _ in Ticket.STATUS_CHOICES}
    stats["total"] = sum(by_status.values())
    return stats


def adjust_stock(ticket_type, action, quantity):
    """restock adds to total stock; withdraw removes unsold stock. Total never drops below sold + reserved."""
    if quantity < 1:
        raise StockError("Quantity must be a positive number.")
    with transaction.atomic():
        tt = TicketType.objects.select_for_update().get(pk=ticket_type.pk)
        if action == "restock":
            tt.total_stock += quantity
        elif action == "withdraw":
            floor = tt.sold_qty() + tt.reserved_qty()
            if tt.total_stock - quantity < floor:
                raise StockError(f"Cannot withdraw {quantity}; only {max(0, tt.total_stock - floor)} unsold.")
            tt.total_stock -= quantity
        else:
            raise StockError(f"Unknown stock action: {action}")
        tt.save(update_fields=["total_stock", "updated_at"])
    logger.info("Stock %s %s for %s, total now %s", action, quantity, tt.name, tt.total_stock)
    return tt
