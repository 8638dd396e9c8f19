import logging

from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from coreutils import mailer
from coupons.services import record_redemption, resolve_selections, validate_coupon
from events.utils import registration_enabled
from tickets.models import Ticket, TicketReservation, TicketType
from payments.models import Payment
from tickets.services import fulfill_reservations, issue_tickets, mark_sent, release_reservations
from .models import PanelInterest, Registration

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("PENDING", "PAYMENT_PENDING")


class RegistrationError(ValueError):
    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or {}


def _actor(user):
    return user if user is not None and user.is_authenticated else None


def default_ems_ticket_type():
    return (TicketType.objects
            .filter(active=True, public_only=False)
            .order_by("-ems_clients_only", "sort_order")
            .first())


def check_eligibility(email, is_ems_client):
    """Public customers may always book. EMS clients only once their previous request is settled."""
    email = (email or "").strip().lower()
    if not is_ems_client:
        return {"can_register": True, "message": "Public customers can register multiple times", "existing": None}
    existing = (Registration.objects
                .filter(email__iexact=email, is_ems_client=True, status__in=OPEN_STATUSES)
                .order_by("-created_at")
                .first())
    if existing:
        return {
            "can_register": False,
            "message": "You already have a pending EMS registration. Please wait for approval or contact support.",
            "existing": existing,
        }
    return {"can_register": True, "message": "EMS customer can register for new tickets", "existing": None}


def check_eligibility_batch(emails):
    pending = set(
        e.lower() for e in Registration.objects
        .filter(email__in=[str(e or "").strip().lower() for e in emails], is_ems_client=True, status__in=OPEN_STATUSES)
        .values_list("email", flat=True)
    )
    return [{"email": e, "can_register": str(e or "").strip().lower() not in pending} for e in emails]


def _panel_interest(reg, cleaned):
    if not cleaned.get("panel_interest"):
        return None
    return PanelInterest.objects.create(
        registration=reg,
        panel_type=cleaned.get("panel_type") or "SOLAR_PANEL",
        interest_level=cleaned.get("interest_level") or "MEDIUM",
        estimated_budget=cleaned.get("estimated_budget") or "",
        timeframe=cleaned.get("timeframe") or "",
        notes=cleaned.get("panel_notes") or "",
    )


def _personal_fields(cleaned):
    return {
        "first_name": cleaned["first_name"].strip(),
        "last_name": cleaned["last_name"].strip(),
        "email": cleaned["email"].strip().lower(),
        "phone": cleaned.get("phone", "").strip(),
        "id_card_number": (cleaned.get("id_card_number") or "").strip(),
        "is_ems_client": bool(cleaned.get("is_ems_client")),
        "company_name": cleaned.get("company_name") or "",
        "ems_customer_id": cleaned.get("ems_customer_id") or "",
        "account_manager": cleaned.get("account_manager") or "",
        "order_number": cleaned.get("order_number") or "",
    }


def create_registration(cleaned, selections=None, coupon_code=""):
    """
    cleaned: RegistrationForm.cleaned_data. selections: raw ticket selections (public only).

    EMS clients are queued for approval. Public customers get their stock held and either
    owe payment or, when the total is zero, receive tickets straight away.
    """
    if not registration_enabled():
        raise RegistrationError("Registration is currently closed.")

    fields = _personal_fields(cleaned)
    is_ems = fields["is_ems_client"]
    elig = check_eligibility(fields["email"], is_ems)
    if not elig["can_register"]:
        raise RegistrationError(elig["message"])

    now = timezone.now()
    if is_ems:
        with transaction.atomic():
            reg = Registration.objects.create(status="PENDING", terms_accepted_at=now, **fields)
            _panel_interest(reg, cleaned)
        logger.info("EMS registration %s created for %s", reg.pk, reg.email)
        mailer.send_registration_received(reg)
        return reg

    lines = resolve_selections(selections, is_ems_client=False)
    if not lines:
        raise RegistrationError("Please select at least one ticket.")
    original = sum(l["line_total_cents"] for l in lines)

    tickets = []
    with transaction.atomic():
        coupon = None
        discount = 0
        if (coupon_code or "").strip():
            # coupon row stays locked until commit
            applied = validate_coupon(coupon_code, original, is_ems_client=False, email=fields["email"], lock=True)
            coupon = applied["coupon"]
            discount = applied["discount_cents"]
        final = max(0, original - discount)

        reg = Registration.objects.create(
            status="COMPLETED" if final == 0 else "PAYMENT_PENDING",
            original_amount_cents=original,
            discount_amount_cents=discount,
            final_amount_cents=final,
            applied_coupon=coupon,
            applied_coupon_code=coupon.code if coupon else "",
            terms_accepted_at=now,
            **fields,
        )
        TicketReservation.create_reservations(lines, registration=reg, is_ems_client=False)
        _panel_interest(reg, cleaned)
        if final == 0:
            tickets = fulfill_reservations(reg)
            if coupon:
                record_redemption(coupon)

    logger.info("Public registration %s created for %s (%s, %s cents)", reg.pk, reg.email, reg.status, final)
    if tickets:
        if mailer.send_payment_confirmation(reg, tickets):
            mark_sent(tickets)
    else:
        mailer.send_payment_required(reg)
    return reg


def approve_registration(registration, quantity=1, ticket_type=None, admin_user=None, notes=""):
    """PENDING (or legacy VERIFIED) -> COMPLETED with `quantity` complimentary tickets."""
    if quantity < 1 or quantity > 10:
        raise RegistrationError("Ticket quantity must be between 1 and 10.")
    with transaction.atomic():
        reg = Registration.objects.select_for_update().get(pk=registration.pk)
        if reg.status not in ("PENDING", "VERIFIED"):
            raise RegistrationError(f"Registration is {reg.status} and cannot be approved.")
        tt = ticket_type or default_ems_ticket_type()
        tickets = issue_tickets(reg, tt, quantity, price_cents=0, issued_by=admin_user)
        reg.status = "COMPLETED"
        reg.verified_at = timezone.now()
        reg.verified_by = _actor(admin_user)
        if notes:
            reg.admin_notes = notes
        reg.save(update_fields=["status", "verified_at", "verified_by", "admin_notes", "updated_at"])
    logger.info("Registration %s approved with %s ticket(s)", reg.pk, len(tickets))
    if mailer.send_registration_approved(reg, tickets):
        mark_sent(tickets)
    return reg, tickets


def reject_registration(registration, reason, admin_user=None):
    reason = (reason or "").strip()
    if not reason:
        raise RegistrationError("A rejection reason is required.")
    with transaction.atomic():
        reg = Registration.objects.select_for_update().get(pk=registration.pk)
        if reg.status not in ("PENDING", "VERIFIED"):
            raise RegistrationError(f"Registration is {reg.status} and cannot be rejected.")
        reg.status = "REJECTED"
        reg.rejected_reason = reason
        reg.verified_at = timezone.now()
        reg.verified_by = _actor(admin_user)
        reg.save(update_fields=["status", "rejected_reason", "verified_at", "verified_by", "updated_at"])
    logger.info("Registration %s rejected", reg.pk)
    mailer.send_registration_rejected(reg)
    return reg


def generate_tickets(registration, ticket_type, quantity, price_cents=0, admin_user=None, send_email=True):
    """Manual issue by an admin. Skips payment, never skips stock."""
    with transaction.atomic():
        reg = Registration.objects.select_for_update().get(pk=registration.pk)
        if reg.status in ("REJECTED", "CANCELLED"):
            raise RegistrationError(f"Registration is {reg.status}; tickets cannot be generated.")
        if reg.status == "PAYMENT_PENDING":
            # the admin settles the booking; its checkout holds and payment are void
            release_reservations(reg)
            Payment.objects.filter(registration=reg, status="PENDING").update(status="CANCELLED")
        tickets = issue_tickets(reg, ticket_type, quantity, price_cents=price_cents or 0, issued_by=admin_user)
        if reg.status != "COMPLETED":
            reg.status = "COMPLETED"
            reg.verified_at = timezone.now()
            reg.verified_by = _actor(admin_user)
            reg.save(update_fields=["status", "verified_at", "verified_by", "updated_at"])
    if send_email and mailer.send_tickets(reg, tickets):
        mark_sent(tickets)
    return tickets


def quick_register(cleaned, admin_user=None):
    """Admin creates a completed registration and its tickets in one go."""
    tt = cleaned["ticket_type"]
    qty = cleaned["quantity"]
    paid = cleaned.get("amount_paid_cents") or 0
    with transaction.atomic():
        reg = Registration.objects.create(
            first_name=cleaned["first_name"].strip(),
            last_name=cleaned["last_name"].strip(),
            email=cleaned["email"],
            phone=cleaned.get("phone") or "",
            is_ems_client=bool(cleaned.get("is_ems_client")),
            company_name=cleaned.get("company_name") or "",
            status="COMPLETED",
            original_amount_cents=paid,
            final_amount_cents=paid,
            admin_notes=cleaned.get("admin_notes") or "Created manually by admin",
            verified_at=timezone.now(),
            verified_by=_actor(admin_user),
        )
        unit = paid // qty if qty else 0
        tickets = issue_tickets(reg, tt, qty, price_cents=unit, issued_by=admin_user)
    logger.info("Quick registration %s with %s ticket(s)", reg.pk, len(tickets))
    if cleaned.get("send_email") and mailer.send_tickets(reg, tickets):
        mark_sent(tickets)
    return reg, tickets


def resend_tickets(registration):
    if registration.status != "COMPLETED":
        raise RegistrationError("Tickets can only be resent for completed registrations.")
    tickets = list(registration.tickets.exclude(status="CANCELLED").select_related("ticket_type"))
    if not tickets:
        raise RegistrationError("This registration has no tickets.")
    ok = mailer.send_tickets(registration, tickets)
    if ok:
        mark_sent(tickets)
    return ok


def ticket_status(email=None, ticket_number=None):
    """Customer self-service lookup: latest registration for an email, or the owner of a ticket."""
    if ticket_number:
        t = Ticket.objects.select_related("registration").filter(ticket_number=ticket_number.strip().upper()).first()
        reg = t.registration if t else None
    elif email:
        reg = Registration.objects.filter(email__iexact=email.strip()).order_by("-created_at", "-pk").first()
    else:
        raise RegistrationError("Email or ticket number is required.")
    if reg is None:
        return None
    tickets = list(reg.tickets.select_related("ticket_type").order_by("sequence"))
    return {
        "reference": str(reg.reference),
        "name": reg.full_name,
        "email": reg.email,
        "status": reg.status,
        "is_ems_client": reg.is_ems_client,
        "final_amount": reg.final_amount_cents,
        "created_at": reg.created_at.isoformat(),
        "rejected_reason": reg.rejected_reason if reg.status == "REJECTED" else "",
        "tickets": [
            {
                "ticket_number": t.ticket_number,
                "ticket_type": t.ticket_type.name if t.ticket_type else "Event Access",
                "status": t.status,
                "sequence": t.sequence,
            }
            for t in tickets
        ],
    }


def filter_registrations(params, qs=None):
    qs = qs if qs is not None else Registration.objects.all()
    search = (params.get("q") or "").strip()
    status = params.get("status") or ""
    kind = params.get("type") or ""
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search) |
            Q(email__icontains=search) | Q(phone__icontains=search) |
            Q(company_name__icontains=search) | Q(order_number__icontains=search) |
            Q(tickets__ticket_number__icontains=search)
        ).distinct()
    if status:
        qs = qs.filter(status=status)
    if kind == "ems":
        qs = qs.filter(is_ems_client=True)
    elif kind == "public":
        qs = qs.filter(is_ems_client=False)
    return qs.annotate(ticket_count=Count("tickets", distinct=True))


def panel_lead_stats(qs=None):
    qs = qs if qs is not None else PanelInterest.objects.all()
    by_status = dict(qs.order_by().values_list("status").annotate(n=Count("id")))
    by_level = dict(qs.order_by().values_list("interest_level").annotate(n=Count("id")))
    return {
        "total": sum(by_status.values()),
        "by_status": {code: by_status.get(code, 0) for code, _ in PanelInterest.LEAD_STATUS_CHOICES},
        "by_level": {code: by_level.get(code, 0) for code, _ in PanelInterest.INTEREST_CHOICES},
    }


def update_panel_lead(lead, previous_status=None, **changes):
    previous = previous_status or lead.status
    for k, v in changes.items():
        setattr(lead, k, v)
    if lead.status != previous and lead.status != "NEW":
        lead.last_contact_at = timezone.now()
    lead.save()
    return lead
