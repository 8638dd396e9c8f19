import logging
from datetime import timedelta

import stripe
from django.conf import settings
from django.db import transaction
from django.urls import reverse
from django.utils import timezone

from coreutils import mailer
from coupons.services import record_redemption
from registrations.models import Registration
from tickets.services import StockError, fulfill_reservations, mark_sent, release_reservations
from .models import Payment

logger = logging.getLogger(__name__)
stripe.api_key = settings.STRIPE_SECRET_KEY


class PaymentError(ValueError):
    ...


def _line_items(holds, currency):
    items = []
    for h in holds:
        name = h.ticket_type.name
        if h.tier_id:
            # bundle: one line for the whole tier price
            items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": f"{name} - {h.tier.name} ({h.qty} tickets)"},
                    "unit_amount": h.line_total_cents,
                },
                "quantity": 1,
            })
        else:
            items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": name},
                    "unit_amount": h.unit_price_cents,
                },
                "quantity": h.qty,
            })
    return items


def create_checkout_session(registration):
    """Start (or restart) Stripe Checkout for a PAYMENT_PENDING registration."""
    if registration.status != "PAYMENT_PENDING":
        raise PaymentError(f"Registration is {registration.status}; no payment is due.")
    if registration.final_amount_cents <= 0:
        raise PaymentError("Nothing to pay for this registration.")

    holds = [h for h in registration.reservations.filter(fulfilled=False).select_related("ticket_type", "tier")
             if h.is_live()]
    if not holds:
        raise PaymentError("Your ticket reservation has expired. Please book again.")

    currency = settings.TICKET_CURRENCY
    ref = str(registration.reference)
    metadata = {
        "registration_reference": ref,
        "registration_id": str(registration.pk),
        "customer_email": registration.email,
    }
    kwargs = {}
    if registration.discount_amount_cents > 0:
        one_off = stripe.Coupon.create(
            amount_off=registration.discount_amount_cents,
            currency=currency,
            duration="once",
            name=registration.applied_coupon_code or "Discount",
        )
        kwargs["discounts"] = [{"coupon": one_off.id}]

    ttl = timedelta(minutes=settings.CHECKOUT_SESSION_TTL_MIN)
    now = timezone.now()
    base = settings.SITE_BASE_URL
    session = stripe.checkout.Session.create(
        mode="payment",
        line_items=_line_items(holds, currency),
        customer_email=registration.email,
        success_url=base + reverse("payment_success") + "?session_id={CHECKOUT_SESSION_ID}",
        cancel_url=base + reverse("payment_cancelled") + f"?reference={ref}",
        metadata=metadata,
        payment_intent_data={"metadata": metadata},
        # Stripe rejects expiry under 30 minutes, so keep a minute of slack
        expires_at=int((now + ttl + timedelta(minutes=1)).timestamp()),
        **kwargs,
    )

    with transaction.atomic():
        Payment.objects.update_or_create(
            registration=registration,
            defaults={
                "stripe_session_id": session.id,
                "amount_cents": registration.final_amount_cents,
                "original_amount_cents": registration.original_amount_cents,
                "currency": currency,
                "status": "PENDING",
            },
        )
        # hold stock as long as the session can still be paid
        registration.reservations.filter(fulfilled=False).update(
            stripe_session_id=session.id,
            expires_at=now + ttl + timedelta(minutes=1),
        )
    logger.info("Checkout session %s created for registration %s", session.id, registration.pk)
    return session


def _registration_for_session(session):
    meta = session.get("metadata") or {}
    ref = meta.get("registration_reference")
    if ref:
        reg = Registration.objects.filter(reference=ref).first()
        if reg:
            return reg
    pay = Payment.objects.select_related("registration").filter(stripe_session_id=session.get("id")).first()
    return pay.registration if pay else None


def _record_payment(reg, session, status, paid_at=None):
    Payment.objects.update_or_create(
        registration=reg,
        defaults={
            "stripe_session_id": session.get("id"),
            "stripe_payment_intent": session.get("payment_intent") or "",
            "amount_cents": session.get("amount_total") or reg.final_amount_cents,
            "original_amount_cents": reg.original_amount_cents,
            "currency": session.get("currency") or settings.TICKET_CURRENCY,
            "status": status,
            "paid_at": paid_at,
        },
    )


def handle_checkout_completed(session):
    """
    Paid checkout: payment SUCCEEDED, registration COMPLETED, coupon use counted, holds
    turned into tickets. Emails go out after commit. Returns the new tickets ([] on replay).

    A payment for a booking that no longer holds its tickets (cancelled after the
    session expired, or out of stock) is recorded as REFUND_DUE and issues nothing.
    """
    reg = _registration_for_session(session)
    if reg is None:
        logger.warning("Checkout session %s has no matching registration", session.get("id"))
        return []
    if session.get("payment_status") not in ("paid", "no_payment_required"):
        logger.info("Checkout session %s completed unpaid (%s)", session.get("id"), session.get("payment_status"))
        Payment.objects.filter(registration=reg, status="PENDING").update(
            stripe_payment_intent=session.get("payment_intent") or "")
        return []

    with transaction.atomic():
        reg = Registration.objects.select_for_update().get(pk=reg.pk)
        now = timezone.now()
        pay = Payment.objects.filter(registration=reg).first()
        if reg.status == "COMPLETED":
            if pay is None or pay.status != "SUCCEEDED":
                # tickets were already issued by hand; the money still arrived
                logger.warning("Registration %s already completed when payment %s arrived",
                               reg.pk, session.get("id"))
                _record_payment(reg, session, "SUCCEEDED", paid_at=now)
            return []

        tickets = []
        refused = ""
        if reg.status != "PAYMENT_PENDING":
            refused = f"registration is {reg.status}"
        elif not reg.reservations.filter(fulfilled=False).exists():
            refused = "no ticket holds left"
        else:
            try:
                with transaction.atomic():
                    tickets = fulfill_reservations(reg)
            except StockError as e:
                refused = str(e)

        if refused:
            _record_payment(reg, session, "REFUND_DUE", paid_at=now)
            if reg.status == "PAYMENT_PENDING":
                release_reservations(reg)
                reg.status = "CANCELLED"
                reg.save(update_fields=["status", "updated_at"])
            logger.error("Payment %s for registration %s needs a refund: %s", session.get("id"), reg.pk, refused)
            return []

        _record_payment(reg, session, "SUCCEEDED", paid_at=now)
        reg.status = "COMPLETED"
        reg.save(update_fields=["status", "updated_at"])
        if reg.applied_coupon_id:
            record_redemption(reg.applied_coupon)

    logger.info("Registration %s paid, %s ticket(s) issued", reg.pk, len(tickets))
    if tickets and mailer.send_payment_confirmation(reg, tickets):
        mark_sent(tickets)
    return tickets


def handle_checkout_expired(session):
    reg = _registration_for_session(session)
    if reg is None:
        return None
    with transaction.atomic():
        reg = Registration.objects.select_for_update().get(pk=reg.pk)
        pay = Payment.objects.filter(registration=reg).first()
        if pay and pay.stripe_session_id != session.get("id"):
            # a newer session replaced this one
            return reg
        if pay and pay.status == "PENDING":
            pay.status = "CANCELLED"
            pay.save(update_fields=["status", "updated_at"])
        if reg.status == "PAYMENT_PENDING":
            release_reservations(reg)
            reg.status = "CANCELLED"
            reg.save(update_fields=["status", "updated_at"])
            logger.info("Registration %s cancelled after checkout expiry", reg.pk)
    return reg


def handle_payment_failed(intent):
    meta = intent.get("metadata") or {}
    pay = Payment.objects.filter(stripe_payment_intent=intent.get("id")).first()
    if pay is None and meta.get("registration_reference"):
        pay = Payment.objects.filter(registration__reference=meta["registration_reference"]).first()
    if pay is None or pay.status in ("SUCCEEDED", "REFUND_DUE"):
        return None
    pay.status = "FAILED"
    pay.stripe_payment_intent = intent.get("id") or pay.stripe_payment_intent
    pay.save(update_fields=["status", "stripe_payment_intent", "updated_at"])
    err = (intent.get("last_payment_error") or {}).get("message", "")
    logger.warning("Payment failed for registration %s: %s", pay.registration_id, err)
    return pay


EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "checkout.session.async_payment_succeeded": handle_checkout_completed,
    "checkout.session.expired": handle_checkout_expired,
    "payment_intent.payment_failed": handle_payment_failed,
}


def verify_session(session_id):
    """Success-page check. Completes the registration if the webhook has not arrived yet."""
    session = stripe.checkout.Session.retrieve(session_id)
    reg = _registration_for_session(session)
    if reg is None:
        raise PaymentError("Payment session not found.")
    paid = session.get("payment_status") == "paid"
    if paid and reg.status == "PAYMENT_PENDING":
        handle_checkout_completed(session)
        reg.refresh_from_db()
    return {
        "paid": paid,
        "reference": str(reg.reference),
        "status": reg.status,
        "name": reg.full_name,
        "email": reg.email,
        "final_amount": reg.final_amount_cents,
        "tickets": list(reg.tickets.exclude(status="CANCELLED").values_list("ticket_number", flat=True)),
    }
