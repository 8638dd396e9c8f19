import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.urls import reverse
from django.utils.html import strip_tags

from events.utils import event_info
from registrations.models import EmailLog
from tickets.pdf import pdf_filename, render_tickets_pdf

logger = logging.getLogger(__name__)


def _base_context(registration, **extra):
    ctx = {
        "registration": registration,
        "event": event_info(),
        "site_base": settings.SITE_BASE_URL,
        "support_email": settings.SUPPORT_EMAIL,
        "status_url": settings.SITE_BASE_URL + reverse("ticket_status_page") + f"?email={registration.email}",
    }
    ctx.update(extra)
    return ctx


def _send(registration, email_type, subject, template, context, attachments=None):
    """
    Render and send one email, recording the attempt in EmailLog.
    Returns True when the backend accepted the message. Never raises.
    """
    recipient = registration.email
    try:
        html = render_to_string(template, context)
        msg = EmailMultiAlternatives(
            subject=subject,
            body=strip_tags(html),
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[recipient],
            reply_to=[settings.SUPPORT_EMAIL],
        )
        msg.attach_alternative(html, "text/html")
        for name, content, mimetype in attachments or []:
            msg.attach(name, content, mimetype)
        msg.send(fail_silently=False)
    except Exception as e:
        logger.exception("%s email to %s failed", email_type, recipient)
        EmailLog.objects.create(
            registration=registration, email_type=email_type, subject=subject, recipient=recipient,
            status="FAILED", error_message=str(e)[:2000], template_used=template,
        )
        return False

    EmailLog.objects.create(
        registration=registration, email_type=email_type, subject=subject, recipient=recipient,
        status="SENT", template_used=template,
    )
    logger.info("%s email sent to %s", email_type, recipient)
    return True


def _send_with_tickets(registration, email_type, subject, template, tickets):
    tickets = list(tickets)
    try:
        attachment = (pdf_filename(registration), render_tickets_pdf(tickets), "application/pdf")
    except Exception as e:
        logger.exception("PDF render failed for registration %s", registration.pk)
        EmailLog.objects.create(
            registration=registration, email_type=email_type, subject=subject, recipient=registration.email,
            status="FAILED", error_message=f"PDF: {e}"[:2000], template_used=template,
        )
        return False
    return _send(
        registration, email_type, subject, template,
        _base_context(registration, tickets=tickets),
        attachments=[attachment],
    )


def send_registration_received(registration):
    return _send(
        registration, "REGISTRATION_CONFIRMATION",
        "Registration Received - Pending Approval",
        "emails/registration_received.html",
        _base_context(registration),
    )


def send_payment_required(registration, checkout_url=""):
    pay_url = checkout_url or settings.SITE_BASE_URL + reverse("payment_resume", args=[registration.reference])
    return _send(
        registration, "PAYMENT_REQUIRED",
        "Complete Your VIP Registration - Payment Required",
        "emails/payment_required.html",
        _base_context(registration, pay_url=pay_url),
    )


def send_registration_approved(registration, tickets):
    return _send_with_tickets(registration, "REGISTRATION_APPROVED", "Your EMS VIP Tickets",
                              "emails/registration_approved.html", tickets)


def send_registration_rejected(registration):
    return _send(
        registration, "REGISTRATION_REJECTED",
        "Registration Update",
        "emails/registration_rejected.html",
        _base_context(registration),
    )


def send_payment_confirmation(registration, tickets):
    return _send_with_tickets(registration, "PAYMENT_CONFIRMATION", "Payment Confirmed - Your Tickets",
                              "emails/payment_confirmation.html", tickets)


def send_tickets(registration, tickets=None):
    """Resend the full ticket set."""
    if tickets is None:
        tickets = registration.tickets.exclude(status="CANCELLED").select_related("ticket_type")
    tickets = list(tickets)
    if not tickets:
        return False
    return _send_with_tickets(registration, "TICKET_DELIVERY", "Your Tickets", "emails/tickets.html", tickets)
