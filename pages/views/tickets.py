import logging

import stripe
from django.contrib import messages
from django.shortcuts import render, redirect, get_object_or_404

from coupons.services import PricingError
from events.utils import registration_enabled
from payments.services import PaymentError, create_checkout_session
from registrations.forms import RegistrationForm
from registrations.models import Registration
from registrations.services import create_registration, ticket_status
from tickets.models import TicketType

logger = logging.getLogger(__name__)


def _selections_from_post(post, types):
    """qty_<type id> and optional tier_<type id> fields from the booking form."""
    selections = []
    for tt in types:
        try:
            qty = int(post.get(f"qty_{tt.id}", 0) or 0)
        except ValueError:
            raise PricingError(f"Invalid quantity for {tt.name}.")
        if qty > 0:
            selections.append({"ticket_type_id": tt.id, "quantity": qty, "tier_id": post.get(f"tier_{tt.id}") or None})
    return selections


def book(request):
    types = [tt for tt in TicketType.objects.filter(active=True).prefetch_related("tiers") if tt.is_on_sale()]
    for tt in types:
        tt.available = tt.remaining()
    form = RegistrationForm(request.POST or None)

    if request.method == "POST" and form.is_valid():
        try:
            selections = [] if form.cleaned_data.get("is_ems_client") else _selections_from_post(request.POST, types)
            reg = create_registration(form.cleaned_data, selections, request.POST.get("coupon_code") or "")
        except ValueError as e:
            messages.error(request, str(e))
        else:
            if reg.status == "PAYMENT_PENDING":
                try:
                    session = create_checkout_session(reg)
                except (PaymentError, stripe.StripeError):
                    logger.exception("Checkout could not start for registration %s", reg.pk)
                    messages.warning(request, "We could not start the payment. Use the link in your email to pay.")
                    return redirect("registration_done", reference=reg.reference)
                return redirect(session.url, permanent=False)
            return redirect("registration_done", reference=reg.reference)

    return render(request, "pages/book.html", {
        "form": form,
        "types": types,
        "registration_open": registration_enabled(),
    })


def registration_done(request, reference):
    reg = get_object_or_404(Registration, reference=reference)
    return render(request, "pages/registration_done.html", {"reg": reg})


def ticket_status_page(request):
    email = (request.GET.get("email") or "").strip()
    number = (request.GET.get("ticket_number") or "").strip()
    data = None
    searched = bool(email or number)
    if searched:
        data = ticket_status(email=email or None, ticket_number=number or None)
    return render(request, "pages/ticket_status.html", {
        "data": data, "searched": searched, "q": {"email": email, "ticket_number": number},
    })
