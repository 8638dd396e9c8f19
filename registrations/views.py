import json
import logging

from django.contrib import messages
from django.core.paginator import Paginator
from django.http import JsonResponse
from django.shortcuts import render, redirect, get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from accounts.permissions import is_admin
from .forms import (
    ApproveForm, GenerateTicketsForm, PanelLeadForm, QuickRegistrationForm,
    RegistrationEditForm, RegistrationForm, RejectForm,
)
from .models import PanelInterest, Registration
from . import services

logger = logging.getLogger(__name__)


def _json_body(request):
    """Decoded JSON object, or None when the body is not one."""
    try:
        data = json.loads(request.body.decode("utf-8") or "{}")
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _form_errors(form):
    return {k: [str(m) for m in v] for k, v in form.errors.items()}


# ---------- public API ----------

@csrf_exempt
@require_POST
def register_api(request):
    """
    POST JSON: personal fields (see RegistrationForm), plus for public customers
    "selections": [{"ticket_type_id", "quantity", "tier_id"}] and optional "coupon_code".
    """
    data = _json_body(request)
    if data is None:
        return JsonResponse({"success": False, "message": "Invalid data provided"}, status=400)
    form = RegistrationForm(data)
    if not form.is_valid():
        return JsonResponse({"success": False, "message": "Invalid data provided", "errors": _form_errors(form)},
                            status=400)
    try:
        reg = services.create_registration(form.cleaned_data, data.get("selections"), str(data.get("coupon_code") or ""))
    except ValueError as e:
        logger.warning("Registration refused for %s: %s", form.cleaned_data.get("email"), e)
        return JsonResponse({"success": False, "message": str(e)}, status=400)

    return JsonResponse({
        "success": True,
        "message": "Registration successful",
        "data": {
            "reference": str(reg.reference),
            "email": reg.email,
            "is_ems_client": reg.is_ems_client,
            "status": reg.status,
            "original_amount": reg.original_amount_cents,
            "discount_amount": reg.discount_amount_cents,
            "final_amount": reg.final_amount_cents,
            "requires_payment": reg.status == "PAYMENT_PENDING",
        },
    })


def eligibility_api(request):
    """GET ?email=&is_ems_client=true, or POST JSON {"emails": [...]} for a batch."""
    if request.method == "POST":
        data = _json_body(request) or {}
        emails = data.get("emails")
        if not isinstance(emails, list) or not emails:
            return JsonResponse({"success": False, "message": "Array of emails is required"}, status=400)
        return JsonResponse({"success": True, "results": services.check_eligibility_batch(emails)})

    email = (request.GET.get("email") or "").strip()
    if not email:
        return JsonResponse({"success": False, "message": "Email is required"}, status=400)
    is_ems = request.GET.get("is_ems_client") in ("1", "true", "yes")
    res = services.check_eligibility(email, is_ems)
    existing = res["existing"]
    return JsonResponse({
        "success": True,
        "can_register": res["can_register"],
        "message": res["message"],
        "existing_registration": str(existing.reference) if existing else None,
        "registration_status": existing.status if existing else None,
    })


def registration_detail_api(request, reference):
    reg = get_object_or_404(Registration, reference=reference)
    return JsonResponse({"success": True, "data": _public_summary(reg)})


def _public_summary(reg):
    return {
        "reference": str(reg.reference),
        "first_name": reg.first_name,
        "last_name": reg.last_name,
        "email": reg.email,
        "status": reg.status,
        "is_ems_client": reg.is_ems_client,
        "original_amount": reg.original_amount_cents,
        "discount_amount": reg.discount_amount_cents,
        "final_amount": reg.final_amount_cents,
        "applied_coupon_code": reg.applied_coupon_code,
        "ticket_count": reg.tickets.exclude(status="CANCELLED").count(),
    }


def ticket_status_api(request):
    email = (request.GET.get("email") or "").strip()
    number = (request.GET.get("ticket_number") or "").strip()
    try:
        data = services.ticket_status(email=email or None, ticket_number=number or None)
    except ValueError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    if data is None:
        return JsonResponse({"success": False, "message": "No registration found"}, status=404)
    return JsonResponse({"success": True, "data": data})


# ---------- control panel ----------

@is_admin
def registration_list(request):
    qs = services.filter_registrations(request.GET)
    page = Paginator(qs.order_by("-created_at"), 25).get_page(request.GET.get("page"))
    ctx = {
        "page": page,
        "statuses": Registration.STATUS_CHOICES,
        "q": {k: request.GET.get(k, "") for k in ("q", "status", "type")},
    }
    return render(request, "registrations/list.html", ctx)


@is_admin
def registration_detail(request, pk):
    reg = get_object_or_404(Registration.objects.select_related("applied_coupon", "verified_by"), pk=pk)
    ctx = {
        "reg": reg,
        "tickets": reg.tickets.select_related("ticket_type").order_by("sequence"),
        "emails": reg.email_logs.all()[:20],
        "leads": reg.panel_interests.all(),
        "payment": getattr(reg, "payment", None),
        "approve_form": ApproveForm(initial={"ticket_type": services.default_ems_ticket_type()}),
        "reject_form": RejectForm(),
        "generate_form": GenerateTicketsForm(),
    }
    return render(request, "registrations/detail.html", ctx)


@is_admin
def registration_edit(request, pk):
    reg = get_object_or_404(Registration, pk=pk)
    form = RegistrationEditForm(request.POST or None, instance=reg)
    if request.method == "POST" and form.is_valid():
        form.save()
        messages.success(request, "Registration updated.")
        return redirect("control:registrations:detail", pk=reg.pk)
    return render(request, "registrations/edit.html", {"form": form, "reg": reg})


@require_POST
@is_admin
def registration_approve(request, pk):
    reg = get_object_or_404(Registration, pk=pk)
    form = ApproveForm(request.POST)
    if not form.is_valid():
        messages.error(request, "Ticket quantity must be between 1 and 10.")
        return redirect("control:registrations:detail", pk=pk)
    try:
        _, tickets = services.approve_registration(
            reg, quantity=form.cleaned_data["ticket_quantity"],
            ticket_type=form.cleaned_data.get("ticket_type"),
            admin_user=request.user, notes=form.cleaned_data.get("admin_notes") or "",
        )
    except ValueError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, f"Approved with {len(tickets)} ticket(s).")
    return redirect("control:registrations:detail", pk=pk)


@require_POST
@is_admin
def registration_reject(request, pk):
    reg = get_object_or_404(Registration, pk=pk)
    form = RejectForm(request.POST)
    if not form.is_valid():
        messages.error(request, "A rejection reason is required.")
        return redirect("control:registrations:detail", pk=pk)
    try:
        services.reject_registration(reg, form.cleaned_data["rejected_reason"], admin_user=request.user)
    except ValueError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, "Registration rejected.")
    return redirect("control:registrations:detail", pk=pk)


@require_POST
@is_admin
def registration_resend(request, pk):
    reg = get_object_or_404(Registration, pk=pk)
    try:
        ok = services.resend_tickets(reg)
    except ValueError as e:
        messages.error(request, str(e))
    else:
        if ok:
            messages.success(request, f"Tickets re-sent to {reg.email}.")
        else:
            messages.error(request, "Email could not be sent; see the email log.")
    return redirect("control:registrations:detail", pk=pk)


@require_POST
@is_admin
def registration_generate(request, pk):
    reg = get_object_or_404(Registration, pk=pk)
    form = GenerateTicketsForm(request.POST)
    if not form.is_valid():
        messages.error(request, "Pick a ticket type and a quantity between 1 and 50.")
        return redirect("control:registrations:detail", pk=pk)
    try:
        tickets = services.generate_tickets(
            reg, form.cleaned_data["ticket_type"], form.cleaned_data["quantity"],
            price_cents=form.cleaned_data.get("price_cents") or 0, admin_user=request.user,
        )
    except ValueError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, f"Generated {len(tickets)} ticket(s).")
    return redirect("control:registrations:detail", pk=pk)


@is_admin
def quick_register(request):
    form = QuickRegistrationForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        try:
            reg, tickets = services.quick_register(form.cleaned_data, admin_user=request.user)
        except ValueError as e:
            messages.error(request, str(e))
        else:
            messages.success(request, f"Registered {reg.full_name} with {len(tickets)} ticket(s).")
            return redirect("control:registrations:detail", pk=reg.pk)
    return render(request, "registrations/quick.html", {"form": form})


@is_admin
def panel_leads(request):
    qs = PanelInterest.objects.select_related("registration")
    status = request.GET.get("status") or ""
    level = request.GET.get("level") or ""
    search = (request.GET.get("q") or "").strip()
    if status:
        qs = qs.filter(status=status)
    if level:
        qs = qs.filter(interest_level=level)
    if search:
        qs = qs.filter(registration__email__icontains=search) | qs.filter(registration__last_name__icontains=search)
    page = Paginator(qs.order_by("-created_at"), 25).get_page(request.GET.get("page"))
    ctx = {
        "page": page,
        "stats": services.panel_lead_stats(),
        "statuses": PanelInterest.LEAD_STATUS_CHOICES,
        "levels": PanelInterest.INTEREST_CHOICES,
        "q": {"status": status, "level": level, "q": search},
    }
    return render(request, "registrations/panel_leads.html", ctx)


@is_admin
def panel_lead_edit(request, pk):
    lead = get_object_or_404(PanelInterest.objects.select_related("registration"), pk=pk)
    previous = lead.status
    form = PanelLeadForm(request.POST or None, instance=lead)
    if request.method == "POST" and form.is_valid():
        services.update_panel_lead(lead, previous_status=previous, **form.cleaned_data)
        messages.success(request, "Lead updated.")
        return redirect("control:registrations:panel_leads")
    return render(request, "registrations/panel_lead_form.html", {"form": form, "lead": lead})
