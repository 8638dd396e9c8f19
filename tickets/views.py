import csv
import json
import logging

from django.contrib import messages
from django.db.models import Count, Q
from django.http import HttpResponse, JsonResponse, Http404
from django.shortcuts import render, redirect, get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from accounts.permissions import is_admin, is_staff_member
from coreutils.mailer import send_tickets
from registrations.models import Registration
from .forms import PricingTierFormSet, StockForm, TicketTypeForm
from .models import Ticket, TicketType
from .pdf import pdf_filename, render_tickets_pdf
from .services import adjust_stock, cancel_ticket, mark_collected, mark_sent, search_tickets, ticket_stats, verify_ticket
from .utils import qr_png_bytes

logger = logging.getLogger(__name__)


# ---------- public ----------

def ticket_types_api(request):
    """
    Ticket types for the booking form, with live availability and tier savings.
    ?category=VR_EXPERIENCE lists one category only, featured types first.
    """
    is_ems = request.GET.get("is_ems_client") in ("1", "true", "yes")
    qs = TicketType.objects.filter(active=True).prefetch_related("tiers")
    category = (request.GET.get("category") or "").strip().upper()
    if category:
        if category not in dict(TicketType.CATEGORY_CHOICES):
            return JsonResponse({"success": False, "message": f"Unknown category {category}"}, status=400)
        qs = qs.filter(category=category).order_by("-featured", "sort_order", "name")
    out = []
    for tt in qs:
        if not tt.is_on_sale() or not tt.open_to(is_ems):
            continue
        stock = tt.stock_summary()
        out.append({
            "id": tt.id,
            "name": tt.name,
            "description": tt.description,
            "category": tt.category,
            "pricing_type": tt.pricing_type,
            "price": 0 if is_ems else tt.price_cents,
            "min_per_order": tt.min_per_order,
            "max_per_order": tt.max_per_order,
            "featured": tt.featured,
            "available": stock["available"],
            "sold_out": stock["available"] == 0,
            "tiers": [
                {
                    "id": tier.id,
                    "name": tier.name,
                    "ticket_count": tier.ticket_count,
                    "price": tier.price_cents,
                    "price_per_ticket": tier.price_per_ticket_cents,
                    "savings": tier.savings_cents,
                    "savings_percent": tier.savings_percent,
                    "popular": tier.popular,
                }
                for tier in tt.tiers.all() if tier.active
            ],
        })
    return JsonResponse({"success": True, "data": out})


def tickets_pdf(request, reference):
    """Customer download. The registration reference is the secret."""
    reg = get_object_or_404(Registration, reference=reference)
    if reg.status != "COMPLETED":
        raise Http404("Tickets are not available yet.")
    tickets = list(reg.tickets.exclude(status="CANCELLED").select_related("ticket_type", "registration"))
    if not tickets:
        raise Http404("No tickets.")
    resp = HttpResponse(render_tickets_pdf(tickets), content_type="application/pdf")
    resp["Content-Disposition"] = f'attachment; filename="{pdf_filename(reg)}"'
    return resp


# ---------- door staff ----------

@is_staff_member
def scanner(request):
    return render(request, "tickets/scanner.html", {"stats": ticket_stats()})


@is_staff_member
def staff_verify(request, ticket_number):
    """Target of the QR code. GET shows the ticket, POST admits it."""
    if request.method == "POST":
        result = verify_ticket(ticket_number, staff=request.user,
                               location=request.POST.get("location", ""), check_in=True)
    else:
        result = verify_ticket(ticket_number, staff=request.user, check_in=False)
    return render(request, "tickets/verify.html", {"result": result, "ticket_number": ticket_number})


@csrf_exempt  # posted from the scanner page JS
@is_staff_member
def staff_verify_api(request):
    """
    POST JSON: {"code": "<scanned text or ticket number>", "location": "...", "check_in": true}
    Returns JSON with status: "ok" | "already" | "refused" | "invalid"
    """
    if request.method != "POST":
        return JsonResponse({"success": False, "message": "POST required"}, status=400)
    try:
        data = json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return JsonResponse({"success": False, "message": "Invalid JSON"}, status=400)

    raw = (data.get("code") or data.get("ticket_number") or "").strip()
    if not raw:
        return JsonResponse({"success": False, "can_enter": False, "message": "Ticket number is required"}, status=400)
    result = verify_ticket(raw, staff=request.user, location=data.get("location") or "",
                           check_in=data.get("check_in", True) is not False)
    return JsonResponse({"success": result["valid"], **result})


@is_staff_member
def staff_search(request):
    try:
        results = search_tickets(request.GET.get("q"))
    except ValueError as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    return JsonResponse({"success": True, "results": results})


@require_POST
@is_staff_member
def staff_collect(request, ticket_number):
    t = get_object_or_404(Ticket, ticket_number=ticket_number)
    label = request.user.get_full_name() or request.user.get_username()
    try:
        mark_collected(t, collected_by=label)
    except ValueError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, f"{t.ticket_number} marked as collected.")
    return redirect("staff_verify", ticket_number=t.ticket_number)


# ---------- control: ticket types ----------

@is_admin
def tickettypes_list(request):
    types = list(TicketType.objects.prefetch_related("tiers"))
    for tt in types:
        tt.stock = tt.stock_summary()
    return render(request, "tickets/types_list.html", {"types": types, "stock_form": StockForm()})


@is_admin
def tickettype_add(request):
    form = TicketTypeForm(request.POST or None)
    tiers = PricingTierFormSet(request.POST or None, instance=TicketType())
    if request.method == "POST" and form.is_valid() and tiers.is_valid():
        tt = form.save()
        tiers.instance = tt
        tiers.save()
        messages.success(request, f"{tt.name} created.")
        return redirect("control:tickets:types")
    return render(request, "tickets/type_form.html", {"form": form, "tiers": tiers, "mode": "add"})


@is_admin
def tickettype_edit(request, pk):
    tt = get_object_or_404(TicketType, pk=pk)
    form = TicketTypeForm(request.POST or None, instance=tt)
    tiers = PricingTierFormSet(request.POST or None, instance=tt)
    if request.method == "POST" and form.is_valid() and tiers.is_valid():
        form.save()
        tiers.save()
        messages.success(request, f"{tt.name} updated.")
        return redirect("control:tickets:types")
    return render(request, "tickets/type_form.html", {"form": form, "tiers": tiers, "mode": "edit", "tt": tt})


@require_POST
@is_admin
def tickettype_delete(request, pk):
    tt = get_object_or_404(TicketType, pk=pk)
    if tt.tickets.exists():
        tt.active = False
        tt.save(update_fields=["active", "updated_at"])
        messages.warning(request, f"{tt.name} has issued tickets and was deactivated instead of deleted.")
    else:
        tt.delete()
        messages.success(request, "Ticket type deleted.")
    return redirect("control:tickets:types")


@require_POST
@is_admin
def tickettype_stock(request, pk):
    tt = get_object_or_404(TicketType, pk=pk)
    form = StockForm(request.POST)
    if not form.is_valid():
        messages.error(request, "Pick an action and a positive quantity.")
        return redirect("control:tickets:types")
    try:
        tt = adjust_stock(tt, form.cleaned_data["action"], form.cleaned_data["quantity"])
    except ValueError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, f"{tt.name}: total stock now {tt.total_stock}.")
    return redirect("control:tickets:types")


# ---------- control: issued tickets ----------

def _filtered_tickets(params):
    qs = (Ticket.objects
          .select_related("ticket_type", "registration", "check_in")
          .order_by("-issued_at"))

    type_id = params.get("type") or ""
    status = params.get("status") or ""
    date_from = params.get("from") or ""
    date_to = params.get("to") or ""
    name_q = params.get("name") or ""
    email_q = params.get("email") or ""
    checked = params.get("checked") or ""  # "yes" | "no" | ""

    if type_id:
        qs = qs.filter(ticket_type_id=type_id)
    if status:
        qs = qs.filter(status=status)
    if date_from:
        qs = qs.filter(issued_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(issued_at__date__lte=date_to)
    if name_q:
        qs = qs.filter(Q(registration__first_name__icontains=name_q) | Q(registration__last_name__icontains=name_q))
    if email_q:
        qs = qs.filter(registration__email__icontains=email_q)
    if checked == "yes":
        qs = qs.filter(status="USED")
    elif checked == "no":
        qs = qs.exclude(status="USED")
    q = {"type": type_id, "status": status, "from": date_from, "to": date_to,
         "name": name_q, "email": email_q, "checked": checked}
    return qs, q


@is_admin
def tickets_sold(request):
    qs, q = _filtered_tickets(request.GET)

    total = qs.count()
    checked_in = qs.filter(status="USED").count()

    # per-type totals (capacity / sold / remaining / check-ins)
    type_qs = (TicketType.objects
               .annotate(sold=Count("tickets", filter=~Q(tickets__status="CANCELLED")),
                         checked_in=Count("tickets", filter=Q(tickets__status="USED")))
               .order_by("sort_order", "name"))
    if q["type"]:
        type_qs = type_qs.filter(id=q["type"])
    types_summary = []
    for tt in type_qs:
        types_summary.append({
            "id": tt.id,
            "name": tt.name,
            "capacity": tt.total_stock,
            "sold": tt.sold,
            "remaining": tt.remaining(),
            "checked_in": tt.checked_in,
        })

    ctx = {
        "tickets": qs[:1000],
        "types": TicketType.objects.order_by("sort_order", "name"),
        "statuses": Ticket.STATUS_CHOICES,
        "q": q,
        "summary": {"total": total, "checked_in": checked_in},
        "types_summary": types_summary,
        "stats": ticket_stats(),
    }
    return render(request, "tickets/sales.html", ctx)


@is_admin
def tickets_sold_export(request):
    qs, _ = _filtered_tickets(request.GET)

    resp = HttpResponse(content_type="text/csv")
    resp["Content-Disposition"] = "attachment; filename=tickets.csv"
    w = csv.writer(resp)
    w.writerow(["issued_at", "ticket_number", "type", "status", "customer_name", "customer_email",
                "customer_type", "checked_in_at", "price_cents"])
    for t in qs.iterator():
        reg = t.registration
        w.writerow([
            t.issued_at.strftime("%Y-%m-%d %H:%M"),
            t.ticket_number,
            getattr(t.ticket_type, "name", ""),
            t.status,
            reg.full_name,
            reg.email,
            reg.customer_type,
            t.checked_in_at.strftime("%Y-%m-%d %H:%M") if t.checked_in_at else "",
            t.purchase_price_cents,
        ])
    return resp


@is_admin
def ticket_detail(request, pk):
    t = get_object_or_404(Ticket.objects.select_related("ticket_type", "registration", "issued_by"), pk=pk)
    ci = getattr(t, "check_in", None)
    return render(request, "tickets/ticket_detail.html", {"t": t, "check_in": ci})


@is_admin
def ticket_qr_png(request, pk):
    t = get_object_or_404(Ticket, pk=pk)
    return HttpResponse(qr_png_bytes(t.verify_url), content_type="image/png")


@require_POST
@is_admin
def ticket_cancel(request, pk):
    t = get_object_or_404(Ticket, pk=pk)
    try:
        cancel_ticket(t)
    except ValueError as e:
        messages.error(request, str(e))
    else:
        messages.success(request, f"{t.ticket_number} cancelled.")
    return redirect("control:tickets:ticket_detail", pk=pk)


@require_POST
@is_admin
def ticket_resend_email(request, pk):
    t = get_object_or_404(Ticket.objects.select_related("registration", "ticket_type"), pk=pk)
    if t.status == "CANCELLED":
        messages.error(request, "This ticket is cancelled.")
        return redirect("control:tickets:ticket_detail", pk=pk)
    if send_tickets(t.registration, [t]):
        mark_sent([t])
        messages.success(request, "Ticket email re-sent.")
    else:
        messages.error(request, "Email could not be sent; see the email log.")
    return redirect("control:tickets:ticket_detail", pk=pk)


@is_admin
def registration_pdf(request, pk):
    reg = get_object_or_404(Registration, pk=pk)
    tickets = list(reg.tickets.exclude(status="CANCELLED").select_related("ticket_type", "registration"))
    if not tickets:
        messages.error(request, "This registration has no tickets.")
        return redirect("control:registrations:detail", pk=pk)
    resp = HttpResponse(render_tickets_pdf(tickets), content_type="application/pdf")
    resp["Content-Disposition"] = f'attachment; filename="{pdf_filename(reg)}"'
    return resp
