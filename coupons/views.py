import json
import logging

from django.contrib import messages
from django.core.paginator import Paginator
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import render, redirect, get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from accounts.permissions import is_admin
from .forms import CouponForm
from .models import Coupon
from .services import (
    CouponError, PricingError, coupon_stats, coupon_usage_rows, delete_or_deactivate,
    quote, reconcile_usage, validate_coupon,
)

logger = logging.getLogger(__name__)


def _json_body(request):
    """Decoded JSON object, or None when the body is not one."""
    try:
        data = json.loads(request.body.decode("utf-8") or "{}")
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _as_bool(v):
    if isinstance(v, bool):
        return v
    return str(v or "").lower() in ("1", "true", "yes", "on")


# ---------- public API ----------

@csrf_exempt
@require_POST
def validate_api(request):
    """POST JSON: {"code", "order_amount", "is_ems_client", "customer_email"}"""
    data = _json_body(request)
    if data is None:
        return JsonResponse({"success": False, "message": "Invalid request data"}, status=400)
    try:
        order_cents = int(data.get("order_amount") or 0)
    except (TypeError, ValueError):
        return JsonResponse({"success": False, "message": "Invalid request data"}, status=400)
    if order_cents < 0:
        return JsonResponse({"success": False, "message": "Invalid request data"}, status=400)

    try:
        result = validate_coupon(
            data.get("code"), order_cents,
            is_ems_client=_as_bool(data.get("is_ems_client")),
            email=str(data.get("customer_email") or "").strip() or None,
        )
    except CouponError as e:
        return JsonResponse({"success": False, "message": str(e)})

    c = result["coupon"]
    return JsonResponse({
        "success": True,
        "data": {
            "is_valid": True,
            "coupon": {
                "id": c.id,
                "code": c.code,
                "name": c.name,
                "discount_type": c.discount_type,
                "discount_value": c.discount_value,
                "min_order_amount": c.min_order_cents,
                "max_uses_per_user": c.max_uses_per_user,
                "current_uses": result["uses"],
                "max_uses": c.max_uses,
            },
            "discount_amount": result["discount_cents"],
            "final_amount": result["final_cents"],
            "message": result["message"],
        },
    })


@csrf_exempt
@require_POST
def pricing_api(request):
    """POST JSON: {"selections": [...]} or {"quantity": n}, plus "is_ems_client", "coupon_code", "customer_email"."""
    data = _json_body(request)
    if data is None:
        return JsonResponse({"success": False, "message": "Invalid request data"}, status=400)
    try:
        q = quote(
            data.get("selections"),
            is_ems_client=_as_bool(data.get("is_ems_client")),
            coupon_code=data.get("coupon_code") or "",
            email=str(data.get("customer_email") or "").strip() or None,
            quantity=data.get("quantity"),
        )
    except (CouponError, PricingError) as e:
        return JsonResponse({"success": False, "message": str(e)}, status=400)
    except (TypeError, ValueError):
        return JsonResponse({"success": False, "message": "Invalid request data"}, status=400)

    return JsonResponse({
        "success": True,
        "data": {
            "ticket_count": q["ticket_count"],
            "original_amount": q["original_cents"],
            "discount_amount": q["discount_cents"],
            "final_amount": q["final_cents"],
            "formatted_original_amount": f"€{q['original_cents'] / 100:.2f}",
            "formatted_discount_amount": f"€{q['discount_cents'] / 100:.2f}",
            "formatted_final_amount": f"€{q['final_cents'] / 100:.2f}",
            "has_discount": q["discount_cents"] > 0,
            "coupon_code": q["coupon"].code if q["coupon"] else None,
            "lines": [
                {
                    "ticket_type_id": l["tt"].id,
                    "ticket_type": l["tt"].name,
                    "tier_id": l["tier"].id if l["tier"] else None,
                    "tickets": l["qty"],
                    "unit_price": l["unit_price_cents"],
                    "line_total": l["line_total_cents"],
                }
                for l in q["lines"]
            ],
        },
    })


# ---------- control panel ----------

@is_admin
def coupon_list(request):
    qs = Coupon.objects.all()
    search = (request.GET.get("q") or "").strip()
    status = request.GET.get("status") or ""
    if search:
        qs = qs.filter(Q(code__icontains=search) | Q(name__icontains=search) | Q(description__icontains=search))
    if status == "active":
        qs = qs.filter(active=True)
    elif status == "inactive":
        qs = qs.filter(active=False)

    page = Paginator(qs.order_by("-created_at"), 20).get_page(request.GET.get("page"))
    ctx = {
        "page": page,
        "rows": coupon_usage_rows(Coupon.objects.filter(pk__in=[c.pk for c in page])),
        "stats": coupon_stats(),
        "q": {"q": search, "status": status},
    }
    return render(request, "coupons/list.html", ctx)


@is_admin
def coupon_add(request):
    form = CouponForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        coupon = form.save(commit=False)
        coupon.created_by = request.user
        coupon.save()
        messages.success(request, f"Coupon {coupon.code} created.")
        return redirect("control:coupons:list")
    return render(request, "coupons/form.html", {"form": form, "mode": "add"})


@is_admin
def coupon_edit(request, pk):
    coupon = get_object_or_404(Coupon, pk=pk)
    form = CouponForm(request.POST or None, instance=coupon)
    if request.method == "POST" and form.is_valid():
        form.save()
        messages.success(request, f"Coupon {coupon.code} updated.")
        return redirect("control:coupons:list")
    return render(request, "coupons/form.html", {"form": form, "mode": "edit", "coupon": coupon})


@require_POST
@is_admin
def coupon_delete(request, pk):
    coupon = get_object_or_404(Coupon, pk=pk)
    code = coupon.code
    outcome = delete_or_deactivate(coupon)
    if outcome == "deleted":
        messages.success(request, f"Coupon {code} deleted.")
    else:
        messages.warning(request, f"Coupon {code} has been used and was deactivated instead of deleted.")
    return redirect("control:coupons:list")


@is_admin
def fix_usage(request):
    """GET reports drift, POST fixes it."""
    if request.method == "POST":
        drift = reconcile_usage(apply=True)
        messages.success(request, f"Fixed {len(drift)} coupon(s).")
        return redirect("control:coupons:fix_usage")
    drift = reconcile_usage(apply=False)
    return render(request, "coupons/fix_usage.html", {"drift": drift})
