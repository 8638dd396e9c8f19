import logging
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from .models import Coupon

logger = logging.getLogger(__name__)


class CouponError(ValueError):
    ...


class PricingError(ValueError):
    ...


def _usage_filter():
    # completed redemptions plus bookings whose holds still take stock
    from tickets.models import TicketReservation

    holding = TicketReservation.objects.live().values("registration_id")
    return Q(status="COMPLETED") | Q(status="PAYMENT_PENDING", pk__in=holding)


def usage_counts(coupon, email=None, exclude_registration=None):
    from registrations.models import Registration

    qs = Registration.objects.filter(_usage_filter(), applied_coupon=coupon)
    if exclude_registration is not None:
        qs = qs.exclude(pk=exclude_registration.pk)
    total = qs.values("pk").distinct().count()
    per_user = 0
    if email:
        per_user = qs.filter(email__iexact=email).values("pk").distinct().count()
    return total, per_user


def completed_uses(coupon):
    return coupon.registrations.filter(status="COMPLETED").count()


def compute_discount(coupon, order_cents):
    """Discount in cents. Percentages round half up; never more than the order."""
    order_cents = max(0, int(order_cents))
    if coupon.discount_type == "PERCENTAGE":
        pct = min(coupon.discount_value, 100)
        discount = int((Decimal(order_cents) * Decimal(pct) / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        discount = coupon.discount_value
    return min(discount, order_cents)


def validate_coupon(code, order_cents, is_ems_client=False, email=None, lock=False):
    """
    Check a coupon code for an order. Raises CouponError with a customer-facing message.
    lock=True takes a row lock on the coupon; the caller must be inside a transaction.
    """
    code = str(code or "").strip().upper()
    if not code:
        raise CouponError("Please enter a coupon code")
    if is_ems_client:
        raise CouponError("Coupons are not available for EMS customers. EMS customers receive complimentary tickets.")

    qs = Coupon.objects.filter(code=code, active=True)
    if lock:
        qs = qs.select_for_update()
    coupon = qs.first()
    if not coupon:
        raise CouponError("Invalid coupon code")

    now = timezone.now()
    if coupon.valid_from and coupon.valid_from > now:
        raise CouponError("This coupon is not yet available")
    if coupon.valid_to and coupon.valid_to < now:
        raise CouponError("This coupon has expired")

    total, per_user = usage_counts(coupon, email=email)
    if coupon.max_uses is not None and total >= coupon.max_uses:
        raise CouponError("This coupon has reached its usage limit and is no longer available")
    if email and coupon.max_uses_per_user and per_user >= coupon.max_uses_per_user:
        times = "time" if coupon.max_uses_per_user == 1 else "times"
        raise CouponError(
            f"You have already used this coupon. Each customer can only use this coupon {coupon.max_uses_per_user} {times}."
        )
    if coupon.min_order_cents and order_cents < coupon.min_order_cents:
        raise CouponError(f"This coupon requires a minimum order of €{coupon.min_order_cents / 100:.2f}")
    if coupon.ems_clients_only and not is_ems_client:
        raise CouponError("This coupon is only available for EMS customers")
    if coupon.public_only and is_ems_client:
        raise CouponError("This coupon is only available for public customers")

    actual = completed_uses(coupon)
    if coupon.current_uses != actual:
        logger.info("Coupon %s usage drifted %s -> %s, correcting", coupon.code, coupon.current_uses, actual)
        Coupon.objects.filter(pk=coupon.pk).update(current_uses=actual)
        coupon.current_uses = actual

    discount = compute_discount(coupon, order_cents)
    return {
        "coupon": coupon,
        "discount_cents": discount,
        "final_cents": max(0, order_cents - discount),
        "uses": total,
        "message": f"{coupon.name} applied successfully!",
    }


def record_redemption(coupon):
    Coupon.objects.filter(pk=coupon.pk).update(current_uses=F("current_uses") + 1)


def current_ticket_price(is_ems_client):
    """EMS clients are complimentary; public price follows the top public ticket type on sale."""
    if is_ems_client:
        return 0
    from tickets.models import TicketType

    for tt in TicketType.objects.filter(active=True, ems_clients_only=False).order_by("-sort_order", "-price_cents"):
        if tt.is_on_sale():
            return tt.price_cents
    return settings.DEFAULT_TICKET_PRICE_CENTS


def resolve_selections(raw_selections, is_ems_client=False):
    """
    raw_selections = [{"ticket_type_id": 1, "quantity": 2, "tier_id": None}, ...]
    quantity counts bundles when a tier is chosen, tickets otherwise.
    Returns priced lines from server-side prices only.
    """
    from tickets.models import PricingTier, TicketType

    if raw_selections and not isinstance(raw_selections, (list, tuple)):
        raise PricingError("Invalid ticket selection.")
    lines = []
    for raw in raw_selections or []:
        if not isinstance(raw, dict):
            raise PricingError("Invalid ticket selection.")
        try:
            tt_id = int(raw.get("ticket_type_id") or raw.get("ticketTypeId"))
            qty = int(raw.get("quantity") or 0)
        except (TypeError, ValueError):
            raise PricingError("Invalid ticket selection.")
        if qty <= 0:
            continue
        tt = TicketType.objects.filter(pk=tt_id, active=True).first()
        if not tt:
            raise PricingError("Selected ticket type is not available.")
        tier = None
        tier_id = raw.get("tier_id") or raw.get("pricingTierId")
        if tier_id:
            tier = PricingTier.objects.filter(pk=tier_id, ticket_type=tt, active=True).first()
            if not tier:
                raise PricingError(f"Selected pricing option for {tt.name} is not available.")
        if tier:
            tickets = qty * tier.ticket_count
            line_total = qty * tier.price_cents
            unit = tier.price_per_ticket_cents
        else:
            tickets = qty
            unit = tt.price_cents
            line_total = qty * unit
        if is_ems_client:
            unit = line_total = 0
        lines.append({
            "tt": tt,
            "tier": tier,
            "qty": tickets,
            "bundles": qty,
            "unit_price_cents": unit,
            "line_total_cents": line_total,
        })
    return lines


def quote(raw_selections=None, is_ems_client=False, coupon_code="", email=None, quantity=None):
    """Server-side order total. Either ticket selections or a plain ticket quantity."""
    if raw_selections:
        lines = resolve_selections(raw_selections, is_ems_client)
        original = sum(l["line_total_cents"] for l in lines)
        tickets = sum(l["qty"] for l in lines)
    else:
        tickets = 1 if quantity in (None, "") else int(quantity)
        if tickets < 1 or tickets > 10:
            raise PricingError("Quantity must be between 1 and 10.")
        lines = []
        original = current_ticket_price(is_ems_client) * tickets

    result = {
        "lines": lines,
        "ticket_count": tickets,
        "original_cents": original,
        "discount_cents": 0,
        "final_cents": original,
        "coupon": None,
        "coupon_message": "",
    }
    if coupon_code and not is_ems_client:
        applied = validate_coupon(coupon_code, original, is_ems_client=is_ems_client, email=email)
        result.update(
            discount_cents=applied["discount_cents"],
            final_cents=applied["final_cents"],
            coupon=applied["coupon"],
            coupon_message=applied["message"],
        )
    return result


def coupon_usage_rows(qs=None):
    """Per-coupon listing data: actual uses and window flags."""
    qs = qs if qs is not None else Coupon.objects.all()
    qs = qs.annotate(actual_uses=Count("registrations", filter=Q(registrations__status="COMPLETED")))
    rows = []
    for c in qs:
        pct = None
        if c.max_uses:
            pct = round(c.actual_uses * 100 / c.max_uses)
        rows.append({
            "coupon": c,
            "actual_uses": c.actual_uses,
            "expired": c.is_expired(),
            "not_yet_valid": c.is_not_yet_valid(),
            "usage_percent": pct,
        })
    return rows


def reconcile_usage(apply=True):
    """Recompute current_uses from completed registrations. Returns the coupons that were off."""
    drift = []
    with transaction.atomic():
        qs = Coupon.objects.annotate(actual=Count("registrations", filter=Q(registrations__status="COMPLETED")))
        for c in qs:
            if c.current_uses != c.actual:
                drift.append({"code": c.code, "previous": c.current_uses, "actual": c.actual, "fixed": apply})
                if apply:
                    Coupon.objects.filter(pk=c.pk).update(current_uses=c.actual)
    if apply and drift:
        logger.info("Reconciled usage for %s coupon(s)", len(drift))
    return drift


def coupon_stats():
    from registrations.models import Registration

    now = timezone.now()
    qs = Coupon.objects.all()
    completed = Registration.objects.filter(status="COMPLETED", applied_coupon__isnull=False)
    return {
        "total": qs.count(),
        "active": qs.filter(active=True).count(),
        "expired": qs.filter(valid_to__lt=now).count(),
        "total_uses": completed.count(),
        "total_discount_cents": completed.aggregate(s=Sum("discount_amount_cents"))["s"] or 0,
    }


def delete_or_deactivate(coupon):
    """Coupons that were ever applied are kept for the record and only switched off."""
    if coupon.registrations.exists():
        coupon.active = False
        coupon.save(update_fields=["active", "updated_at"])
        logger.info("Coupon %s deactivated (has registrations)", coupon.code)
        return "deactivated"
    code = coupon.code
    coupon.delete()
    logger.info("Coupon %s deleted", code)
    return "deleted"
