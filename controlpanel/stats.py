from django.db.models import Count, Q, Sum
from django.utils import timezone

from registrations.models import PanelInterest, Registration
from tickets.models import TicketType
from tickets.services import ticket_stats


def dashboard_stats():
    now = timezone.localtime()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month = today.replace(day=1)

    regs = Registration.objects.all()
    by_status = dict(regs.order_by().values_list("status").annotate(n=Count("id")))
    completed = regs.filter(status="COMPLETED")

    types = (TicketType.objects
             .annotate(sold=Count("tickets", filter=~Q(tickets__status="CANCELLED")))
             .order_by("-sold", "name"))
    top = types.first()

    return {
        "registrations": {
            "total": sum(by_status.values()),
            "by_status": {code.lower(): by_status.get(code, 0) for code, _ in Registration.STATUS_CHOICES},
            "today": regs.filter(created_at__gte=today, status__in=["COMPLETED", "PAYMENT_PENDING", "PENDING"]).count(),
            "ems": regs.filter(is_ems_client=True).count(),
            "public": regs.filter(is_ems_client=False).count(),
        },
        "tickets": ticket_stats(),
        "revenue": {
            "total_cents": completed.aggregate(s=Sum("final_amount_cents"))["s"] or 0,
            "month_cents": completed.filter(created_at__gte=month).aggregate(s=Sum("final_amount_cents"))["s"] or 0,
            "discount_cents": completed.aggregate(s=Sum("discount_amount_cents"))["s"] or 0,
        },
        "ticket_types": {
            "total": TicketType.objects.count(),
            "active": TicketType.objects.filter(active=True).count(),
            "vr": TicketType.objects.filter(category="VR_EXPERIENCE").count(),
            "top_seller": top.name if top and top.sold else None,
        },
        "panel_leads": PanelInterest.objects.count(),
        "recent": list(regs.order_by("-created_at")[:10]),
    }
