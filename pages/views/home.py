from django.shortcuts import render

from events.utils import registration_enabled
from tickets.models import TicketType


def home(request):
    # Featured types first; template guards for an empty list.
    types = [tt for tt in TicketType.objects.filter(active=True, featured=True).prefetch_related("tiers")
             if tt.is_on_sale()]
    return render(request, "pages/home.html", {
        "featured_types": types,
        "registration_open": registration_enabled(),
    })


def contact(request):
    return render(request, "pages/contact.html")


def privacy(request):
    return render(request, "pages/privacy.html")
