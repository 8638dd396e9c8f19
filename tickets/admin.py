from django.contrib import admin
from .models import PricingTier, Ticket, TicketCheckIn, TicketReservation, TicketType


class PricingTierInline(admin.TabularInline):
    model = PricingTier
    extra = 0


@admin.register(TicketType)
class TicketTypeAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "price_cents", "total_stock", "active", "available_from", "available_until")
    list_filter = ("active", "category", "pricing_type")
    search_fields = ("name",)
    inlines = [PricingTierInline]


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ("ticket_number", "registration", "ticket_type", "status", "issued_at", "checked_in_at")
    list_filter = ("status", "ticket_type")
    search_fields = ("ticket_number", "registration__email")


admin.site.register(TicketReservation)
admin.site.register(TicketCheckIn)
