from django.contrib import admin
from .models import EmailLog, PanelInterest, Registration


class PanelInterestInline(admin.TabularInline):
    model = PanelInterest
    extra = 0


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ("email", "first_name", "last_name", "is_ems_client", "status", "final_amount_cents", "created_at")
    list_filter = ("status", "is_ems_client")
    search_fields = ("email", "first_name", "last_name", "company_name", "order_number")
    readonly_fields = ("reference", "created_at", "updated_at")
    inlines = [PanelInterestInline]


@admin.register(EmailLog)
class EmailLogAdmin(admin.ModelAdmin):
    list_display = ("email_type", "recipient", "status", "sent_at")
    list_filter = ("email_type", "status")
    search_fields = ("recipient", "subject")


admin.site.register(PanelInterest)
