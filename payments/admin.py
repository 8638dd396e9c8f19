from django.contrib import admin
from .models import Payment, StripeEvent


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("registration", "amount_cents", "currency", "status", "paid_at", "stripe_session_id")
    list_filter = ("status",)
    search_fields = ("stripe_session_id", "stripe_payment_intent", "registration__email")


@admin.register(StripeEvent)
class StripeEventAdmin(admin.ModelAdmin):
    list_display = ("event_id", "type", "created_at")
    search_fields = ("event_id", "type")
