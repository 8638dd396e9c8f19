from django import forms
from django.forms import inlineformset_factory

from .models import PricingTier, TicketType


class TicketTypeForm(forms.ModelForm):
    class Meta:
        model = TicketType
        fields = [
            "name", "description", "category", "pricing_type", "price_cents", "total_stock",
            "min_per_order", "max_per_order", "ems_clients_only", "public_only", "featured",
            "sort_order", "available_from", "available_until", "active", "notes",
        ]
        widgets = {
            "available_from": forms.DateTimeInput(attrs={"type": "datetime-local"}),
            "available_until": forms.DateTimeInput(attrs={"type": "datetime-local"}),
            "description": forms.Textarea(attrs={"rows": 2}),
            "notes": forms.Textarea(attrs={"rows": 2}),
        }

    def clean(self):
        cleaned = super().clean()
        lo, hi = cleaned.get("min_per_order"), cleaned.get("max_per_order")
        if lo is not None and hi is not None:
            if lo < 1:
                self.add_error("min_per_order", "Must be at least 1.")
            if hi > 50:
                self.add_error("max_per_order", "At most 50 per order.")
            if hi < lo:
                self.add_error("max_per_order", "Max per order must not be below min per order.")
        af, au = cleaned.get("available_from"), cleaned.get("available_until")
        if af and au and au <= af:
            self.add_error("available_until", "Must be after available from.")
        if cleaned.get("ems_clients_only") and cleaned.get("public_only"):
            self.add_error("public_only", "A ticket type cannot be both EMS-only and public-only.")
        if self.instance.pk and cleaned.get("total_stock") is not None:
            floor = self.instance.sold_qty() + self.instance.reserved_qty()
            if cleaned["total_stock"] < floor:
                self.add_error("total_stock", f"Cannot go below {floor} (sold + reserved).")
        return cleaned


PricingTierFormSet = inlineformset_factory(
    TicketType, PricingTier,
    fields=["name", "ticket_count", "price_cents", "sort_order", "popular", "active"],
    extra=1, can_delete=True,
)


class StockForm(forms.Form):
    ACTIONS = [("restock", "Restock"), ("withdraw", "Withdraw")]
    action = forms.ChoiceField(choices=ACTIONS)
    quantity = forms.IntegerField(min_value=1)
