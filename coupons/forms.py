from django import forms
from .models import Coupon


class CouponForm(forms.ModelForm):
    class Meta:
        model = Coupon
        fields = [
            "code", "name", "description", "discount_type", "discount_value", "min_order_cents",
            "max_uses", "max_uses_per_user", "valid_from", "valid_to",
            "ems_clients_only", "public_only", "active", "notes",
        ]
        widgets = {
            "valid_from": forms.DateTimeInput(attrs={"type": "datetime-local"}),
            "valid_to": forms.DateTimeInput(attrs={"type": "datetime-local"}),
            "description": forms.Textarea(attrs={"rows": 2}),
            "notes": forms.Textarea(attrs={"rows": 2}),
        }

    def clean_code(self):
        code = (self.cleaned_data.get("code") or "").strip().upper()
        if len(code) < 2 or len(code) > 20:
            raise forms.ValidationError("Code must be between 2 and 20 characters.")
        if not code.replace("-", "").replace("_", "").isalnum():
            raise forms.ValidationError("Use letters, digits, dashes or underscores only.")
        dupes = Coupon.objects.filter(code=code)
        if self.instance.pk:
            dupes = dupes.exclude(pk=self.instance.pk)
        if dupes.exists():
            raise forms.ValidationError("A coupon with this code already exists.")
        return code

    def clean_max_uses_per_user(self):
        v = self.cleaned_data.get("max_uses_per_user")
        if v is not None and v < 1:
            raise forms.ValidationError("Must be at least 1.")
        return v

    def clean(self):
        cleaned = super().clean()
        dtype = cleaned.get("discount_type")
        value = cleaned.get("discount_value")
        if dtype == "PERCENTAGE" and value is not None and not (1 <= value <= 100):
            self.add_error("discount_value", "Percentage must be between 1 and 100.")
        if dtype == "FIXED_AMOUNT" and value is not None and value < 1:
            self.add_error("discount_value", "Amount must be at least 1 cent.")
        vf, vt = cleaned.get("valid_from"), cleaned.get("valid_to")
        if vf and vt and vt <= vf:
            self.add_error("valid_to", "Valid to must be after valid from.")
        if cleaned.get("ems_clients_only") and cleaned.get("public_only"):
            self.add_error("public_only", "A coupon cannot be both EMS-only and public-only.")
        return cleaned
