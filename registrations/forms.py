from django import forms

from tickets.models import TicketType
from .models import PanelInterest, Registration


class RegistrationForm(forms.Form):
    first_name = forms.CharField(max_length=80, min_length=2,
                                 error_messages={"min_length": "First name must be at least 2 characters"})
    last_name = forms.CharField(max_length=80, min_length=2,
                                error_messages={"min_length": "Last name must be at least 2 characters"})
    email = forms.EmailField(error_messages={"invalid": "Please enter a valid email address"})
    phone = forms.CharField(max_length=40, min_length=8,
                            error_messages={"min_length": "Please enter a valid phone number"})
    id_card_number = forms.CharField(max_length=40, required=False)
    is_ems_client = forms.BooleanField(required=False)
    company_name = forms.CharField(max_length=160, required=False)
    ems_customer_id = forms.CharField(max_length=60, required=False)
    account_manager = forms.CharField(max_length=120, required=False)
    order_number = forms.CharField(max_length=60, required=False)

    panel_interest = forms.BooleanField(required=False)
    panel_type = forms.CharField(max_length=80, required=False)
    interest_level = forms.ChoiceField(choices=PanelInterest.INTEREST_CHOICES, required=False)
    estimated_budget = forms.CharField(max_length=80, required=False)
    timeframe = forms.CharField(max_length=80, required=False)
    panel_notes = forms.CharField(required=False)

    accept_terms = forms.BooleanField(error_messages={"required": "You must accept the terms"})
    accept_privacy_policy = forms.BooleanField(error_messages={"required": "You must accept the privacy policy"})

    def clean_email(self):
        return self.cleaned_data["email"].strip().lower()

    def clean(self):
        cleaned = super().clean()
        if cleaned.get("is_ems_client"):
            idn = (cleaned.get("id_card_number") or "").strip()
            if len(idn) < 5:
                self.add_error("id_card_number", "Please enter a valid ID card number")
        return cleaned


class RegistrationEditForm(forms.ModelForm):
    class Meta:
        model = Registration
        fields = [
            "first_name", "last_name", "email", "phone", "id_card_number",
            "company_name", "ems_customer_id", "account_manager", "order_number", "admin_notes",
        ]
        widgets = {"admin_notes": forms.Textarea(attrs={"rows": 3})}


class ApproveForm(forms.Form):
    ticket_quantity = forms.IntegerField(min_value=1, max_value=10, initial=1)
    ticket_type = forms.ModelChoiceField(queryset=TicketType.objects.none(), required=False)
    admin_notes = forms.CharField(required=False, widget=forms.Textarea(attrs={"rows": 2}))

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["ticket_type"].queryset = TicketType.objects.filter(active=True, public_only=False)


class RejectForm(forms.Form):
    rejected_reason = forms.CharField(widget=forms.Textarea(attrs={"rows": 3}))


class GenerateTicketsForm(forms.Form):
    ticket_type = forms.ModelChoiceField(queryset=TicketType.objects.none())
    quantity = forms.IntegerField(min_value=1, max_value=50, initial=1)
    price_cents = forms.IntegerField(min_value=0, initial=0, required=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["ticket_type"].queryset = TicketType.objects.filter(active=True)


class QuickRegistrationForm(forms.Form):
    """Box-office sale: admin books a customer and issues tickets in one step."""
    first_name = forms.CharField(max_length=80)
    last_name = forms.CharField(max_length=80)
    email = forms.EmailField()
    phone = forms.CharField(max_length=40, required=False)
    is_ems_client = forms.BooleanField(required=False)
    company_name = forms.CharField(max_length=160, required=False)
    ticket_type = forms.ModelChoiceField(queryset=TicketType.objects.none())
    quantity = forms.IntegerField(min_value=1, max_value=50, initial=1)
    amount_paid_cents = forms.IntegerField(min_value=0, initial=0, required=False)
    admin_notes = forms.CharField(required=False, widget=forms.Textarea(attrs={"rows": 2}))
    send_email = forms.BooleanField(required=False, initial=True)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields["ticket_type"].queryset = TicketType.objects.filter(active=True)

    def clean_email(self):
        return self.cleaned_data["email"].strip().lower()


class PanelLeadForm(forms.ModelForm):
    class Meta:
        model = PanelInterest
        fields = ["status", "interest_level", "assigned_to", "follow_up_date", "notes"]
        widgets = {
            "follow_up_date": forms.DateInput(attrs={"type": "date"}),
            "notes": forms.Textarea(attrs={"rows": 2}),
        }
