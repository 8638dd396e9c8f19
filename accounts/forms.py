from django import forms
from django.contrib.auth import get_user_model
from django.contrib.auth.forms import PasswordResetForm

from .models import StaffProfile

User = get_user_model()


class InvitePasswordResetForm(PasswordResetForm):
    def get_users(self, email):
        # Include active users even if they have an unusable password.
        return User._default_manager.filter(
            email__iexact=email,
            is_active=True,
        )


class InviteStaffForm(forms.Form):
    email = forms.EmailField()
    first_name = forms.CharField(max_length=80, required=False)
    last_name = forms.CharField(max_length=80, required=False)
    role = forms.ChoiceField(choices=StaffProfile.ROLE_CHOICES, initial="STAFF")

    def clean_email(self):
        e = self.cleaned_data["email"].strip().lower()
        if User.objects.filter(email__iexact=e).exists() or User.objects.filter(username__iexact=e).exists():
            raise forms.ValidationError("Email already in use.")
        return e


class StaffRoleForm(forms.Form):
    role = forms.ChoiceField(choices=StaffProfile.ROLE_CHOICES)
