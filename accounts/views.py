from django.contrib.auth import views as auth_views
from django.urls import reverse, reverse_lazy

from .permissions import has_role


def _clear_reset_flag(user):
    profile = getattr(user, "profile", None)
    if profile and profile.must_reset_password:
        profile.must_reset_password = False
        profile.save(update_fields=["must_reset_password"])


class LoginViewCustom(auth_views.LoginView):
    template_name = "accounts/login.html"
    redirect_authenticated_user = True

    def get_success_url(self):
        next_url = self.get_redirect_url()
        if next_url:
            return next_url
        # admins land on the dashboard, door staff on the scanner
        if has_role(self.request.user, "ADMIN"):
            return reverse("control:home")
        return reverse("staff_scanner")


class LogoutViewCustom(auth_views.LogoutView):
    next_page = "/"


class PasswordChangeViewCustom(auth_views.PasswordChangeView):
    template_name = "accounts/password_change.html"
    success_url = reverse_lazy("control:accounts:password_change_done")

    def form_valid(self, form):
        resp = super().form_valid(form)
        _clear_reset_flag(self.request.user)
        return resp


class PasswordChangeDoneViewCustom(auth_views.PasswordChangeDoneView):
    template_name = "accounts/password_change_done.html"


class StaffPasswordResetView(auth_views.PasswordResetView):
    template_name = "accounts/password_reset.html"
    email_template_name = "accounts/password_reset_email.txt"
    subject_template_name = "accounts/password_reset_subject.txt"
    success_url = reverse_lazy("control:accounts:password_reset_done")


class StaffPasswordResetConfirmView(auth_views.PasswordResetConfirmView):
    """Invite links land here; choosing a password counts as the first-login reset."""
    template_name = "accounts/password_reset_confirm.html"
    success_url = reverse_lazy("control:accounts:password_reset_complete")

    def form_valid(self, form):
        resp = super().form_valid(form)
        _clear_reset_flag(form.user)
        return resp
