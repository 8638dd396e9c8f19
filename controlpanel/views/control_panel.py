import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.auth import get_user_model
from django.shortcuts import render, redirect, get_object_or_404
from django.views.decorators.http import require_POST

from accounts.forms import InvitePasswordResetForm, InviteStaffForm, StaffRoleForm
from accounts.models import StaffProfile
from accounts.permissions import is_admin, is_super, role_of
from ..stats import dashboard_stats

logger = logging.getLogger(__name__)
User = get_user_model()


@is_admin
def dashboard(request):
    return render(request, "controlpanel/dashboard.html", {"stats": dashboard_stats()})


@is_admin
def staff_list(request):
    users = User.objects.select_related("profile").order_by("-is_active", "email")
    rows = [{"user": u, "role": role_of(u) or "-"} for u in users]
    return render(request, "controlpanel/staff_list.html", {"rows": rows, "form": InviteStaffForm()})


@is_super
def staff_invite(request):
    form = InviteStaffForm(request.POST or None)
    if request.method == "POST" and form.is_valid():
        email = form.cleaned_data["email"]

        # no usable password until the invite link is used
        user = User.objects.create_user(
            username=email, email=email,
            first_name=form.cleaned_data.get("first_name") or "",
            last_name=form.cleaned_data.get("last_name") or "",
        )
        user.set_unusable_password()
        user.save()

        # role, plus the first-login reset flag
        StaffProfile.objects.update_or_create(
            user=user, defaults={"role": form.cleaned_data["role"], "must_reset_password": True},
        )

        # invite goes out as a password reset email
        prf = InvitePasswordResetForm(data={"email": email})
        if prf.is_valid():
            prf.save(
                request=request,
                use_https=request.is_secure(),
                email_template_name="accounts/password_reset_email.txt",
                subject_template_name="accounts/password_reset_subject.txt",
                from_email=settings.DEFAULT_FROM_EMAIL,
            )
            messages.success(request, f"{email} invited. A password link was emailed.")
        else:
            messages.warning(request, "User created, but the password email could not be prepared.")
        logger.info("Staff user %s invited as %s by %s", email, form.cleaned_data["role"], request.user)
        return redirect("control:staff")
    return render(request, "controlpanel/staff_invite.html", {"form": form})


@require_POST
@is_super
def staff_role(request, pk):
    user = get_object_or_404(User, pk=pk)
    form = StaffRoleForm(request.POST)
    if form.is_valid():
        if user == request.user:
            messages.error(request, "You cannot change your own role.")
        else:
            StaffProfile.objects.update_or_create(user=user, defaults={"role": form.cleaned_data["role"]})
            messages.success(request, f"{user.get_username()} is now {form.cleaned_data['role']}.")
    return redirect("control:staff")


@require_POST
@is_super
def staff_deactivate(request, pk):
    user = get_object_or_404(User, pk=pk)
    if user == request.user:
        messages.error(request, "You cannot deactivate yourself.")
        return redirect("control:staff")
    user.is_active = not user.is_active
    user.save(update_fields=["is_active"])
    state = "reactivated" if user.is_active else "deactivated"
    messages.success(request, f"{user.get_username()} {state}.")
    return redirect("control:staff")
