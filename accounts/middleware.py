from django.shortcuts import redirect
from django.urls import reverse

EXEMPT_NAMES = {
    "control:accounts:password_change",
    "control:accounts:password_change_done",
    "control:accounts:login",
    "control:accounts:logout",
}


class ForcePasswordChangeMiddleware:
    """Invited staff must set their own password before using anything else."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_view(self, request, view_func, view_args, view_kwargs):
        u = request.user
        if not u.is_authenticated:
            return None
        profile = getattr(u, "profile", None)
        if not profile or not profile.must_reset_password:
            return None
        name = request.resolver_match.view_name if request.resolver_match else ""
        if name in EXEMPT_NAMES or name.startswith(("admin:", "control:accounts:password_reset")):
            return None
        return redirect(reverse("control:accounts:password_change"))
