from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from events.utils import seed_default_settings


class Command(BaseCommand):
    help = "Create the default event settings and, optionally, a first admin user."

    def add_arguments(self, parser):
        parser.add_argument("--overwrite", action="store_true", help="Reset existing settings to the defaults.")
        parser.add_argument("--admin-email", default="", help="Create a superuser with this email.")
        parser.add_argument("--admin-password", default="", help="Password for --admin-email.")

    def handle(self, *args, **opts):
        n = seed_default_settings(overwrite=opts["overwrite"])
        self.stdout.write(self.style.SUCCESS(f"Wrote {n} event setting(s)"))

        email = (opts["admin_email"] or "").strip().lower()
        if not email:
            return
        User = get_user_model()
        user = User.objects.filter(username=email).first()
        if user:
            self.stdout.write(self.style.WARNING(f"Admin {email} already exists"))
            return
        user = User.objects.create_superuser(username=email, email=email, password=opts["admin_password"] or None)
        profile = getattr(user, "profile", None)
        if profile and opts["admin_password"]:
            profile.must_reset_password = False
            profile.save(update_fields=["must_reset_password"])
        self.stdout.write(self.style.SUCCESS(f"Created admin {email}"))
