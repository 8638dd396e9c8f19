from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone
from django.apps import apps
from datetime import timedelta


class Command(BaseCommand):
    help = "Cancel stale PAYMENT_PENDING registrations and delete their expired ticket reservations."

    def add_arguments(self, parser):
        parser.add_argument("--older-than-min", type=int, default=60,
                            help="Only purge holds that expired more than this many minutes ago (default: 60).")
        parser.add_argument("--limit", type=int, default=2000, help="Max registrations per run.")
        parser.add_argument("--dry-run", action="store_true", help="Log only; no changes.")

    def handle(self, *args, **opts):
        TicketReservation = apps.get_model("tickets", "TicketReservation")
        Registration = apps.get_model("registrations", "Registration")
        Payment = apps.get_model("payments", "Payment")
        older_than_min = opts["older_than_min"]
        limit = opts["limit"]
        dry = opts["dry_run"]

        cutoff = timezone.now() - timedelta(minutes=older_than_min)
        stale = (TicketReservation.objects
                 .filter(fulfilled=False, expires_at__lt=cutoff)
                 .order_by("expires_at"))
        reg_ids = list(stale.exclude(registration__isnull=True)
                       .order_by()
                       .values_list("registration_id", flat=True).distinct()[:limit])
        regs = Registration.objects.filter(pk__in=reg_ids, status="PAYMENT_PENDING")
        orphan = stale.filter(registration__isnull=True)

        if dry:
            self.stdout.write(self.style.WARNING(
                f"[dry-run] Would cancel {regs.count()} registrations and purge "
                f"{stale.filter(registration_id__in=reg_ids).count() + orphan.count()} holds"))
            return

        with transaction.atomic():
            cancelled = []
            for reg in regs.select_for_update():
                # still inside the grace window
                if reg.reservations.filter(fulfilled=False, expires_at__gte=cutoff).exists():
                    continue
                # bank payment submitted, settles later
                if Payment.objects.filter(registration=reg, status="PENDING").exclude(stripe_payment_intent="").exists():
                    continue
                reg.status = "CANCELLED"
                reg.save(update_fields=["status", "updated_at"])
                Payment.objects.filter(registration=reg, status="PENDING").update(status="CANCELLED")
                cancelled.append(reg.pk)
            deleted, _ = (TicketReservation.objects
                          .filter(fulfilled=False, expires_at__lt=cutoff)
                          .filter(registration_id__in=cancelled)
                          .delete())
            deleted += orphan.delete()[0]
        self.stdout.write(self.style.SUCCESS(f"Cancelled {len(cancelled)} registrations, purged {deleted} expired holds"))
