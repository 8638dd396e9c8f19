from django.core.management.base import BaseCommand

from coupons.services import reconcile_usage


class Command(BaseCommand):
    help = "Recompute coupon current_uses from completed registrations."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Report drift only; no updates.")

    def handle(self, *args, **opts):
        dry = opts["dry_run"]
        drift = reconcile_usage(apply=not dry)
        for row in drift:
            self.stdout.write(f"{row['code']}: {row['previous']} -> {row['actual']}")
        if dry:
            self.stdout.write(self.style.WARNING(f"[dry-run] {len(drift)} coupon(s) out of sync"))
            return
        self.stdout.write(self.style.SUCCESS(f"Fixed {len(drift)} coupon(s)"))
