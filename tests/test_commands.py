from datetime import timedelta
from io import StringIO

import pytest
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.utils import timezone

from events.models import EventSetting
from events.utils import DEFAULT_SETTINGS, event_info, get_setting, registration_enabled, seed_default_settings
from payments.models import Payment
from tickets.models import TicketReservation
from tests.base import make_coupon, make_hold, make_registration, make_ticket_type


def run(*args, **kw):
    out = StringIO()
    call_command(*args, stdout=out, **kw)
    return out.getvalue()


@pytest.mark.django_db
class TestEventSettings:
    def test_defaults_apply_without_rows(self):
        info = event_info()
        assert info["venue_name"] == "Malta Fairs and Conventions Centre"
        assert registration_enabled() is True

    def test_stored_value_wins(self):
        EventSetting.objects.create(key="BOOTH_LOCATION", value="Hall 2, Stand 14")
        assert get_setting("BOOTH_LOCATION") == "Hall 2, Stand 14"
        assert event_info()["booth_location"] == "Hall 2, Stand 14"

    def test_seed_is_idempotent(self):
        assert seed_default_settings() == len(DEFAULT_SETTINGS)
        assert seed_default_settings() == 0
        EventSetting.objects.filter(key="EVENT_NAME").update(value="Renamed")
        assert seed_default_settings() == 0
        assert seed_default_settings(overwrite=True) == 1
        assert get_setting("EVENT_NAME") == "EMS Trade Fair VIP Experience"

    def test_seed_event_command_creates_admin(self):
        out = run("seed_event", "--admin-email", "Boss@EMS.test", "--admin-password", "s3cret-pass-99")
        assert "Created admin boss@ems.test" in out
        user = get_user_model().objects.get(username="boss@ems.test")
        assert user.is_superuser
        assert user.profile.role == "SUPER_ADMIN"
        assert EventSetting.objects.count() == len(DEFAULT_SETTINGS)


@pytest.mark.django_db
class TestSyncCouponUsage:
    def test_dry_run_then_fix(self):
        c = make_coupon(current_uses=5)
        make_registration(status="COMPLETED", applied_coupon=c)
        out = run("sync_coupon_usage", "--dry-run")
        assert "SAVE10: 5 -> 1" in out
        c.refresh_from_db()
        assert c.current_uses == 5
        run("sync_coupon_usage")
        c.refresh_from_db()
        assert c.current_uses == 1


@pytest.mark.django_db
class TestPurgeExpiredReservations:
    def test_stale_booking_is_cancelled(self):
        tt = make_ticket_type()
        stale = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=stale, minutes=-120)
        Payment.objects.create(registration=stale, stripe_session_id="cs_stale", amount_cents=5000)
        fresh = make_registration(email="fresh@example.com", status="PAYMENT_PENDING")
        make_hold(tt, registration=fresh, minutes=20)
        make_hold(tt, minutes=-90)

        out = run("purge_expired_reservations")
        assert "Cancelled 1 registrations, purged 2 expired holds" in out
        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert stale.status == "CANCELLED"
        assert fresh.status == "PAYMENT_PENDING"
        assert Payment.objects.get(registration=stale).status == "CANCELLED"
        assert TicketReservation.objects.count() == 1

    def test_recently_expired_holds_are_kept(self):
        tt = make_ticket_type()
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, minutes=-10)
        run("purge_expired_reservations", "--older-than-min", "60")
        reg.refresh_from_db()
        assert reg.status == "PAYMENT_PENDING"

    def test_dry_run_changes_nothing(self):
        tt = make_ticket_type()
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, minutes=-120)
        out = run("purge_expired_reservations", "--dry-run")
        assert "[dry-run]" in out
        assert TicketReservation.objects.count() == 1
        reg.refresh_from_db()
        assert reg.status == "PAYMENT_PENDING"
