import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from django.contrib.auth import get_user_model
from django.core import mail
from django.urls import reverse

from registrations.models import Registration
from tests.base import make_coupon, make_registration, make_ticket, make_ticket_type


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type="application/json")


@pytest.mark.django_db
class TestPublicApi:
    def _ems_payload(self, **kw):
        data = {
            "first_name": "Carmel", "last_name": "Zammit", "email": "Carmel@Example.com",
            "phone": "+35699887766", "id_card_number": "0123456M", "is_ems_client": True,
            "accept_terms": True, "accept_privacy_policy": True,
        }
        data.update(kw)
        return data

    def test_register_ems_client(self, client):
        resp = post_json(client, reverse("register_api"), self._ems_payload())
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "PENDING"
        assert body["data"]["requires_payment"] is False
        assert Registration.objects.get().email == "carmel@example.com"

    def test_register_validation_errors(self, client):
        resp = post_json(client, reverse("register_api"), self._ems_payload(id_card_number="12", accept_terms=False))
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert errors["id_card_number"] == ["Please enter a valid ID card number"]
        assert errors["accept_terms"] == ["You must accept the terms"]

    def test_register_public_with_selection(self, client):
        tt = make_ticket_type(price_cents=3000)
        payload = self._ems_payload(is_ems_client=False, id_card_number="",
                                    selections=[{"ticket_type_id": tt.id, "quantity": 2}])
        body = post_json(client, reverse("register_api"), payload).json()
        assert body["data"]["status"] == "PAYMENT_PENDING"
        assert body["data"]["final_amount"] == 6000
        assert body["data"]["requires_payment"] is True

    def test_register_refusal_is_400(self, client):
        make_registration(email="carmel@example.com", is_ems_client=True, status="PENDING")
        resp = post_json(client, reverse("register_api"), self._ems_payload())
        assert resp.status_code == 400
        assert "pending EMS registration" in resp.json()["message"]

    def test_eligibility(self, client):
        make_registration(email="a@example.com", is_ems_client=True)
        resp = client.get(reverse("check_eligibility"), {"email": "a@example.com", "is_ems_client": "true"})
        assert resp.json()["can_register"] is False
        assert client.get(reverse("check_eligibility")).status_code == 400
        batch = post_json(client, reverse("check_eligibility"), {"emails": ["a@example.com"]}).json()
        assert batch["results"] == [{"email": "a@example.com", "can_register": False}]

    def test_ticket_types_by_audience(self, client):
        make_ticket_type(name="Public Entry")
        make_ticket_type(name="VIP Lounge", ems_clients_only=True)
        public = [t["name"] for t in client.get(reverse("ticket_types_api")).json()["data"]]
        ems = client.get(reverse("ticket_types_api"), {"is_ems_client": "true"}).json()["data"]
        assert public == ["Public Entry"]
        assert {t["name"] for t in ems} == {"Public Entry", "VIP Lounge"}
        assert all(t["price"] == 0 for t in ems)

    def test_non_object_bodies_are_400(self, client):
        for name in ("register_api", "coupon_validate", "pricing_calculate", "checkout_api"):
            resp = post_json(client, reverse(name), [{"code": "TEN"}])
            assert resp.status_code == 400, name
            assert resp.json()["success"] is False

    def test_malformed_selections_are_400(self, client):
        payload = self._ems_payload(is_ems_client=False, id_card_number="", selections={"ticket_type_id": 1})
        resp = post_json(client, reverse("register_api"), payload)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid ticket selection."

    def test_numeric_coupon_code(self, client):
        make_coupon(code="2025", name="Launch")
        ok = post_json(client, reverse("coupon_validate"), {"code": 2025, "order_amount": 5000}).json()
        assert ok["success"] is True
        bad = post_json(client, reverse("coupon_validate"), {"code": 123, "order_amount": 5000}).json()
        assert bad == {"success": False, "message": "Invalid coupon code"}

    def test_ticket_types_by_category(self, client):
        make_ticket_type(name="Standard Entry")
        make_ticket_type(name="Space Walk", category="VR_EXPERIENCE", sort_order=1)
        make_ticket_type(name="Racing Sim", category="VR_EXPERIENCE", sort_order=2, featured=True)
        resp = client.get(reverse("ticket_types_api"), {"category": "vr_experience"})
        assert [t["name"] for t in resp.json()["data"]] == ["Racing Sim", "Space Walk"]
        assert client.get(reverse("ticket_types_api"), {"category": "BOWLING"}).status_code == 400

    def test_coupon_validate(self, client):
        make_coupon(code="TEN", name="Ten off")
        ok = post_json(client, reverse("coupon_validate"), {"code": "ten", "order_amount": 5000}).json()
        assert ok["success"] is True
        assert ok["data"]["discount_amount"] == 500
        assert ok["data"]["final_amount"] == 4500
        bad = post_json(client, reverse("coupon_validate"), {"code": "NOPE", "order_amount": 5000}).json()
        assert bad == {"success": False, "message": "Invalid coupon code"}

    def test_pricing_calculate(self, client):
        tt = make_ticket_type(price_cents=2000)
        body = post_json(client, reverse("pricing_calculate"),
                         {"selections": [{"ticket_type_id": tt.id, "quantity": 3}]}).json()
        assert body["data"]["final_amount"] == 6000
        assert body["data"]["formatted_final_amount"] == "€60.00"
        resp = post_json(client, reverse("pricing_calculate"), {"quantity": 20})
        assert resp.status_code == 400

    def test_ticket_status_api(self, client):
        assert client.get(reverse("ticket_status_api")).status_code == 400
        assert client.get(reverse("ticket_status_api"), {"email": "x@example.com"}).status_code == 404
        reg = make_registration(status="COMPLETED")
        make_ticket(reg)
        data = client.get(reverse("ticket_status_api"), {"email": reg.email}).json()["data"]
        assert len(data["tickets"]) == 1

    def test_tickets_pdf_only_for_completed(self, client):
        pending = make_registration(status="PENDING")
        assert client.get(reverse("tickets_pdf", args=[pending.reference])).status_code == 404
        done = make_registration(email="b@example.com", status="COMPLETED")
        make_ticket(done)
        resp = client.get(reverse("tickets_pdf", args=[done.reference]))
        assert resp.status_code == 200
        assert resp["Content-Type"] == "application/pdf"
        assert resp.content.startswith(b"%PDF")


@pytest.mark.django_db
class TestPages:
    def test_home_and_static_pages(self, client):
        make_ticket_type(name="Featured Entry", featured=True)
        resp = client.get(reverse("home"))
        assert resp.status_code == 200
        assert b"Featured Entry" in resp.content
        assert client.get(reverse("contact")).status_code == 200
        assert client.get(reverse("privacy")).status_code == 200

    def _form(self, **kw):
        data = {
            "first_name": "Rita", "last_name": "Farrugia", "email": "rita@example.com",
            "phone": "+35699000111", "accept_terms": "on", "accept_privacy_policy": "on",
        }
        data.update(kw)
        return data

    def test_book_ems_client(self, client):
        resp = client.post(reverse("book"), self._form(is_ems_client="on", id_card_number="987654M"))
        reg = Registration.objects.get()
        assert resp.status_code == 302
        assert resp["Location"] == reverse("registration_done", args=[reg.reference])
        page = client.get(resp["Location"])
        assert b"waiting for approval" in page.content

    def test_book_public_redirects_to_checkout(self, client):
        tt = make_ticket_type(price_cents=2500)
        session = SimpleNamespace(id="cs_1", url="https://checkout.stripe.com/pay/cs_1")
        with patch("pages.views.tickets.create_checkout_session", return_value=session):
            resp = client.post(reverse("book"), self._form(**{f"qty_{tt.id}": "2"}))
        assert resp.status_code == 302
        assert resp["Location"] == session.url
        assert Registration.objects.get().final_amount_cents == 5000

    def test_book_without_tickets_shows_error(self, client):
        make_ticket_type()
        resp = client.post(reverse("book"), self._form(), follow=True)
        assert resp.status_code == 200
        assert b"Please select at least one ticket." in resp.content
        assert not Registration.objects.exists()

    def test_ticket_status_page(self, client):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg)
        resp = client.get(reverse("ticket_status_page"), {"email": reg.email})
        assert t.ticket_number.encode() in resp.content

    def test_payment_cancelled_page(self, client):
        reg = make_registration(status="PAYMENT_PENDING")
        resp = client.get(reverse("payment_cancelled"), {"reference": str(reg.reference)})
        assert resp.status_code == 200
        assert reverse("payment_resume", args=[reg.reference]).encode() in resp.content
        assert client.get(reverse("payment_cancelled"), {"reference": "junk"}).status_code == 200


@pytest.mark.django_db
class TestDoorStaff:
    def test_scanner_needs_login(self, client):
        resp = client.get(reverse("staff_scanner"))
        assert resp.status_code == 302
        assert "/control/accounts/login/" in resp["Location"]

    def test_verify_api_checks_in_once(self, staff_client):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg, make_ticket_type())
        first = post_json(staff_client, reverse("staff_verify_api"), {"code": t.ticket_number}).json()
        second = post_json(staff_client, reverse("staff_verify_api"), {"code": t.ticket_number}).json()
        assert first["status"] == "ok" and first["can_enter"] is True
        assert second["status"] == "already" and second["can_enter"] is False

    def test_verify_api_needs_code(self, staff_client):
        resp = post_json(staff_client, reverse("staff_verify_api"), {})
        assert resp.status_code == 400

    def test_verify_page_get_does_not_check_in(self, staff_client):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg)
        resp = staff_client.get(reverse("staff_verify", args=[t.ticket_number]))
        assert resp.status_code == 200
        assert b"Valid ticket" in resp.content
        t.refresh_from_db()
        assert t.status == "GENERATED"

        staff_client.post(reverse("staff_verify", args=[t.ticket_number]), {"location": "Hall A"})
        t.refresh_from_db()
        assert t.status == "USED"
        assert t.check_in.location == "Hall A"

    def test_search(self, staff_client):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg)
        body = staff_client.get(reverse("staff_search"), {"q": t.ticket_number[-5:]}).json()
        assert body["results"][0]["ticket_number"] == t.ticket_number
        assert staff_client.get(reverse("staff_search"), {"q": "AB"}).status_code == 400

    def test_door_staff_cannot_open_control_panel(self, staff_client):
        assert staff_client.get(reverse("control:home")).status_code == 302
        assert staff_client.get(reverse("control:registrations:list")).status_code == 302


@pytest.mark.django_db
class TestControlPanel:
    def test_pages_render(self, admin_client):
        tt = make_ticket_type()
        reg = make_registration(is_ems_client=True)
        t = make_ticket(reg, tt)
        make_coupon()
        for url in [
            reverse("control:home"),
            reverse("control:staff"),
            reverse("control:registrations:list"),
            reverse("control:registrations:detail", args=[reg.pk]),
            reverse("control:registrations:edit", args=[reg.pk]),
            reverse("control:registrations:quick"),
            reverse("control:registrations:panel_leads"),
            reverse("control:tickets:types"),
            reverse("control:tickets:type_add"),
            reverse("control:tickets:type_edit", args=[tt.pk]),
            reverse("control:tickets:list"),
            reverse("control:tickets:ticket_detail", args=[t.pk]),
            reverse("control:coupons:list"),
            reverse("control:coupons:add"),
            reverse("control:coupons:fix_usage"),
            reverse("control:events:settings"),
            reverse("control:events:setting_add"),
        ]:
            assert admin_client.get(url).status_code == 200, url

    def test_approve_from_detail(self, admin_client):
        tt = make_ticket_type(name="VIP Pass", ems_clients_only=True)
        reg = make_registration(is_ems_client=True)
        resp = admin_client.post(reverse("control:registrations:approve", args=[reg.pk]),
                                 {"ticket_quantity": 2, "ticket_type": tt.pk})
        assert resp.status_code == 302
        reg.refresh_from_db()
        assert reg.status == "COMPLETED"
        assert reg.tickets.count() == 2

    def test_export_csv(self, admin_client):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg, make_ticket_type())
        resp = admin_client.get(reverse("control:tickets:export"))
        assert resp["Content-Type"] == "text/csv"
        lines = resp.content.decode().strip().splitlines()
        assert lines[0].startswith("issued_at,ticket_number")
        assert t.ticket_number in lines[1]

    def test_qr_png(self, admin_client):
        t = make_ticket(make_registration(status="COMPLETED"))
        resp = admin_client.get(reverse("control:tickets:qr_png", args=[t.pk]))
        assert resp["Content-Type"] == "image/png"
        assert resp.content.startswith(b"\x89PNG")

    def test_ticket_type_delete_keeps_sold_types(self, admin_client):
        tt = make_ticket_type()
        make_ticket(make_registration(), tt)
        admin_client.post(reverse("control:tickets:type_delete", args=[tt.pk]))
        tt.refresh_from_db()
        assert tt.active is False

    def test_seed_settings(self, admin_client):
        admin_client.post(reverse("control:events:settings"), {"seed": "1"})
        page = admin_client.get(reverse("control:events:settings"))
        assert b"BOOTH_LOCATION" in page.content

    def test_only_super_admin_invites(self, admin_client):
        resp = admin_client.post(reverse("control:staff_invite"), {"email": "new@ems.test", "role": "STAFF"})
        assert resp.status_code == 302
        assert not get_user_model().objects.filter(email="new@ems.test").exists()

    def test_invite_staff(self, client, super_admin):
        client.force_login(super_admin)
        resp = client.post(reverse("control:staff_invite"), {"email": "New@Ems.test", "role": "ADMIN"})
        assert resp.status_code == 302
        user = get_user_model().objects.get(email="new@ems.test")
        assert not user.has_usable_password()
        assert user.profile.role == "ADMIN"
        assert user.profile.must_reset_password is True
        assert len(mail.outbox) == 1
        assert "/control/accounts/password/reset/" in mail.outbox[0].body

    def test_invited_user_must_change_password_first(self, client, admin_user):
        admin_user.profile.must_reset_password = True
        admin_user.profile.save()
        client.force_login(admin_user)
        resp = client.get(reverse("control:home"))
        assert resp.status_code == 302
        assert resp["Location"] == reverse("control:accounts:password_change")
        assert client.get(reverse("control:accounts:password_change")).status_code == 200
