from unittest.mock import patch

import pytest

from tickets.forms import TicketTypeForm
from tickets.models import Ticket, TicketReservation
from tickets.services import (
    StockError, adjust_stock, cancel_ticket, fulfill_reservations, issue_tickets, mark_collected,
    release_reservations, ticket_stats,
)
from tickets.utils import extract_ticket_number, generate_ticket_number, is_valid_ticket_number
from tests.base import make_hold, make_registration, make_ticket, make_ticket_type


class TestTicketNumbers:
    def test_format(self):
        vip = generate_ticket_number(True)
        std = generate_ticket_number(False)
        assert vip.startswith("EMSVIP") and is_valid_ticket_number(vip)
        assert std.startswith("EMSSTD") and is_valid_ticket_number(std)
        assert len(vip) == 20

    def test_numbers_differ(self):
        assert len({generate_ticket_number(False) for _ in range(50)}) == 50

    def test_invalid(self):
        assert not is_valid_ticket_number("EMSXXX123456ABCDEF01")
        assert not is_valid_ticket_number("emsvip123456abcdef01")
        assert not is_valid_ticket_number("")

    def test_extract_from_verify_url(self):
        n = "EMSVIP123456ABCDEF01"
        assert extract_ticket_number(f"https://tickets.example/staff/verify/{n}/") == n
        assert extract_ticket_number(n.lower()) == n
        assert extract_ticket_number("hello") is None


@pytest.mark.django_db
class TestStock:
    def test_remaining_counts_sold_and_live_holds(self):
        tt = make_ticket_type(total_stock=10)
        reg = make_registration()
        make_ticket(reg, tt)
        make_ticket(reg, tt, status="CANCELLED")
        make_hold(tt, qty=3)
        make_hold(tt, qty=4, minutes=-1)
        assert tt.stock_summary() == {"total": 10, "sold": 1, "reserved": 3, "available": 6}

    def test_reservation_checks_per_order_limits(self):
        tt = make_ticket_type(min_per_order=2, max_per_order=4)
        line = {"tt": tt, "tier": None, "qty": 1, "unit_price_cents": 5000, "line_total_cents": 5000}
        with pytest.raises(StockError, match="Minimum 2"):
            TicketReservation.create_reservations([line])
        with pytest.raises(StockError, match="Max 4"):
            TicketReservation.create_reservations([{**line, "qty": 5}])

    def test_same_type_twice_must_fit_together(self):
        tt = make_ticket_type(total_stock=3)
        line = {"tt": tt, "tier": None, "qty": 2, "unit_price_cents": 5000, "line_total_cents": 10000}
        with pytest.raises(StockError, match="Insufficient inventory"):
            TicketReservation.create_reservations([line, line])

    def test_type_not_on_sale(self):
        tt = make_ticket_type(active=False)
        line = {"tt": tt, "tier": None, "qty": 1}
        with pytest.raises(StockError, match="not on sale"):
            TicketReservation.create_reservations([line])

    def test_issue_tickets_enforces_stock(self):
        tt = make_ticket_type(total_stock=2)
        reg = make_registration()
        with pytest.raises(StockError, match="Only 2"):
            issue_tickets(reg, tt, 3)
        assert reg.tickets.count() == 0
        tickets = issue_tickets(reg, tt, 2, price_cents=1500)
        assert [t.sequence for t in tickets] == [1, 2]
        assert tt.remaining() == 0

    def test_sequence_continues(self):
        tt = make_ticket_type()
        reg = make_registration()
        issue_tickets(reg, tt, 2)
        more = issue_tickets(reg, tt, 1)
        assert more[0].sequence == 3

    def test_fulfilment_turns_holds_into_tickets_once(self):
        tt = make_ticket_type(total_stock=2)
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, qty=2)
        tickets = fulfill_reservations(reg)
        assert len(tickets) == 2
        assert all(t.purchase_price_cents == tt.price_cents for t in tickets)
        assert fulfill_reservations(reg) == []
        assert tt.stock_summary() == {"total": 2, "sold": 2, "reserved": 0, "available": 0}

    def test_hold_bound_to_open_checkout_keeps_its_stock(self):
        tt = make_ticket_type(total_stock=1)
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, qty=1, minutes=-5, stripe_session_id="cs_test_1")
        assert tt.remaining() == 0
        with pytest.raises(StockError, match="Insufficient inventory"):
            TicketReservation.create_reservations([{"tt": tt, "tier": None, "qty": 1}])
        assert len(fulfill_reservations(reg)) == 1
        assert tt.stock_summary() == {"total": 1, "sold": 1, "reserved": 0, "available": 0}

    def test_hold_stops_counting_once_its_booking_is_cancelled(self):
        tt = make_ticket_type(total_stock=1)
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, qty=1, minutes=-5, stripe_session_id="cs_test_1")
        reg.status = "CANCELLED"
        reg.save()
        assert tt.remaining() == 1

    def test_expired_hold_cannot_oversell(self):
        tt = make_ticket_type(total_stock=1)
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, qty=1, minutes=-5)
        make_ticket(make_registration(email="other@example.com"), tt)
        with pytest.raises(StockError, match="Only 0"):
            fulfill_reservations(reg)
        assert tt.sold_qty() == 1

    def test_release_returns_stock(self):
        tt = make_ticket_type(total_stock=5)
        reg = make_registration(status="PAYMENT_PENDING")
        make_hold(tt, registration=reg, qty=5)
        assert tt.remaining() == 0
        assert release_reservations(reg) == 1
        assert tt.remaining() == 5

    def test_adjust_stock(self):
        tt = make_ticket_type(total_stock=5)
        reg = make_registration()
        issue_tickets(reg, tt, 2)
        make_hold(tt, qty=1)
        assert adjust_stock(tt, "restock", 5).total_stock == 10
        with pytest.raises(StockError, match="only 7 unsold"):
            adjust_stock(tt, "withdraw", 8)
        assert adjust_stock(tt, "withdraw", 7).total_stock == 3
        with pytest.raises(StockError):
            adjust_stock(tt, "restock", 0)


@pytest.mark.django_db
class TestTicketLifecycle:
    def test_cancel(self):
        reg = make_registration()
        t = make_ticket(reg, make_ticket_type())
        cancel_ticket(t)
        assert t.status == "CANCELLED"
        used = make_ticket(reg, status="USED")
        with pytest.raises(ValueError):
            cancel_ticket(used)

    def test_collect(self):
        reg = make_registration()
        t = make_ticket(reg)
        mark_collected(t, collected_by="Door Keeper")
        t.refresh_from_db()
        assert t.status == "COLLECTED"
        assert t.collected_by == "Door Keeper"
        with pytest.raises(ValueError):
            mark_collected(make_ticket(reg, status="CANCELLED"))

    def test_collect_does_not_undo_a_check_in(self):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg, status="SENT")
        # a door scanner admits the ticket after it was loaded here
        Ticket.objects.filter(pk=t.pk).update(status="USED")
        with pytest.raises(ValueError, match="used"):
            mark_collected(t, collected_by="Booth")
        t.refresh_from_db()
        assert t.status == "USED"
        assert t.collected_at is None

    def test_cancel_does_not_undo_a_check_in(self):
        reg = make_registration(status="COMPLETED")
        t = make_ticket(reg, status="SENT")
        Ticket.objects.filter(pk=t.pk).update(status="USED")
        with pytest.raises(ValueError):
            cancel_ticket(t)
        t.refresh_from_db()
        assert t.status == "USED"

    def test_stats(self):
        reg = make_registration()
        make_ticket(reg)
        make_ticket(reg, status="USED")
        make_ticket(reg, status="USED")
        stats = ticket_stats()
        assert stats["total"] == 3
        assert stats["used"] == 2
        assert stats["generated"] == 1
        assert stats["cancelled"] == 0


@pytest.mark.django_db
class TestTicketNumberCollisions:
    def test_duplicate_number_is_retried(self):
        tt = make_ticket_type()
        reg = make_registration(status="COMPLETED")
        taken = make_ticket(reg, tt)
        fresh = "EMSSTD123456ABCDEF01"
        with patch("tickets.services.generate_ticket_number", side_effect=[taken.ticket_number, fresh]):
            [t] = issue_tickets(reg, tt, 1)
        assert t.ticket_number == fresh
        assert reg.tickets.count() == 2

    def test_gives_up_after_repeated_collisions(self):
        tt = make_ticket_type()
        reg = make_registration(status="COMPLETED")
        taken = make_ticket(reg, tt)
        with patch("tickets.services.generate_ticket_number", return_value=taken.ticket_number):
            with pytest.raises(StockError, match="unique ticket number"):
                issue_tickets(reg, tt, 1)
        assert reg.tickets.count() == 1


@pytest.mark.django_db
class TestTicketTypeForm:
    def _data(self, **kw):
        data = {
            "name": "VR Session", "category": "VR_EXPERIENCE", "pricing_type": "FIXED",
            "price_cents": 1500, "total_stock": 50, "min_per_order": 1, "max_per_order": 10,
            "sort_order": 0, "active": True,
        }
        data.update(kw)
        return data

    def test_valid(self):
        form = TicketTypeForm(data=self._data())
        assert form.is_valid(), form.errors

    def test_max_below_min(self):
        assert not TicketTypeForm(data=self._data(min_per_order=5, max_per_order=2)).is_valid()

    def test_both_audiences(self):
        assert not TicketTypeForm(data=self._data(ems_clients_only=True, public_only=True)).is_valid()

    def test_stock_below_sold(self):
        tt = make_ticket_type(total_stock=5)
        issue_tickets(make_registration(), tt, 3)
        form = TicketTypeForm(data=self._data(total_stock=2), instance=tt)
        assert not form.is_valid()
        assert "total_stock" in form.errors
