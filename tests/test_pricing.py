import pytest

from coupons.services import CouponError, PricingError, current_ticket_price, quote, resolve_selections
from tests.base import make_coupon, make_ticket_type, make_tier


@pytest.mark.django_db
class TestResolveSelections:
    def test_fixed_price_line(self):
        tt = make_ticket_type(price_cents=2500)
        [line] = resolve_selections([{"ticket_type_id": tt.id, "quantity": 3}])
        assert line["qty"] == 3
        assert line["unit_price_cents"] == 2500
        assert line["line_total_cents"] == 7500

    def test_tier_quantity_counts_bundles(self):
        tt = make_ticket_type(price_cents=5000, pricing_type="TIERED")
        tier = make_tier(tt, ticket_count=4, price_cents=16000)
        [line] = resolve_selections([{"ticketTypeId": tt.id, "quantity": 2, "pricingTierId": tier.id}])
        assert line["bundles"] == 2
        assert line["qty"] == 8
        assert line["line_total_cents"] == 32000
        assert line["unit_price_cents"] == 4000

    def test_zero_quantities_are_skipped(self):
        tt = make_ticket_type()
        assert resolve_selections([{"ticket_type_id": tt.id, "quantity": 0}]) == []

    def test_ems_lines_are_free(self):
        tt = make_ticket_type(price_cents=5000)
        [line] = resolve_selections([{"ticket_type_id": tt.id, "quantity": 2}], is_ems_client=True)
        assert line["line_total_cents"] == 0

    def test_tier_of_another_type_is_refused(self):
        tt = make_ticket_type()
        other = make_ticket_type(name="VR Session", category="VR_EXPERIENCE")
        tier = make_tier(other)
        with pytest.raises(PricingError):
            resolve_selections([{"ticket_type_id": tt.id, "quantity": 1, "tier_id": tier.id}])

    def test_inactive_type_is_refused(self):
        tt = make_ticket_type(active=False)
        with pytest.raises(PricingError, match="not available"):
            resolve_selections([{"ticket_type_id": tt.id, "quantity": 1}])

    def test_garbage_is_refused(self):
        with pytest.raises(PricingError):
            resolve_selections([{"ticket_type_id": "abc", "quantity": 1}])


@pytest.mark.django_db
class TestQuote:
    def test_selections_with_coupon(self):
        tt = make_ticket_type(price_cents=5000)
        make_coupon(code="TEN", discount_type="FIXED_AMOUNT", discount_value=1000)
        q = quote([{"ticket_type_id": tt.id, "quantity": 2}], coupon_code="ten")
        assert q["original_cents"] == 10000
        assert q["discount_cents"] == 1000
        assert q["final_cents"] == 9000
        assert q["ticket_count"] == 2
        assert q["coupon"].code == "TEN"

    def test_quantity_uses_current_public_price(self):
        make_ticket_type(price_cents=4200)
        q = quote(quantity=3)
        assert q["original_cents"] == 12600
        assert q["final_cents"] == 12600

    def test_quantity_bounds(self):
        with pytest.raises(PricingError):
            quote(quantity=11)
        with pytest.raises(PricingError):
            quote(quantity=0)

    def test_ems_quote_is_free_and_ignores_coupon(self):
        make_ticket_type(price_cents=4200)
        q = quote(quantity=2, is_ems_client=True, coupon_code="WHATEVER")
        assert q["final_cents"] == 0
        assert q["coupon"] is None

    def test_bad_coupon_propagates(self):
        tt = make_ticket_type()
        with pytest.raises(CouponError):
            quote([{"ticket_type_id": tt.id, "quantity": 1}], coupon_code="MISSING")

    def test_default_price_without_ticket_types(self, settings):
        settings.DEFAULT_TICKET_PRICE_CENTS = 5000
        assert current_ticket_price(False) == 5000
        assert current_ticket_price(True) == 0
