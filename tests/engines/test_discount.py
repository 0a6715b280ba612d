"""
Tests for discount propagation.

Covers:
- Discounted price formula
- Override and placeholder protection
- Catalog price fallback
- Informational discount amount
"""

from dataclasses import replace
from decimal import Decimal

from billing_engines.discount import (
    apply_discount,
    discount_amount,
    discounted_price,
    propagate_discount,
)
from billing_engines.line_pricing import LineItem
from billing_engines.uom import BoxQuantity


class TestDiscountedPrice:
    """Tests for base x (1 - pct/100)."""

    def test_ten_percent_of_hundred(self):
        assert discounted_price(Decimal("100.00"), Decimal("10")) == Decimal("90.000000")

    def test_zero_discount(self):
        assert discounted_price(Decimal("12.345678"), 0) == Decimal("12.345678")

    def test_discount_clamped_to_hundred(self):
        assert discounted_price(Decimal("50"), Decimal("150")) == Decimal("0.000000")

    def test_negative_discount_treated_as_zero(self):
        assert discounted_price(Decimal("50"), "-10") == Decimal("50.000000")


class TestApplyDiscount:
    """Tests for one line at the document discount."""

    def test_catalog_line_is_discounted(self, line_factory):
        line = line_factory(unit_price_ex_vat="100.00")

        result = apply_discount(line, Decimal("10"))

        assert result.unit_price_ex_vat == Decimal("90.000000")
        assert result.unit_vat == Decimal("13.500")
        assert result.unit_price_inc_vat == Decimal("103.500")

    def test_overridden_line_untouched(self, line_factory):
        line = line_factory(unit_price_ex_vat="80.00", price_overridden=True)

        assert apply_discount(line, Decimal("25")) is line

    def test_placeholder_untouched(self):
        line = LineItem(unit_price_ex_vat=Decimal("10"))

        assert apply_discount(line, Decimal("25")) is line

    def test_catalog_price_replaces_stored_base(self, line_factory):
        line = line_factory(unit_price_ex_vat="80.00")

        result = apply_discount(line, Decimal("10"), Decimal("100"))

        assert result.base_unit_price_ex_vat == Decimal("100")
        assert result.unit_price_ex_vat == Decimal("90.000000")

    def test_discount_is_idempotent(self, line_factory):
        once = apply_discount(line_factory(unit_price_ex_vat="100.00"), Decimal("10"))

        assert apply_discount(once, Decimal("10")) == once


class TestPropagateDiscount:
    """Tests for the document-wide discount."""

    def test_mixed_lines(self, line_factory):
        normal = line_factory(product_id="P-100", unit_price_ex_vat="100.00")
        overridden = line_factory(product_id="P-BOX", unit_price_ex_vat="7.00", price_overridden=True)
        blank = LineItem()

        result = propagate_discount((normal, overridden, blank), Decimal("20"))

        assert result[0].unit_price_ex_vat == Decimal("80.000000")
        assert result[1] is overridden
        assert result[2] is blank

    def test_change_back_to_zero_restores_base(self, line_factory):
        line = line_factory(unit_price_ex_vat="100.00")
        discounted = propagate_discount((line,), Decimal("30"))

        restored = propagate_discount(discounted, Decimal("0"))

        assert restored[0].unit_price_ex_vat == Decimal("100.000000")

    def test_missing_catalog_price_falls_back(self, line_factory):
        line = line_factory(product_id="P-GONE", unit_price_ex_vat="50.00")

        result = propagate_discount((line,), Decimal("10"), {"P-100": Decimal("1")})

        assert result[0].unit_price_ex_vat == Decimal("45.000000")

    def test_trace_emitted(self, line_factory, captured_logs):
        propagate_discount((line_factory(),), Decimal("5"))

        traces = [r for r in captured_logs() if r["message"] == "BILLING_ENGINE_TRACE"]
        assert any(r["engine_name"] == "discount" for r in traces)


class TestDiscountAmount:
    """Tests for the informational discount total."""

    def test_discount_amount_over_quantity(self, line_factory):
        line = apply_discount(
            line_factory(quantity=BoxQuantity(Decimal("2")), unit_price_ex_vat="100.00"),
            Decimal("10"),
        )

        assert discount_amount((line,)) == Decimal("23.00")

    def test_price_above_base_never_negative(self, line_factory):
        line = line_factory(
            unit_price_ex_vat="12.00",
            base_unit_price_ex_vat=Decimal("10.00"),
            price_overridden=True,
        )

        assert discount_amount((line,)) == Decimal("0.00")

    def test_placeholders_ignored(self):
        placeholder = replace(LineItem(), base_unit_price_ex_vat=Decimal("100"))

        assert discount_amount((placeholder,)) == Decimal("0.00")
