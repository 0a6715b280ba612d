"""
Hypothesis-Based Property Tests.

Property-based testing using Hypothesis to generate line items, balance
edits and payment splits, and verify the calculation invariants hold.

Properties covered here:
- Line pricing: reprice is idempotent, derived fields verify
- Discounting: overridden and placeholder lines are never touched
- Totals: independent of line order, placeholders excluded
- Balance: amount paid + balance remaining == gross after any edits
- Settlement: status never moves backwards as more is paid
- Allocation: never exceeds the payment or any bill's remaining balance
"""

from datetime import date
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from billing_engines.balance import (
    BalanceState,
    assert_reconciled,
    edit_amount_paid,
    edit_balance_remaining,
    initial_state,
    rebase,
)
from billing_engines.discount import propagate_discount
from billing_engines.line_pricing import LineItem, reprice, verify_line
from billing_engines.settlement import (
    BillBalance,
    BillStatus,
    InvoiceStatus,
    auto_allocate,
    invoice_status_for,
    settle_invoice,
)
from billing_engines.totals import compute_totals
from billing_engines.uom import (
    BagQuantity,
    BoxQuantity,
    GramQuantity,
    KilogramQuantity,
    PieceQuantity,
)

FUZZ_SETTINGS = settings(
    max_examples=75,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

# =============================================================================
# Strategies
# =============================================================================

money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

positive_money = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

percent = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

counts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("500"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)

quantities = st.one_of(
    st.builds(BoxQuantity, counts, st.integers(min_value=1, max_value=48).map(Decimal)),
    st.builds(PieceQuantity, counts),
    st.builds(KilogramQuantity, counts),
    st.builds(GramQuantity, counts),
    st.builds(BagQuantity, counts, st.sampled_from([Decimal("25"), Decimal("50")])),
)


@composite
def line_items(draw, placeholder: bool | None = None):
    is_placeholder = draw(st.booleans()) if placeholder is None else placeholder
    price = draw(money)
    return reprice(
        LineItem(
            product_id=None if is_placeholder else draw(st.sampled_from(["P-1", "P-2", "P-3"])),
            quantity=draw(quantities),
            base_unit_price_ex_vat=price,
            unit_price_ex_vat=price,
            vat_rate_percent=draw(st.sampled_from([Decimal("0"), Decimal("15"), Decimal("20")])),
            price_overridden=draw(st.booleans()),
        )
    )


@composite
def open_bills(draw):
    return BillBalance(
        bill_id=draw(st.uuids()),
        bill_date=draw(st.dates(min_value=date(2023, 1, 1), max_value=date(2024, 12, 31))),
        total_amount=draw(positive_money),
        amount_applied=Decimal("0"),
        status=draw(st.sampled_from([BillStatus.OPEN, BillStatus.OPEN, BillStatus.VOID])),
        bill_number=f"BILL-{draw(st.integers(min_value=1, max_value=999999)):06d}",
    )


balance_edits = st.lists(
    st.tuples(st.sampled_from(["paid", "remaining", "rebase"]), money),
    max_size=12,
)


# =============================================================================
# Line pricing
# =============================================================================


class TestLinePricingProperties:

    @FUZZ_SETTINGS
    @given(line=line_items())
    def test_reprice_is_idempotent(self, line):
        assert reprice(line) == line

    @FUZZ_SETTINGS
    @given(line=line_items())
    def test_repriced_line_verifies(self, line):
        verify_line(line)

    @FUZZ_SETTINGS
    @given(line=line_items())
    def test_derived_fields_non_negative(self, line):
        assert line.base_quantity >= 0
        assert line.unit_vat >= 0
        assert line.unit_price_inc_vat >= line.unit_price_ex_vat
        assert line.line_total >= 0

    @FUZZ_SETTINGS
    @given(line=line_items(placeholder=False), pct=percent)
    def test_inclusive_minus_vat_is_ex(self, line, pct):
        (discounted,) = propagate_discount([line], pct)

        for candidate in (line, discounted):
            drift = candidate.unit_price_inc_vat - candidate.unit_vat - candidate.unit_price_ex_vat
            assert abs(drift) <= Decimal("0.001")


# =============================================================================
# Discounting
# =============================================================================


class TestDiscountProperties:

    @FUZZ_SETTINGS
    @given(lines=st.lists(line_items(), max_size=8), pct=percent)
    def test_protected_lines_untouched(self, lines, pct):
        result = propagate_discount(lines, pct)

        assert len(result) == len(lines)
        for before, after in zip(lines, result):
            if before.is_placeholder or before.price_overridden:
                assert after == before
            else:
                assert after.id == before.id
                assert after.unit_price_ex_vat <= before.base_unit_price_ex_vat

    @FUZZ_SETTINGS
    @given(lines=st.lists(line_items(), max_size=8), pct=percent)
    def test_discount_amount_non_negative(self, lines, pct):
        assert compute_totals(propagate_discount(lines, pct)).discount_amount >= 0


# =============================================================================
# Totals
# =============================================================================


class TestTotalsProperties:

    @FUZZ_SETTINGS
    @given(lines=st.lists(line_items(), max_size=10))
    def test_total_is_subtotal_plus_vat(self, lines):
        totals = compute_totals(lines)

        assert totals.total_amount == totals.subtotal + totals.vat_amount
        assert totals.line_count == sum(1 for line in lines if not line.is_placeholder)

    @FUZZ_SETTINGS
    @given(lines=st.lists(line_items(), max_size=10))
    def test_recompute_is_bit_identical(self, lines):
        first = compute_totals(lines)
        second = compute_totals(lines)

        assert str(first.total_amount) == str(second.total_amount)
        assert str(first.discount_amount) == str(second.discount_amount)

    @FUZZ_SETTINGS
    @given(lines=st.lists(line_items(), max_size=10))
    def test_order_independent(self, lines):
        assert compute_totals(lines) == compute_totals(list(reversed(lines)))

    @FUZZ_SETTINGS
    @given(
        lines=st.lists(line_items(placeholder=False), max_size=6),
        placeholders=st.lists(line_items(placeholder=True), max_size=4),
    )
    def test_placeholders_excluded(self, lines, placeholders):
        assert compute_totals(lines + placeholders) == compute_totals(lines)


# =============================================================================
# Balance
# =============================================================================


class TestBalanceProperties:

    @FUZZ_SETTINGS
    @given(gross=money, edits=balance_edits)
    def test_reconciled_after_any_edits(self, gross, edits):
        state: BalanceState = initial_state(gross)

        for kind, value in edits:
            if kind == "paid":
                state = edit_amount_paid(state, value)
            elif kind == "remaining":
                state = edit_balance_remaining(state, value)
            else:
                state = rebase(state, value)

            assert state.amount_paid + state.balance_remaining == state.gross_total
            assert 0 <= state.amount_paid <= state.gross_total
            assert 0 <= state.balance_remaining <= state.gross_total
            assert_reconciled(state)


# =============================================================================
# Settlement
# =============================================================================

_STATUS_RANK = {
    InvoiceStatus.ISSUED: 0,
    InvoiceStatus.PARTIALLY_PAID: 1,
    InvoiceStatus.PAID: 2,
}


class TestSettlementProperties:

    @FUZZ_SETTINGS
    @given(total=positive_money, first=money, second=money)
    def test_status_monotone_in_amount_paid(self, total, first, second):
        low, high = sorted((first, second))

        assert _STATUS_RANK[invoice_status_for(total, low)] <= _STATUS_RANK[
            invoice_status_for(total, high)
        ]

    @FUZZ_SETTINGS
    @given(total=positive_money, paid=money)
    def test_void_is_sticky(self, total, paid):
        assert invoice_status_for(total, paid, InvoiceStatus.VOID) is InvoiceStatus.VOID

    @FUZZ_SETTINGS
    @given(
        gross=money,
        payments=st.lists(positive_money, max_size=5),
        credits=st.lists(positive_money, max_size=3),
    )
    def test_balance_never_negative(self, gross, payments, credits):
        settled = settle_invoice(gross, payments, credits)

        assert settled.balance_remaining == max(
            Decimal("0"), gross - sum(payments, Decimal("0")) - sum(credits, Decimal("0"))
        )


# =============================================================================
# Allocation
# =============================================================================


class TestAllocationProperties:

    @FUZZ_SETTINGS
    @given(payment=positive_money, bills=st.lists(open_bills(), max_size=8, unique_by=lambda b: b.bill_id))
    def test_auto_allocation_within_limits(self, payment, bills):
        allocations = auto_allocate(payment, bills)
        by_id = {bill.bill_id: bill for bill in bills}

        assert sum((a.amount_applied for a in allocations), Decimal("0")) <= payment
        for allocation in allocations:
            bill = by_id[allocation.bill_id]
            assert bill.status is not BillStatus.VOID
            assert 0 < allocation.amount_applied <= bill.remaining

    @FUZZ_SETTINGS
    @given(payment=positive_money, bills=st.lists(open_bills(), max_size=8, unique_by=lambda b: b.bill_id))
    def test_auto_allocation_exhausts_payment_or_bills(self, payment, bills):
        allocations = auto_allocate(payment, bills)
        applied = sum((a.amount_applied for a in allocations), Decimal("0"))
        open_total = sum(
            (b.remaining for b in bills if b.status is not BillStatus.VOID), Decimal("0")
        )

        assert applied == min(payment, open_total)
