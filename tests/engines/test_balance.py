"""
Tests for balance reconciliation.

Covers:
- Gross total
- Amount paid / balance remaining edits
- Clamping and overpayment
- Rebase onto a new gross
- Drift detection
"""

from decimal import Decimal

import pytest

from billing_engines.balance import (
    BalanceAuthority,
    BalanceState,
    assert_reconciled,
    edit_amount_paid,
    edit_balance_remaining,
    gross_total_for,
    initial_state,
    rebase,
)
from billing_kernel.exceptions import BalanceDriftError


class TestGrossTotal:
    """Tests for total_amount + previous_balance."""

    def test_sum(self):
        assert gross_total_for(Decimal("900.00"), Decimal("100.00")) == Decimal("1000.00")

    def test_negative_previous_balance_clamped(self):
        assert gross_total_for(Decimal("900.00"), Decimal("-50")) == Decimal("900.00")

    def test_string_input(self):
        assert gross_total_for("10.005", "0") == Decimal("10.01")


class TestEdits:
    """Tests for the two operator edits."""

    def setup_method(self):
        self.state = initial_state(Decimal("1000.00"))

    def test_initial_state_all_outstanding(self):
        assert self.state.amount_paid == Decimal("0")
        assert self.state.balance_remaining == Decimal("1000.00")

    def test_amount_paid_drives_balance(self):
        state = edit_amount_paid(self.state, Decimal("400.00"))

        assert state.balance_remaining == Decimal("600.00")
        assert state.authority is BalanceAuthority.AMOUNT_PAID

    def test_balance_drives_amount_paid(self):
        state = edit_balance_remaining(self.state, Decimal("250.00"))

        assert state.amount_paid == Decimal("750.00")
        assert state.authority is BalanceAuthority.BALANCE_REMAINING

    def test_overpayment_capped_at_gross(self):
        state = edit_amount_paid(self.state, Decimal("1200"))

        assert state.amount_paid == Decimal("1000.00")
        assert state.balance_remaining == Decimal("0.00")

    def test_balance_above_gross_capped(self):
        state = edit_balance_remaining(self.state, Decimal("5000"))

        assert state.balance_remaining == Decimal("1000.00")
        assert state.amount_paid == Decimal("0.00")

    @pytest.mark.parametrize("raw", ["-10", "abc", "", None])
    def test_invalid_input_recovers_to_zero(self, raw):
        state = edit_amount_paid(self.state, raw)

        assert state.amount_paid == Decimal("0.00")
        assert state.balance_remaining == Decimal("1000.00")


class TestRebase:
    """Tests for moving to a new gross total."""

    def test_amount_paid_authority_kept(self):
        state = edit_amount_paid(initial_state(Decimal("1000")), Decimal("400"))

        moved = rebase(state, Decimal("1200"))

        assert moved.amount_paid == Decimal("400.00")
        assert moved.balance_remaining == Decimal("800.00")

    def test_balance_authority_kept(self):
        state = edit_balance_remaining(initial_state(Decimal("1000")), Decimal("250"))

        moved = rebase(state, Decimal("1200"))

        assert moved.balance_remaining == Decimal("250.00")
        assert moved.amount_paid == Decimal("950.00")

    def test_gross_below_authoritative_value_clamps(self):
        state = edit_balance_remaining(initial_state(Decimal("1000")), Decimal("250"))

        moved = rebase(state, Decimal("200"))

        assert moved.balance_remaining == Decimal("200.00")
        assert moved.amount_paid == Decimal("0.00")


class TestAssertReconciled:
    """Tests for drift detection."""

    def test_reconciled_state_passes(self):
        assert_reconciled(edit_amount_paid(initial_state(Decimal("99.99")), Decimal("33.33")))

    def test_drift_within_tolerance_passes(self):
        assert_reconciled(
            BalanceState(
                gross_total=Decimal("100.00"),
                amount_paid=Decimal("50.00"),
                balance_remaining=Decimal("50.01"),
            )
        )

    def test_drift_raises(self, captured_logs):
        state = BalanceState(
            gross_total=Decimal("100.00"),
            amount_paid=Decimal("50.00"),
            balance_remaining=Decimal("40.00"),
        )

        with pytest.raises(BalanceDriftError) as exc_info:
            assert_reconciled(state)

        assert exc_info.value.gross_total == Decimal("100.00")
        assert any(r["message"] == "balance_drift_detected" for r in captured_logs())
