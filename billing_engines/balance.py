"""
billing_engines.balance -- Balance reconciliation.

Responsibility:
    Keeps ``amount_paid + balance_remaining == gross_total`` while the
    operator edits either side.  The field the operator touched last is
    authoritative; the other is derived from it.

        gross_total = total_amount + previous_balance

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - amount_paid and balance_remaining are each clamped to [0, gross].
      Overpayment is capped at the gross total.
    - When gross_total shifts (a line edit, a new previous balance) the
      authoritative field is kept and the other re-derived (``rebase``).

Failure modes:
    - ``BalanceDriftError`` from ``assert_reconciled`` -- a programming
      fault, never an operator error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from billing_kernel.domain.values import ZERO, coerce_non_negative, round_money
from billing_kernel.exceptions import BalanceDriftError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.balance")

DEFAULT_TOLERANCE = Decimal("0.01")


class BalanceAuthority(str, Enum):
    """Which side of the balance the operator set last."""

    AMOUNT_PAID = "amount_paid"
    BALANCE_REMAINING = "balance_remaining"


@dataclass(frozen=True)
class BalanceState:
    gross_total: Decimal = ZERO
    amount_paid: Decimal = ZERO
    balance_remaining: Decimal = ZERO
    authority: BalanceAuthority = BalanceAuthority.AMOUNT_PAID


def gross_total_for(total_amount: object, previous_balance: object) -> Decimal:
    """``total_amount + previous_balance`` (previous balance clamped >= 0)."""
    return round_money(
        coerce_non_negative(total_amount, "total_amount")
        + coerce_non_negative(previous_balance, "previous_balance")
    )


def _clamp(value: Decimal, gross: Decimal) -> Decimal:
    if value > gross:
        return gross
    return value


def initial_state(gross_total: object) -> BalanceState:
    """Nothing paid yet: the whole gross is outstanding."""
    gross = round_money(coerce_non_negative(gross_total, "gross_total"))
    return BalanceState(gross_total=gross, amount_paid=ZERO, balance_remaining=gross)


def edit_amount_paid(state: BalanceState, paid: object) -> BalanceState:
    """Operator typed an amount paid; balance follows."""
    gross = state.gross_total
    value = _clamp(round_money(coerce_non_negative(paid, "amount_paid")), gross)
    return BalanceState(
        gross_total=gross,
        amount_paid=value,
        balance_remaining=gross - value,
        authority=BalanceAuthority.AMOUNT_PAID,
    )


def edit_balance_remaining(state: BalanceState, desired: object) -> BalanceState:
    """Operator typed a remaining balance; amount paid follows."""
    gross = state.gross_total
    value = _clamp(round_money(coerce_non_negative(desired, "balance_remaining")), gross)
    return BalanceState(
        gross_total=gross,
        amount_paid=gross - value,
        balance_remaining=value,
        authority=BalanceAuthority.BALANCE_REMAINING,
    )


def rebase(state: BalanceState, new_gross: object) -> BalanceState:
    """Move to a new gross total, keeping the authoritative field."""
    gross = round_money(coerce_non_negative(new_gross, "gross_total"))
    shifted = BalanceState(
        gross_total=gross,
        amount_paid=state.amount_paid,
        balance_remaining=state.balance_remaining,
        authority=state.authority,
    )
    if state.authority is BalanceAuthority.BALANCE_REMAINING:
        return edit_balance_remaining(shifted, state.balance_remaining)
    return edit_amount_paid(shifted, state.amount_paid)


def assert_reconciled(
    state: BalanceState,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> None:
    """Raise BalanceDriftError if paid + remaining strays from gross."""
    drift = abs(state.amount_paid + state.balance_remaining - state.gross_total)
    if drift > tolerance:
        logger.error(
            "balance_drift_detected",
            extra={
                "gross_total": str(state.gross_total),
                "amount_paid": str(state.amount_paid),
                "balance_remaining": str(state.balance_remaining),
                "drift": str(drift),
            },
        )
        raise BalanceDriftError(
            state.gross_total, state.amount_paid, state.balance_remaining, tolerance
        )
