"""
Engine Invariants Contract.

These invariants are structural law for the calculation core.  No
setting in ``billing_config`` may switch them off.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across the engines in ``billing_engines``
and the working-copy editor in ``billing_modules.sales.editor``.
"""

from enum import Enum, unique


@unique
class EngineInvariant(str, Enum):
    """Non-configurable invariants enforced by the calculation core.

    Each value names one structural guarantee. Configuration may change
    *which* defaults apply, never *whether* these rules apply.
    """

    DERIVED_FIELDS_PURE = "derived_fields_pure"
    """unit_vat, unit_price_inc_vat, line_total and base_quantity are pure
    functions of (uom, quantity, unit_price_ex_vat, vat_rate_percent).
    Enforced by billing_engines.line_pricing.reprice / verify_line."""

    EX_VAT_AUTHORITATIVE = "ex_vat_authoritative"
    """The ex-VAT unit price is the single source of truth; an inclusive
    entry is back-solved and never stored as authoritative."""

    OVERRIDE_PROTECTED = "override_protected"
    """A document discount change never mutates an overridden or
    placeholder line. Enforced by billing_engines.discount."""

    TOTALS_FRESH = "totals_fresh"
    """Document totals are recomputed from the full line tuple on every
    mutation; no cached partial sums. Enforced by billing_engines.totals."""

    BALANCE_RECONCILED = "balance_reconciled"
    """amount_paid + balance_remaining == gross_total within tolerance.
    Enforced by billing_engines.balance.assert_reconciled."""

    SNAPSHOT_ISOLATION = "snapshot_isolation"
    """A converted invoice carries a resolved copy of the quotation lines,
    never a live reference."""

    CONVERSION_ATOMIC = "conversion_atomic"
    """A quotation becomes CONVERTED only after its invoice exists."""


# All invariants as a frozenset for programmatic checks.
ALL_ENGINE_INVARIANTS: frozenset[EngineInvariant] = frozenset(EngineInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "billing_config",
    "billing_engines",
    "billing_modules",
)
