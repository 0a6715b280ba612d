"""
billing_engines -- pure calculation engines for the billing back office.

Every engine is a pure function over frozen dataclasses: no I/O, no
database, no configuration lookups.  Callers pass defaults (VAT rate,
kg per bag, tolerance) as parameters.
"""

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
from billing_engines.discount import (
    apply_discount,
    discount_amount,
    discounted_price,
    propagate_discount,
)
from billing_engines.line_pricing import (
    LineItem,
    LinePricing,
    ex_from_inclusive,
    price_line,
    reprice,
    verify_line,
)
from billing_engines.settlement import (
    Allocation,
    BillBalance,
    BillStatus,
    InvoiceSettlement,
    InvoiceStatus,
    allocate_payment,
    auto_allocate,
    bill_status_for,
    invoice_status_for,
    settle_invoice,
    validate_payment_amount,
)
from billing_engines.totals import DocumentTotals, compute_totals
from billing_engines.tracer import compute_input_fingerprint, traced_engine
from billing_engines.uom import (
    GRAM_CONVENTION_VERSION,
    BagQuantity,
    BoxQuantity,
    GramQuantity,
    KilogramQuantity,
    PieceQuantity,
    Quantity,
    Uom,
    migrate_legacy_gram_quantity,
    normalize,
    parse_uom,
    quantity_for,
    switch_uom,
)

__all__ = [
    # balance
    "BalanceAuthority",
    "BalanceState",
    "assert_reconciled",
    "edit_amount_paid",
    "edit_balance_remaining",
    "gross_total_for",
    "initial_state",
    "rebase",
    # discount
    "apply_discount",
    "discount_amount",
    "discounted_price",
    "propagate_discount",
    # line pricing
    "LineItem",
    "LinePricing",
    "ex_from_inclusive",
    "price_line",
    "reprice",
    "verify_line",
    # settlement
    "Allocation",
    "BillBalance",
    "BillStatus",
    "InvoiceSettlement",
    "InvoiceStatus",
    "allocate_payment",
    "auto_allocate",
    "bill_status_for",
    "invoice_status_for",
    "settle_invoice",
    "validate_payment_amount",
    # totals
    "DocumentTotals",
    "compute_totals",
    # tracer
    "compute_input_fingerprint",
    "traced_engine",
    # uom
    "GRAM_CONVENTION_VERSION",
    "BagQuantity",
    "BoxQuantity",
    "GramQuantity",
    "KilogramQuantity",
    "PieceQuantity",
    "Quantity",
    "Uom",
    "migrate_legacy_gram_quantity",
    "normalize",
    "parse_uom",
    "quantity_for",
    "switch_uom",
]
