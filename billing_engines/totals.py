"""
billing_engines.totals -- Document totals aggregator.

Responsibility:
    Aggregates a document's real lines into subtotal, VAT, total and the
    informational discount amount.

        subtotal     = round(sum(base_quantity x unit_price_ex_vat), 2dp)
        vat_amount   = round(sum(base_quantity x unit_vat), 2dp)
        total_amount = subtotal + vat_amount

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - Totals are recomputed from the full line tuple on every call; no
      cached partial sums.  The same lines always give identical results.
    - Placeholder lines are excluded entirely.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from billing_engines.discount import discount_amount
from billing_engines.line_pricing import LineItem
from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import ZERO, round_money


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    line_count: int = 0


@traced_engine("totals", "1.0")
def compute_totals(lines: Iterable[LineItem]) -> DocumentTotals:
    real = [line for line in lines if not line.is_placeholder]

    subtotal = ZERO
    vat = ZERO
    for line in real:
        subtotal += line.base_quantity * line.unit_price_ex_vat
        vat += line.base_quantity * line.unit_vat

    subtotal = round_money(subtotal)
    vat = round_money(vat)
    return DocumentTotals(
        subtotal=subtotal,
        vat_amount=vat,
        total_amount=subtotal + vat,
        discount_amount=discount_amount(real),
        line_count=len(real),
    )
