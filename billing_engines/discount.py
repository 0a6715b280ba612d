"""
billing_engines.discount -- Document discount propagation.

Responsibility:
    Applies the document discount percent to every real, non-overridden
    line (discount before VAT), and measures the discount actually given
    as an inclusive-price delta.

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - A discount change never touches an overridden line or a placeholder
      line; those are returned as the identical objects.
    - ``discount_amount`` is computed from prices, not as
      ``percent x subtotal``, so overridden lines and mixed VAT rates are
      reflected correctly.  It is never negative.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from decimal import Decimal

from billing_engines.line_pricing import LineItem, price_line, reprice
from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import (
    ONE,
    ONE_HUNDRED,
    PRECISE_PRICE_PLACES,
    ZERO,
    clamp_percent,
    coerce_price,
    round_money,
    round_to,
)


def discounted_price(base_price_ex_vat: object, discount_percent: object) -> Decimal:
    """``base x (1 - pct/100)`` at 6dp."""
    base = coerce_price(base_price_ex_vat, "base_unit_price_ex_vat")
    pct = clamp_percent(discount_percent, "discount_percent")
    return round_to(base * (ONE - pct / ONE_HUNDRED), PRECISE_PRICE_PLACES)


def apply_discount(
    line: LineItem,
    discount_percent: object,
    catalog_price: Decimal | None = None,
) -> LineItem:
    """Reprice one line at the document discount.

    Overridden and placeholder lines are returned unchanged.
    """
    if line.is_placeholder or line.price_overridden:
        return line
    base = line.base_unit_price_ex_vat if catalog_price is None else catalog_price
    return reprice(
        replace(
            line,
            base_unit_price_ex_vat=base,
            unit_price_ex_vat=discounted_price(base, discount_percent),
        )
    )


@traced_engine("discount", "1.0", fingerprint_fields=("discount_percent",))
def propagate_discount(
    lines: Sequence[LineItem],
    discount_percent: object,
    catalog_prices: Mapping[str, Decimal] | None = None,
) -> tuple[LineItem, ...]:
    """Apply ``discount_percent`` across ``lines``.

    ``catalog_prices`` maps product_id to the catalog ex-VAT price; lines
    whose product is missing fall back to their stored base price.
    """
    prices = catalog_prices or {}
    return tuple(
        apply_discount(line, discount_percent, prices.get(line.product_id))
        if line.product_id is not None
        else line
        for line in lines
    )


def discount_amount(lines: Iterable[LineItem]) -> Decimal:
    """Sum of base x (undiscounted inc - current inc) over real lines, >= 0."""
    delta = ZERO
    for line in lines:
        if line.is_placeholder:
            continue
        undiscounted = price_line(
            line.base_quantity, line.base_unit_price_ex_vat, line.vat_rate_percent
        )
        delta += line.base_quantity * (
            undiscounted.unit_price_inc_vat - line.unit_price_inc_vat
        )
    return max(ZERO, round_money(delta))
