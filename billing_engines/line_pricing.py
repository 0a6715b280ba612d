"""
billing_engines.line_pricing -- Line item model and VAT pricing.

Responsibility:
    Defines the ``LineItem`` shared by quotations, invoices and credit
    notes, and derives its VAT-dependent fields from the ex-VAT unit
    price:

        unit_vat           = round(ex x rate / 100, 3dp)
        unit_price_inc_vat = round(ex + unit_vat, 3dp)
        line_total         = round(base_quantity x inc, 2dp)

    An inclusive price entered by the operator is back-solved to ex-VAT
    (``ex_from_inclusive``); the ex-VAT price stays authoritative.

Architecture position:
    Engines -- pure calculation, zero I/O.

Invariants enforced:
    - Derived fields (base_quantity, unit_vat, unit_price_inc_vat,
      line_total) are pure functions of (quantity, unit_price_ex_vat,
      vat_rate_percent).  ``reprice`` recomputes them; ``verify_line``
      detects drift.
    - All arithmetic is Decimal with ROUND_HALF_UP.

Failure modes:
    - ``DerivedFieldMismatchError`` from ``verify_line``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from uuid import UUID, uuid4

from billing_engines.uom import BoxQuantity, Quantity, Uom, normalize
from billing_kernel.domain.values import (
    MONEY_PLACES,
    ONE,
    ONE_HUNDRED,
    PRECISE_PRICE_PLACES,
    UNIT_PRICE_PLACES,
    ZERO,
    clamp_percent,
    coerce_non_negative,
    coerce_price,
    round_to,
)
from billing_kernel.exceptions import DerivedFieldMismatchError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.line_pricing")


@dataclass(frozen=True)
class LinePricing:
    """Derived VAT fields for one line."""

    unit_vat: Decimal
    unit_price_inc_vat: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class LineItem:
    """
    One line on a document.

    A line with no ``product_id`` is a placeholder: it is kept in the
    document for editing but excluded from totals and discounting.

    ``base_unit_price_ex_vat`` is the catalog price before the document
    discount; ``unit_price_ex_vat`` is the effective (discounted or
    manually entered) price.  Build lines through ``reprice`` so the
    derived fields are consistent.
    """

    id: UUID = field(default_factory=uuid4)
    product_id: str | None = None
    quantity: Quantity = field(default_factory=BoxQuantity)
    base_quantity: Decimal = ZERO
    base_unit_price_ex_vat: Decimal = ZERO
    unit_price_ex_vat: Decimal = ZERO
    unit_vat: Decimal = ZERO
    unit_price_inc_vat: Decimal = ZERO
    vat_rate_percent: Decimal = Decimal("15")
    line_total: Decimal = ZERO
    price_overridden: bool = False
    description: str = ""
    item_code: str = ""

    @property
    def uom(self) -> Uom:
        return self.quantity.uom

    @property
    def is_placeholder(self) -> bool:
        return self.product_id is None


def price_line(
    base_quantity: object,
    unit_price_ex_vat: object,
    vat_rate_percent: object,
) -> LinePricing:
    """Derive unit VAT, inclusive unit price and line total."""
    base = coerce_non_negative(base_quantity, "base_quantity")
    ex = coerce_price(unit_price_ex_vat)
    rate = clamp_percent(vat_rate_percent, "vat_rate_percent")

    unit_vat = round_to(ex * rate / ONE_HUNDRED, UNIT_PRICE_PLACES)
    inc = round_to(ex + unit_vat, UNIT_PRICE_PLACES)
    line_total = round_to(base * inc, MONEY_PLACES)
    return LinePricing(unit_vat=unit_vat, unit_price_inc_vat=inc, line_total=line_total)


def ex_from_inclusive(unit_price_inc_vat: object, vat_rate_percent: object) -> Decimal:
    """Back-solve the ex-VAT price from an inclusive entry (6dp)."""
    inc = coerce_price(unit_price_inc_vat, "unit_price_inc_vat")
    rate = clamp_percent(vat_rate_percent, "vat_rate_percent")
    return round_to(inc / (ONE + rate / ONE_HUNDRED), PRECISE_PRICE_PLACES)


def reprice(line: LineItem) -> LineItem:
    """Return ``line`` with every derived field recomputed."""
    ex = coerce_price(line.unit_price_ex_vat)
    rate = clamp_percent(line.vat_rate_percent, "vat_rate_percent")
    base = normalize(line.quantity)
    pricing = price_line(base, ex, rate)
    return replace(
        line,
        base_quantity=base,
        unit_price_ex_vat=ex,
        vat_rate_percent=rate,
        base_unit_price_ex_vat=coerce_price(
            line.base_unit_price_ex_vat, "base_unit_price_ex_vat"
        ),
        unit_vat=pricing.unit_vat,
        unit_price_inc_vat=pricing.unit_price_inc_vat,
        line_total=pricing.line_total,
    )


def verify_line(line: LineItem) -> None:
    """Raise DerivedFieldMismatchError if a stored derived field is stale."""
    expected = reprice(line)
    for name in ("base_quantity", "unit_vat", "unit_price_inc_vat", "line_total"):
        stored = getattr(line, name)
        formula = getattr(expected, name)
        if stored != formula:
            logger.error(
                "derived_field_mismatch",
                extra={
                    "line_id": str(line.id),
                    "field": name,
                    "stored": str(stored),
                    "expected": str(formula),
                },
            )
            raise DerivedFieldMismatchError(str(line.id), name, stored, formula)
