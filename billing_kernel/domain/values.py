"""
Values -- Decimal coercion and rounding primitives.

Responsibility:
    Provides the numeric foundation for every calculation in the core:
    tolerant parsing of operator input into ``Decimal``, clamping to the
    allowed domain, and explicit quantization at a named decimal place.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine. No outward dependencies except the kernel
    exception types and logger.

Invariants enforced:
    - All monetary and quantity arithmetic uses ``Decimal`` (never float).
      Floats arriving at the boundary are converted through ``str`` so the
      shortest round-tripping representation is kept.
    - Rounding is always explicit (``round_to``) and always ROUND_HALF_UP.

Failure modes:
    - None raised.  Invalid input (non-finite, unparsable, negative, or
      an oversized raw entry) is recovered locally: an ``InputError`` is
      built, logged at DEBUG and the value coerces to zero.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation

from billing_kernel.exceptions import (
    InputError,
    InvalidPriceError,
    InvalidQuantityError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("domain.values")

ZERO = Decimal("0")
ONE = Decimal("1")
ONE_HUNDRED = Decimal("100")
ONE_THOUSAND = Decimal("1000")

MONEY_PLACES = 2
UNIT_PRICE_PLACES = 3
QUANTITY_PLACES = 3
WEIGHT_PLACES = 6
PRECISE_PRICE_PLACES = 6

# Upper bound (exclusive) on a single raw entry.  Line totals built
# from inputs below it keep cent precision in the default 28-digit context.
MAX_INPUT = Decimal("100000000")

# Quantization only; arithmetic stays in the default context.
_ROUNDING_CONTEXT = Context(prec=80)

_QUANTA: dict[int, Decimal] = {}


def _quantum(places: int) -> Decimal:
    q = _QUANTA.get(places)
    if q is None:
        q = Decimal(1).scaleb(-places)
        _QUANTA[places] = q
    return q


def round_to(value: Decimal, places: int) -> Decimal:
    """
    Quantize ``value`` to ``places`` decimal places, ROUND_HALF_UP.

    Postconditions:
        - Returns a Decimal with exactly ``places`` fractional digits.
        - ``-0`` is normalized to ``0``.
        - Does not raise for magnitudes below ``10**70``.
    """
    result = value.quantize(
        _quantum(places), rounding=ROUND_HALF_UP, context=_ROUNDING_CONTEXT
    )
    if result.is_zero():
        return abs(result)
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to the 2dp money scale."""
    return round_to(value, MONEY_PLACES)


def parse_decimal(raw: object) -> Decimal | None:
    """
    Parse operator input into a finite Decimal.

    Accepts Decimal, int, float and strings (thousands separators and
    surrounding whitespace are ignored).  Returns None for anything that
    is empty, unparsable or non-finite.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        if not math.isfinite(raw):
            return None
        value = Decimal(repr(raw))
    elif isinstance(raw, str):
        cleaned = raw.replace(",", "").strip()
        if not cleaned:
            return None
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None

    if not value.is_finite():
        return None
    return value


def _recover(error: InputError) -> Decimal:
    logger.debug(
        "input_recovered",
        extra={
            "error_code": error.code,
            "field": getattr(error, "field", None),
            "raw_value": getattr(error, "raw_value", None),
        },
    )
    return ZERO


def coerce_non_negative(
    raw: object,
    field: str,
    *,
    error_type: type[InputError] = InvalidQuantityError,
    limit: Decimal | None = None,
) -> Decimal:
    """
    Coerce operator input into a non-negative Decimal.

    Non-finite, unparsable and negative values recover to ``0``, as does
    anything at or above ``limit`` when one is given.  Raw entries
    (quantities, per-container factors, prices, balances) pass
    ``MAX_INPUT``; derived values such as totals are unbounded.
    """
    value = parse_decimal(raw)
    if value is None or value < ZERO or (limit is not None and value >= limit):
        return _recover(error_type(field, raw))
    return value


def coerce_price(raw: object, field: str = "unit_price_ex_vat") -> Decimal:
    """Coerce a price input (0 <= price < MAX_INPUT); invalid input recovers to 0."""
    return coerce_non_negative(raw, field, error_type=InvalidPriceError, limit=MAX_INPUT)


def clamp_percent(raw: object, field: str = "percent") -> Decimal:
    """Coerce a percentage into the closed range [0, 100]."""
    value = coerce_non_negative(raw, field, error_type=InvalidPriceError)
    if value > ONE_HUNDRED:
        return ONE_HUNDRED
    return value


def to_payload(value: Decimal | None) -> str | None:
    """Serialize a Decimal with full precision for wire / storage payloads."""
    if value is None:
        return None
    return str(value)
