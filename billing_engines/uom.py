"""
billing_engines.uom -- Unit-of-measure normalizer.

Responsibility:
    Turns the operator's per-UOM quantity entry into the canonical
    ``base_quantity`` every price calculation multiplies by.  Quantity
    entry is a tagged variant: each UOM carries only the fields that are
    meaningful for it.

        BOX   base = boxes x units_per_box     (units_per_box >= 1)
        PCS   base = pieces
        KG    base = kilograms                 (3dp, no conversion)
        GRAM  base = grams / 1000              (kilograms, 6dp)
        BAG   base = bags x kg_per_bag         (default 25 kg)

Architecture position:
    Engines -- pure calculation, zero I/O.  Imports only billing_kernel.

Invariants enforced:
    - base_quantity >= 0 and is a pure function of the variant's fields.
    - Raw quantities and per-container factors are coerced on
      construction: non-finite, unparsable or negative input becomes 0.
      A zero or invalid units_per_box becomes 1; a zero or invalid
      kg_per_bag becomes the default bag weight.

Failure modes:
    - None raised for operator input.  ``migrate_legacy_gram_quantity``
      raises ValueError for an unknown convention version.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Union

from billing_kernel.domain.values import (
    MAX_INPUT,
    ONE,
    ONE_THOUSAND,
    QUANTITY_PLACES,
    WEIGHT_PLACES,
    ZERO,
    coerce_non_negative,
    round_to,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.uom")

# Version 1 stored GRAM lines with base_quantity = grams (summed raw).
# Version 2 converts grams to kilograms so GRAM and KG lines price alike.
GRAM_CONVENTION_VERSION = 2

DEFAULT_UNITS_PER_BOX = ONE
DEFAULT_KG_PER_BAG = Decimal("25")


class Uom(str, Enum):
    """Units of measure accepted on a document line."""

    BOX = "BOX"
    PCS = "PCS"
    KG = "KG"
    GRAM = "GRAM"
    BAG = "BAG"


_UOM_ALIASES: dict[str, Uom] = {
    "G": Uom.GRAM,
    "GRAMS": Uom.GRAM,
    "BAGS": Uom.BAG,
    "PIECES": Uom.PCS,
    "BOXES": Uom.BOX,
}


def parse_uom(raw: object) -> Uom:
    """Parse a UOM string.  Unknown values fail closed to BOX."""
    if isinstance(raw, Uom):
        return raw
    key = str(raw or "").strip().upper()
    if key in Uom.__members__:
        return Uom[key]
    alias = _UOM_ALIASES.get(key)
    if alias is not None:
        return alias
    logger.debug("uom_defaulted", extra={"raw_uom": key, "uom": Uom.BOX.value})
    return Uom.BOX


def _count(raw: object, field: str) -> Decimal:
    return round_to(coerce_non_negative(raw, field, limit=MAX_INPUT), QUANTITY_PLACES)


def _factor(raw: object, field: str, default: Decimal) -> Decimal:
    value = coerce_non_negative(raw, field, limit=MAX_INPUT)
    if value.is_zero():
        return default
    return value


# ---------------------------------------------------------------------------
# Tagged quantity variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoxQuantity:
    boxes: Decimal = ZERO
    units_per_box: Decimal = DEFAULT_UNITS_PER_BOX

    uom: ClassVar[Uom] = Uom.BOX

    def __post_init__(self) -> None:
        object.__setattr__(self, "boxes", _count(self.boxes, "boxes"))
        object.__setattr__(
            self,
            "units_per_box",
            _factor(self.units_per_box, "units_per_box", DEFAULT_UNITS_PER_BOX),
        )

    @property
    def raw(self) -> Decimal:
        return self.boxes

    @property
    def per_container(self) -> Decimal:
        return self.units_per_box


@dataclass(frozen=True)
class PieceQuantity:
    pieces: Decimal = ZERO

    uom: ClassVar[Uom] = Uom.PCS

    def __post_init__(self) -> None:
        object.__setattr__(self, "pieces", _count(self.pieces, "pieces"))

    @property
    def raw(self) -> Decimal:
        return self.pieces

    @property
    def per_container(self) -> Decimal:
        return ONE


@dataclass(frozen=True)
class KilogramQuantity:
    kilograms: Decimal = ZERO

    uom: ClassVar[Uom] = Uom.KG

    def __post_init__(self) -> None:
        object.__setattr__(self, "kilograms", _count(self.kilograms, "kilograms"))

    @property
    def raw(self) -> Decimal:
        return self.kilograms

    @property
    def per_container(self) -> Decimal:
        return ONE


@dataclass(frozen=True)
class GramQuantity:
    grams: Decimal = ZERO

    uom: ClassVar[Uom] = Uom.GRAM

    def __post_init__(self) -> None:
        object.__setattr__(self, "grams", _count(self.grams, "grams"))

    @property
    def raw(self) -> Decimal:
        return self.grams

    @property
    def per_container(self) -> Decimal:
        # kilograms per gram
        return ONE / ONE_THOUSAND


@dataclass(frozen=True)
class BagQuantity:
    bags: Decimal = ZERO
    kg_per_bag: Decimal = DEFAULT_KG_PER_BAG

    uom: ClassVar[Uom] = Uom.BAG

    def __post_init__(self) -> None:
        object.__setattr__(self, "bags", _count(self.bags, "bags"))
        object.__setattr__(
            self,
            "kg_per_bag",
            _factor(self.kg_per_bag, "kg_per_bag", DEFAULT_KG_PER_BAG),
        )

    @property
    def raw(self) -> Decimal:
        return self.bags

    @property
    def per_container(self) -> Decimal:
        return self.kg_per_bag


Quantity = Union[BoxQuantity, PieceQuantity, KilogramQuantity, GramQuantity, BagQuantity]


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def normalize(quantity: Quantity) -> Decimal:
    """Canonical base quantity for a quantity variant."""
    if isinstance(quantity, BoxQuantity):
        return round_to(quantity.boxes * quantity.units_per_box, QUANTITY_PLACES)
    if isinstance(quantity, PieceQuantity):
        return round_to(quantity.pieces, QUANTITY_PLACES)
    if isinstance(quantity, KilogramQuantity):
        return round_to(quantity.kilograms, QUANTITY_PLACES)
    if isinstance(quantity, GramQuantity):
        return round_to(quantity.grams / ONE_THOUSAND, WEIGHT_PLACES)
    if isinstance(quantity, BagQuantity):
        return round_to(quantity.bags * quantity.kg_per_bag, QUANTITY_PLACES)
    raise TypeError(f"Unsupported quantity variant: {type(quantity).__name__}")


def quantity_for(
    uom: Uom | str,
    raw: object = ZERO,
    per_container: object = None,
    *,
    default_units_per_box: Decimal = DEFAULT_UNITS_PER_BOX,
    default_kg_per_bag: Decimal = DEFAULT_KG_PER_BAG,
) -> Quantity:
    """Build the variant for ``uom`` from a raw quantity and optional factor.

    ``per_container`` is only read for BOX (units per box) and BAG
    (kg per bag); other UOMs ignore it.
    """
    resolved = parse_uom(uom)
    if resolved is Uom.BOX:
        factor = default_units_per_box if per_container is None else per_container
        return BoxQuantity(boxes=raw, units_per_box=factor)
    if resolved is Uom.PCS:
        return PieceQuantity(pieces=raw)
    if resolved is Uom.KG:
        return KilogramQuantity(kilograms=raw)
    if resolved is Uom.GRAM:
        return GramQuantity(grams=raw)
    factor = default_kg_per_bag if per_container is None else per_container
    return BagQuantity(bags=raw, kg_per_bag=factor)


def with_raw(quantity: Quantity, raw: object) -> Quantity:
    """Same variant and factor, new raw quantity."""
    return quantity_for(quantity.uom, raw, quantity.per_container)


def with_per_container(quantity: Quantity, per_container: object) -> Quantity:
    """Same variant and raw quantity, new per-container factor.

    Only BOX and BAG carry an editable factor; other variants are
    returned unchanged.
    """
    if isinstance(quantity, (BoxQuantity, BagQuantity)):
        return quantity_for(quantity.uom, quantity.raw, per_container)
    return quantity


def switch_uom(
    quantity: Quantity,
    new_uom: Uom | str,
    default_units_per_box: Decimal = DEFAULT_UNITS_PER_BOX,
    default_kg_per_bag: Decimal = DEFAULT_KG_PER_BAG,
) -> Quantity:
    """Replace the variant when the operator changes a line's UOM.

    Fields belonging to the old UOM are dropped; the new variant starts at
    zero quantity with its default per-container factor.  Switching to
    the same UOM is a no-op.
    """
    target = parse_uom(new_uom)
    if target is quantity.uom:
        return quantity
    return quantity_for(
        target,
        ZERO,
        None,
        default_units_per_box=default_units_per_box,
        default_kg_per_bag=default_kg_per_bag,
    )


def migrate_legacy_gram_quantity(stored_base: object, convention_version: int) -> Decimal:
    """Bring a stored GRAM base quantity up to the current convention.

    Version 1 rows hold grams; version 2 rows already hold kilograms.
    """
    value = coerce_non_negative(stored_base, "base_quantity")
    if convention_version == GRAM_CONVENTION_VERSION:
        return round_to(value, WEIGHT_PLACES)
    if convention_version == 1:
        migrated = round_to(value / ONE_THOUSAND, WEIGHT_PLACES)
        logger.info(
            "gram_quantity_migrated",
            extra={
                "from_version": convention_version,
                "to_version": GRAM_CONVENTION_VERSION,
                "stored_base": str(value),
                "migrated_base": str(migrated),
            },
        )
        return migrated
    raise ValueError(f"Unknown GRAM convention version: {convention_version}")
