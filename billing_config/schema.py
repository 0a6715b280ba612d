"""
Billing settings schema.

Frozen dataclasses that the YAML loader parses into.  Validation lives
in ``__post_init__`` so an invalid settings object can never exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from billing_kernel.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PricingSettings:
    """Defaults fed into the calculation engines."""

    default_vat_percent: Decimal = Decimal("15")
    default_kg_per_bag: Decimal = Decimal("25")
    gram_convention_version: int = 2
    balance_tolerance: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.default_vat_percent <= Decimal("100"):
            raise ConfigurationError(
                f"default_vat_percent must be within [0, 100], got {self.default_vat_percent}"
            )
        if self.default_kg_per_bag < 0:
            raise ConfigurationError(
                f"default_kg_per_bag cannot be negative, got {self.default_kg_per_bag}"
            )
        if self.gram_convention_version not in (1, 2):
            raise ConfigurationError(
                f"gram_convention_version must be 1 or 2, got {self.gram_convention_version}"
            )
        if self.balance_tolerance < 0:
            raise ConfigurationError(
                f"balance_tolerance cannot be negative, got {self.balance_tolerance}"
            )


# ---------------------------------------------------------------------------
# Document numbering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumberingSettings:
    """Prefixes and zero padding for allocated document numbers."""

    quotation_prefix: str = "QT"
    invoice_prefix: str = "INV"
    credit_note_prefix: str = "CN"
    bill_prefix: str = "BILL"
    padding: int = 6

    def __post_init__(self) -> None:
        for name in ("quotation_prefix", "invoice_prefix", "credit_note_prefix", "bill_prefix"):
            if not getattr(self, name):
                raise ConfigurationError(f"{name} cannot be empty")
        if not 1 <= self.padding <= 12:
            raise ConfigurationError(f"padding must be within [1, 12], got {self.padding}")


@dataclass(frozen=True)
class BillingSettings:
    """Root settings object."""

    pricing: PricingSettings = field(default_factory=PricingSettings)
    numbering: NumberingSettings = field(default_factory=NumberingSettings)
    checksum: str = ""
