"""
billing_config -- single public entrypoint for back-office settings.

Responsibility:
    ``get_active_settings()`` returns the frozen ``BillingSettings`` the
    services hand to the engines (default VAT, kg per bag, GRAM
    convention, balance tolerance, document numbering).

Architecture position:
    Sits above ``billing_kernel`` and below ``billing_modules``.  The
    kernel and the engines MUST NEVER import from ``billing_config``;
    services pass the values they need as plain parameters.

Failure modes:
    - ``ConfigurationError`` -- unreadable file, malformed YAML or a
      value outside its allowed range.
"""

from __future__ import annotations

import logging
from pathlib import Path

from billing_config.loader import compute_checksum, load_settings
from billing_config.schema import BillingSettings, NumberingSettings, PricingSettings

_logger = logging.getLogger("billing_kernel.config")

_active: BillingSettings | None = None


def get_active_settings(path: Path | str | None = None) -> BillingSettings:
    """Return the active settings.

    Without ``path`` the packaged defaults are loaded once and cached.
    With ``path`` the file is loaded and becomes the active settings.
    """
    global _active
    if _active is not None and path is None:
        return _active

    settings = load_settings(path)
    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "source": str(path) if path is not None else "defaults",
            "checksum": settings.checksum,
            "default_vat_percent": str(settings.pricing.default_vat_percent),
            "gram_convention_version": settings.pricing.gram_convention_version,
        },
    )
    _active = settings
    return settings


def reset_active_settings() -> None:
    """Drop the cached settings. FOR TESTING ONLY."""
    global _active
    _active = None


__all__ = [
    "BillingSettings",
    "NumberingSettings",
    "PricingSettings",
    "compute_checksum",
    "get_active_settings",
    "load_settings",
    "reset_active_settings",
]
