"""
Settings Loader (``billing_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen
``billing_config.schema`` dataclasses.  Runtime callers use
``billing_config.get_active_settings()``; tests and tooling may call
``load_settings`` with an explicit path.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Numeric settings are parsed through ``str`` into ``Decimal``; YAML
  floats never reach the engines as ``float``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed settings.

Failure modes
-------------
* Missing file        -> ``ConfigurationError`` (source = path).
* Malformed YAML      -> ``ConfigurationError`` wrapping ``yaml.YAMLError``.
* Unknown keys / bad values -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import BillingSettings, NumberingSettings, PricingSettings
from billing_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_DECIMAL_FIELDS = frozenset(
    {"default_vat_percent", "default_kg_per_bag", "balance_tolerance"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError("settings file not found", source=str(path)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML: {exc}", source=str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("top-level YAML value must be a mapping", source=str(path))
    return data


def _to_decimal(name: str, value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(f"{name} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return result


def _parse_section(cls: type, data: dict[str, Any] | None, section: str) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"section '{section}' must be a mapping")
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(
            f"unknown keys in '{section}': {', '.join(sorted(unknown))}"
        )
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key in _DECIMAL_FIELDS:
            kwargs[key] = _to_decimal(key, value)
        elif key in ("gram_convention_version", "padding"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{key} must be an integer, got {value!r}")
            kwargs[key] = value
        else:
            kwargs[key] = str(value)
    return cls(**kwargs)


def parse_settings(data: dict[str, Any]) -> BillingSettings:
    """Parse a settings mapping into ``BillingSettings``."""
    unknown = set(data) - {"pricing", "numbering"}
    if unknown:
        raise ConfigurationError(f"unknown settings sections: {', '.join(sorted(unknown))}")
    settings = BillingSettings(
        pricing=_parse_section(PricingSettings, data.get("pricing"), "pricing"),
        numbering=_parse_section(NumberingSettings, data.get("numbering"), "numbering"),
    )
    return replace(settings, checksum=compute_checksum(settings))


def load_settings(path: Path | str | None = None) -> BillingSettings:
    """Load settings from ``path`` (defaults to the packaged defaults.yaml)."""
    source = Path(path) if path is not None else DEFAULTS_PATH
    return parse_settings(load_yaml_file(source))


def compute_checksum(settings: BillingSettings) -> str:
    """
    SHA-256 of the canonical JSON serialization of ``settings``.

    The ``checksum`` field itself is excluded so the value is stable.
    """
    data = asdict(settings)
    data.pop("checksum", None)
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
