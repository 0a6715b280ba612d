"""
Tests for the settings loader.

Covers:
- Packaged defaults
- Deterministic checksums
- Rejection of unknown sections, unknown keys and malformed values
- The cached active settings entrypoint
"""

from decimal import Decimal

import pytest

from billing_config import get_active_settings, reset_active_settings
from billing_config.loader import compute_checksum, load_settings, parse_settings
from billing_kernel.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _reset_active():
    reset_active_settings()
    yield
    reset_active_settings()


def _write(tmp_path, text: str):
    path = tmp_path / "settings.yaml"
    path.write_text(text)
    return path


# =============================================================================
# Defaults
# =============================================================================


class TestDefaults:
    """Tests for the packaged defaults.yaml."""

    def test_pricing_defaults(self):
        settings = load_settings()

        assert settings.pricing.default_vat_percent == Decimal("15")
        assert settings.pricing.default_kg_per_bag == Decimal("25")
        assert settings.pricing.gram_convention_version == 2
        assert settings.pricing.balance_tolerance == Decimal("0.01")

    def test_numbering_defaults(self):
        numbering = load_settings().numbering

        assert (
            numbering.quotation_prefix,
            numbering.invoice_prefix,
            numbering.credit_note_prefix,
            numbering.bill_prefix,
        ) == ("QT", "INV", "CN", "BILL")
        assert numbering.padding == 6

    def test_checksum_present_and_deterministic(self):
        first = load_settings()
        second = load_settings()

        assert first.checksum
        assert first.checksum == second.checksum
        assert compute_checksum(first) == first.checksum

    def test_checksum_changes_with_values(self):
        base = parse_settings({})
        changed = parse_settings({"pricing": {"default_vat_percent": "14"}})

        assert base.checksum != changed.checksum

    def test_empty_file_gives_defaults(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""))

        assert settings.pricing.default_vat_percent == Decimal("15")
        assert settings.numbering.padding == 6

    def test_partial_section_keeps_other_defaults(self, tmp_path):
        settings = load_settings(_write(tmp_path, "numbering:\n  invoice_prefix: TAX\n"))

        assert settings.numbering.invoice_prefix == "TAX"
        assert settings.numbering.quotation_prefix == "QT"

    def test_float_values_become_decimal(self, tmp_path):
        settings = load_settings(_write(tmp_path, "pricing:\n  default_kg_per_bag: 12.5\n"))

        assert settings.pricing.default_kg_per_bag == Decimal("12.5")
        assert isinstance(settings.pricing.default_kg_per_bag, Decimal)


# =============================================================================
# Rejections
# =============================================================================


class TestInvalidSettings:
    """Tests for malformed settings files."""

    def test_missing_file(self, tmp_path):
        path = tmp_path / "absent.yaml"

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)

        assert exc_info.value.source == str(path)

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_settings(_write(tmp_path, "pricing: [unclosed\n"))

    def test_non_mapping_document(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(_write(tmp_path, "- one\n- two\n"))

    def test_unknown_section(self):
        with pytest.raises(ConfigurationError, match="unknown settings sections"):
            parse_settings({"shipping": {}})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="default_currency"):
            parse_settings({"pricing": {"default_currency": "ZAR"}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_settings({"pricing": "15"})

    def test_bad_decimal(self):
        with pytest.raises(ConfigurationError, match="not a number"):
            parse_settings({"pricing": {"default_vat_percent": "fifteen"}})

    @pytest.mark.parametrize("value", ["-1", "100.5"])
    def test_vat_out_of_range(self, value):
        with pytest.raises(ConfigurationError, match="default_vat_percent"):
            parse_settings({"pricing": {"default_vat_percent": value}})

    def test_unknown_gram_convention(self):
        with pytest.raises(ConfigurationError, match="gram_convention_version"):
            parse_settings({"pricing": {"gram_convention_version": 3}})

    @pytest.mark.parametrize("value", ["6", 6.0, True])
    def test_padding_must_be_int(self, value):
        with pytest.raises(ConfigurationError, match="padding"):
            parse_settings({"numbering": {"padding": value}})

    def test_padding_out_of_range(self):
        with pytest.raises(ConfigurationError, match="padding"):
            parse_settings({"numbering": {"padding": 0}})

    def test_empty_prefix(self):
        with pytest.raises(ConfigurationError, match="bill_prefix"):
            parse_settings({"numbering": {"bill_prefix": ""}})


# =============================================================================
# Active settings
# =============================================================================


class TestActiveSettings:
    """Tests for get_active_settings caching."""

    def test_defaults_cached(self):
        assert get_active_settings() is get_active_settings()

    def test_explicit_path_becomes_active(self, tmp_path):
        path = _write(tmp_path, "pricing:\n  default_vat_percent: '20'\n")

        loaded = get_active_settings(path)

        assert loaded.pricing.default_vat_percent == Decimal("20")
        assert get_active_settings() is loaded

    def test_reset_drops_cache(self, tmp_path):
        get_active_settings(_write(tmp_path, "pricing:\n  default_vat_percent: '20'\n"))

        reset_active_settings()

        assert get_active_settings().pricing.default_vat_percent == Decimal("15")

    def test_load_is_traced(self, captured_logs):
        settings = get_active_settings()

        traces = [r for r in captured_logs() if r["message"] == "BILLING_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["source"] == "defaults"
