"""
Tests for the UOM normalizer.

Covers:
- UOM parsing and aliases
- Base quantity per variant
- Per-container defaults and invalid factors
- UOM switching and factor edits
- Legacy GRAM migration
"""

from decimal import Decimal

import pytest

from billing_engines.uom import (
    DEFAULT_KG_PER_BAG,
    BagQuantity,
    BoxQuantity,
    GramQuantity,
    KilogramQuantity,
    PieceQuantity,
    Uom,
    migrate_legacy_gram_quantity,
    normalize,
    parse_uom,
    quantity_for,
    switch_uom,
    with_per_container,
    with_raw,
)


class TestParseUom:
    """Tests for UOM string parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("BOX", Uom.BOX),
        ("box", Uom.BOX),
        (" kg ", Uom.KG),
        ("GRAM", Uom.GRAM),
        ("g", Uom.GRAM),
        ("grams", Uom.GRAM),
        ("bags", Uom.BAG),
        ("pieces", Uom.PCS),
        ("Boxes", Uom.BOX),
    ])
    def test_known_values_and_aliases(self, raw, expected):
        assert parse_uom(raw) is expected

    def test_enum_passthrough(self):
        assert parse_uom(Uom.BAG) is Uom.BAG

    @pytest.mark.parametrize("raw", ["crate", "", None, 42])
    def test_unknown_falls_back_to_box(self, raw):
        assert parse_uom(raw) is Uom.BOX


class TestNormalize:
    """Tests for base quantity per variant."""

    def test_box_multiplies_units_per_box(self):
        assert normalize(BoxQuantity(Decimal("5"), Decimal("12"))) == Decimal("60.000")

    def test_pieces_are_counted_directly(self):
        assert normalize(PieceQuantity(Decimal("7"))) == Decimal("7.000")

    def test_kilograms_are_counted_directly(self):
        assert normalize(KilogramQuantity("2.5")) == Decimal("2.500")

    def test_grams_convert_to_kilograms(self):
        assert normalize(GramQuantity(Decimal("1500"))) == Decimal("1.500000")

    def test_small_gram_amount_keeps_six_places(self):
        assert normalize(GramQuantity(Decimal("1"))) == Decimal("0.001000")

    def test_bag_uses_default_kg_per_bag(self):
        assert normalize(BagQuantity(Decimal("2"))) == Decimal("50.000")

    def test_bag_with_custom_weight(self):
        assert normalize(BagQuantity(Decimal("3"), Decimal("40"))) == Decimal("120.000")

    def test_raw_count_rounds_half_up_to_three_places(self):
        assert PieceQuantity(Decimal("1.2345")).pieces == Decimal("1.235")

    def test_unsupported_variant_raises(self):
        with pytest.raises(TypeError):
            normalize(object())


class TestInvalidInputRecovery:
    """Invalid operator input never raises; it recovers to a safe value."""

    @pytest.mark.parametrize("raw", ["-3", "abc", "", float("nan"), float("inf"), None])
    def test_invalid_count_is_zero(self, raw):
        assert normalize(PieceQuantity(raw)) == Decimal("0.000")

    @pytest.mark.parametrize("factor", [0, "-4", "x", None])
    def test_invalid_units_per_box_defaults_to_one(self, factor):
        assert BoxQuantity(Decimal("5"), factor).units_per_box == Decimal("1")

    @pytest.mark.parametrize("factor", [0, "-5", "heavy"])
    def test_invalid_kg_per_bag_defaults(self, factor):
        assert BagQuantity(Decimal("1"), factor).kg_per_bag == DEFAULT_KG_PER_BAG

    def test_thousands_separator_accepted(self):
        assert PieceQuantity("1,250").pieces == Decimal("1250.000")

    def test_oversized_count_is_zero(self):
        assert normalize(BoxQuantity(Decimal("1e26"), Decimal("12"))) == Decimal("0.000")

    def test_oversized_units_per_box_defaults_to_one(self):
        assert BoxQuantity(Decimal("2"), Decimal("1e26")).units_per_box == Decimal("1")


class TestQuantityFor:
    """Tests for building variants from a UOM."""

    def test_box_uses_default_units_per_box(self):
        q = quantity_for(Uom.BOX, 2, default_units_per_box=Decimal("6"))
        assert isinstance(q, BoxQuantity)
        assert normalize(q) == Decimal("12.000")

    def test_explicit_factor_wins_over_default(self):
        q = quantity_for("BOX", 2, 10, default_units_per_box=Decimal("6"))
        assert q.per_container == Decimal("10")

    def test_bag_uses_supplied_default(self):
        q = quantity_for("BAG", 1, default_kg_per_bag=Decimal("50"))
        assert q.per_container == Decimal("50")

    def test_factor_ignored_for_pieces(self):
        q = quantity_for("PCS", 4, 99)
        assert isinstance(q, PieceQuantity)
        assert normalize(q) == Decimal("4.000")

    def test_unknown_uom_builds_box(self):
        assert isinstance(quantity_for("pallet", 1), BoxQuantity)


class TestEdits:
    """Tests for quantity, factor and UOM edits."""

    def test_with_raw_keeps_factor(self):
        q = with_raw(BoxQuantity(Decimal("1"), Decimal("12")), 3)
        assert normalize(q) == Decimal("36.000")

    def test_with_per_container_on_box(self):
        q = with_per_container(BoxQuantity(Decimal("2")), 24)
        assert normalize(q) == Decimal("48.000")

    def test_with_per_container_ignored_for_kg(self):
        q = KilogramQuantity(Decimal("3"))
        assert with_per_container(q, 10) is q

    def test_switch_uom_drops_old_fields(self):
        q = switch_uom(BoxQuantity(Decimal("5"), Decimal("12")), "KG")
        assert q == KilogramQuantity(Decimal("0"))

    def test_switch_to_bag_uses_default_weight(self):
        q = switch_uom(PieceQuantity(Decimal("2")), Uom.BAG, default_kg_per_bag=Decimal("20"))
        assert q == BagQuantity(Decimal("0"), Decimal("20"))

    def test_switch_to_same_uom_is_noop(self):
        q = BoxQuantity(Decimal("5"), Decimal("12"))
        assert switch_uom(q, "box") is q


class TestLegacyGramMigration:
    """Tests for bringing legacy GRAM rows to the kilogram convention."""

    def test_version_one_divides_by_thousand(self):
        assert migrate_legacy_gram_quantity(Decimal("1500"), 1) == Decimal("1.500000")

    def test_current_version_unchanged(self):
        assert migrate_legacy_gram_quantity(Decimal("1.5"), 2) == Decimal("1.500000")

    def test_unknown_version_rejected(self):
        with pytest.raises(ValueError):
            migrate_legacy_gram_quantity(Decimal("1"), 3)

    def test_migration_is_logged(self, captured_logs):
        migrate_legacy_gram_quantity(Decimal("250"), 1)
        logs = captured_logs()
        assert any(r["message"] == "gram_quantity_migrated" for r in logs)
