"""
Tests for unit of measure conversions.

Covers:
- Same-category conversions through the base unit
- Mass <-> volume via explicit and standard densities
- Unknown units and category mismatches
"""

from decimal import Decimal

import pytest

from pam_engines.conversions import (
    STANDARD_DENSITIES,
    UnitConverter,
    density_from_lb_per_gal,
    get_unit,
)
from pam_kernel.exceptions import (
    ConversionError,
    MissingDensityError,
    UnitCategoryMismatchError,
    UnknownUnitError,
)


class TestSameCategory:
    """Conversions within one category."""

    def setup_method(self):
        self.units = UnitConverter()

    def test_metric_ton_to_kg(self):
        assert self.units.convert(Decimal("1"), "MT", "kg") == Decimal("1000")

    def test_barrel_to_liters_and_back(self):
        assert self.units.convert(Decimal("1"), "bbl", "L") == Decimal("158.987")
        assert self.units.convert(Decimal("158.987"), "L", "bbl") == Decimal("1")

    def test_feet_to_inches(self):
        assert self.units.convert(Decimal("1"), "ft", "in") == Decimal("12")

    def test_same_unit_is_identity(self):
        value = Decimal("3.14159")
        assert self.units.convert(value, "gal", "gal") is value

    def test_cubic_meter_aliases(self):
        assert get_unit("m3").to_base == get_unit("m³").to_base

    def test_are_compatible(self):
        assert self.units.are_compatible("kg", "lb")
        assert not self.units.are_compatible("kg", "L")
        assert not self.units.are_compatible("kg", "furlong")


class TestErrors:
    """Unknown units and impossible conversions."""

    def setup_method(self):
        self.units = UnitConverter()

    def test_unknown_unit(self):
        with pytest.raises(UnknownUnitError) as exc_info:
            self.units.convert(Decimal("1"), "furlong", "m")
        assert exc_info.value.unit == "furlong"

    def test_category_mismatch(self):
        with pytest.raises(UnitCategoryMismatchError) as exc_info:
            self.units.convert(Decimal("1"), "kg", "m")
        assert exc_info.value.from_category == "mass"
        assert exc_info.value.to_category == "length"

    def test_all_conversion_errors_share_a_base(self):
        with pytest.raises(ConversionError):
            self.units.convert(Decimal("1"), "kg", "L")


class TestDensity:
    """Mass <-> volume conversions."""

    def setup_method(self):
        self.units = UnitConverter()

    def test_volume_to_mass_explicit_density(self):
        result = self.units.volume_to_mass(Decimal("1000"), "L", "kg", density=Decimal("0.85"))
        assert result == Decimal("850")

    def test_volume_to_mass_standard_product(self):
        result = self.units.volume_to_mass(Decimal("1"), "m3", "t", product="diesel")
        assert result == Decimal("0.85")

    def test_mass_to_volume_standard_product(self):
        result = self.units.mass_to_volume(Decimal("850"), "kg", "L", product="diesel")
        assert result == Decimal("1000")

    def test_explicit_density_wins_over_product(self):
        result = self.units.volume_to_mass(
            Decimal("1"), "L", "kg", density=Decimal("0.5"), product="water"
        )
        assert result == Decimal("0.5")

    def test_missing_density(self):
        with pytest.raises(MissingDensityError) as exc_info:
            self.units.volume_to_mass(Decimal("1"), "L", "kg", product="unobtainium")
        assert exc_info.value.product == "unobtainium"

    def test_extra_densities(self):
        units = UnitConverter(extra_densities={"biodiesel": Decimal("0.88")})
        assert units.density_for("biodiesel") == Decimal("0.88")
        assert units.density_for("water") == STANDARD_DENSITIES["water"]

    def test_lb_per_gal_conversion(self):
        assert density_from_lb_per_gal(Decimal("7")) == Decimal("0.838782")
