"""
Unit of measure conversions for PAM Convert nodes.

Responsibility:
    Registry of mass, volume and length units (factors to a per-category
    base unit), standard product densities, and ``UnitConverter``, the
    default implementation of the engine's unit conversion collaborator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Injected into ``pam_engines.pam.evaluator.NodeEvaluator``; the evaluator
    only depends on the ``UnitConversionService`` protocol.

Invariants enforced:
    - Decimal-only: every factor is a Decimal built from a string literal.
    - Conversions go value -> base unit -> target unit, so the registry
      needs exactly one factor per unit.
    - Mass <-> volume requires a density (kg/L); there is no implicit one.

Failure modes:
    - UnknownUnitError for symbols outside the registry.
    - UnitCategoryMismatchError for cross-category conversions that are not
      mass/volume.
    - MissingDensityError for mass/volume without a density or a known
      product.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from pam_kernel.domain.arithmetic import divide, multiply
from pam_kernel.exceptions import (
    MissingDensityError,
    UnitCategoryMismatchError,
    UnknownUnitError,
)
from pam_kernel.logging_config import get_logger

logger = get_logger("engines.conversions")


class UnitCategory(str, Enum):
    MASS = "mass"
    VOLUME = "volume"
    LENGTH = "length"


@dataclass(frozen=True)
class Unit:
    symbol: str
    name: str
    category: UnitCategory
    to_base: Decimal


def _registry(*units: Unit) -> Mapping[str, Unit]:
    return MappingProxyType({u.symbol: u for u in units})


# Base: kg
MASS_UNITS = _registry(
    Unit("kg", "kilogram", UnitCategory.MASS, Decimal("1")),
    Unit("g", "gram", UnitCategory.MASS, Decimal("0.001")),
    Unit("t", "metric ton", UnitCategory.MASS, Decimal("1000")),
    Unit("MT", "metric ton", UnitCategory.MASS, Decimal("1000")),
    Unit("lb", "pound", UnitCategory.MASS, Decimal("0.453592")),
    Unit("oz", "ounce", UnitCategory.MASS, Decimal("0.0283495")),
)

# Base: L
VOLUME_UNITS = _registry(
    Unit("L", "liter", UnitCategory.VOLUME, Decimal("1")),
    Unit("mL", "milliliter", UnitCategory.VOLUME, Decimal("0.001")),
    Unit("m3", "cubic meter", UnitCategory.VOLUME, Decimal("1000")),
    Unit("m³", "cubic meter", UnitCategory.VOLUME, Decimal("1000")),
    Unit("gal", "US gallon", UnitCategory.VOLUME, Decimal("3.78541")),
    Unit("bbl", "barrel (oil)", UnitCategory.VOLUME, Decimal("158.987")),
)

# Base: m
LENGTH_UNITS = _registry(
    Unit("m", "meter", UnitCategory.LENGTH, Decimal("1")),
    Unit("cm", "centimeter", UnitCategory.LENGTH, Decimal("0.01")),
    Unit("mm", "millimeter", UnitCategory.LENGTH, Decimal("0.001")),
    Unit("km", "kilometer", UnitCategory.LENGTH, Decimal("1000")),
    Unit("ft", "foot", UnitCategory.LENGTH, Decimal("0.3048")),
    Unit("in", "inch", UnitCategory.LENGTH, Decimal("0.0254")),
)

ALL_UNITS: Mapping[str, Unit] = MappingProxyType(
    {**MASS_UNITS, **VOLUME_UNITS, **LENGTH_UNITS}
)

_BASE_SYMBOL = {
    UnitCategory.MASS: "kg",
    UnitCategory.VOLUME: "L",
    UnitCategory.LENGTH: "m",
}

# kg/L
STANDARD_DENSITIES: Mapping[str, Decimal] = MappingProxyType({
    "crude-oil": Decimal("0.85"),
    "gasoline": Decimal("0.74"),
    "diesel": Decimal("0.85"),
    "jet-fuel": Decimal("0.80"),
    "fuel-oil": Decimal("0.95"),
    "water": Decimal("1.0"),
    "ethanol": Decimal("0.789"),
    "natural-gas": Decimal("0.0007"),  # at STP, approximate
})

LB_PER_GAL_TO_KG_PER_L = Decimal("0.119826")


def get_unit(symbol: str) -> Unit:
    """Look up a unit by symbol.

    Raises:
        UnknownUnitError: if the symbol is not registered.
    """
    try:
        return ALL_UNITS[symbol]
    except KeyError:
        raise UnknownUnitError(symbol) from None


def density_from_lb_per_gal(density: Decimal) -> Decimal:
    """Convert a density override given in lb/gal to kg/L."""
    return multiply(density, LB_PER_GAL_TO_KG_PER_L)


class UnitConverter:
    """
    Default unit conversion collaborator.

    Contract:
        Converts Decimal quantities between registered units. Mass/volume
        conversions take a density in kg/L, or resolve one from
        ``STANDARD_DENSITIES`` (plus any ``extra_densities``) by product code.

    Guarantees:
        - Pure and stateless after construction; safe to share.
        - Same unit in and out returns the value unchanged.

    Non-goals:
        - Temperature, energy and other affine or derived units.
    """

    def __init__(self, extra_densities: Mapping[str, Decimal] | None = None):
        self._densities: Mapping[str, Decimal] = MappingProxyType(
            {**STANDARD_DENSITIES, **(extra_densities or {})}
        )

    def are_compatible(self, from_unit: str, to_unit: str) -> bool:
        """True when both units are registered and share a category."""
        if from_unit not in ALL_UNITS or to_unit not in ALL_UNITS:
            return False
        return ALL_UNITS[from_unit].category is ALL_UNITS[to_unit].category

    def density_for(self, product: str) -> Decimal:
        try:
            return self._densities[product]
        except KeyError:
            raise MissingDensityError("volume", "mass", product) from None

    def convert(self, value: Decimal, from_unit: str, to_unit: str) -> Decimal:
        """Convert ``value`` between two units of the same category.

        Raises:
            UnknownUnitError: if either unit is not registered.
            UnitCategoryMismatchError: if the categories differ.
        """
        if from_unit == to_unit:
            return value
        source = get_unit(from_unit)
        target = get_unit(to_unit)
        if source.category is not target.category:
            raise UnitCategoryMismatchError(
                from_unit, source.category.value, to_unit, target.category.value
            )
        return divide(multiply(value, source.to_base), target.to_base)

    def volume_to_mass(
        self,
        value: Decimal,
        volume_unit: str,
        mass_unit: str,
        density: Decimal | None = None,
        product: str | None = None,
    ) -> Decimal:
        """Volume -> mass via a kg/L density."""
        kg_per_l = self._resolve_density(volume_unit, mass_unit, density, product)
        liters = self.convert(value, volume_unit, _BASE_SYMBOL[UnitCategory.VOLUME])
        kilograms = multiply(liters, kg_per_l)
        return self.convert(kilograms, _BASE_SYMBOL[UnitCategory.MASS], mass_unit)

    def mass_to_volume(
        self,
        value: Decimal,
        mass_unit: str,
        volume_unit: str,
        density: Decimal | None = None,
        product: str | None = None,
    ) -> Decimal:
        """Mass -> volume via a kg/L density."""
        kg_per_l = self._resolve_density(mass_unit, volume_unit, density, product)
        kilograms = self.convert(value, mass_unit, _BASE_SYMBOL[UnitCategory.MASS])
        liters = divide(kilograms, kg_per_l)
        return self.convert(liters, _BASE_SYMBOL[UnitCategory.VOLUME], volume_unit)

    def _resolve_density(
        self,
        from_unit: str,
        to_unit: str,
        density: Decimal | None,
        product: str | None,
    ) -> Decimal:
        if density is not None:
            return density
        if product is not None and product in self._densities:
            logger.debug(
                "standard_density_used",
                extra={"product": product, "density": self._densities[product]},
            )
            return self._densities[product]
        raise MissingDensityError(from_unit, to_unit, product)
