"""
Engine settings schema.

YAML settings files are parsed into these frozen types by the loader.
``EngineSettings`` is the only thing callers receive; it converts into the
objects the engine actually consumes (a ``DecimalPolicy`` and the default
unit/FX collaborators).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from pam_kernel.domain.arithmetic import (
    DEFAULT_OUTPUT_PLACES,
    DEFAULT_PRECISION,
    DecimalPolicy,
)
from pam_engines.conversions import UnitConverter
from pam_engines.pam.resolvers import StaticFxRates


@dataclass(frozen=True)
class EngineSettings:
    """Decimal policy plus static collaborator data for one deployment."""

    precision: int = DEFAULT_PRECISION
    rounding: str = ROUND_HALF_UP
    output_places: int = DEFAULT_OUTPUT_PLACES
    fx_rates: tuple[tuple[str, str, Decimal], ...] = ()  # (from, to, rate)
    densities: tuple[tuple[str, Decimal], ...] = ()  # (product, kg/L)

    def to_policy(self) -> DecimalPolicy:
        return DecimalPolicy(
            precision=self.precision,
            rounding=self.rounding,
            output_places=self.output_places,
        )

    def fx_rate_service(self) -> StaticFxRates:
        return StaticFxRates({(base, quote): rate for base, quote, rate in self.fx_rates})

    def unit_converter(self) -> UnitConverter:
        return UnitConverter(extra_densities=dict(self.densities))
