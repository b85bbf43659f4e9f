"""
Collaborator interfaces consumed by the PAM node evaluator.

The engine never performs I/O. Unit conversion and FX rates come from
injected collaborators that satisfy the protocols below; the engine ships
pure in-memory defaults (``pam_engines.conversions.UnitConverter`` and
``StaticFxRates``). Time series lookups are the caller's job: the caller
resolves series values into the ``EvaluationContext`` before execution.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Protocol, runtime_checkable

from pam_kernel.domain.arithmetic import ONE, divide
from pam_kernel.exceptions import FxRateNotFoundError
from pam_engines.pam.nodes import FxPolicy


@runtime_checkable
class UnitConversionService(Protocol):
    """Unit conversion collaborator; raises ConversionError subclasses."""

    def convert(self, value: Decimal, from_unit: str, to_unit: str) -> Decimal: ...

    def volume_to_mass(
        self,
        value: Decimal,
        volume_unit: str,
        mass_unit: str,
        density: Decimal | None = None,
        product: str | None = None,
    ) -> Decimal: ...

    def mass_to_volume(
        self,
        value: Decimal,
        mass_unit: str,
        volume_unit: str,
        density: Decimal | None = None,
        product: str | None = None,
    ) -> Decimal: ...


@runtime_checkable
class FxRateService(Protocol):
    """FX collaborator: units of ``to_currency`` per one ``from_currency``."""

    def rate(
        self,
        from_currency: str,
        to_currency: str,
        policy: FxPolicy,
        as_of: date | None,
    ) -> Decimal: ...


class TimeseriesService(Protocol):
    """Series lookup used by callers when building an evaluation context."""

    def value_as_of(
        self,
        series_code: str,
        as_of: date,
        version_preference: str = "FINAL",
    ) -> Decimal | None: ...


def _pair_key(key: str | tuple[str, str]) -> tuple[str, str]:
    if isinstance(key, tuple):
        return key
    base, sep, quote = key.partition("/")
    if not sep or not base or not quote:
        raise ValueError(f"FX pair must look like 'EUR/USD', got {key!r}")
    return base.strip(), quote.strip()


class StaticFxRates:
    """
    In-memory FX rates keyed by currency pair.

    Contract:
        ``rates`` maps ``("EUR", "USD")`` or ``"EUR/USD"`` to the number of
        USD per EUR. A missing direct pair falls back to the inverse of the
        reverse pair.

    Guarantees:
        - Same currency always returns exactly one.
        - The rate table is immutable after construction.

    Non-goals:
        - Policy-specific or dated rates; the same table answers every
          policy and ``as_of``.
    """

    def __init__(self, rates: Mapping[str | tuple[str, str], Decimal] | None = None):
        self._rates: Mapping[tuple[str, str], Decimal] = MappingProxyType(
            {_pair_key(k): v for k, v in (rates or {}).items()}
        )

    def rate(
        self,
        from_currency: str,
        to_currency: str,
        policy: FxPolicy = FxPolicy.EFFECTIVE_DATE,
        as_of: date | None = None,
    ) -> Decimal:
        if from_currency == to_currency:
            return ONE
        direct = self._rates.get((from_currency, to_currency))
        if direct is not None:
            return direct
        inverse = self._rates.get((to_currency, from_currency))
        if inverse is not None:
            return divide(ONE, inverse)
        raise FxRateNotFoundError(from_currency, to_currency, FxPolicy(policy).value)
