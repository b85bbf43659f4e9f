"""
Evaluation inputs and execution results for PAM graphs.

``EvaluationContext`` carries everything a graph may read: resolved series
values, observation history for window operations, the base price used by
single-input Controls nodes, and scenario overrides. ``ExecutionResult`` is
what one execution returns. Both are immutable.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pam_kernel.domain.arithmetic import to_decimal

if TYPE_CHECKING:
    from pam_engines.pam.controls import ControlsOutcome

BASE_PRICE_OVERRIDE_KEY = "basePrice"


def _frozen_values(values: Mapping[str, Any] | None) -> Mapping[str, Decimal]:
    return MappingProxyType({str(k): to_decimal(v) for k, v in (values or {}).items()})


def _frozen_history(history: Mapping[str, Sequence[Any]] | None) -> Mapping[str, tuple[Decimal, ...]]:
    return MappingProxyType(
        {str(k): tuple(to_decimal(v) for v in series) for k, series in (history or {}).items()}
    )


def _boundary_decimal(value: Any) -> Any:
    """Floats read from JSON/YAML enter as their literal text."""
    if isinstance(value, float):
        try:
            return Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid number: {value!r}") from e
    return value


def _boundary_mapping(raw: Any, name: str) -> dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"'{name}' must be a mapping")
    return {k: _boundary_decimal(v) for k, v in raw.items()}


@dataclass(frozen=True)
class EvaluationContext:
    """
    Caller-supplied inputs for one execution.

    Contract:
        Reference keys resolve through ``item_overrides``, then
        ``index_overrides``, then ``values``. ``history`` holds observations
        per key, oldest first.

    Guarantees:
        - Every value is a finite Decimal; floats are rejected.
        - Mappings are read-only proxies; the context can be shared.
    """

    values: Mapping[str, Decimal] = field(default_factory=dict)
    history: Mapping[str, tuple[Decimal, ...]] = field(default_factory=dict)
    base_price: Decimal | None = None
    index_overrides: Mapping[str, Decimal] = field(default_factory=dict)
    item_overrides: Mapping[str, Decimal] = field(default_factory=dict)
    as_of: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _frozen_values(self.values))
        object.__setattr__(self, "history", _frozen_history(self.history))
        object.__setattr__(self, "index_overrides", _frozen_values(self.index_overrides))
        object.__setattr__(self, "item_overrides", _frozen_values(self.item_overrides))
        if self.base_price is not None:
            object.__setattr__(self, "base_price", to_decimal(self.base_price))

    def resolve(self, key: str) -> Decimal | None:
        """Value for ``key`` after applying overrides, or None."""
        for source in (self.item_overrides, self.index_overrides, self.values):
            if key in source:
                return source[key]
        return None

    def history_for(self, key: str) -> tuple[Decimal, ...]:
        return self.history.get(key, ())

    @property
    def effective_base_price(self) -> Decimal | None:
        override = self.item_overrides.get(BASE_PRICE_OVERRIDE_KEY)
        return override if override is not None else self.base_price

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EvaluationContext:
        """
        Build a context from the stored mapping format.

        Keys: ``values``, ``history``, ``basePrice``, ``indexOverrides``,
        ``itemOverrides``, ``asOf`` (ISO date). snake_case spellings are
        accepted too.
        """

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        raw_history = pick("history") or {}
        if not isinstance(raw_history, Mapping):
            raise ValueError("'history' must be a mapping of lists")
        history = {
            k: [_boundary_decimal(v) for v in series] for k, series in raw_history.items()
        }

        as_of = pick("asOf", "as_of")
        if isinstance(as_of, datetime):
            as_of = as_of.date()
        elif isinstance(as_of, str):
            as_of = date.fromisoformat(as_of)

        base_price = pick("basePrice", "base_price")
        return cls(
            values=_boundary_mapping(pick("values"), "values"),
            history=history,
            base_price=_boundary_decimal(base_price) if base_price is not None else None,
            index_overrides=_boundary_mapping(
                pick("indexOverrides", "index_overrides"), "indexOverrides"
            ),
            item_overrides=_boundary_mapping(
                pick("itemOverrides", "item_overrides"), "itemOverrides"
            ),
            as_of=as_of,
        )

    def to_dict(self) -> dict[str, Any]:
        """Stored mapping format; the inverse of ``from_dict``."""
        data: dict[str, Any] = {
            "values": dict(self.values),
            "history": {k: list(v) for k, v in self.history.items()},
            "indexOverrides": dict(self.index_overrides),
            "itemOverrides": dict(self.item_overrides),
        }
        if self.base_price is not None:
            data["basePrice"] = self.base_price
        if self.as_of is not None:
            data["asOf"] = self.as_of.isoformat()
        return data


@dataclass(frozen=True)
class ExecutionResult:
    """
    Outcome of one graph execution.

    ``value`` is the quantized output. ``contributions`` holds the quantized
    value of every evaluated node, ``controls`` the pipeline breakdown of
    every Controls node, both keyed by node id.
    """

    value: Decimal
    contributions: Mapping[str, Decimal]
    evaluation_order: tuple[str, ...]
    controls: Mapping[str, ControlsOutcome] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "contributions", MappingProxyType(dict(self.contributions)))
        object.__setattr__(self, "evaluation_order", tuple(self.evaluation_order))
        object.__setattr__(self, "controls", MappingProxyType(dict(self.controls)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": str(self.value),
            "contributions": {k: str(v) for k, v in self.contributions.items()},
            "evaluation_order": list(self.evaluation_order),
            "controls": {k: outcome.to_dict() for k, outcome in self.controls.items()},
        }
