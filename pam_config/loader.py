"""
Configuration and input loader (``pam_config.loader``).

Responsibility
--------------
Reads engine settings, graph definitions and evaluation contexts from
YAML or JSON files and parses them into typed values. The engines never
read files themselves; this module is the I/O edge in front of them.

Invariants enforced
-------------------
* Every parsed settings object is a frozen ``EngineSettings``.
* Numbers never pass through binary floating point on their way into the
  engine: JSON is read with ``parse_float=Decimal``, and YAML floats are
  converted through their string form.
* Invalid settings raise ``InvalidEngineSettingsError`` naming the field.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Malformed JSON  -> ``json.JSONDecodeError`` propagates.
* Graph or context documents that are not mappings  -> ``ValueError``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pam_kernel.exceptions import InvalidEngineSettingsError
from pam_kernel.utils.hashing import hash_payload
from pam_config.schema import EngineSettings
from pam_engines.pam.context import EvaluationContext

_JSON_SUFFIXES = frozenset({".json"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _load_document(path: Path) -> Any:
    path = Path(path)
    if path.suffix.lower() in _JSON_SUFFIXES:
        with open(path) as f:
            return json.load(f, parse_float=Decimal)
    return load_yaml_file(path)


def _settings_decimal(field: str, value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InvalidEngineSettingsError(field, value, "must be a number")
    try:
        result = Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidEngineSettingsError(field, value, "must be a number") from e
    if not result.is_finite() or result <= 0:
        raise InvalidEngineSettingsError(field, value, "must be a positive number")
    return result


def _settings_int(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEngineSettingsError(field, value, "must be an integer")
    return value


def parse_engine_settings(data: Mapping[str, Any]) -> EngineSettings:
    """
    Parse an ``EngineSettings`` from a settings document.

    Expected shape::

        engine:
          precision: 28
          rounding: ROUND_HALF_UP
          output_places: 12
        fx_rates:
          EUR/USD: 1.0850
        densities:
          biodiesel: 0.88

    Missing sections fall back to the dataclass defaults.

    Raises:
        InvalidEngineSettingsError: for malformed or inconsistent values.
    """
    engine = data.get("engine") or {}
    if not isinstance(engine, Mapping):
        raise InvalidEngineSettingsError("engine", engine, "must be a mapping")

    defaults = EngineSettings()
    precision = _settings_int("precision", engine.get("precision", defaults.precision))
    output_places = _settings_int(
        "output_places", engine.get("output_places", defaults.output_places)
    )
    rounding = engine.get("rounding", defaults.rounding)
    if not isinstance(rounding, str):
        raise InvalidEngineSettingsError("rounding", rounding, "must be a string")

    raw_rates = data.get("fx_rates") or {}
    if not isinstance(raw_rates, Mapping):
        raise InvalidEngineSettingsError("fx_rates", raw_rates, "must be a mapping")
    fx_rates = []
    for pair, rate in sorted(raw_rates.items()):
        base, sep, quote = str(pair).partition("/")
        if not sep or not base.strip() or not quote.strip():
            raise InvalidEngineSettingsError("fx_rates", pair, "keys must look like 'EUR/USD'")
        fx_rates.append(
            (base.strip(), quote.strip(), _settings_decimal(f"fx_rates.{pair}", rate))
        )

    raw_densities = data.get("densities") or {}
    if not isinstance(raw_densities, Mapping):
        raise InvalidEngineSettingsError("densities", raw_densities, "must be a mapping")
    densities = tuple(
        (str(product), _settings_decimal(f"densities.{product}", value))
        for product, value in sorted(raw_densities.items())
    )

    settings = EngineSettings(
        precision=precision,
        rounding=rounding,
        output_places=output_places,
        fx_rates=tuple(fx_rates),
        densities=densities,
    )
    # DecimalPolicy validates precision, rounding and output_places together.
    settings.to_policy()
    return settings


def settings_checksum(settings: EngineSettings) -> str:
    """SHA-256 identity of a settings object, for change detection."""
    return hash_payload({
        "precision": settings.precision,
        "rounding": settings.rounding,
        "output_places": settings.output_places,
        "fx_rates": [list(r) for r in settings.fx_rates],
        "densities": [list(d) for d in settings.densities],
    })


def load_graph_definition(path: Path) -> dict[str, Any]:
    """
    Read a graph definition from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        ValueError: if the document is not a mapping.
    """
    document = _load_document(path)
    if not isinstance(document, dict):
        raise ValueError(f"Graph definition in {path} must be a mapping")
    return document


def load_context(path: Path) -> EvaluationContext:
    """
    Read an evaluation context from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        ValueError: if the document is not a mapping or holds bad values.
    """
    document = _load_document(path)
    if not isinstance(document, dict):
        raise ValueError(f"Evaluation context in {path} must be a mapping")
    return EvaluationContext.from_dict(document)
