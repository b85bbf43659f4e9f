"""
pam_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_engine_settings()`` is the way to obtain engine settings at
    runtime. It reads a YAML settings file (the packaged ``defaults.yaml``
    unless a path is given) and returns a frozen ``EngineSettings``.

Architecture position:
    Configuration -- sits above ``pam_kernel`` and ``pam_engines``. The
    kernel and the engines MUST NEVER import from ``pam_config``; callers
    hand the engine a ``DecimalPolicy`` via ``EngineSettings.to_policy()``.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``InvalidEngineSettingsError`` -- values out of range or wrong type.

Audit relevance:
    Every successful call emits a ``PAM_CONFIG_TRACE`` log entry with the
    settings source, the decimal policy and a checksum, tying each
    calculation to the configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pam_config.loader import (
    load_context,
    load_graph_definition,
    load_yaml_file,
    parse_engine_settings,
    settings_checksum,
)
from pam_config.schema import EngineSettings

_logger = logging.getLogger("pam_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"


def get_engine_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate engine settings.

    Args:
        path: Settings file to read. Defaults to the packaged
            ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidEngineSettingsError: If validation fails.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = parse_engine_settings(load_yaml_file(source))

    _logger.info(
        "PAM_CONFIG_TRACE",
        extra={
            "trace_type": "PAM_CONFIG_TRACE",
            "source": str(source),
            "precision": settings.precision,
            "rounding": settings.rounding,
            "output_places": settings.output_places,
            "fx_rate_count": len(settings.fx_rates),
            "density_count": len(settings.densities),
            "checksum": settings_checksum(settings),
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "EngineSettings",
    "get_engine_settings",
    "load_context",
    "load_graph_definition",
    "load_yaml_file",
    "parse_engine_settings",
]
