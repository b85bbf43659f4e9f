"""
Module: pam_engines.pam.controls
Responsibility:
    The Controls pipeline: turn a calculated price into a controlled price
    relative to a base price by applying, in fixed order, trigger band
    suppression, spike sharing, then cap and floor.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Called by ``NodeEvaluator`` for Controls nodes; usable on its own.

Invariants enforced:
    - Fixed order: trigger band -> spike sharing -> cap -> floor.
    - All thresholds are signed percent deltas against the base.
    - Trigger band bounds are inclusive: a delta equal to a bound is
      suppressed.
    - The result is quantized by the decimal policy; intermediate deltas
      are not rounded.

Failure modes:
    - InvalidControlsConfigError: floor > cap, band lower > upper, or a
      share percent outside [0, 100].
    - DivisionByZeroError: base price of zero.

Audit relevance:
    ``ControlsOutcome`` keeps the delta after each stage and the names of
    the stages that changed it, so a reviewer can see why a controlled price
    differs from the formula result.

Usage:
    outcome = apply_controls(
        base=Decimal("100"),
        calculated=Decimal("110"),
        config=ControlsConfig(cap=Decimal("5"), trigger_band=TriggerBand(...)),
    )
    outcome.value  # Decimal("105.000000000000")
"""

from __future__ import annotations

import decimal
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pam_kernel.domain.arithmetic import (
    DEFAULT_POLICY,
    HUNDRED,
    ZERO,
    DecimalPolicy,
    add,
    apply_percent_delta,
    divide,
    multiply,
    percent_delta,
    subtract,
)
from pam_kernel.exceptions import DivisionByZeroError, InvalidControlsConfigError
from pam_kernel.logging_config import get_logger
from pam_engines.pam.nodes import ControlsConfig, SpikeDirection

logger = get_logger("engines.pam.controls")

STEP_TRIGGER_BAND = "trigger_band"
STEP_SPIKE_SHARING = "spike_sharing"
STEP_CAP = "cap"
STEP_FLOOR = "floor"


@dataclass(frozen=True)
class ControlsOutcome:
    """Breakdown of one Controls evaluation; deltas are in percent."""

    base: Decimal
    calculated: Decimal
    raw_delta: Decimal
    after_trigger_band: Decimal
    after_spike_sharing: Decimal
    final_delta: Decimal
    applied: tuple[str, ...]
    value: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "base": str(self.base),
            "calculated": str(self.calculated),
            "raw_delta": str(self.raw_delta),
            "after_trigger_band": str(self.after_trigger_band),
            "after_spike_sharing": str(self.after_spike_sharing),
            "final_delta": str(self.final_delta),
            "applied": list(self.applied),
            "value": str(self.value),
        }


def validate_controls(config: ControlsConfig, node_id: str) -> None:
    """
    Check a Controls config for internal consistency.

    Raises:
        InvalidControlsConfigError: on the first inconsistency found.
    """
    if config.cap is not None and config.floor is not None and config.floor > config.cap:
        raise InvalidControlsConfigError(
            node_id, f"floor {config.floor} is greater than cap {config.cap}"
        )
    band = config.trigger_band
    if band is not None and band.lower > band.upper:
        raise InvalidControlsConfigError(
            node_id,
            f"trigger band lower {band.lower} is greater than upper {band.upper}",
        )
    sharing = config.spike_sharing
    if sharing is not None and not ZERO <= sharing.share_percent <= HUNDRED:
        raise InvalidControlsConfigError(
            node_id,
            f"spike sharing percent must be within [0, 100], got {sharing.share_percent}",
        )


def _share(excess: Decimal, share_percent: Decimal) -> Decimal:
    return divide(multiply(excess, share_percent), HUNDRED)


def apply_controls(
    base: Decimal,
    calculated: Decimal,
    config: ControlsConfig,
    policy: DecimalPolicy = DEFAULT_POLICY,
    node_id: str = "",
) -> ControlsOutcome:
    """
    Apply the Controls pipeline to ``calculated`` relative to ``base``.

    Preconditions:
        ``base`` and ``calculated`` are Decimals.

    Postconditions:
        - ``value == policy.quantize(base * (1 + final_delta / 100))``.
        - With a cap, ``final_delta <= cap``; with a floor,
          ``final_delta >= floor``.

    Raises:
        InvalidControlsConfigError: if the config is inconsistent.
        DivisionByZeroError: if ``base`` is zero.
    """
    validate_controls(config, node_id)
    if base == ZERO:
        raise DivisionByZeroError("controls", str(calculated))

    applied: list[str] = []
    with decimal.localcontext(policy.context()):
        raw = percent_delta(base, calculated)

        delta = raw
        band = config.trigger_band
        if band is not None and band.lower <= delta <= band.upper:
            delta = ZERO
            applied.append(STEP_TRIGGER_BAND)
        after_band = delta

        sharing = config.spike_sharing
        if sharing is not None:
            if band is None:
                logger.debug(
                    "pam_spike_sharing_without_band",
                    extra={"node_id": node_id},
                )
            elif delta > band.upper and sharing.direction in (
                SpikeDirection.ABOVE,
                SpikeDirection.BOTH,
            ):
                delta = add(band.upper, _share(subtract(delta, band.upper), sharing.share_percent))
                applied.append(STEP_SPIKE_SHARING)
            elif delta < band.lower and sharing.direction in (
                SpikeDirection.BELOW,
                SpikeDirection.BOTH,
            ):
                delta = subtract(
                    band.lower, _share(subtract(band.lower, delta), sharing.share_percent)
                )
                applied.append(STEP_SPIKE_SHARING)
        after_sharing = delta

        if config.cap is not None and delta > config.cap:
            delta = config.cap
            applied.append(STEP_CAP)
        if config.floor is not None and delta < config.floor:
            delta = config.floor
            applied.append(STEP_FLOOR)

        value = policy.quantize(apply_percent_delta(base, delta))

    return ControlsOutcome(
        base=base,
        calculated=calculated,
        raw_delta=raw,
        after_trigger_band=after_band,
        after_spike_sharing=after_sharing,
        final_delta=delta,
        applied=tuple(applied),
        value=value,
    )
