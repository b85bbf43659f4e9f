"""
Pure domain layer.

Contains the exact-decimal arithmetic core with NO dependencies on:
- Database
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from pam_kernel.domain.arithmetic import (
    DEFAULT_POLICY,
    HUNDRED,
    ONE,
    ZERO,
    DecimalPolicy,
    to_decimal,
)

__all__ = [
    "DEFAULT_POLICY",
    "DecimalPolicy",
    "HUNDRED",
    "ONE",
    "ZERO",
    "to_decimal",
]
