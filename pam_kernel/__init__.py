"""
PAM Kernel - exact-decimal substrate for Price Adjustment Mechanism pricing.

Provides:
- Decimal arithmetic core with an explicit, thread-safe precision policy
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Deterministic hashing for idempotency keys
"""

__version__ = "0.1.0"
