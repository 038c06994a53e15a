"""
Animica Raffle package.

A randomness-gated, time-windowed raffle: participants enter an open round,
an external keeper closes the round once its interval has elapsed, and a
randomness provider's callback picks the winner who receives the pool.

Only light, stable exports are surfaced here to avoid import cycles.
"""

from __future__ import annotations

# Public version string (lazy fallback during early bootstrap)
try:
    from .version import __version__  # type: ignore
except Exception:  # pragma: no cover
    __version__ = "0.0.0+dev"

__all__ = ["__version__"]
