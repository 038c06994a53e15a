"""
raffle.types
============

Shared typed records. Re-exported here for convenience:

    from raffle.types import RoundState, RoundConfig, RandomnessParams
"""

from __future__ import annotations

from .core import (
    Address,
    PendingRequest,
    RandomnessParams,
    RequestId,
    RoundConfig,
    RoundState,
    UpkeepStatus,
    is_address,
    optional_address,
    to_address,
)

__all__ = [
    "Address",
    "PendingRequest",
    "RandomnessParams",
    "RequestId",
    "RoundConfig",
    "RoundState",
    "UpkeepStatus",
    "is_address",
    "optional_address",
    "to_address",
]
