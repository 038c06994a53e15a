from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, NewType, Optional

"""
Core typed primitives for the raffle.

These have no third-party dependencies and are
shared across submodules (ledger, upkeep evaluation, state machine, providers,
RPC surface, and tests).

Types provided:
  • Address          - canonical 0x-prefixed 20-byte hex account identifier
  • RequestId        - integer identifier of a randomness request
  • RoundState       - OPEN / CALCULATING, with a stable integer encoding
  • RandomnessParams - parameters forwarded verbatim to the provider
  • RoundConfig      - immutable per-instance raffle configuration
  • PendingRequest   - the single outstanding randomness request of a round
  • UpkeepStatus     - upkeep verdict plus its diagnostic snapshot
"""

# ---- Simple newtypes ---------------------------------------------------------

Address = NewType("Address", str)
RequestId = NewType("RequestId", int)

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_HASH32_RE = re.compile(r"^0x[0-9a-f]{64}$")


def _require_nonneg(name: str, v: int) -> None:
    if not isinstance(v, int) or isinstance(v, bool):
        raise TypeError(f"{name} must be an int (got {type(v).__name__})")
    if v < 0:
        raise ValueError(f"{name} must be non-negative (got {v})")


def to_address(value: str) -> Address:
    """Normalize to the canonical lowercase form; raise ValueError if malformed."""
    if not isinstance(value, str):
        raise TypeError("address must be a str")
    v = value.strip().lower()
    if not _ADDRESS_RE.match(v):
        raise ValueError(f"invalid address: {value!r}")
    return Address(v)


def is_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value.strip().lower()))


# ---- Round state -------------------------------------------------------------


class RoundState(Enum):
    """
    Raffle round state.

    Internally a plain variant; the integer code (OPEN=0, CALCULATING=1) is
    only used at serialization boundaries (RPC, snapshots, events).
    """
    OPEN = "open"
    CALCULATING = "calculating"

    @property
    def code(self) -> int:
        return _STATE_CODES[self]

    @classmethod
    def from_code(cls, code: int) -> "RoundState":
        for state, c in _STATE_CODES.items():
            if c == code:
                return state
        raise ValueError(f"unknown round state code: {code}")


_STATE_CODES: Dict[RoundState, int] = {
    RoundState.OPEN: 0,
    RoundState.CALCULATING: 1,
}


# ---- Configuration records ---------------------------------------------------


@dataclass(frozen=True, slots=True)
class RandomnessParams:
    """
    Parameters forwarded verbatim to the randomness provider.

    Fields:
      gas_lane          - 0x-hex 32-byte key hash selecting the price lane
      subscription_id   - provider-side subscription that pays for requests
      callback_gas_limit - gas budget for the fulfilment callback
      confirmations     - blocks the provider waits before answering
      num_words         - random values per request (a round uses exactly 1)
    """

    gas_lane: str
    subscription_id: int
    callback_gas_limit: int
    confirmations: int = 3
    num_words: int = 1

    def __post_init__(self) -> None:  # type: ignore[override]
        if not isinstance(self.gas_lane, str) or not _HASH32_RE.match(self.gas_lane.lower()):
            raise ValueError("gas_lane must be a 0x-prefixed 32-byte hex string")
        _require_nonneg("subscription_id", self.subscription_id)
        _require_nonneg("callback_gas_limit", self.callback_gas_limit)
        _require_nonneg("confirmations", self.confirmations)
        if self.num_words != 1:
            raise ValueError("a raffle round consumes exactly one random word")


@dataclass(frozen=True, slots=True)
class RoundConfig:
    """
    Immutable raffle configuration, fixed at construction.

    Fields:
      entrance_fee - minimum amount payable to enter (smallest currency unit)
      interval     - minimum seconds between round closes
      randomness   - RandomnessParams forwarded to the provider
      provider     - address of the provider allowed to deliver randomness
    """

    entrance_fee: int
    interval: int
    randomness: RandomnessParams
    provider: Address

    def __post_init__(self) -> None:  # type: ignore[override]
        _require_nonneg("entrance_fee", self.entrance_fee)
        _require_nonneg("interval", self.interval)
        if not is_address(self.provider):
            raise ValueError(f"provider must be an address (got {self.provider!r})")


# ---- Round records -----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PendingRequest:
    """The single outstanding randomness request of a round."""

    request_id: RequestId
    round_number: int
    requested_at: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "requestId": int(self.request_id),
            "roundNumber": self.round_number,
            "requestedAt": self.requested_at,
        }


@dataclass(frozen=True, slots=True)
class UpkeepStatus:
    """
    Upkeep verdict and the snapshot it was computed from.

    `elapsed` is seconds since the last close; `needed` is the verdict.
    """

    needed: bool
    state: RoundState
    participant_count: int
    pool_balance: int
    elapsed: int
    interval: int
    checked_at: int = field(default=0, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upkeepNeeded": self.needed,
            "state": self.state.code,
            "participants": self.participant_count,
            "balance": self.pool_balance,
            "elapsed": self.elapsed,
            "interval": self.interval,
            "checkedAt": self.checked_at,
        }

    def encode(self) -> bytes:
        """Deterministic JSON encoding (stable separators & sorted keys), used as perform data."""
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True).encode("utf-8")


def optional_address(value: Optional[str]) -> Optional[Address]:
    return None if value is None else to_address(value)
