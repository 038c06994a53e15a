"""
Finalized round history.

Every successful payout is persisted as a compact, deterministic JSON record
(stable separators + sorted keys) under

    b"raffle:" || address(20) || b":round:" || u64_be(round)

so several raffles can share one store, and within a raffle key order equals
round order:

  {
    "raffle":       "0x...",    # raffle that ran the round
    "round":        <int>,      # round number (0-based)
    "winner":       "0x...",    # paid address
    "payout":       <int>,      # pool paid out
    "participants": <int>,      # entries in the round
    "request_id":   <int>,      # randomness request that closed the round
    "random_word":  <int>,      # the word the winner index was derived from
    "requested_at": <int>,      # timestamp of perform_upkeep
    "closed_at":    <int>       # timestamp of the payout (new last-close time)
  }

Records are immutable: writing a different record for an existing round is
refused with `HistoryConflict`, writing the identical record again is a no-op.
`check` runs the same test without writing, so a caller can refuse a round
before moving any funds.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..errors import HistoryConflict
from ..types.core import Address, to_address
from . import KeyValue

logger = logging.getLogger(__name__)

_PREFIX = b"raffle:"
_ROUND = b":round:"


def _raffle_prefix(raffle: str) -> bytes:
    return _PREFIX + bytes.fromhex(to_address(raffle)[2:]) + _ROUND


def _key_for_round(raffle: str, round_number: int) -> bytes:
    if round_number < 0:
        raise ValueError("round must be non-negative")
    return _raffle_prefix(raffle) + round_number.to_bytes(8, "big", signed=False)


def _dumps_stable(obj: Mapping[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")


@dataclass(frozen=True)
class RoundRecord:
    raffle: Address
    round_number: int
    winner: Address
    payout: int
    participants: int
    request_id: int
    random_word: int
    requested_at: int
    closed_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raffle": self.raffle,
            "round": self.round_number,
            "winner": self.winner,
            "payout": self.payout,
            "participants": self.participants,
            "request_id": self.request_id,
            # uint256 words exceed JSON-safe ints in some clients
            "random_word": str(self.random_word),
            "requested_at": self.requested_at,
            "closed_at": self.closed_at,
        }

    def to_json_bytes(self) -> bytes:
        return _dumps_stable(self.to_dict())

    @staticmethod
    def from_json_bytes(data: bytes) -> "RoundRecord":
        obj = json.loads(data.decode("utf-8"))
        return RoundRecord(
            raffle=to_address(obj["raffle"]),
            round_number=int(obj["round"]),
            winner=to_address(obj["winner"]),
            payout=int(obj["payout"]),
            participants=int(obj["participants"]),
            request_id=int(obj["request_id"]),
            random_word=int(obj["random_word"]),
            requested_at=int(obj["requested_at"]),
            closed_at=int(obj["closed_at"]),
        )


class RoundHistory:
    """
    Append-only history of finalized rounds over a KeyValue backend.

    An unscoped history sees every raffle in the store; `for_raffle` returns
    a view limited to one raffle, where `get` needs no address.
    """

    def __init__(self, kv: KeyValue, raffle: Optional[str] = None) -> None:
        self._kv = kv
        self._raffle = None if raffle is None else to_address(raffle)
        self._prefix = _PREFIX if self._raffle is None else _raffle_prefix(self._raffle)

    @property
    def raffle(self) -> Optional[Address]:
        return self._raffle

    def for_raffle(self, raffle: str) -> "RoundHistory":
        return RoundHistory(self._kv, raffle)

    def _key(self, rec: RoundRecord) -> bytes:
        if self._raffle is not None and rec.raffle != self._raffle:
            raise ValueError(f"record for raffle {rec.raffle} written to history of {self._raffle}")
        return _key_for_round(rec.raffle, rec.round_number)

    def _existing(self, key: bytes, rec: RoundRecord) -> Optional[RoundRecord]:
        data = self._kv.get(key)
        if data is None:
            return None
        prev = RoundRecord.from_json_bytes(data)
        if prev != rec:
            raise HistoryConflict(raffle=rec.raffle, round_number=rec.round_number)
        return prev

    def check(self, rec: RoundRecord) -> None:
        """Raise HistoryConflict if `rec` could not be recorded. Writes nothing."""
        self._existing(self._key(rec), rec)

    def record(self, rec: RoundRecord) -> RoundRecord:
        key = self._key(rec)
        prev = self._existing(key, rec)
        if prev is not None:
            logger.debug("round %s of %s already recorded (idempotent)", rec.round_number, rec.raffle)
            return prev
        self._kv.put(key, rec.to_json_bytes())
        logger.info(
            "Recorded raffle round: raffle=%s round=%s winner=%s payout=%s participants=%s",
            rec.raffle,
            rec.round_number,
            rec.winner,
            rec.payout,
            rec.participants,
        )
        return rec

    def get(self, round_number: int, raffle: Optional[str] = None) -> Optional[RoundRecord]:
        who = raffle if raffle is not None else self._raffle
        if who is None:
            raise ValueError("raffle address required for an unscoped history")
        data = self._kv.get(_key_for_round(who, round_number))
        return None if data is None else RoundRecord.from_json_bytes(data)

    def all(self) -> List[RoundRecord]:
        """Records in key order: by raffle address, then by round."""
        return [RoundRecord.from_json_bytes(v) for _, v in self._kv.iter_prefix(self._prefix)]

    def latest(self) -> Optional[RoundRecord]:
        rounds = self.all()
        if not rounds:
            return None
        return max(rounds, key=lambda r: (r.closed_at, r.round_number))

    def wins_of(self, address: str) -> List[RoundRecord]:
        who = to_address(address)
        return [r for r in self.all() if r.winner == who]


__all__ = ["RoundRecord", "RoundHistory"]
