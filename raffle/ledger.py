"""
Entry ledger for the open raffle round.

Tracks, for the current round only:
- the ordered participant list (entry order; duplicates allowed, so an
  address that enters k times holds k tickets),
- the pool balance (sum of entry fees paid since the last reset).

The ledger validates the entrance fee and emits `EntryRecorded`. It does not
know about round state; the state machine refuses entries while a round is
being calculated before it ever reaches the ledger.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .errors import IndexOutOfRange, InsufficientEntryFee
from .events import EntryRecorded, EventLog
from .types.core import Address, to_address

logger = logging.getLogger(__name__)


class EntryLedger:
    __slots__ = ("_entrance_fee", "_participants", "_pool", "_events")

    def __init__(self, entrance_fee: int, events: Optional[EventLog] = None) -> None:
        if entrance_fee < 0:
            raise ValueError("entrance_fee must be non-negative")
        self._entrance_fee = int(entrance_fee)
        self._participants: List[Address] = []
        self._pool = 0
        self._events = events

    # ---- views ---------------------------------------------------------------

    @property
    def entrance_fee(self) -> int:
        return self._entrance_fee

    @property
    def count(self) -> int:
        return len(self._participants)

    @property
    def pool_balance(self) -> int:
        return self._pool

    @property
    def participants(self) -> Tuple[Address, ...]:
        return tuple(self._participants)

    def participant_at(self, index: int) -> Address:
        if index < 0 or index >= len(self._participants):
            raise IndexOutOfRange(index=index, count=len(self._participants))
        return self._participants[index]

    # ---- mutation ------------------------------------------------------------

    def validate(self, paid: int) -> None:
        """Raise InsufficientEntryFee if `paid` is below the entrance fee."""
        if paid < self._entrance_fee:
            raise InsufficientEntryFee(paid=paid, minimum=self._entrance_fee)

    def record_entry(self, address: str, paid: int) -> Address:
        """
        Append `address` and add `paid` to the pool.

        Raises InsufficientEntryFee (nothing recorded) if `paid` is too low.
        """
        self.validate(paid)
        who = to_address(address)
        self._participants.append(who)
        self._pool += paid
        logger.debug("entry recorded: %s paid=%s (count=%s pool=%s)", who, paid, len(self._participants), self._pool)
        if self._events is not None:
            self._events.emit(EntryRecorded(participant=who, amount=paid))
        return who

    def reset(self) -> None:
        """Clear participants and pool. Only the state machine calls this, while finalizing."""
        self._participants.clear()
        self._pool = 0


__all__ = ["EntryLedger"]
