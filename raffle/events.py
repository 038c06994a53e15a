"""
raffle.events
=============

Observable notifications emitted by the raffle and a tiny in-process log to
collect and subscribe to them.

Events
------
- EntryRecorded(participant, amount)   - a valid entry joined the open round
- RequestedRaffleWinner(request_id)     - the round closed and randomness was requested
- WinnerPicked(winner)                  - randomness arrived, the pool was paid out

The log keeps every event in emission order (like a receipt's log list) and
fans out to subscribers synchronously. `once(name, fn)` registers a listener
that fires for the next matching event only, which is how tests wait for
`WinnerPicked` without polling.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from .types.core import Address, RequestId

logger = logging.getLogger(__name__)

EV_ENTRY_RECORDED = "EntryRecorded"
EV_REQUESTED_WINNER = "RequestedRaffleWinner"
EV_WINNER_PICKED = "WinnerPicked"


@dataclass(frozen=True)
class EntryRecorded:
    participant: Address
    amount: int
    name: str = EV_ENTRY_RECORDED


@dataclass(frozen=True)
class RequestedRaffleWinner:
    request_id: RequestId
    name: str = EV_REQUESTED_WINNER


@dataclass(frozen=True)
class WinnerPicked:
    winner: Address
    name: str = EV_WINNER_PICKED


Event = Union[EntryRecorded, RequestedRaffleWinner, WinnerPicked]
Listener = Callable[[Event], None]


def event_to_dict(ev: Event) -> Dict[str, Any]:
    """Flat JSON-friendly view: {"name": ..., "args": {...}}."""
    args = asdict(ev)
    name = args.pop("name")
    return {"name": name, "args": args}


class EventLog:
    """Append-only event log with synchronous subscribers."""

    def __init__(self) -> None:
        self._events: List[Event] = []
        self._subs: List[tuple[Optional[str], Listener, bool]] = []
        self._lock = threading.Lock()

    def emit(self, ev: Event) -> None:
        with self._lock:
            self._events.append(ev)
            subs = list(self._subs)
            # one-shot listeners are consumed before they run
            self._subs = [s for s in self._subs if not (s[2] and (s[0] is None or s[0] == ev.name))]
        logger.debug("event %s %s", ev.name, ev)
        for name, fn, _ in subs:
            if name is None or name == ev.name:
                fn(ev)

    def subscribe(self, fn: Listener, name: Optional[str] = None) -> Callable[[], None]:
        """Register `fn` for every event (or only `name`). Returns an unsubscribe callable."""
        entry = (name, fn, False)
        with self._lock:
            self._subs.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subs:
                    self._subs.remove(entry)

        return _unsubscribe

    def once(self, name: str, fn: Listener) -> None:
        """Register `fn` for the next event called `name` only."""
        with self._lock:
            self._subs.append((name, fn, True))

    def events(self, name: Optional[str] = None) -> List[Event]:
        with self._lock:
            if name is None:
                return list(self._events)
            return [e for e in self._events if e.name == name]

    def last(self, name: str) -> Optional[Event]:
        matching = self.events(name)
        return matching[-1] if matching else None

    def names(self) -> List[str]:
        return [e.name for e in self.events()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


__all__ = [
    "EV_ENTRY_RECORDED",
    "EV_REQUESTED_WINNER",
    "EV_WINNER_PICKED",
    "EntryRecorded",
    "RequestedRaffleWinner",
    "WinnerPicked",
    "Event",
    "EventLog",
    "event_to_dict",
]
