"""
raffle.utils.time
=================

Time sources for the raffle. The state machine never reads the wall clock
directly; it asks an injected `Clock` for the current block-time-like
timestamp (integer epoch seconds). That keeps interval checks deterministic
in tests:

    clock = ManualClock(1_700_000_000)
    raffle = RaffleStateMachine(cfg, provider, clock=clock, ...)
    clock.advance(cfg.interval + 1)   # evm_increaseTime + evm_mine
"""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in integer epoch seconds."""

    def now(self) -> int: ...


class SystemClock:
    """Wall-clock seconds (floored)."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    A clock that only moves when told to. Thread-safe so a keeper thread can
    read it while a test advances it.
    """

    def __init__(self, start: int = 1_700_000_000) -> None:
        if start < 0:
            raise ValueError("start must be non-negative")
        self._t = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._t

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("time only moves forward")
        with self._lock:
            self._t += int(seconds)
            return self._t

    def set(self, ts: int) -> None:
        with self._lock:
            if ts < self._t:
                raise ValueError(f"cannot move clock backwards ({ts} < {self._t})")
            self._t = int(ts)


__all__ = ["Clock", "SystemClock", "ManualClock"]
