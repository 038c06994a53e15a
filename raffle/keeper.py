"""
raffle.keeper
=============

Automation loop standing in for the external keeper network: it polls
`check_upkeep` and, when a round is eligible, calls `perform_upkeep`.

Design
------
- Single-threaded loop with cooperative sleep; one keeper per raffle is enough,
  extra keepers only lose races (`UpkeepNotNeeded`), which are no-ops.
- A provider refusing the request is logged and retried on the next tick; the
  raffle itself is unchanged in that case.

Typical usage
-------------
    keeper = UpkeepKeeper(raffle, KeeperConfig(tick_interval_seconds=1.0))
    stop = threading.Event()
    threading.Thread(target=keeper.run_forever, args=(stop,), daemon=True).start()
    ...
    stop.set()
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from typing import Optional

from .errors import ProviderError, UpkeepNotNeeded
from .machine import RaffleStateMachine
from .types.core import RequestId

log = logging.getLogger(__name__)


@dataclass
class KeeperConfig:
    """
    tick_interval_seconds:
        Period between upkeep checks.
    jitter_fraction:
        +/- random jitter applied to the sleep so several keepers don't align.
    """

    tick_interval_seconds: float = 1.0
    jitter_fraction: float = 0.1


class UpkeepKeeper:
    def __init__(self, raffle: RaffleStateMachine, config: Optional[KeeperConfig] = None) -> None:
        self.raffle = raffle
        self.config = config or KeeperConfig()
        self.performed = 0
        self._lock = threading.Lock()

    def poll_once(self) -> Optional[RequestId]:
        """
        Check and, if needed, perform upkeep. Returns the request id issued,
        or None when nothing was due (including a lost race).
        """
        with self._lock:
            needed, status = self.raffle.check_upkeep()
            if not needed:
                log.debug("keeper: upkeep not needed (%s)", status.to_dict())
                return None
            try:
                request_id = self.raffle.perform_upkeep(status.encode())
            except UpkeepNotNeeded as e:
                log.debug("keeper: lost upkeep race: %s", e)
                return None
            self.performed += 1
            log.info("keeper: upkeep performed for %s, request_id=%s", self.raffle.address, request_id)
            return request_id

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Block and poll until `stop_event` is set (if provided)."""
        stop = stop_event or threading.Event()
        log.info("keeper: starting loop for %s (tick=%.3fs)", self.raffle.address, self.config.tick_interval_seconds)
        while not stop.is_set():
            try:
                self.poll_once()
            except ProviderError as e:
                log.warning("keeper: provider refused randomness request: %s", e)
            self._sleep_with_jitter(self.config.tick_interval_seconds, stop)
        log.info("keeper: stopped")

    def _sleep_with_jitter(self, seconds: float, stop: threading.Event) -> None:
        if seconds <= 0:
            return
        jitter = seconds * self.config.jitter_fraction
        stop.wait(max(0.0, seconds + random.uniform(-jitter, jitter)))


__all__ = ["KeeperConfig", "UpkeepKeeper"]
