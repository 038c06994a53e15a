# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Raffle state machine.

Owns one raffle instance: the open round's entries, the OPEN ⇄ CALCULATING
transitions, the randomness request/callback handshake, and the payout.

Lifecycle
---------
    OPEN ──enter()──▶ OPEN                      (participants/pool grow)
    OPEN ──perform_upkeep()──▶ CALCULATING      (one randomness request issued)
    CALCULATING ──fulfill_randomness()──▶ OPEN  (winner paid, round reset)

Typical usage
-------------
    raffle = RaffleStateMachine(cfg, coordinator, address=raffle_addr,
                                treasury=treasury, clock=clock)
    raffle.enter(alice, cfg.entrance_fee)
    clock.advance(cfg.interval)
    needed, status = raffle.check_upkeep()
    if needed:
        request_id = raffle.perform_upkeep()
    # ... later, the provider calls back:
    #   raffle.fulfill_randomness(request_id, [word], caller=coordinator.address)

Notes
-----
- All mutations of an instance are serialized by one re-entrant lock; event
  listeners run synchronously under it and may read the raffle.
- `check_upkeep` only reads a snapshot and is safe to call at any time.
- There is no timeout: a request whose callback never arrives (or whose payout
  is rejected) leaves the round in CALCULATING until delivered again.
- Winner index is `random_values[0] % participant_count`, exactly.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional, Sequence, Tuple

from .adapters.provider import RandomnessProvider
from .adapters.treasury import Treasury
from .errors import (
    HistoryConflict,
    InsufficientEntryFee,
    InsufficientFunds,
    MalformedRandomness,
    NoParticipants,
    NotOpen,
    ProviderError,
    RequestAlreadyPending,
    TransferFailed,
    TransferRejected,
    UnauthorizedFulfillment,
    UnknownRequest,
    UpkeepNotNeeded,
)
from .events import EventLog, RequestedRaffleWinner, WinnerPicked
from .ledger import EntryLedger
from .metrics import METRICS, Metrics
from .store.history import RoundHistory, RoundRecord
from .types.core import (
    Address,
    PendingRequest,
    RequestId,
    RoundConfig,
    RoundState,
    UpkeepStatus,
    to_address,
)
from .upkeep import evaluate
from .utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)

class RaffleStateMachine:
    """A single raffle instance. Implements RandomnessConsumer."""

    def __init__(
        self,
        config: RoundConfig,
        provider: RandomnessProvider,
        *,
        address: str,
        treasury: Treasury,
        clock: Optional[Clock] = None,
        events: Optional[EventLog] = None,
        history: Optional[RoundHistory] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        if to_address(provider.address) != config.provider:
            raise ValueError(
                f"provider address {provider.address} does not match configured provider {config.provider}"
            )
        self._config = config
        self._provider = provider
        self._address = to_address(address)
        self._treasury = treasury
        self._clock = clock or SystemClock()
        self._events = events if events is not None else EventLog()
        self._history = history
        self._metrics = metrics or METRICS

        self._ledger = EntryLedger(config.entrance_fee, self._events)
        self._state = RoundState.OPEN
        self._pending: Optional[PendingRequest] = None
        self._recent_winner: Optional[Address] = None
        self._last_timestamp = self._clock.now()
        self._round_number = 0
        self._lock = threading.RLock()

        logger.info(
            "raffle %s deployed: fee=%s interval=%ss provider=%s subscription=%s",
            self._address,
            config.entrance_fee,
            config.interval,
            config.provider,
            config.randomness.subscription_id,
        )

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def enter(self, caller: str, amount: int) -> Address:
        """
        Join the open round paying `amount` (≥ entrance fee) into escrow.

        Raises:
            NotOpen: the round is being calculated.
            InsufficientEntryFee: `amount` is below the entrance fee.
            InsufficientFunds: `caller` cannot cover `amount`.
            ValueError: `caller` is the raffle's own escrow account.
        """
        with self._lock:
            if self._state is not RoundState.OPEN:
                self._metrics.record_entry("not_open")
                raise NotOpen(state=self._state)
            # escrow paying itself would grow the pool without funding it
            if to_address(caller) == self._address:
                self._metrics.record_entry("invalid")
                raise ValueError(f"raffle {self._address} cannot enter itself")
            try:
                self._ledger.validate(amount)
                self._treasury.pay_in(caller, self._address, amount)
            except InsufficientEntryFee:
                self._metrics.record_entry("insufficient_fee")
                raise
            except InsufficientFunds:
                self._metrics.record_entry("insufficient_funds")
                raise
            who = self._ledger.record_entry(caller, amount)
            self._metrics.record_entry("accepted")
            return who

    # ------------------------------------------------------------------
    # Upkeep
    # ------------------------------------------------------------------

    def _evaluate(self) -> UpkeepStatus:
        now = self._clock.now()
        return evaluate(
            self._state,
            self._ledger.count,
            self._ledger.pool_balance,
            max(0, now - self._last_timestamp),
            self._config.interval,
            checked_at=now,
        )

    def check_upkeep(self, data: bytes = b"") -> Tuple[bool, UpkeepStatus]:
        """
        Read-only: is the round eligible to close? Returns (needed, status);
        `status.encode()` is suitable as perform data. `data` is accepted for
        keeper compatibility and ignored.
        """
        with self._lock:
            status = self._evaluate()
        logger.debug("check_upkeep: %s", status)
        return status.needed, status

    def perform_upkeep(self, data: bytes = b"") -> RequestId:
        """
        Close the round: request randomness and move to CALCULATING.

        Raises:
            UpkeepNotNeeded: the round is not eligible (carries the snapshot).
            RequestAlreadyPending: a request is already outstanding.
            ProviderError: the provider refused the request; nothing changed.
        """
        with self._lock:
            status = self._evaluate()
            if not status.needed:
                self._metrics.record_upkeep("not_needed")
                raise UpkeepNotNeeded(
                    balance=status.pool_balance,
                    participant_count=status.participant_count,
                    state=status.state,
                )
            if self._pending is not None:
                self._metrics.record_upkeep("already_pending")
                raise RequestAlreadyPending(request_id=int(self._pending.request_id))

            p = self._config.randomness
            try:
                raw_id = self._provider.request_random_words(
                    p.gas_lane,
                    p.subscription_id,
                    p.confirmations,
                    p.callback_gas_limit,
                    p.num_words,
                    consumer=self,
                )
            except ProviderError:
                self._metrics.record_upkeep("provider_error")
                raise

            request_id = RequestId(int(raw_id))
            self._state = RoundState.CALCULATING
            self._pending = PendingRequest(
                request_id=request_id,
                round_number=self._round_number,
                requested_at=status.checked_at,
            )
            self._metrics.record_upkeep("performed")
            logger.info(
                "raffle %s round %s closed: participants=%s pool=%s request_id=%s",
                self._address,
                self._round_number,
                status.participant_count,
                status.pool_balance,
                request_id,
            )
            self._events.emit(RequestedRaffleWinner(request_id=request_id))
            return request_id

    # ------------------------------------------------------------------
    # Randomness callback
    # ------------------------------------------------------------------

    def fulfill_randomness(self, request_id: int, random_values: Sequence[int], *, caller: str) -> Address:
        """
        Finalize the round with the provider's random values. Returns the winner.

        Raises:
            UnauthorizedFulfillment: `caller` is not the configured provider.
            UnknownRequest: `request_id` is not the pending request.
            MalformedRandomness: no usable random value was delivered.
            NoParticipants: the round is empty.
            TransferFailed: the payout was rejected; the round is left as is.
            HistoryConflict: the shared history already holds a different record
                for this round; nothing is paid.
        """
        with self._lock:
            pending = self._pending
            pending_id = None if pending is None else int(pending.request_id)

            if to_address(caller) != self._config.provider:
                self._metrics.record_fulfillment("unauthorized")
                logger.warning("rejected fulfilment from %s (request_id=%s)", caller, request_id)
                raise UnauthorizedFulfillment(
                    request_id=request_id,
                    pending=pending_id,
                    caller=to_address(caller),
                    provider=self._config.provider,
                )
            if pending is None or int(request_id) != pending_id:
                self._metrics.record_fulfillment("unknown_request")
                logger.warning("fulfilment for unknown request_id=%s (pending=%s)", request_id, pending_id)
                raise UnknownRequest(request_id=request_id, pending=pending_id)

            word = self._first_word(request_id, random_values)
            count = self._ledger.count
            if count == 0:
                self._metrics.record_fulfillment("no_participants")
                raise NoParticipants(request_id=request_id)

            winner = self._ledger.participant_at(word % count)
            payout = self._ledger.pool_balance
            now = self._clock.now()
            record = RoundRecord(
                raffle=self._address,
                round_number=self._round_number,
                winner=winner,
                payout=payout,
                participants=count,
                request_id=int(request_id),
                random_word=word,
                requested_at=pending.requested_at,
                closed_at=now,
            )
            if self._history is not None:
                try:
                    self._history.check(record)
                except HistoryConflict:
                    self._metrics.record_fulfillment("history_conflict")
                    logger.warning("round %s of %s conflicts with stored history", self._round_number, self._address)
                    raise

            try:
                self._treasury.transfer(self._address, winner, payout)
            except (TransferRejected, InsufficientFunds) as e:
                self._metrics.record_fulfillment("transfer_failed")
                logger.warning(
                    "payout of %s to %s failed; round %s stays CALCULATING: %s",
                    payout,
                    winner,
                    self._round_number,
                    e,
                )
                raise TransferFailed(winner=winner, amount=payout, reason=str(e)) from e

            self._recent_winner = winner
            self._pending = None
            self._ledger.reset()
            self._last_timestamp = now
            self._state = RoundState.OPEN
            self._round_number += 1

            if self._history is not None:
                self._history.record(record)
            self._metrics.record_fulfillment("winner_picked")
            self._metrics.observe_round(calculation_s=now - pending.requested_at, participants=count)
            logger.info(
                "raffle %s round %s winner=%s payout=%s (index %s of %s)",
                self._address,
                record.round_number,
                winner,
                payout,
                word % count,
                count,
            )
            self._events.emit(WinnerPicked(winner=winner))
            return winner

    def _first_word(self, request_id: int, random_values: Sequence[int]) -> int:
        if not random_values:
            self._metrics.record_fulfillment("malformed")
            raise MalformedRandomness(request_id=request_id, reason="no random values delivered")
        word = random_values[0]
        if not isinstance(word, int) or isinstance(word, bool) or word < 0:
            self._metrics.record_fulfillment("malformed")
            raise MalformedRandomness(request_id=request_id, reason=f"not an unsigned integer: {word!r}")
        return word

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def address(self) -> Address:
        return self._address

    @property
    def config(self) -> RoundConfig:
        return self._config

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def state(self) -> RoundState:
        with self._lock:
            return self._state

    @property
    def entrance_fee(self) -> int:
        return self._config.entrance_fee

    @property
    def interval(self) -> int:
        return self._config.interval

    @property
    def provider_address(self) -> Address:
        return self._config.provider

    @property
    def num_participants(self) -> int:
        with self._lock:
            return self._ledger.count

    def participant(self, index: int) -> Address:
        with self._lock:
            return self._ledger.participant_at(index)

    @property
    def pool_balance(self) -> int:
        with self._lock:
            return self._ledger.pool_balance

    @property
    def recent_winner(self) -> Optional[Address]:
        with self._lock:
            return self._recent_winner

    @property
    def last_timestamp(self) -> int:
        with self._lock:
            return self._last_timestamp

    @property
    def pending_request(self) -> Optional[PendingRequest]:
        with self._lock:
            return self._pending

    @property
    def round_number(self) -> int:
        with self._lock:
            return self._round_number

    def snapshot(self) -> Dict[str, Any]:
        """Consistent read of every observable field; state as its integer code."""
        with self._lock:
            return {
                "address": self._address,
                "state": self._state.code,
                "entranceFee": self._config.entrance_fee,
                "interval": self._config.interval,
                "provider": self._config.provider,
                "players": list(self._ledger.participants),
                "pool": self._ledger.pool_balance,
                "recentWinner": self._recent_winner,
                "lastTimestamp": self._last_timestamp,
                "round": self._round_number,
                "pendingRequest": None if self._pending is None else self._pending.to_dict(),
            }

__all__ = ["RaffleStateMachine"]
